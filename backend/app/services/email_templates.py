"""HTML bodies for workflow emails. Every interpolated value is escaped."""
from html import escape

from app.models.event import Event

_LAYOUT = """<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>{title}</title></head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <div style="background: #ff6b35; color: white; padding: 20px; text-align: center; border-radius: 10px 10px 0 0;">
        <h1 style="margin: 0;">Community Events</h1>
      </div>
      <div style="background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px;">
        {content}
      </div>
      <p style="text-align: center; color: #666; font-size: 12px;">
        This is an automated message, please do not reply to this email.
      </p>
    </div>
  </body>
</html>
"""

_BUTTON = (
    '<a href="{href}" style="display: inline-block; background: {color}; color: white; '
    'padding: 12px 30px; text-decoration: none; border-radius: 5px; margin: 10px 5px;">{label}</a>'
)


def _page(title: str, content: str) -> str:
    return _LAYOUT.format(title=escape(title), content=content)


def _greeting(name: str) -> str:
    return f"<p>Hello {escape(name or 'there')},</p>"


def _event_details(event: Event) -> str:
    rows = [
        f"<h3 style=\"margin-top: 0;\">{escape(event.title)}</h3>",
        f"<p><strong>Date:</strong> {event.date.isoformat()} at {event.time.strftime('%H:%M')}</p>",
        f"<p><strong>Location:</strong> {escape(event.location_text)}</p>",
        f"<p><strong>Category:</strong> {escape(event.category.value)}</p>",
        f"<p><strong>Contact:</strong> {escape(event.contact_email)}</p>",
        f"<p>{escape(event.description)}</p>",
    ]
    if event.image_url:
        rows.append(f"<p><strong>Image:</strong> <a href=\"{escape(event.image_url)}\">View image</a></p>")
    if event.booking_link:
        link = escape(event.booking_link)
        rows.append(f"<p><strong>Booking:</strong> <a href=\"{link}\">{link}</a></p>")
    return (
        '<div style="background: white; padding: 20px; border-radius: 8px; border-left: 4px solid #ff6b35;">'
        + "".join(rows)
        + "</div>"
    )


def event_pending_approval(event: Event, approve_link: str, reject_link: str, ttl_days: int) -> tuple[str, str]:
    subject = f"New Event Pending Approval: {event.title}"
    content = (
        "<h2>New Event Pending Approval</h2>"
        "<p>An event has been submitted and is waiting for review:</p>"
        + _event_details(event)
        + '<div style="text-align: center; margin: 30px 0;">'
        + _BUTTON.format(href=escape(approve_link), color="#28a745", label="Approve Event")
        + _BUTTON.format(href=escape(reject_link), color="#dc3545", label="Reject Event")
        + "</div>"
        + f"<p><strong>Note:</strong> these links can be used once and expire in {ttl_days} days.</p>"
    )
    return subject, _page(subject, content)


def event_approved(event: Event, owner_name: str) -> tuple[str, str]:
    subject = f"Your event has been approved: {event.title}"
    content = (
        "<h2>Event Approved</h2>"
        + _greeting(owner_name)
        + "<p>Your event is now live in the public listing.</p>"
        + _event_details(event)
    )
    return subject, _page(subject, content)


def event_rejected(event: Event, owner_name: str) -> tuple[str, str]:
    subject = f"Your event was not approved: {event.title}"
    content = (
        "<h2>Event Not Approved</h2>"
        + _greeting(owner_name)
        + "<p>Your event was reviewed and not approved for the public listing. "
        "You can edit it from your events page to submit it for review again.</p>"
        + _event_details(event)
    )
    return subject, _page(subject, content)


def password_reset(user_name: str, reset_link: str, ttl_minutes: int) -> tuple[str, str]:
    subject = "Password Reset Request"
    content = (
        "<h2>Password Reset Request</h2>"
        + _greeting(user_name)
        + "<p>We received a request to reset your password.</p>"
        + _BUTTON.format(href=escape(reset_link), color="#ff6b35", label="Reset Password")
        + f"<p>This link expires in {ttl_minutes} minutes and can only be used once. "
        "If you didn't request a reset, you can ignore this email.</p>"
    )
    return subject, _page(subject, content)


def password_reset_success(user_name: str) -> tuple[str, str]:
    subject = "Password Reset Successful"
    content = (
        "<h2>Password Reset Successful</h2>"
        + _greeting(user_name)
        + "<p>Your password has been changed. If you didn't make this change, "
        "please contact support immediately.</p>"
    )
    return subject, _page(subject, content)


def moderation_confirmation_page(event: Event, action: str) -> str:
    """Landing page for an emailed approve/reject link.

    Opening the link only shows this page; the decision is made by the form's
    POST back to the same URL.
    """
    verb = "Approve" if action == "approve" else "Reject"
    color = "#28a745" if action == "approve" else "#dc3545"
    content = (
        f"<h2>{verb} this event?</h2>"
        + _event_details(event)
        + '<form method="post" style="text-align: center; margin: 30px 0;">'
        + f'<button type="submit" style="background: {color}; color: white; padding: 12px 30px; '
        f'border: none; border-radius: 5px; font-size: 16px; cursor: pointer;">{verb} Event</button>'
        + "</form>"
    )
    return _page(f"{verb} event: {event.title}", content)
