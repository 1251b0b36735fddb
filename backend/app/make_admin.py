"""Promote an existing account to admin.

Role changes are deliberately kept off the HTTP API::

    python -m app.make_admin someone@example.com
"""
import argparse
import logging

from app.database import SessionLocal
from app.errors import NotFound
from app.logging_config import configure_logging
from app.services import identity_service

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Grant the admin role to a registered user.")
    parser.add_argument("email", help="email address of an existing account")
    args = parser.parse_args(argv)

    configure_logging()
    db = SessionLocal()
    try:
        user = identity_service.promote_to_admin(db, args.email)
    except NotFound as exc:
        logger.error(exc.detail)
        return 1
    finally:
        db.close()
    print(f"{user.email} is now an admin (id={user.user_id})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
