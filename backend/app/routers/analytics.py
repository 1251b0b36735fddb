"""Public analytics logging route."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.auth.dependencies import Identity, get_optional_identity
from app.database import get_db
from app.models.analytics import ActivityType
from app.schemas.analytics import HomeVisitCreate
from app.services import analytics_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", status_code=status.HTTP_201_CREATED)
def log_home_visit(
    payload: HomeVisitCreate,
    request: Request,
    identity: Optional[Identity] = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    """Record a landing-page visit (the denominator of the admin CTR figure)."""
    metadata = {**(payload.metadata or {}), **analytics_service.request_metadata(request)}
    analytics_service.log_activity(
        db,
        ActivityType.home_visit,
        user_id=identity.user_id if identity else None,
        metadata=metadata,
    )
    return {"message": "Analytics logged successfully"}
