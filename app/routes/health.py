"""Health check endpoint for monitoring and deployment verification.

Reports liveness plus database connectivity; a failed database probe turns
the response into a 503 so load balancers take the instance out of rotation.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.database import get_db
from app.models.submission import utcnow
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)) -> dict:
    """Health check endpoint.

    Raises:
        HTTPException: If the database probe fails (503 Service Unavailable)

    Example response:
        {
            "status": "ok",
            "time": "2024-05-01T12:00:00+00:00",
            "env": "production",
            "database": "connected"
        }
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(
            status_code=503,
            detail="Service unavailable - database connection failed"
        )

    return {
        "status": "ok",
        "time": utcnow().isoformat(),
        "env": get_settings().environment,
        "database": "connected",
    }
