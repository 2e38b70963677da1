import httpx
from fastapi import APIRouter, HTTPException, Query, status

from storefront.logging_config import get_logger
from .catalog import UnknownPromotionError
from .schemas import PromotionStatus
from . import service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/promotions", tags=["promotions"])


@router.get(
    "/check",
    response_model=PromotionStatus,
    response_model_exclude_none=True,
)
async def check_promotion(id: str | None = Query(None)):
    """Доступность акции (например, оставшиеся места «первым 100»)."""
    if not id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Promotion ID required")

    try:
        return await service.get_promotion_status(id)
    except UnknownPromotionError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown promotion")
    except httpx.HTTPError:
        logger.error(f"Failed to count slots for promotion {id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database error",
        )
