from fastapi import APIRouter, Depends

from country_cache import schemas
from country_cache.crud import StatusTracker
from country_cache.routes.deps import get_status_tracker
from country_cache.services import country_service

router = APIRouter()


@router.get(
    "",
    response_model=schemas.StatusOut,
    summary="API/data status",
    description="Returns the number of countries cached and the timestamp of the last refresh.",
)
def get_status(status_tracker: StatusTracker = Depends(get_status_tracker)):
    return country_service.get_status(status_tracker)
