from fastapi import APIRouter, Depends, HTTPException, Query, Path
from fastapi.responses import FileResponse
from typing import Optional, List

from country_cache import schemas
from country_cache.config import settings
from country_cache.crud import CountryStore, StatusTracker
from country_cache.routes.deps import get_pipeline, get_status_tracker, get_store
from country_cache.services import country_service
from country_cache.services.pipeline import RefreshPipeline

router = APIRouter()


@router.post(
    "/refresh",
    summary="Refresh country, currency, and exchange data",
    description=(
        "Fetches the latest data from both external feeds and upserts the local cache. "
        "The summary image for the top 5 GDP countries is regenerated in the background."
    ),
)
async def refresh_countries(pipeline: RefreshPipeline = Depends(get_pipeline)):
    result = await pipeline.run_refresh()
    return {
        "message": "Cache refreshed successfully",
        "total_countries": result.total_countries,
        "last_refreshed_at": result.last_refreshed_at,
    }


@router.get(
    "",
    response_model=List[schemas.CountryOut],
    summary="List countries",
    description=(
        "Returns countries with optional filtering, sorting, and pagination.\n\n"
        "Filters:\n"
        "- region: case-insensitive substring match (e.g., 'europe')\n"
        "- currency: currency code, case-insensitive exact match (e.g., 'USD', 'ngn')\n\n"
        "Sorting options (sort): name_asc|name_desc|population_asc|population_desc|gdp_asc|gdp_desc. "
        "GDP sorts leave out countries without an estimate.\n\n"
        "Pagination: use limit and offset."
    ),
    response_description="List of countries",
)
def get_all(
    region: Optional[str] = Query(
        default=None,
        description="Filter by region (case-insensitive substring)",
        examples=["Europe"],
    ),
    currency: Optional[str] = Query(
        default=None,
        description="Filter by currency code (ISO 4217, case-insensitive)",
        examples=["USD"],
        min_length=3,
        max_length=10,
    ),
    sort: Optional[str] = Query(
        default=None,
        description="Sort order: one of name_asc, name_desc, population_asc, population_desc, gdp_asc, gdp_desc",
        examples=["gdp_desc"],
    ),
    limit: Optional[int] = Query(
        default=None,
        ge=1,
        le=500,
        description="Maximum number of records to return (1-500)",
    ),
    offset: Optional[int] = Query(
        default=None,
        ge=0,
        description="Number of records to skip before starting to collect the result set",
    ),
    store: CountryStore = Depends(get_store),
):
    return country_service.list_countries(store, region, currency, sort, limit, offset)


@router.get(
    "/image",
    summary="Get generated summary image",
    description="Returns the PNG summary (top 5 GDP countries, total count, last refresh time).",
)
def get_image():
    img_path = settings.summary_image_path
    if not img_path.exists():
        raise HTTPException(status_code=404, detail="Summary image not found")
    return FileResponse(str(img_path), media_type="image/png")


@router.get(
    "/status",
    response_model=schemas.StatusOut,
    summary="Cache status",
    description="Same payload as /status: cached country count and last refresh time.",
)
def get_status(status_tracker: StatusTracker = Depends(get_status_tracker)):
    return country_service.get_status(status_tracker)


@router.get(
    "/{name}",
    response_model=schemas.CountryOut,
    summary="Get country by name",
    description="Case-insensitive exact country name match.",
)
def get_one(
    name: str = Path(..., description="Exact country name", examples=["Nigeria"]),
    store: CountryStore = Depends(get_store),
):
    return country_service.get_country(store, name)


@router.delete(
    "/{name}",
    summary="Delete a country by name",
    description="Deletes a country if it exists. Primarily for maintenance/testing.",
)
def delete_country(
    name: str = Path(..., description="Exact country name", examples=["Nigeria"]),
    store: CountryStore = Depends(get_store),
):
    country_service.delete_country(store, name)
    return {"message": "Deleted successfully"}
