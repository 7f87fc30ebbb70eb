from fastapi import Request

from country_cache.crud import CountryStore, StatusTracker
from country_cache.services.pipeline import RefreshPipeline


def get_store(request: Request) -> CountryStore:
    return request.app.state.store


def get_status_tracker(request: Request) -> StatusTracker:
    return request.app.state.status_tracker


def get_pipeline(request: Request) -> RefreshPipeline:
    return request.app.state.pipeline
