from fastapi import APIRouter, Request

from api.dependencies.rate_limits import get_limiter
from infrastructure.services import SettingsDep, get_settings

router = APIRouter(tags=["System"])
limiter = get_limiter()


# Load balancer health checks hit these frequently; the limit is generous
@router.get("/version")
@limiter.limit(lambda: get_settings().server.API_RATE_LIMIT)
def get_version(request: Request, settings: SettingsDep):  # pylint: disable=unused-argument
    """Get the version of the application."""
    return {"version": settings.GIT_SHA}


@router.get("/health")
@limiter.limit(lambda: get_settings().server.API_RATE_LIMIT)
def get_health(request: Request):  # pylint: disable=unused-argument
    """Healthcheck endpoint."""
    return {"status": "ok"}
