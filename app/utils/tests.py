from typing import Any, Callable, Dict, Optional

import httpx
from fastapi import FastAPI


def create_test_app(
    routers,
    dependency_overrides: Optional[Dict[Callable[..., Any], Callable[..., Any]]] = None,
    prefix: str = "",
) -> FastAPI:
    """
    Create a FastAPI test application with the given routers.

    Args:
        routers: Router or list of routers to include.
        dependency_overrides: Provider -> replacement, e.g.
            {get_communications_service: lambda: service}
        prefix: Prefix applied to every router (e.g. "/api/v1").

    Returns:
        FastAPI: A configured FastAPI application with rate limiting set up.

    Example:
        app = create_test_app(
            communications.router,
            dependency_overrides={get_communications_service: lambda: service},
        )
    """
    app = FastAPI()

    from api.dependencies.rate_limits import setup_rate_limiter

    setup_rate_limiter(app)

    if not isinstance(routers, list):
        routers = [routers]
    for router in routers:
        app.include_router(router, prefix=prefix)

    for provider, override in (dependency_overrides or {}).items():
        app.dependency_overrides[provider] = override

    return app


async def rate_limiting_helper(
    app,
    endpoint: str,
    request_limit: int,
    method: str = "get",
    expected_status: int = 200,
    headers: Optional[dict] = None,
):
    """
    Assert that ``endpoint`` answers ``request_limit`` times, then returns 429.
    """
    transport = httpx.ASGITransport(app=app)
    headers = headers or {}

    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        http_method = getattr(client, method.lower())

        for i in range(request_limit):
            response = await http_method(endpoint, headers=headers)
            assert (
                response.status_code == expected_status
            ), f"Request {i+1} failed with status {response.status_code}"

        response = await http_method(endpoint, headers=headers)
        assert response.status_code == 429, "Expected rate limiting to trigger"
        assert response.json() == {"message": "Rate limit exceeded"}
