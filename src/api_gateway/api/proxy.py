"""Catch-all proxy endpoint.

Every path not served by the gateway itself is dispatched through the
route table; unmatched paths get a JSON 404 from the router.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from ..routing import GatewayRouter

router = APIRouter()


def get_gateway_router(request: Request) -> GatewayRouter:
    return request.app.state.gateway_router


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    summary="Proxy to backend services",
    description="Routes requests to the owning backend service by path prefix.",
    include_in_schema=False,
)
async def proxy(request: Request, path: str) -> Response:
    gateway_router = get_gateway_router(request)
    result = await gateway_router.route(
        method=request.method,
        path=request.url.path,
        headers=request.headers,
        body=await request.body(),
        query=request.url.query,
    )
    response = Response(content=result.body, status_code=result.status_code)
    for key, value in result.headers.multi_items():
        response.headers.append(key, value)
    return response
