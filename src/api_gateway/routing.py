"""Path-prefix routing and upstream proxying.

Routes are kept sorted longest prefix first, so a specific mapping always
wins over a generic one regardless of registration order. Prefixes match on
path-segment boundaries only.

Strip conventions:
- prefix: the whole matched prefix is removed (``/api/users/7`` -> ``/7``)
- api: only the leading ``/api`` is removed (``/api/admin/roles`` -> ``/admin/roles``)

Every response leaving the router carries a JSON body or no body at all.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

import httpx

from shared.config import ServiceURLSettings
from shared.errors import (
    UpstreamError,
    UpstreamResponseError,
    UpstreamTimeoutError,
)
from shared.observability import (
    REQUEST_ID_HEADER,
    get_logger,
    log_upstream_call,
    request_id_var,
)
from shared.responses import error_body

logger = get_logger(__name__)

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# Recomputed for the re-emitted body; httpx has already decoded it
_REQUEST_DROP = HOP_BY_HOP_HEADERS | {"host", "content-length"}
_RESPONSE_DROP = HOP_BY_HOP_HEADERS | {"content-encoding", "content-length"}

JSON_CONTENT_TYPE = "application/json"


class StripMode(str, Enum):
    """How the matched prefix is rewritten before forwarding."""

    PREFIX = "prefix"
    API = "api"


@dataclass(frozen=True)
class Route:
    """One prefix -> upstream mapping."""

    prefix: str
    upstream: str
    origin: str
    strip: StripMode = StripMode.PREFIX

    def __post_init__(self) -> None:
        if not self.prefix.startswith("/") or (self.prefix != "/" and self.prefix.endswith("/")):
            raise ValueError(f"Invalid route prefix: {self.prefix!r}")

    def matches(self, path: str) -> bool:
        if self.prefix == "/":
            return True
        return path == self.prefix or path.startswith(self.prefix + "/")

    def upstream_path(self, path: str) -> str:
        if self.strip == StripMode.API:
            rest = path[len("/api") :] if path == "/api" or path.startswith("/api/") else path
        else:
            rest = path[len(self.prefix) :] if self.prefix != "/" else path
        return rest or "/"

    def upstream_url(self, path: str) -> str:
        return self.origin.rstrip("/") + self.upstream_path(path)


class RouteTable:
    """Routes ordered by specificity."""

    def __init__(self, routes: Iterable[Route] = ()):
        self._routes: list[Route] = []
        for route in routes:
            self.add(route)

    def add(self, route: Route) -> None:
        self._routes.append(route)
        # Stable sort keeps registration order among equal-length prefixes
        self._routes.sort(key=lambda r: len(r.prefix), reverse=True)

    def match(self, path: str) -> Route | None:
        for route in self._routes:
            if route.matches(path):
                return route
        return None

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    @classmethod
    def default(cls, services: ServiceURLSettings) -> RouteTable:
        """The platform's service prefixes."""
        return cls(
            [
                Route("/api/users", "user-service", services.user_service_url),
                Route("/api/appointments", "appointment-service", services.appointment_service_url),
                Route("/api/clinical", "clinical-service", services.clinical_service_url),
                Route("/api/notifications", "notification-service", services.notification_service_url),
                Route("/api/billing", "billing-service", services.billing_service_url),
                Route("/api/storage", "storage-service", services.storage_service_url),
                Route("/api/admin", "admin-service", services.admin_service_url, StripMode.API),
                Route(
                    "/api/medical-coordinator",
                    "admin-service",
                    services.admin_service_url,
                    StripMode.API,
                ),
            ]
        )


@dataclass
class GatewayResponse:
    """Status, headers and body relayed to the client."""

    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    @classmethod
    def json(
        cls,
        status_code: int,
        content: dict,
        headers: Mapping[str, str] | None = None,
    ) -> GatewayResponse:
        return cls(
            status_code=status_code,
            headers=httpx.Headers({**(headers or {}), "content-type": JSON_CONTENT_TYPE}),
            body=json.dumps(content).encode(),
        )


def _forward_headers(
    items: Iterable[tuple[str, str]], drop: frozenset[str]
) -> httpx.Headers:
    # Pairs, not a dict, so repeated headers such as Set-Cookie survive
    return httpx.Headers([(k, v) for k, v in items if k.lower() not in drop])


def _looks_like_html(body: bytes) -> bool:
    return body.lstrip()[:1] == b"<"


class GatewayRouter:
    """Dispatches requests to the owning upstream service.

    Args:
        table: Route table
        client: Shared HTTP client; its timeout bounds every upstream call
        retry_idempotent: Retry GET requests once on transport failure
    """

    def __init__(
        self,
        table: RouteTable,
        client: httpx.AsyncClient,
        retry_idempotent: bool = True,
    ):
        self.table = table
        self.client = client
        self.retry_idempotent = retry_idempotent

    async def route(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: bytes = b"",
        query: str = "",
    ) -> GatewayResponse:
        route = self.table.match(path)
        if route is None:
            logger.info("No route for path", http_method=method, http_path=path)
            return GatewayResponse.json(
                404,
                error_body("Not Found", "No service is mapped to this path", path=path),
            )

        try:
            upstream = await self._send(route, method, path, headers, body, query)
            return self._relay(upstream)
        except UpstreamError as e:
            logger.error(
                "Upstream request failed",
                upstream=route.upstream,
                http_method=method,
                http_path=path,
                error_code=e.error_code,
                **e.context,
            )
            return GatewayResponse.json(e.status_code, error_body(e.error_code, e.message))

    async def _send(
        self,
        route: Route,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: bytes,
        query: str,
    ) -> httpx.Response:
        url = route.upstream_url(path)
        if query:
            url = f"{url}?{query}"

        forward = _forward_headers(headers.items(), _REQUEST_DROP)
        if REQUEST_ID_HEADER not in forward:
            if request_id := request_id_var.get():
                forward[REQUEST_ID_HEADER] = request_id

        attempts = 2 if self.retry_idempotent and method.upper() == "GET" else 1
        upstream_path = route.upstream_path(path)

        attempt = 1
        while True:
            start = time.perf_counter()
            try:
                response = await self.client.request(
                    method, url, headers=forward, content=body or None
                )
            except httpx.DecodingError as e:
                # The upstream answered, but its content-encoding is corrupt
                log_upstream_call(
                    logger,
                    route.upstream,
                    method,
                    upstream_path,
                    (time.perf_counter() - start) * 1000,
                    error=type(e).__name__,
                    attempt=attempt,
                )
                raise UpstreamResponseError(
                    "The service returned a body that could not be decoded",
                    reason=type(e).__name__,
                ) from e
            except httpx.TransportError as e:
                log_upstream_call(
                    logger,
                    route.upstream,
                    method,
                    upstream_path,
                    (time.perf_counter() - start) * 1000,
                    error=type(e).__name__,
                    attempt=attempt,
                )
                if attempt < attempts:
                    attempt += 1
                    continue
                if isinstance(e, httpx.TimeoutException):
                    raise UpstreamTimeoutError(reason=type(e).__name__) from e
                raise UpstreamError(reason=type(e).__name__) from e

            log_upstream_call(
                logger,
                route.upstream,
                method,
                upstream_path,
                (time.perf_counter() - start) * 1000,
                status_code=response.status_code,
                attempt=attempt,
            )
            return response

    def _relay(self, upstream: httpx.Response) -> GatewayResponse:
        # httpx has already reversed any gzip/deflate content-encoding
        body = upstream.content
        headers = _forward_headers(upstream.headers.multi_items(), _RESPONSE_DROP)

        if not body.strip():
            return GatewayResponse(upstream.status_code, headers, body)

        try:
            json.loads(body)
        except ValueError as e:
            if _looks_like_html(body):
                raise UpstreamResponseError(
                    "The service returned an HTML response instead of JSON",
                    upstream_status=upstream.status_code,
                ) from e
            raise UpstreamResponseError(upstream_status=upstream.status_code) from e

        headers["content-type"] = JSON_CONTENT_TYPE
        return GatewayResponse(upstream.status_code, headers, body)
