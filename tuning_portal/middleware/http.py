"""
Contains custom FastAPI middleware for the Tuning Portal application.

Middleware functions in this module are used to intercept HTTP requests
for purposes such as request tracing and metrics collection.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from tuning_portal.core.context import (
    REQUEST_ID_HEADER,
    generate_request_id,
    request_id_var,
)
from tuning_portal.core.metrics import get_http_latency, get_http_requests


async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """
    Bind a request ID to the request context and echo it in the response.

    An incoming ``X-Request-ID`` header is reused, otherwise one is generated.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def prometheus_http_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """
    FastAPI middleware to record Prometheus metrics for HTTP requests.
    It measures the latency of each request and increments a counter for
    requests, labeled by method, endpoint, and status code.
    Args:
        request: The incoming FastAPI Request object.
        call_next: A function to call to process the request and get the response.
    Returns:
        The response object from the next handler in the chain.
    """
    start = time.perf_counter()
    response = await call_next(request)
    latency = time.perf_counter() - start

    # Label by route template to keep path parameters out of the label set
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    method = request.method
    status = response.status_code

    http_requests = get_http_requests()
    http_latency = get_http_latency()

    if http_requests:
        http_requests.labels(method=method, endpoint=path, status_code=status).inc()
    if http_latency:
        http_latency.labels(method=method, endpoint=path).observe(latency)

    return response
