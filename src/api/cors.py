"""
CORS middleware with per-endpoint header allow-lists.

Any origin may call the API. Preflight requests are answered with 204
before routing; the allowed headers depend on the endpoint, so only the
admin endpoints advertise x-api-key and only the payment webhook
advertises Authorization.

Unhandled errors are answered outside this middleware, so the 500 handler
applies cors_headers itself.
"""

from fastapi import Request, Response, status

DEFAULT_ALLOWED_HEADERS = ["Content-Type"]

ALLOWED_HEADERS = {
    "/v1/add-user": ["Content-Type", "x-api-key"],
    "/v1/create-internal-user": ["Content-Type", "x-api-key"],
    "/v1/verify-pay": ["Content-Type", "Authorization"],
}


def cors_headers(path: str) -> dict[str, str]:
    allowed_headers = ALLOWED_HEADERS.get(path, DEFAULT_ALLOWED_HEADERS)
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": ", ".join(allowed_headers),
    }


async def cors_middleware(request: Request, call_next) -> Response:
    if request.method == "OPTIONS":
        response = Response(status_code=status.HTTP_204_NO_CONTENT)
    else:
        response = await call_next(request)

    response.headers.update(cors_headers(request.url.path))
    return response
