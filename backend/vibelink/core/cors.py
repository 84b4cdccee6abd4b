"""
Permissive CORS for every endpoint.

CORSMiddleware answers browser preflights; the catch-all OPTIONS route
answers bare OPTIONS requests (no Origin header) the same way, and
read endpoints attach CORS_HEADERS to their responses directly.
"""

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def install_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.options("/{path:path}", include_in_schema=False)
    async def options_handler(path: str) -> Response:
        return Response(status_code=200, headers=CORS_HEADERS)
