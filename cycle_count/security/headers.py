from fastapi import FastAPI, Request
from starlette.responses import Response


def install_security_headers(app: FastAPI) -> None:
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Counts carry stock and cost figures; keep them out of shared caches.
        response.headers.setdefault("Cache-Control", "no-store")
        return response
