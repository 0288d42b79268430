from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from novel_engine.api.routes import novels
from novel_engine.config import get_settings
from novel_engine.core.errors import NovelEngineError
from novel_engine.core.exceptions import engine_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from novel_engine.core.lifespan import lifespan
from novel_engine.core.middleware import RequestLoggingMiddleware

settings = get_settings()

app = FastAPI(title="Novel Engine", lifespan=lifespan, docs_url="/docs" if settings.debug else None, redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=False, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type", "x-request-id"], expose_headers=["content-length", "x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(NovelEngineError, engine_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(novels.router, prefix="/v1/novels", tags=["novels"])
