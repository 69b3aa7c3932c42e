from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from actionboost.api.routes import codes, jobs, shares, tasks, tools
from actionboost.config import get_settings
from actionboost.core.exceptions import analysis_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from actionboost.core.json import AnalysisJSONResponse
from actionboost.core.lifespan import lifespan
from actionboost.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from actionboost.jobs.errors import AnalysisError

settings = get_settings()

app = FastAPI(default_response_class=AnalysisJSONResponse, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "retry-after", "x-request-id"])

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(AnalysisError, analysis_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(tools.router, prefix="/v1/tools", tags=["tools"])
app.include_router(shares.router, prefix="/v1/shares", tags=["shares"])
app.include_router(codes.router, prefix="/v1/codes", tags=["codes"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
