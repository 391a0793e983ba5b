import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from platewise.api import analysis, profiles
from platewise.services.tool_invoker import (
    AnalysisError,
    AnalysisTimeoutError,
    InvalidInputError,
    InvalidResponseError,
    ModelRequestError,
    NetworkError,
    RateLimitError,
    ServiceUnavailableError,
    ToolFailureError,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Platewise", version="0.1.0")


# =============================================================================
# Analysis error -> HTTP status
# =============================================================================

ERROR_STATUS_CODES = {
    InvalidInputError: 400,
    RateLimitError: 429,
    ToolFailureError: 502,
    InvalidResponseError: 502,
    ModelRequestError: 502,
    NetworkError: 503,
    ServiceUnavailableError: 503,
    AnalysisTimeoutError: 504,
}


def status_for(exc: AnalysisError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(AnalysisError)
async def analysis_exception_handler(request: Request, exc: AnalysisError):
    status_code = status_for(exc)
    logger.warning(
        "Analysis failed: %s (%s) -> %d, path=%s",
        type(exc).__name__,
        exc,
        status_code,
        request.url.path,
    )
    content = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, ToolFailureError):
        content["tool"] = exc.tool.value
    return JSONResponse(status_code=status_code, content=content)


# Include routers
app.include_router(analysis.router)
app.include_router(profiles.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
