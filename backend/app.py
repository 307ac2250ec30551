# backend/app.py
import time

# Load .env BEFORE any backend imports (monitoring reads env vars at import time)
from dotenv import load_dotenv
load_dotenv(override=True)

from fastapi import FastAPI, Request, Path
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from backend import monitoring
from backend import db as dbmod
from backend.audit_sheet import AuditLogger
from backend.config import get_settings
from backend.errors import E_RATE_LIMIT, E_NOT_FOUND, StoreError
from backend.llm_wrapper import GenerationClient
from backend.orchestrator import SubmissionOrchestrator, FAILURE_MESSAGE
from backend.rate_limit import build_limiter, RATE_LIMIT_MESSAGE
from backend.uploads import UploadStore

settings = get_settings()

# Bind the DB and create tables on startup
dbmod.reconfigure(settings.database_url, settings.database_timeout_seconds)
dbmod.init_db()

store = dbmod.RequirementStore()

# instantiate orchestrator once
orchestrator = SubmissionOrchestrator(
    store=store,
    generator=GenerationClient(settings),
    audit=AuditLogger(settings),
    uploads=UploadStore(settings),
)

app = FastAPI(title="Requirement Code Generation API")
app.state.limiter = build_limiter(settings)


# ---------------------------------------------------------------------------
# Rate-limit middleware (/api/* paths only)
# ---------------------------------------------------------------------------
@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    path = request.url.path
    if not path.startswith("/api/"):
        return await call_next(request)

    client_key = request.client.host if request.client else "unknown"
    limiter = request.app.state.limiter
    # Synchronous limiter, no await needed
    allowed, remaining = limiter.allow_request(client_key)
    if not allowed:
        monitoring.inc_rate_limited()
        monitoring.logger.warning("Rate limit exceeded", extra={"client": client_key, "path": path})
        resp = JSONResponse(
            status_code=429,
            content={"error": RATE_LIMIT_MESSAGE, "error_code": E_RATE_LIMIT},
        )
        resp.headers["Retry-After"] = str(limiter.window)
        return resp

    response = await call_next(request)
    if remaining is not None:
        response.headers["X-RateLimit-Remaining"] = str(remaining)
    return response


# ---------------------------------------------------------------------------
# Metrics middleware
# ---------------------------------------------------------------------------
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    endpoint = request.url.path
    method = request.method
    status = "500"
    try:
        response = await call_next(request)
        status = str(response.status_code)
        return response
    except Exception:
        monitoring.logger.exception("Unhandled exception in request", extra={"path": endpoint})
        raise
    finally:
        monitoring.observe_request(start, endpoint, method, status)


# Added last so it wraps everything above, 429s included
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    monitoring.logger.exception(
        "Unhandled exception", extra={"path": request.url.path, "error": str(exc)}
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.post("/api/submit-requirement")
async def submit_requirement(request: Request):
    """
    POST /api/submit-requirement
    Multipart body: optional "file" part, required "text" field.
    """
    form = await request.form()
    try:
        text = form.get("text")
        if not isinstance(text, str):
            text = None
        # Browsers may send the literal string "null" when no file was picked
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            upload = None

        monitoring.logger.info(
            "Received /api/submit-requirement request",
            extra={"text_preview": (text[:200] if text else ""),
                   "upload_filename": upload.filename if upload else None},
        )
        try:
            # Pipeline calls block; run them off the event loop
            result = await run_in_threadpool(
                orchestrator.handle_submission,
                text,
                upload.file if upload else None,
                upload.filename if upload else None,
            )
        except Exception:
            monitoring.logger.exception("Unexpected error in /api/submit-requirement handler")
            return JSONResponse(
                status_code=500,
                content={"error": FAILURE_MESSAGE, "detail": "internal:unexpected-error"},
            )
        return JSONResponse(status_code=result.status_code, content=result.body)
    finally:
        await form.close()


@app.get("/api/requirements/{requirement_id}")
def get_requirement(requirement_id: int = Path(..., description="Requirement id to fetch")):
    """
    GET /api/requirements/{requirement_id}
    Fetch a stored requirement by id.
    """
    try:
        rec = store.get(requirement_id)
    except StoreError as e:
        monitoring.logger.error("Requirement lookup failed", extra={"detail": e.detail})
        return JSONResponse(status_code=500, content={"error": "Error reading the requirement"})
    if not rec:
        return JSONResponse(
            status_code=404,
            content={"error": "Requirement not found", "error_code": E_NOT_FOUND},
        )
    return JSONResponse(status_code=200, content={"requirement": rec})


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    if not monitoring.PROMETHEUS_ENABLED:
        return PlainTextResponse("Prometheus disabled", status_code=404)
    payload, content_type = monitoring.prometheus_metrics_response()
    return Response(content=payload, media_type=content_type)
