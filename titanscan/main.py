# --- Imports ---
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from .adapters import build_registry
from .config import Settings
from .errors import AllToolsFailed, ScanError, TargetValidationError
from .insights import InsightAnalyzer
from .models import AggregateScanRequest, ScanStartRequest, ZapScanRequest
from .orchestrator import ScanOrchestrator
from .progress import build_progress_store
from .scan_store import ScanStore
from .security import validate_uuid

# --- Logging Configuration ---
logging.basicConfig(
    stream=sys.stdout,
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("titanscan.api")

settings = Settings.from_env()


# --- Lifecycle: wire collaborators on startup ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime_settings = Settings.from_env()
    scan_store = ScanStore(runtime_settings.database_url)
    await scan_store.init()

    app.state.scan_store = scan_store
    app.state.orchestrator = ScanOrchestrator(
        adapters=build_registry(runtime_settings),
        progress_store=build_progress_store(runtime_settings),
        analyzer=InsightAnalyzer(),
        scan_store=scan_store,
        aggregate_concurrency=runtime_settings.aggregate_concurrency,
    )
    logger.info("🚀 titanscan engine started")
    yield
    await scan_store.close()
    logger.info("🔌 titanscan engine stopped")


app = FastAPI(title="titanscan", lifespan=lifespan)

# ============================================================================
# Rate Limiting
# ============================================================================

limiter = Limiter(key_func=get_remote_address, storage_uri=settings.rate_limit_storage_uri)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

logger.info(f"✅ Rate limiting enabled: {settings.scan_rate_limit} on scan routes")

# ============================================================================
# HTTPS Enforcement & CORS Configuration
# ============================================================================

if settings.environment == "production":
    for origin in settings.allowed_origins:
        if origin.startswith("http://") and "localhost" not in origin:
            raise ValueError(
                f"❌ SECURITY ERROR: HTTPS required in production!\n"
                f"Invalid origin: {origin}\n"
                f"All production origins must use HTTPS (https://)."
            )
    logger.info("✅ HTTPS enforcement validated for production")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if "server" in response.headers:
            del response.headers["server"]

        return response


app.add_middleware(SecurityHeadersMiddleware)


# --- Dependencies ---

def get_orchestrator(request: Request) -> ScanOrchestrator:
    return request.app.state.orchestrator


def get_scan_store(request: Request) -> ScanStore:
    return request.app.state.scan_store


def _bad_request(error: Exception) -> HTTPException:
    return HTTPException(status_code=400, detail=str(error))


# --- Endpoints ---

router = APIRouter(prefix="/api")


@router.post("/scan/start")
@limiter.limit(settings.scan_rate_limit)
async def start_scan(
    request: Request,
    body: ScanStartRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    """
    Start an asynchronous single-tool scan.

    Returns immediately with the job id; poll /api/scan/progress/{scanId}.
    Unknown tools are reported through the job's Error state, not here.
    """
    try:
        scan_id = await orchestrator.create_job(body.scan_type, body.target)
    except TargetValidationError as e:
        raise _bad_request(e)
    return {"scanId": scan_id}


@router.get("/scan/progress/{scan_id}")
async def get_scan_progress(
    scan_id: str,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    snapshot = orchestrator.get_progress(scan_id)
    if snapshot is None:
        return JSONResponse(status_code=404, content={"percent": 0, "status": "Not Found"})
    return {
        "percent": snapshot.percent,
        "status": snapshot.status,
        "output": snapshot.output,
        "vulnerabilities": [v.model_dump() for v in snapshot.vulnerabilities],
    }


@router.post("/run-scans")
@limiter.limit(settings.scan_rate_limit)
async def run_scans(
    request: Request,
    body: AggregateScanRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    """
    Run several tools sequentially against one target and return the combined
    report. Partial failures are listed in ``errors``; only an all-tools
    failure is rejected.
    """
    try:
        result = await orchestrator.run_aggregate(body.target_url, body.selected_tools)
    except (TargetValidationError, AllToolsFailed) as e:
        raise _bad_request(e)
    except ScanError as e:
        logger.exception("Aggregate scan failed")
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_response()


@router.post("/zap-scan")
@limiter.limit(settings.scan_rate_limit)
async def zap_scan(
    request: Request,
    body: ZapScanRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    """Run a ZAP spider (default) or active scan and return raw results."""
    try:
        outcome = await orchestrator.run_zap_scan(body.target, body.type)
    except ScanError as e:
        raise _bad_request(e)
    insights = outcome["insights"]
    return {
        "result": outcome["result"],
        "insights": {
            "vulnerabilities": [v.model_dump() for v in insights.vulnerabilities],
            "summary": insights.summary,
            "keyPoints": insights.key_points,
        },
    }


@router.get("/history")
async def get_history(limit: int = 50, scan_store: ScanStore = Depends(get_scan_store)):
    return await scan_store.list_history(limit=max(1, min(limit, 200)))


@router.get("/history/{scan_id}")
async def get_history_entry(scan_id: str, scan_store: ScanStore = Depends(get_scan_store)):
    try:
        safe_scan_id = validate_uuid(scan_id, "scan_id")
    except ValueError as e:
        raise _bad_request(e)

    record = await scan_store.get_by_id(safe_scan_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Scan not found")
    return record


@router.get("/tools")
async def list_tools(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    return {"tools": orchestrator.available_tools()}


app.include_router(router)


@app.get("/")
async def root():
    return {"message": "titanscan Engine Running"}
