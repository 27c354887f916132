"""OTA Updates API - expo-updates compatible update server.

Bundle model:
- <UPDATES_ROOT>/<channel>/<runtimeVersion>/<timestamp>/ holds one update
- the numerically largest timestamp is the update served to clients

This FastAPI service handles:
- Manifest requests (expo-updates protocol 0 and 1, optional code signing)
- Asset downloads for the files a manifest references
- Bundle uploads from the release pipeline (guarded by UPLOAD_KEY)

The OTA routes are not behind admin authentication: manifests and assets
are addressed by channel name only, uploads by the shared upload key.
"""

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from ota_api import __version__
from ota_api.assets import read_asset
from ota_api.bundle_store import BundleStore
from ota_api.config import Settings, get_settings
from ota_api.errors import (
    AuthError,
    InternalError,
    MethodNotAllowedError,
    OTAError,
    ValidationError,
)
from ota_api.manifest import parse_manifest_request, serve_manifest
from ota_api.metadata import load_metadata
from ota_api.models import PLATFORMS, ApiResponse, HealthResponse

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - log configuration on startup."""
    settings = get_settings()
    logger.info(f"Starting OTA Updates API v{__version__}")
    logger.info(f"Updates root: {settings.updates_root.resolve()}")
    if settings.upload_key is None:
        logger.warning("UPLOAD_KEY is not set; all uploads will be rejected")
    if settings.private_key_path is None:
        logger.info("PRIVATE_KEY_PATH is not set; code signing requests will fail")
    yield
    logger.info("Shutting down OTA Updates API")


# Create FastAPI app
app = FastAPI(
    title="OTA Updates API",
    description="expo-updates manifest, asset and upload endpoints",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

router = APIRouter()


# =============================================================================
# HELPERS
# =============================================================================


def envelope(error, message: str, status_code: int) -> JSONResponse:
    """JSON response in the {error, message, result} shape."""
    body = ApiResponse(error=error, message=message, result=None)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def get_bundle_store(settings: Settings = Depends(get_settings)) -> BundleStore:
    """Bundle store rooted at the configured updates directory."""
    return BundleStore(settings.updates_root)


def get_base_url(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Base URL used for asset links in manifests."""
    root = settings.public_url or str(request.base_url)
    return root.rstrip("/") + settings.api_prefix


async def offload(func, *args, **kwargs):
    """Run blocking bundle I/O in the threadpool.

    OSErrors that the bundle helpers did not translate become InternalError.
    """
    try:
        return await run_in_threadpool(func, *args, **kwargs)
    except OTAError:
        raise
    except OSError as e:
        raise InternalError(f"I/O error: {e}", cause=e) from e


# =============================================================================
# ERROR HANDLERS
# =============================================================================


@app.exception_handler(OTAError)
async def ota_error_handler(request: Request, exc: OTAError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
        return envelope(exc.message, "Internal server error", exc.status_code)
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return envelope(exc.message, exc.message, exc.status_code)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return envelope(str(exc), "Internal server error", 500)


# =============================================================================
# HEALTH CHECK
# =============================================================================


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


# =============================================================================
# MANIFEST - Latest update (or noUpdateAvailable directive) for a client
# =============================================================================


@router.api_route("/manifest", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def get_manifest(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: BundleStore = Depends(get_bundle_store),
    base_url: str = Depends(get_base_url),
):
    """Serve the multipart manifest for the latest bundle.

    Headers: expo-channel-name, expo-platform, expo-runtime-version,
    expo-protocol-version, expo-current-update-id, expo-expect-signature.
    platform and runtime-version may also be passed as query parameters.
    """
    if request.method != "GET":
        raise MethodNotAllowedError("Expected GET.")

    manifest_request = parse_manifest_request(request.headers, request.query_params)
    update = await offload(
        serve_manifest,
        store,
        manifest_request,
        base_url,
        settings.private_key_path,
    )
    return Response(content=update.body, status_code=200, headers=update.headers)


# =============================================================================
# ASSETS - Raw bytes of a file referenced by a manifest
# =============================================================================


@router.get("/assets")
async def get_asset(
    request: Request,
    store: BundleStore = Depends(get_bundle_store),
):
    """Serve an asset of the latest bundle.

    Query: asset (bundle-relative path), runtimeVersion or runtime-version,
    platform. Header: expo-channel-name.
    """
    query = request.query_params
    asset_name = query.get("asset")
    if not asset_name:
        raise ValidationError("No asset name provided.")

    channel = request.headers.get("expo-channel-name")
    if not channel:
        raise ValidationError("No channel provided.")

    platform = query.get("platform")
    if platform not in PLATFORMS:
        raise ValidationError('No platform provided. Expected "ios" or "android".')

    runtime_version = query.get("runtimeVersion") or query.get("runtime-version")
    if not runtime_version:
        raise ValidationError("No runtimeVersion provided.")

    def _load():
        bundle_path = store.resolve_latest_bundle(runtime_version, channel)
        loaded = load_metadata(bundle_path)
        return read_asset(bundle_path, loaded.metadata, platform, asset_name)

    data, content_type = await offload(_load)
    return Response(content=data, status_code=200, media_type=content_type)


# =============================================================================
# UPLOAD - Ingest a zipped bundle from the release pipeline
# =============================================================================


@router.post("/upload", response_model=ApiResponse)
async def upload_update(
    upload_key: Optional[str] = Header(default=None, alias="upload-key"),
    channel: Optional[str] = Header(default=None, alias="expo-channel-name"),
    upload: Optional[bytes] = File(default=None),
    runtime_version: Optional[str] = Form(default=None, alias="runtimeVersion"),
    settings: Settings = Depends(get_settings),
    store: BundleStore = Depends(get_bundle_store),
):
    """Extract an uploaded zip into a new timestamped bundle.

    Headers: upload-key (must equal UPLOAD_KEY), expo-channel-name.
    Form fields: upload (zip file), runtimeVersion.
    """
    if not upload_key:
        raise ValidationError("No upload key provided.")

    if settings.upload_key is None or not hmac.compare_digest(
        upload_key.encode("utf-8"), settings.upload_key.encode("utf-8")
    ):
        logger.warning(f"Rejected upload with invalid key for channel {channel}")
        raise AuthError("Invalid upload key.")

    if not channel:
        raise ValidationError("No channel provided.")

    if not runtime_version:
        raise ValidationError("No runtimeVersion provided.")

    if not upload:
        raise ValidationError("No file provided.")

    bundle_path = await offload(store.ingest, channel, runtime_version, upload)
    logger.info(f"Upload: {channel}/{runtime_version} -> {bundle_path.name}")

    return ApiResponse(error=None, message="Upload successful", result=None)


app.include_router(router, prefix=get_settings().api_prefix)


# =============================================================================
# MAIN
# =============================================================================


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "ota_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
