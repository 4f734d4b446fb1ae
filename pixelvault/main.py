import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pixelvault.db import init_db
from pixelvault.dependencies import get_image_operations
from pixelvault.errors import ImageServiceError, InvalidArgument
from pixelvault.operations import ImageOperations
from pixelvault.schemas import DeleteResponse, ImageUploadResponse, MetadataResponse
from config import get_settings

# Get settings and configure logging before anything else
settings = get_settings()
settings.configure_logging()

# Create logger for this module
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"Storage type: {settings.storage_type}")
    logger.info(f"Storage root: {settings.storage_root}")

    if settings.storage_type == "filesystem":
        settings.storage_root.mkdir(parents=True, exist_ok=True)
    init_db()

    yield

    # Shutdown
    logger.info("Shutting down application")


# Create FastAPI app with settings
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ImageServiceError)
async def image_service_error_handler(request: Request, exc: ImageServiceError) -> JSONResponse:
    """Render service errors with their status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.get("/health")
def health_check() -> dict[str, str]:
    """Simple health-check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "version": settings.app_version,
    }


@app.get("/config")
def get_config() -> dict[str, Any]:
    """Get current configuration (non-sensitive values only)."""
    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "environment": settings.environment,
        "debug": settings.debug,
        "api_prefix": settings.api_prefix,
        "storage_type": settings.storage_type,
        "metadata_storage": settings.metadata_storage,
        "log_level": settings.log_level,
        "log_json": settings.log_json,
        "max_upload_size": settings.max_upload_size,
        "max_transformations": settings.max_transformations,
        "max_image_dimension": settings.max_image_dimension,
    }


@app.post("/users/{account_id}/images", response_model=ImageUploadResponse)
async def upload_image(
    account_id: str,
    file: UploadFile,
    response: Response,
    operations: ImageOperations = Depends(get_image_operations),
) -> ImageUploadResponse:
    """Upload an original image.

    The image identifier is the MD5 hash of the file content, so uploading
    the same bytes twice returns the same identifier (200 instead of 201).
    """
    content = await file.read()

    if len(content) > settings.max_upload_size:
        raise HTTPException(status_code=413, detail="File too large")

    logger.info(f"Processing upload: {file.filename}, content length: {len(content)}")
    record, created = operations.add_image(account_id, content)
    response.status_code = 201 if created else 200

    return ImageUploadResponse(
        image_identifier=record.image_identifier,
        width=record.width,
        height=record.height,
        mime_type=record.mime_type,
        created=created,
    )


@app.get("/users/{account_id}/images/{image_identifier}")
def get_image(
    account_id: str,
    image_identifier: str,
    t: list[str] = Query(default=[]),
    t_brackets: list[str] = Query(default=[], alias="t[]"),
    operations: ImageOperations = Depends(get_image_operations),
) -> Response:
    """Serve an image with the ``t`` transformations applied in order.

    Either spelling, ``t`` or ``t[]``, may be used, but not both in one
    request, since their relative order is lost in parsing.
    """
    if t and t_brackets:
        raise InvalidArgument(
            "Use either 't' or 't[]' for transformations, not both",
            details={"t": t, "t[]": t_brackets},
        )
    rendered = operations.get_image(account_id, image_identifier, t or t_brackets)
    return Response(
        content=rendered.blob,
        media_type=rendered.mime_type,
        headers={
            "X-Image-Width": str(rendered.width),
            "X-Image-Height": str(rendered.height),
        },
    )


@app.delete("/users/{account_id}/images/{image_identifier}", response_model=DeleteResponse)
def delete_image(
    account_id: str,
    image_identifier: str,
    operations: ImageOperations = Depends(get_image_operations),
) -> DeleteResponse:
    deleted_variations = operations.delete_image(account_id, image_identifier)
    return DeleteResponse(image_identifier=image_identifier, deleted_variations=deleted_variations)


@app.get("/users/{account_id}/images/{image_identifier}/metadata", response_model=MetadataResponse)
def get_metadata(
    account_id: str,
    image_identifier: str,
    operations: ImageOperations = Depends(get_image_operations),
) -> MetadataResponse:
    metadata = operations.get_metadata(account_id, image_identifier)
    return MetadataResponse(image_identifier=image_identifier, metadata=metadata)


@app.put("/users/{account_id}/images/{image_identifier}/metadata", response_model=MetadataResponse)
def replace_metadata(
    account_id: str,
    image_identifier: str,
    metadata: dict[str, Any] = Body(...),
    operations: ImageOperations = Depends(get_image_operations),
) -> MetadataResponse:
    """Replace all metadata of an image."""
    result = operations.update_metadata(account_id, image_identifier, metadata, replace=True)
    return MetadataResponse(image_identifier=image_identifier, metadata=result)


@app.post("/users/{account_id}/images/{image_identifier}/metadata", response_model=MetadataResponse)
def edit_metadata(
    account_id: str,
    image_identifier: str,
    metadata: dict[str, Any] = Body(...),
    operations: ImageOperations = Depends(get_image_operations),
) -> MetadataResponse:
    """Merge keys into the metadata of an image."""
    result = operations.update_metadata(account_id, image_identifier, metadata)
    return MetadataResponse(image_identifier=image_identifier, metadata=result)


@app.delete("/users/{account_id}/images/{image_identifier}/metadata", response_model=MetadataResponse)
def delete_metadata(
    account_id: str,
    image_identifier: str,
    operations: ImageOperations = Depends(get_image_operations),
) -> MetadataResponse:
    result = operations.delete_metadata(account_id, image_identifier)
    return MetadataResponse(image_identifier=image_identifier, metadata=result)
