"""FastAPI dependency injection configuration."""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from pixelvault.db import SessionLocal, get_db
from pixelvault.engine import TransformationEngine
from pixelvault.hooks import HookRegistry, TransformationLimitHook
from pixelvault.operations import ImageOperations
from pixelvault.repositories import (
    ImageDBRepository,
    ImageRepository,
    InMemoryImageRepository,
)
from pixelvault.storage import (
    DatabaseImageStore,
    FilesystemImageStore,
    ImageStore,
    InMemoryImageStore,
)
from pixelvault.transformations import TransformationRegistry, default_registry
from config import get_settings

logger = logging.getLogger(__name__)


# Process-wide singletons, created on first use
_in_memory_repository: InMemoryImageRepository | None = None
_image_store: ImageStore | None = None
_hook_registry: HookRegistry | None = None
_transformation_registry: TransformationRegistry | None = None
_engine: TransformationEngine | None = None


def get_image_repository(db: Session = Depends(get_db)) -> ImageRepository:
    """Get the appropriate image repository instance based on configuration.

    This function returns the correct repository implementation based on
    the METADATA_STORAGE environment variable:
    - "memory": Uses InMemoryImageRepository (data lost on restart)
    - "database": Uses ImageDBRepository (data persisted in database)

    Note: This is separate from STORAGE_TYPE which controls where the image
    blobs are stored.
    """
    settings = get_settings()

    if settings.metadata_storage == "database":
        logger.debug("Using database repository for image metadata")
        return ImageDBRepository(db)
    else:
        global _in_memory_repository
        if _in_memory_repository is None:
            _in_memory_repository = InMemoryImageRepository()
            logger.info(f"Created in-memory repository for image metadata (metadata_storage={settings.metadata_storage})")
        return _in_memory_repository


def get_image_store() -> ImageStore:
    """Get the storage backend selected by STORAGE_TYPE.

    - "filesystem": sharded files below STORAGE_ROOT
    - "database": blob tables in DATABASE_URL
    - "memory": process memory (data lost on restart)
    """
    global _image_store

    if _image_store is None:
        settings = get_settings()

        if settings.storage_type == "database":
            _image_store = DatabaseImageStore(SessionLocal)
        elif settings.storage_type == "memory":
            _image_store = InMemoryImageStore()
        else:
            _image_store = FilesystemImageStore()
        logger.info(f"Created {settings.storage_type} image store")

    return _image_store


def get_hook_registry() -> HookRegistry:
    """Get the hook registry, discovering configured hooks on first use."""
    global _hook_registry

    if _hook_registry is None:
        settings = get_settings()
        registry = HookRegistry()
        registry.register_hook(TransformationLimitHook(settings.max_transformations))
        registry.discover(settings.hook_sources)
        _hook_registry = registry

    return _hook_registry


def get_transformation_registry() -> TransformationRegistry:
    global _transformation_registry

    if _transformation_registry is None:
        _transformation_registry = default_registry(get_settings().max_image_dimension)
        logger.info(f"Loaded {len(_transformation_registry)} transformations")

    return _transformation_registry


def get_engine() -> TransformationEngine:
    """Get the shared transformation engine."""
    global _engine

    if _engine is None:
        settings = get_settings()
        _engine = TransformationEngine(
            registry=get_transformation_registry(),
            store=get_image_store(),
            hooks=get_hook_registry(),
            numeric_params=settings.numeric_transformation_params,
            cache_enabled=settings.variation_cache_enabled,
        )

    return _engine


def get_image_operations(
    engine: TransformationEngine = Depends(get_engine),
    repository: ImageRepository = Depends(get_image_repository),
) -> ImageOperations:
    return ImageOperations(engine, repository)
