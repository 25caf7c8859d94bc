"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Depends

from muzac.config import Settings, get_settings
from muzac.db import DbClient, DynamoDbClient, InMemoryDbClient, SqlDbClient
from muzac.identity import (
    CognitoIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
)
from muzac.images import ImageCalendar
from muzac.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from muzac.video import (
    InMemoryRenderer,
    RemotionLambdaRenderer,
    RenderBackend,
    VideoService,
)

logger = logging.getLogger(__name__)

_identity_provider: IdentityProvider | None = None
_image_storage: StorageClient | None = None
_video_storage: StorageClient | None = None
_db_client: DbClient | None = None
_renderer: RenderBackend | None = None


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider:
        return _identity_provider

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.user_pool_client_id:
        _identity_provider = InMemoryIdentityProvider()
    else:
        _identity_provider = CognitoIdentityProvider(
            settings.user_pool_client_id, region=settings.aws_region
        )
    return _identity_provider


def _storage_for(bucket: str | None, settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends or not bucket:
        return InMemoryStorageClient(bucket=bucket or "in-memory")
    return S3StorageClient(
        bucket=bucket,
        region=settings.aws_region,
        timeout_seconds=settings.upload_timeout_seconds,
    )


def get_image_storage() -> StorageClient:
    global _image_storage
    if _image_storage:
        return _image_storage
    settings = get_settings()
    _image_storage = _storage_for(settings.images_bucket, settings)
    return _image_storage


def get_video_storage() -> StorageClient:
    global _video_storage
    if _video_storage:
        return _video_storage
    settings = get_settings()
    _video_storage = _storage_for(settings.videos_bucket, settings)
    return _video_storage


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so in-memory state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _db_client = InMemoryDbClient()
    elif settings.database_url:
        _db_client = SqlDbClient(settings.database_url)
    elif settings.user_preferences_table or settings.family_tree_table:
        _db_client = DynamoDbClient(
            preferences_table=settings.user_preferences_table,
            family_table=settings.family_tree_table,
            mom_index=settings.family_tree_mom_index,
            dad_index=settings.family_tree_dad_index,
            region=settings.aws_region,
        )
    else:
        _db_client = InMemoryDbClient()
    logger.info("DB client: %s", _db_client.__class__.__name__)
    return _db_client


def get_renderer() -> RenderBackend:
    global _renderer
    if _renderer:
        return _renderer

    settings = get_settings()
    if (
        settings.use_in_memory_backends
        or not settings.remotion_function_name
        or not settings.remotion_serve_url
    ):
        _renderer = InMemoryRenderer()
    else:
        _renderer = RemotionLambdaRenderer(
            function_name=settings.remotion_function_name,
            serve_url=settings.remotion_serve_url,
            bucket=settings.videos_bucket or "",
            composition=settings.remotion_composition,
            region=settings.aws_region,
        )
    return _renderer


def get_image_calendar(
    storage: StorageClient = Depends(get_image_storage),
) -> ImageCalendar:
    settings = get_settings()
    return ImageCalendar(
        storage=storage,
        expires_in=settings.presign_expires_in,
        compress=settings.compress_uploads,
        max_dimension=settings.max_image_dimension,
        quality=settings.jpeg_quality,
    )


def get_video_service(
    backend: RenderBackend = Depends(get_renderer),
    storage: StorageClient = Depends(get_video_storage),
) -> VideoService:
    settings = get_settings()
    return VideoService(
        backend=backend,
        storage=storage,
        bucket=settings.videos_bucket or "in-memory",
        expires_in=settings.presign_expires_in,
        fallback_done=settings.render_status_fallback_done,
    )


def reset_clients() -> None:
    """Drop cached clients so the next request rebuilds them from settings."""
    global _identity_provider, _image_storage, _video_storage, _db_client, _renderer
    _identity_provider = None
    _image_storage = None
    _video_storage = None
    _db_client = None
    _renderer = None
