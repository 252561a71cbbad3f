"""Service wiring: build the pipeline and its collaborators once, explicitly."""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass, field

from fontpress.charsets import DEFAULT_REGISTRY, CharsetRegistry
from fontpress.config import Settings
from fontpress.engine import SubsetEngine
from fontpress.errors import DownloadError
from fontpress.fetcher import FontFetcher
from fontpress.orchestrator import RequestOrchestrator
from fontpress.publisher import ResultPublisher
from fontpress.repertoire import RepertoireResolver
from fontpress.retry import RetryPolicy
from fontpress.storage import BlobStore, LocalBlobStore, VercelBlobStore
from fontpress.uploads import UploadTokenIssuer

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Everything a request handler needs; shared read-only across requests."""

    settings: Settings
    registry: CharsetRegistry
    store: BlobStore
    orchestrator: RequestOrchestrator
    uploads: UploadTokenIssuer
    job_slots: threading.BoundedSemaphore
    started_at: float = field(default_factory=time.time)

    @property
    def expose_detail(self) -> bool:
        return not self.settings.is_production


def build_store(settings: Settings) -> BlobStore:
    if settings.blob_token:
        logger.info("Using Vercel Blob storage")
        return VercelBlobStore(settings.blob_token)
    logger.info("Using local storage at %s", settings.storage_dir)
    return LocalBlobStore(settings.storage_dir, settings.files_url)


def build_context(
    settings: Settings,
    *,
    store: BlobStore | None = None,
    registry: CharsetRegistry = DEFAULT_REGISTRY,
) -> ServiceContext:
    store = store if store is not None else build_store(settings)
    retry = RetryPolicy.fixed(
        settings.download_retries, settings.retry_backoff, retry_on=(DownloadError,)
    )
    orchestrator = RequestOrchestrator(
        RepertoireResolver(registry),
        FontFetcher(
            timeout=settings.download_timeout, retry=retry, temp_dir=settings.temp_dir
        ),
        SubsetEngine(
            timeout=settings.processing_timeout,
            normalize_otf=settings.normalize_otf,
            temp_dir=settings.temp_dir,
        ),
        ResultPublisher(store, environment=settings.environment),
        deadline=settings.request_deadline,
    )

    secret = settings.upload_secret
    if not secret:
        if settings.is_production:
            logger.warning("FONTPRESS_UPLOAD_SECRET not set; upload tokens reset on restart")
        secret = secrets.token_urlsafe(32)

    return ServiceContext(
        settings=settings,
        registry=registry,
        store=store,
        orchestrator=orchestrator,
        uploads=UploadTokenIssuer(secret, environment=settings.environment),
        job_slots=threading.BoundedSemaphore(settings.max_concurrent_jobs),
    )
