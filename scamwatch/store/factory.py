"""Build the configured report store."""
import logging

from scamwatch.config import Settings
from scamwatch.store.base import ReportStore
from scamwatch.store.firebase import FirebaseReportStore
from scamwatch.store.memory import InMemoryReportStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> ReportStore:
    backend = settings.store_backend.lower()
    if backend == "firebase":
        logger.info("Using Firebase store at %s", settings.firebase_database_url)
        return FirebaseReportStore(
            settings.firebase_database_url,
            auth_token=settings.firebase_auth_token,
            timeout=settings.store_timeout_seconds,
            transaction_retries=settings.firebase_transaction_retries,
            stream_retries=settings.firebase_stream_retries,
            stream_backoff=settings.firebase_stream_backoff_seconds,
        )
    if backend != "memory":
        raise ValueError(f"Unknown STORE_BACKEND: {settings.store_backend}")
    logger.info("Using in-memory store")
    return InMemoryReportStore()
