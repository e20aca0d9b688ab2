from __future__ import annotations

import threading
from datetime import timedelta
from typing import Optional
from urllib.parse import urlparse, urlunparse

from voyagevault.config import get_settings, reset_settings_cache
from voyagevault.logging import get_logger
from voyagevault.service.cleanup import CleanupScheduler
from voyagevault.service.codes import CodeIssuer
from voyagevault.service.email import EmailService
from voyagevault.service.identity import GoogleIdentityProvider
from voyagevault.service.oauth import OAuthLinker
from voyagevault.service.session import SessionGuard
from voyagevault.service.tokens import TokenService
from voyagevault.storage.memory import MemoryStore
from voyagevault.storage.postgres import PostgresStore

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password component of a DSN for safe logging."""
    if not url:
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return "***url_parse_error***"
    if not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    netloc = f"{parsed.username or ''}:***@{netloc}"
    return urlunparse(
        (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
    )


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self):
        self.settings = get_settings()
        store_type = "memory" if self.settings.use_memory_store else "postgres"
        logger.info(
            "runtime_init_started",
            use_memory_store=self.settings.use_memory_store,
            test_mode=self.settings.test_mode,
        )

        try:
            self.store = (
                MemoryStore()
                if self.settings.use_memory_store
                else PostgresStore(
                    self.settings.database_url,
                    min_size=self.settings.db_pool_min_size,
                    max_size=self.settings.db_pool_max_size,
                )
            )
            logger.info("runtime_store_initialized", store_type=store_type)
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                store_type=store_type,
                database_url=_mask_url_password(self.settings.database_url),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

        self.tokens = TokenService(
            self.settings.jwt_secret,
            issuer=self.settings.jwt_issuer,
            access_ttl=timedelta(minutes=self.settings.access_token_ttl_minutes),
            refresh_ttl=timedelta(days=self.settings.refresh_token_ttl_days),
        )
        self.email = EmailService(
            smtp_host=self.settings.smtp_host,
            smtp_port=self.settings.smtp_port,
            smtp_user=self.settings.smtp_user,
            smtp_password=self.settings.smtp_password,
            smtp_use_tls=self.settings.smtp_use_tls,
            from_email=self.settings.email_from_address,
            from_name=self.settings.email_from_name,
            support_email=self.settings.support_email,
            code_ttl_minutes=self.settings.code_ttl_minutes,
        )
        self.identity = GoogleIdentityProvider(
            client_id=self.settings.google_client_id,
            client_secret=self.settings.google_client_secret,
            redirect_uri=self.settings.google_redirect_uri,
        )
        self.codes = CodeIssuer(
            self.store,
            self.email,
            self.tokens,
            code_ttl=timedelta(minutes=self.settings.code_ttl_minutes),
        )
        self.oauth = OAuthLinker(
            self.store,
            self.identity,
            self.tokens,
            frontend_url=self.settings.frontend_url,
        )
        self.guard = SessionGuard(self.store, self.tokens)
        self.cleanup = CleanupScheduler(
            self.store,
            max_age=timedelta(hours=self.settings.unverified_account_max_age_hours),
            interval=timedelta(hours=self.settings.cleanup_interval_hours),
        )

        logger.info(
            "runtime_initialized",
            store_type=store_type,
            email_configured=self.email.is_configured,
            google_configured=bool(self.settings.google_client_id),
            cleanup_enabled=self.settings.cleanup_enabled,
        )

    async def close(self) -> None:
        await self.cleanup.stop()
        if isinstance(self.store, PostgresStore):
            self.store.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Uses double-checked locking pattern for efficiency:
    - First check without lock (fast path for existing runtime)
    - Second check with lock to prevent race condition during creation
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime
