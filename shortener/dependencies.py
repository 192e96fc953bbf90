"""Dependency injection with an application-owned service manager.

The ``ServiceManager`` owns every shared resource of the process (settings,
logger, link cache, link store, detached task runner, admission table). It is
constructed by the application lifespan, stored on ``app.state.services`` and
handed to endpoints through FastAPI dependencies, so tests can build a fresh
one around their own cache and store.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request

from shortener.admission import AdmissionController, client_identity
from shortener.cache import LinkCache, get_redis
from shortener.config import Settings, get_settings
from shortener.database import async_session
from shortener.errors import RateLimited, Unavailable
from shortener.link_service import LinkService
from shortener.store import LinkStore
from shortener.tasks import DetachedTaskRunner

__all__ = [
    "ServiceManager",
    "RequestContext",
    "enforce_admission",
    "get_link_service",
    "get_request_context",
    "get_service_manager",
]


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Shared resources, created once at startup and torn down at shutdown."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.logger = self._setup_logger()
        self.tasks = DetachedTaskRunner(self.logger.getChild("tasks"))
        self.admission = AdmissionController(
            max_requests=self.settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=self.settings.RATE_LIMIT_WINDOW_SECONDS,
            prune_threshold=self.settings.RATE_LIMIT_PRUNE_THRESHOLD,
        )
        self.cache: Optional[LinkCache] = None
        self.store: Optional[LinkStore] = None
        self.link_service: Optional[LinkService] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(
        self,
        cache: Optional[LinkCache] = None,
        store: Optional[LinkStore] = None,
    ) -> None:
        """Connect the cache and store and build the link service."""
        if self._initialized:
            return
        self.cache = cache or LinkCache(await get_redis())
        self.store = store or LinkStore(async_session)
        self.link_service = LinkService(
            self.cache,
            self.store,
            self.tasks,
            settings=self.settings,
            logger=self.logger,
        )
        self._initialized = True
        self.logger.info(f"Service manager initialized ({self.settings.APP_ENV})")

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortener")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def cleanup(self) -> None:
        """Wait for detached work and forget admission state."""
        if self.tasks.pending:
            self.logger.info(f"Draining {self.tasks.pending} detached tasks")
        await self.tasks.drain()
        self.admission.reset()
        self._initialized = False


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data plus access to the shared service manager.

    Attributes:
        service_manager: Shared resources for the process
        request_id: Unique identifier for this request
        client_ip: Identity used for admission control
        user_agent: Client user agent string
        start_time: Request start timestamp
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying this request's identifiers."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {"request_id": self.request_id, "client_ip": self.client_ip},
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager(request: Request) -> ServiceManager:
    manager: Optional[ServiceManager] = getattr(request.app.state, "services", None)
    if manager is None or not manager.initialized:
        raise Unavailable("Service is starting up")
    return manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=client_identity(request, manager.settings.TRUST_FORWARDED_FOR),
        user_agent=request.headers.get("user-agent"),
    )


async def enforce_admission(ctx: RequestContext = Depends(get_request_context)) -> None:
    """Reject the request with ``RateLimited`` once its client exceeds the window."""
    admission = ctx.service_manager.admission
    identity = ctx.client_ip or "unknown"
    if not admission.check(identity):
        ctx.logger.warning(f"Admission denied for {identity}")
        raise RateLimited(retry_after=admission.retry_after(identity))


def get_link_service(manager: ServiceManager = Depends(get_service_manager)) -> LinkService:
    assert manager.link_service is not None, "service manager must be initialized"
    return manager.link_service
