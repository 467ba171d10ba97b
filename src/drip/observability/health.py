"""Health check endpoints for DRIP.

Endpoints:
- /health: Liveness probe (200 if process is alive)
- /ready: Readiness probe (200 if every registered check passes)
- /metrics: Prometheus metrics endpoint
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from drip import __version__
from drip.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health check status values."""

    OK = "ok"
    ERROR = "error"
    NOT_READY = "not_ready"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    message: str | None = None


@dataclass
class HealthResult:
    """Combined readiness result."""

    status: HealthStatus
    checks: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        result = {"status": self.status.value}
        if self.checks:
            result["checks"] = self.checks
        return result


class HealthCheck(ABC):
    """Abstract base class for readiness checks."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the health check."""
        ...

    @abstractmethod
    async def check(self) -> CheckResult:
        """Perform the health check."""
        ...


class LedgerHealthCheck(HealthCheck):
    """Readiness check that pings the ledger store.

    Parameters
    ----------
    store : LedgerStore
        Ledger store to probe.
    """

    def __init__(self, store: LedgerStore):
        self._store = store

    @property
    def name(self) -> str:
        return "ledger"

    async def check(self) -> CheckResult:
        if await self._store.ping():
            return CheckResult(name=self.name, status=HealthStatus.OK)
        return CheckResult(
            name=self.name,
            status=HealthStatus.ERROR,
            message="ledger store unreachable",
        )


class HealthServer:
    """HTTP server for health and metrics endpoints.

    Parameters
    ----------
    host : str
        Host to bind to.
    port : int
        Port to bind to.
    checks : Iterable[HealthCheck] | None
        Readiness checks to run on /ready.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 8080,
        checks: Iterable[HealthCheck] | None = None,
    ):
        self._host = host
        self._port = port
        self._checks: list[HealthCheck] = list(checks or [])
        self._runner: web.AppRunner | None = None

    def add_check(self, check: HealthCheck) -> None:
        """Register a readiness check."""
        self._checks.append(check)

    def create_app(self) -> web.Application:
        """Build the aiohttp application serving the probe endpoints."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/ready", self._handle_ready)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info("Health server started", extra={"host": self._host, "port": self._port})

    async def stop(self) -> None:
        """Stop the server if running."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Health server stopped")

    async def _handle_health(self, _request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "version": __version__})

    async def _handle_ready(self, _request: web.Request) -> web.Response:
        result = await self.check_readiness()
        status_code = 200 if result.status == HealthStatus.OK else 503
        return web.json_response(result.to_dict(), status=status_code)

    async def _handle_metrics(self, _request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(REGISTRY),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

    async def check_readiness(self) -> HealthResult:
        """Run all readiness checks.

        A check that raises counts as failed.

        Returns
        -------
        HealthResult
            OK if every check passed, NOT_READY otherwise.
        """
        checks: dict[str, str] = {}
        for check in self._checks:
            try:
                result = await check.check()
            except Exception as e:
                logger.exception("Health check failed", extra={"check": check.name})
                checks[check.name] = f"error: {type(e).__name__}: {e}"
                continue
            checks[result.name] = (
                "ok" if result.status == HealthStatus.OK else result.message or "error"
            )

        all_ok = all(value == "ok" for value in checks.values())
        return HealthResult(
            status=HealthStatus.OK if all_ok else HealthStatus.NOT_READY,
            checks=checks,
        )
