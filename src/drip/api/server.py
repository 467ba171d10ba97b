"""HTTP gateway for DRIP.

Endpoints (POST, JSON body ``{"recipientAddress": "..."}``):
- /faucet: Dispense the native asset
- /mint: Dispense the bridged asset
- /mint-relayer-wallet: Mint the relayer amount to the registered relayer
"""

import json
import logging
import math
import uuid
from collections.abc import Awaitable, Callable, Iterable

from aiohttp import web

from drip.core.assets import AssetKind
from drip.core.errors import StoreUnavailableError
from drip.faucet.orchestrator import (
    DispenseOrchestrator,
    DispenseOutcome,
    DispenseReason,
    DispenseResult,
)
from drip.observability.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

REASON_STATUS = {
    DispenseReason.ALREADY_USED_RECENTLY: 429,
    DispenseReason.NOT_RELAYER: 400,
    DispenseReason.INVALID_INPUT: 400,
    DispenseReason.STORE_UNAVAILABLE: 503,
    DispenseReason.DISBURSEMENT_FAILED: 502,
    DispenseReason.TIMEOUT: 502,
    DispenseReason.INCONSISTENT_STATE: 500,
}

ALLOWED_METHODS = "POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type"


def status_for(result: DispenseResult) -> int:
    """Map a dispense result to an HTTP status code."""
    if result.outcome is DispenseOutcome.DISPENSED:
        return 200
    return REASON_STATUS.get(result.reason, 500)


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"status": "error", "message": message}, status=status)


def cors_middleware(allowed_origins: Iterable[str]):
    """Build a CORS middleware.

    Parameters
    ----------
    allowed_origins : Iterable[str]
        Allowed origins; ``*`` allows any origin. The request origin is
        echoed back since credentials are allowed.
    """
    origins = frozenset(allowed_origins)
    allow_any = "*" in origins

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        origin = request.headers.get("Origin")
        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=204)
        else:
            response = await handler(request)

        if origin and (allow_any or origin in origins):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            if request.method == "OPTIONS":
                response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
                response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
        return response

    return middleware


@web.middleware
async def request_id_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Bind a request ID to the logging context for the request."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    set_request_id(request_id)
    try:
        response = await handler(request)
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        clear_request_id()


class GatewayServer:
    """HTTP server exposing dispense operations.

    Parameters
    ----------
    orchestrator : DispenseOrchestrator
        Orchestrator handling dispense requests.
    host : str
        Host to bind to.
    port : int
        Port to bind to.
    allowed_origins : Iterable[str]
        CORS allowed origins.
    """

    def __init__(
        self,
        orchestrator: DispenseOrchestrator,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 6969,
        allowed_origins: Iterable[str] = ("*",),
    ):
        self._orchestrator = orchestrator
        self._host = host
        self._port = port
        self._allowed_origins = list(allowed_origins)
        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application."""
        app = web.Application(
            middlewares=[request_id_middleware, cors_middleware(self._allowed_origins)]
        )
        app.router.add_route("*", "/faucet", self._handle_faucet)
        app.router.add_route("*", "/mint", self._handle_mint)
        app.router.add_route("*", "/mint-relayer-wallet", self._handle_relayer)
        return app

    async def start(self) -> None:
        """Start serving requests."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info("Gateway server started", extra={"host": self._host, "port": self._port})

    async def stop(self) -> None:
        """Stop serving requests."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Gateway server stopped")

    async def _handle_faucet(self, request: web.Request) -> web.Response:
        return await self._handle_dispense(request, AssetKind.NATIVE)

    async def _handle_mint(self, request: web.Request) -> web.Response:
        return await self._handle_dispense(request, AssetKind.BRIDGED)

    async def _handle_dispense(self, request: web.Request, asset: AssetKind) -> web.Response:
        address, error = await self._read_address(request)
        if error:
            return error

        result = await self._orchestrator.request_dispense(address, asset)
        response = self._render(result)
        if result.reason is DispenseReason.ALREADY_USED_RECENTLY:
            await self._add_retry_after(response, address, asset)
        return response

    async def _handle_relayer(self, request: web.Request) -> web.Response:
        address, error = await self._read_address(request)
        if error:
            return error
        return self._render(await self._orchestrator.request_relayer_mint(address))

    async def _read_address(self, request: web.Request) -> tuple[str, web.Response | None]:
        """Extract recipientAddress from a POST body, or an error response."""
        if request.method != "POST":
            return "", _error(405, "Invalid request method")
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return "", _error(400, "Invalid JSON payload")
        if not isinstance(payload, dict):
            return "", _error(400, "Invalid JSON payload")

        address = payload.get("recipientAddress")
        if not address:
            return "", _error(400, "recipientAddress is required")
        if not isinstance(address, str):
            return "", _error(400, "recipientAddress must be a string")
        return address, None

    @staticmethod
    def _render(result: DispenseResult) -> web.Response:
        body = {
            "status": "ok" if result.success else "error",
            "outcome": result.outcome.value,
            "asset": result.asset.value,
            "message": result.message,
        }
        if result.reason is not None:
            body["reason"] = result.reason.value
        if result.correlation_id:
            body["correlationId"] = result.correlation_id
        return web.json_response(body, status=status_for(result))

    async def _add_retry_after(
        self, response: web.Response, address: str, asset: AssetKind
    ) -> None:
        try:
            remaining = await self._orchestrator.eligibility.cooldown_remaining(
                address, asset, self._orchestrator.now()
            )
        except StoreUnavailableError:
            return
        if remaining is not None:
            response.headers["Retry-After"] = str(math.ceil(remaining.total_seconds()))
