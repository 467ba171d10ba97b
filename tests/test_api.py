"""Tests for the HTTP gateway."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from drip.api.server import GatewayServer, status_for
from drip.core.assets import AssetKind
from drip.core.errors import StoreUnavailableError
from drip.faucet.eligibility import EligibilityEngine
from drip.faucet.executor import DisbursementExecutor, DisbursementResult, DisbursementStatus
from drip.faucet.orchestrator import (
    DispenseOrchestrator,
    DispenseOutcome,
    DispensePolicy,
    DispenseReason,
    DispenseResult,
)


class StubExecutor(DisbursementExecutor):
    """Executor that always succeeds unless told otherwise."""

    def __init__(self):
        self.result = DisbursementResult(
            success=True, status=DisbursementStatus.SUCCESS, detail="sent"
        )

    async def disburse(self, address, asset, correlation_id):
        return self.result

    async def disburse_relayer(self, address, correlation_id):
        return self.result


@pytest.fixture
def executor():
    """Stub executor."""
    return StubExecutor()


@pytest.fixture
def orchestrator(store, clock, executor):
    """Orchestrator over the memory store and test clock."""
    policy = DispensePolicy(relayer_address="relayer1")
    engine = EligibilityEngine(store, window=policy.window)
    return DispenseOrchestrator(engine, executor, policy, clock=clock)


@pytest.fixture
async def client(orchestrator):
    """Test client for the gateway app."""
    gateway = GatewayServer(orchestrator, allowed_origins=["https://app.example"])
    client = TestClient(TestServer(gateway.create_app()))
    await client.start_server()
    yield client
    await client.close()


class TestStatusFor:
    """Tests for result to HTTP status mapping."""

    @pytest.mark.parametrize(
        "reason, status",
        [
            (DispenseReason.ALREADY_USED_RECENTLY, 429),
            (DispenseReason.NOT_RELAYER, 400),
            (DispenseReason.INVALID_INPUT, 400),
            (DispenseReason.STORE_UNAVAILABLE, 503),
            (DispenseReason.DISBURSEMENT_FAILED, 502),
            (DispenseReason.TIMEOUT, 502),
            (DispenseReason.INCONSISTENT_STATE, 500),
        ],
    )
    def test_reason_status(self, reason, status):
        """Each reason maps to its HTTP status."""
        result = DispenseResult(
            outcome=DispenseOutcome.FAILED,
            address="addr1",
            asset=AssetKind.NATIVE,
            message="x",
            reason=reason,
        )
        assert status_for(result) == status

    def test_dispensed_is_ok(self):
        """DISPENSED maps to 200."""
        result = DispenseResult(
            outcome=DispenseOutcome.DISPENSED,
            address="addr1",
            asset=AssetKind.NATIVE,
            message="ok",
        )
        assert status_for(result) == 200


class TestDispenseEndpoints:
    """Tests for /faucet and /mint."""

    @pytest.mark.asyncio
    async def test_faucet_dispenses_native(self, client, store):
        """POST /faucet dispenses the native asset."""
        resp = await client.post("/faucet", json={"recipientAddress": "addr1"})

        assert resp.status == 200
        data = await resp.json()
        assert data["status"] == "ok"
        assert data["outcome"] == "dispensed"
        assert data["asset"] == "native"
        assert data["message"] == "Command executed successfully"
        assert len(data["correlationId"]) == 64
        assert (await store.get_record("addr1")).get(AssetKind.NATIVE) is not None

    @pytest.mark.asyncio
    async def test_mint_dispenses_bridged(self, client, store):
        """POST /mint dispenses the bridged asset."""
        resp = await client.post("/mint", json={"recipientAddress": "addr1"})

        assert resp.status == 200
        data = await resp.json()
        assert data["asset"] == "bridged"
        assert await store.exists("addr1") is True

    @pytest.mark.asyncio
    async def test_repeat_is_throttled_with_retry_after(self, client, clock):
        """A repeat inside the window is 429 with Retry-After."""
        await client.post("/faucet", json={"recipientAddress": "addr1"})
        clock.advance(timedelta(hours=1))

        resp = await client.post("/faucet", json={"recipientAddress": "addr1"})

        assert resp.status == 429
        assert resp.headers["Retry-After"] == str(23 * 3600)
        data = await resp.json()
        assert data["status"] == "error"
        assert data["reason"] == "already_used_recently"
        assert data["message"] == "Address has received nyks in the last 24 hours"

    @pytest.mark.asyncio
    async def test_disbursement_failure_is_bad_gateway(self, client, executor):
        """A failed disbursement is 502."""
        executor.result = DisbursementResult(
            success=False, status=DisbursementStatus.COMMAND_FAILED, detail="Failed to run command"
        )

        resp = await client.post("/faucet", json={"recipientAddress": "addr1"})

        assert resp.status == 502
        assert (await resp.json())["reason"] == "disbursement_failed"

    @pytest.mark.asyncio
    async def test_store_unavailable(self, client, store):
        """An unreachable ledger is 503."""
        store.try_reserve = AsyncMock(side_effect=StoreUnavailableError("down"))

        resp = await client.post("/mint", json={"recipientAddress": "addr1"})

        assert resp.status == 503
        assert (await resp.json())["reason"] == "store_unavailable"

    @pytest.mark.asyncio
    async def test_invalid_address(self, client):
        """A malformed address is 400."""
        resp = await client.post("/faucet", json={"recipientAddress": "addr-1"})

        assert resp.status == 400
        assert (await resp.json())["reason"] == "invalid_input"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload", [{}, {"recipientAddress": ""}, {"recipientAddress": None}]
    )
    async def test_missing_address(self, client, payload):
        """Missing recipientAddress is 400."""
        resp = await client.post("/faucet", json=payload)

        assert resp.status == 400
        assert (await resp.json())["message"] == "recipientAddress is required"

    @pytest.mark.asyncio
    async def test_non_string_address(self, client):
        """Non-string recipientAddress is 400."""
        resp = await client.post("/faucet", json={"recipientAddress": 42})

        assert resp.status == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["not json", "[1, 2]", ""])
    async def test_invalid_json(self, client, body):
        """Unparseable or non-object bodies are 400."""
        resp = await client.post(
            "/faucet", data=body, headers={"Content-Type": "application/json"}
        )

        assert resp.status == 400
        assert (await resp.json())["message"] == "Invalid JSON payload"

    @pytest.mark.asyncio
    async def test_wrong_method(self, client):
        """GET is 405."""
        resp = await client.get("/faucet")

        assert resp.status == 405
        assert (await resp.json())["message"] == "Invalid request method"


class TestRelayerEndpoint:
    """Tests for /mint-relayer-wallet."""

    @pytest.mark.asyncio
    async def test_relayer_minted(self, client, store):
        """The registered relayer is minted and not recorded."""
        resp = await client.post("/mint-relayer-wallet", json={"recipientAddress": "relayer1"})

        assert resp.status == 200
        assert await store.exists("relayer1") is False

    @pytest.mark.asyncio
    async def test_other_address_rejected(self, client):
        """Any other address is 400."""
        resp = await client.post("/mint-relayer-wallet", json={"recipientAddress": "addr1"})

        assert resp.status == 400
        assert (await resp.json())["reason"] == "not_relayer"


class TestMiddleware:
    """Tests for CORS and request ID handling."""

    @pytest.mark.asyncio
    async def test_preflight(self, client):
        """OPTIONS from an allowed origin returns CORS headers."""
        resp = await client.options("/faucet", headers={"Origin": "https://app.example"})

        assert resp.status == 204
        assert resp.headers["Access-Control-Allow-Origin"] == "https://app.example"
        assert resp.headers["Access-Control-Allow-Credentials"] == "true"
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]
        assert resp.headers["Access-Control-Allow-Headers"] == "Content-Type"

    @pytest.mark.asyncio
    async def test_unknown_origin_not_echoed(self, client):
        """Origins outside the allow list get no CORS headers."""
        resp = await client.post(
            "/faucet",
            json={"recipientAddress": "addr1"},
            headers={"Origin": "https://evil.example"},
        )

        assert "Access-Control-Allow-Origin" not in resp.headers

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        """A supplied X-Request-ID is returned."""
        resp = await client.post(
            "/faucet", json={"recipientAddress": "addr1"}, headers={"X-Request-ID": "req-42"}
        )

        assert resp.headers["X-Request-ID"] == "req-42"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, client):
        """A request ID is generated when none is supplied."""
        resp = await client.post("/faucet", json={"recipientAddress": "addr1"})

        assert len(resp.headers["X-Request-ID"]) == 32
