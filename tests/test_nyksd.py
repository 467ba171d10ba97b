"""Tests for the nyksd command client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from drip.blockchain import CommandResult, NyksdClient, NyksdCommandError


def make_process(returncode: int = 0, output: bytes = b"ok\n"):
    """Create a mock asyncio subprocess."""
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(output, None))
    proc.wait = AsyncMock(return_value=returncode)
    return proc


@pytest.fixture
def client():
    """NyksdClient with test settings."""
    return NyksdClient(binary="/bin/nyksd", chain_id="nyks-test", keyring_backend="test")


class TestCommandResult:
    """Tests for CommandResult."""

    def test_ok(self):
        """Only exit status 0 is ok."""
        assert CommandResult(["status"], 0, "").ok is True
        assert CommandResult(["status"], 2, "").ok is False

    def test_error_message(self):
        """NyksdCommandError carries the exit code and output."""
        error = NyksdCommandError(CommandResult(["tx", "bank", "send", "x"], 1, "no funds"))

        assert "exit code 1" in str(error)
        assert "no funds" in str(error)


class TestNyksdClient:
    """Tests for NyksdClient command construction."""

    @pytest.mark.asyncio
    async def test_run_captures_output(self, client):
        """run returns the exit code and decoded output."""
        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(return_value=make_process())
        ) as mock_exec:
            result = await client.run("status")

        assert result.ok is True
        assert result.output == "ok\n"
        assert mock_exec.call_args.args == ("/bin/nyksd", "status")
        assert mock_exec.call_args.kwargs["stderr"] == asyncio.subprocess.STDOUT

    @pytest.mark.asyncio
    async def test_bank_send_arguments(self, client):
        """bank_send passes keyring, chain ID and --yes."""
        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(return_value=make_process())
        ) as mock_exec:
            await client.bank_send("faucet", "addr1", "10000nyks")

        assert mock_exec.call_args.args == (
            "/bin/nyksd",
            "tx",
            "bank",
            "send",
            "faucet",
            "addr1",
            "10000nyks",
            "--keyring-backend",
            "test",
            "--chain-id",
            "nyks-test",
            "--yes",
        )

    @pytest.mark.asyncio
    async def test_confirm_deposit_looks_up_validator(self, client):
        """confirm_btc_deposit resolves the validator address first."""
        processes = [make_process(output=b"twilight1validator\n"), make_process()]
        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(side_effect=processes)
        ) as mock_exec:
            await client.confirm_btc_deposit(
                validator_key="validator-self",
                deposit_address="btcaddr",
                sats_amount="50000",
                block_height="50000",
                tx_id="abc123",
                recipient="addr1",
            )

        lookup, confirm = (call.args for call in mock_exec.call_args_list)
        assert lookup == (
            "/bin/nyksd", "keys", "show", "validator-self", "-a", "--keyring-backend", "test"
        )
        assert confirm[1:10] == (
            "tx",
            "bridge",
            "msg-confirm-btc-deposit",
            "btcaddr",
            "50000",
            "50000",
            "abc123",
            "addr1",
            "twilight1validator",
        )
        assert "--from" in confirm
        assert confirm[confirm.index("--from") + 1] == "validator-self"

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises(self, client):
        """A failing transaction raises NyksdCommandError."""
        with patch(
            "asyncio.create_subprocess_exec",
            AsyncMock(return_value=make_process(returncode=1, output=b"out of gas")),
        ):
            with pytest.raises(NyksdCommandError) as exc_info:
                await client.bank_send("faucet", "addr1", "10000nyks")

        assert exc_info.value.result.returncode == 1
        assert exc_info.value.result.output == "out of gas"

    @pytest.mark.asyncio
    async def test_cancel_kills_process(self, client):
        """Cancelling a running command kills the child process."""
        proc = make_process()
        proc.returncode = None
        proc.communicate = AsyncMock(side_effect=asyncio.CancelledError())

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(asyncio.CancelledError):
                await client.run("tx", "bank", "send")

        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()
