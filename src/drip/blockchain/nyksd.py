"""Async wrapper around the nyksd command-line client."""

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one nyksd invocation."""

    args: list[str]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        """True if the command exited with status 0."""
        return self.returncode == 0


class NyksdCommandError(Exception):
    """nyksd exited with a non-zero status."""

    def __init__(self, result: CommandResult):
        super().__init__(
            f"nyksd {' '.join(result.args[:3])} failed with exit code "
            f"{result.returncode}\nOutput: {result.output}"
        )
        self.result = result


class NyksdClient:
    """Runs nyksd transactions for faucet operations.

    Parameters
    ----------
    binary : str
        Path or name of the nyksd executable.
    chain_id : str
        Chain ID passed to transactions.
    keyring_backend : str
        Keyring backend holding the faucet and validator keys.
    """

    def __init__(
        self,
        binary: str = "nyksd",
        chain_id: str = "nyks",
        keyring_backend: str = "test",
    ):
        self._binary = binary
        self._chain_id = chain_id
        self._keyring_backend = keyring_backend

    async def run(self, *args: str) -> CommandResult:
        """Run nyksd with the given arguments and capture combined output.

        The child process is killed if the calling task is cancelled.

        Parameters
        ----------
        *args : str
            Arguments after the binary name.

        Returns
        -------
        CommandResult
            Exit status and combined stdout/stderr.
        """
        proc = await asyncio.create_subprocess_exec(
            self._binary,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            logger.warning("nyksd command cancelled", extra={"command": args[:3]})
            raise

        output = stdout.decode(errors="replace") if stdout else ""
        return CommandResult(args=list(args), returncode=proc.returncode, output=output)

    async def _run_checked(self, *args: str) -> CommandResult:
        result = await self.run(*args)
        if not result.ok:
            raise NyksdCommandError(result)
        return result

    async def key_address(self, key_name: str) -> str:
        """Look up the address of a key in the keyring.

        Parameters
        ----------
        key_name : str
            Name of the key.

        Returns
        -------
        str
            Bech32 address, without trailing newline.
        """
        result = await self._run_checked(
            "keys", "show", key_name, "-a", "--keyring-backend", self._keyring_backend
        )
        return result.output.strip()

    async def bank_send(self, from_key: str, to: str, amount: str) -> CommandResult:
        """Send native tokens from a keyring account.

        Parameters
        ----------
        from_key : str
            Keyring name of the sending account.
        to : str
            Recipient address.
        amount : str
            Amount with denomination, e.g. ``10000nyks``.
        """
        result = await self._run_checked(
            "tx",
            "bank",
            "send",
            from_key,
            to,
            amount,
            "--keyring-backend",
            self._keyring_backend,
            "--chain-id",
            self._chain_id,
            "--yes",
        )
        logger.info(
            "Bank send submitted",
            extra={"to": to, "amount": amount, "output": result.output.strip()},
        )
        return result

    async def confirm_btc_deposit(
        self,
        validator_key: str,
        deposit_address: str,
        sats_amount: str,
        block_height: str,
        tx_id: str,
        recipient: str,
    ) -> CommandResult:
        """Confirm a bridged BTC deposit on behalf of a validator.

        Parameters
        ----------
        validator_key : str
            Keyring name of the confirming validator.
        deposit_address : str
            BTC deposit address being confirmed.
        sats_amount : str
            Deposit amount in sats.
        block_height : str
            BTC block height of the deposit.
        tx_id : str
            Unique deposit transaction identifier.
        recipient : str
            Chain address credited with the deposit.
        """
        validator_address = await self.key_address(validator_key)
        result = await self._run_checked(
            "tx",
            "bridge",
            "msg-confirm-btc-deposit",
            deposit_address,
            sats_amount,
            block_height,
            tx_id,
            recipient,
            validator_address,
            "--from",
            validator_key,
            "--chain-id",
            self._chain_id,
            "--keyring-backend",
            self._keyring_backend,
            "--yes",
        )
        logger.info(
            "BTC deposit confirmation submitted",
            extra={
                "to": recipient,
                "amount": sats_amount,
                "tx_id": tx_id,
                "output": result.output.strip(),
            },
        )
        return result
