"""Disbursement executors for DRIP.

Native (nyks) disbursement:
- Bank send from the faucet keyring account

Bridged (sats) disbursement:
- BTC deposit confirmation signed by the validator key
- Correlation ID used as the deposit transaction identifier

Relayer mint:
- Bridged disbursement with the fixed relayer amount
"""

import logging
import re
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from drip.blockchain import NyksdClient, NyksdCommandError
from drip.core.assets import AssetKind
from drip.observability.metrics import DISBURSEMENTS, DISBURSEMENT_DURATION

logger = logging.getLogger(__name__)

# Opaque address: 1-128 ASCII alphanumerics, compared exactly as supplied
ADDRESS_PATTERN = re.compile(r"^[A-Za-z0-9]{1,128}$")


def validate_address(address: str) -> bool:
    """Validate recipient address format.

    Parameters
    ----------
    address : str
        Address to validate.

    Returns
    -------
    bool
        True if the address is non-empty and well formed.
    """
    return isinstance(address, str) and bool(ADDRESS_PATTERN.fullmatch(address))


def generate_correlation_id() -> str:
    """Generate a 32-byte hex correlation identifier."""
    return secrets.token_hex(32)


class DisbursementStatus(str, Enum):
    """Disbursement result status."""

    SUCCESS = "success"
    COMMAND_FAILED = "command_failed"
    ERROR = "error"


@dataclass
class DisbursementResult:
    """Result of one disbursement attempt."""

    success: bool
    status: DisbursementStatus
    detail: str


class DisbursementExecutor(ABC):
    """Performs the external, non-idempotent disbursement action."""

    @abstractmethod
    async def disburse(
        self, address: str, asset: AssetKind, correlation_id: str
    ) -> DisbursementResult:
        """Credit ``address`` with one unit of ``asset``.

        Parameters
        ----------
        address : str
            Recipient address.
        asset : AssetKind
            Asset kind to disburse.
        correlation_id : str
            Per-attempt identifier for external audit correlation.

        Returns
        -------
        DisbursementResult
            Success or failure with detail.
        """
        ...

    async def disburse_relayer(self, address: str, correlation_id: str) -> DisbursementResult:
        """Credit the relayer wallet with the relayer amount."""
        return DisbursementResult(
            success=False,
            status=DisbursementStatus.ERROR,
            detail="Relayer minting is not supported by this executor",
        )


class NyksdExecutor(DisbursementExecutor):
    """Disburses assets by running nyksd transactions.

    Parameters
    ----------
    client : NyksdClient
        nyksd command runner.
    faucet_account : str
        Keyring name of the account funding native sends.
    validator_name : str
        Keyring name of the validator confirming bridged deposits.
    nyks_amount : str
        Native amount with denomination.
    sats_amount : str
        Bridged amount per dispense.
    relayer_sats_amount : str
        Bridged amount per relayer mint.
    btc_deposit_address : str
        BTC deposit address used in confirmations.
    btc_block_height : str
        BTC block height used in confirmations.
    """

    def __init__(
        self,
        client: NyksdClient,
        faucet_account: str,
        validator_name: str,
        nyks_amount: str = "10000nyks",
        sats_amount: str = "50000",
        relayer_sats_amount: str = "500000000",
        btc_deposit_address: str = "14uEN8abvKA1zgYCpv8MWCUwAMLGBqdZGM",
        btc_block_height: str = "50000",
    ):
        self._client = client
        self._faucet_account = faucet_account
        self._validator_name = validator_name
        self._nyks_amount = nyks_amount
        self._sats_amount = sats_amount
        self._relayer_sats_amount = relayer_sats_amount
        self._btc_deposit_address = btc_deposit_address
        self._btc_block_height = btc_block_height

    async def disburse(
        self, address: str, asset: AssetKind, correlation_id: str
    ) -> DisbursementResult:
        if asset is AssetKind.NATIVE:
            return await self._execute(
                asset.value,
                address,
                correlation_id,
                self._client.bank_send(self._faucet_account, address, self._nyks_amount),
                f"Sent {self._nyks_amount} to {address}",
            )
        return await self._execute(
            asset.value,
            address,
            correlation_id,
            self._confirm_deposit(address, self._sats_amount, correlation_id),
            f"Confirmed {self._sats_amount} sats deposit for {address}",
        )

    async def disburse_relayer(self, address: str, correlation_id: str) -> DisbursementResult:
        return await self._execute(
            "relayer",
            address,
            correlation_id,
            self._confirm_deposit(address, self._relayer_sats_amount, correlation_id),
            f"Confirmed {self._relayer_sats_amount} sats relayer deposit for {address}",
        )

    def _confirm_deposit(self, address: str, amount: str, correlation_id: str):
        return self._client.confirm_btc_deposit(
            validator_key=self._validator_name,
            deposit_address=self._btc_deposit_address,
            sats_amount=amount,
            block_height=self._btc_block_height,
            tx_id=correlation_id,
            recipient=address,
        )

    async def _execute(
        self, label: str, address: str, correlation_id: str, command, success_message: str
    ) -> DisbursementResult:
        with DISBURSEMENT_DURATION.labels(asset=label).time():
            try:
                await command
            except NyksdCommandError as e:
                DISBURSEMENTS.labels(asset=label, status="failed").inc()
                logger.error(
                    "Disbursement command failed",
                    extra={
                        "recipient": address,
                        "asset": label,
                        "correlation_id": correlation_id,
                        "error": str(e),
                    },
                )
                return DisbursementResult(
                    success=False,
                    status=DisbursementStatus.COMMAND_FAILED,
                    detail=f"Failed to run command: {e}",
                )
            except OSError as e:
                DISBURSEMENTS.labels(asset=label, status="error").inc()
                logger.error(
                    "Disbursement could not start",
                    extra={"recipient": address, "asset": label, "error": str(e)},
                    exc_info=True,
                )
                return DisbursementResult(
                    success=False,
                    status=DisbursementStatus.ERROR,
                    detail=f"Failed to run command: {e}",
                )

        DISBURSEMENTS.labels(asset=label, status="success").inc()
        logger.info(
            "Disbursement executed",
            extra={"recipient": address, "asset": label, "correlation_id": correlation_id},
        )
        return DisbursementResult(
            success=True,
            status=DisbursementStatus.SUCCESS,
            detail=success_message,
        )
