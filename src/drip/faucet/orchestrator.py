"""Dispense Orchestrator for DRIP.

Composes one dispense attempt:
- Address validation
- Atomic eligibility check and reservation
- External disbursement, bounded by a timeout
- Ledger recording of successful dispenses
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from drip.core.assets import AssetKind
from drip.core.errors import (
    DripError,
    ExternalDisbursementError,
    InconsistentStateError,
    InvalidInputError,
    StoreUnavailableError,
)
from drip.observability.metrics import INCONSISTENT_STATE, REJECTIONS, REQUEST_DURATION, REQUESTS

from .eligibility import DEFAULT_WINDOW, Eligibility, EligibilityEngine
from .executor import DisbursementExecutor, generate_correlation_id, validate_address

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current UTC instant."""
    return datetime.now(timezone.utc)


class DispenseOutcome(str, Enum):
    """Top-level outcome of a dispense request."""

    DISPENSED = "dispensed"
    REJECTED = "rejected"
    FAILED = "failed"


class DispenseReason(str, Enum):
    """Why a request was rejected or failed."""

    ALREADY_USED_RECENTLY = "already_used_recently"
    NOT_RELAYER = "not_relayer"
    INVALID_INPUT = "invalid_input"
    STORE_UNAVAILABLE = "store_unavailable"
    DISBURSEMENT_FAILED = "disbursement_failed"
    TIMEOUT = "timeout"
    INCONSISTENT_STATE = "inconsistent_state"


@dataclass
class DispenseResult:
    """Result of a dispense request."""

    outcome: DispenseOutcome
    address: str
    asset: AssetKind
    message: str
    reason: DispenseReason | None = None
    correlation_id: str | None = None
    error: DripError | None = None

    @property
    def success(self) -> bool:
        """True if the asset was dispensed and recorded."""
        return self.outcome is DispenseOutcome.DISPENSED


@dataclass(frozen=True)
class DispensePolicy:
    """Fixed parameters for the orchestrator.

    Attributes
    ----------
    window : timedelta
        Throttle window per (address, asset kind).
    disburse_timeout : timedelta
        Upper bound on one disbursement call.
    relayer_address : str | None
        Only address allowed to use the relayer mint path.
    """

    window: timedelta = DEFAULT_WINDOW
    disburse_timeout: timedelta = timedelta(seconds=60)
    relayer_address: str | None = None

    @property
    def reservation_ttl(self) -> timedelta:
        """Reservation lifetime: outlives the slowest disbursement."""
        return self.disburse_timeout * 2 + timedelta(seconds=30)


class DispenseOrchestrator:
    """Runs dispense requests end to end.

    Parameters
    ----------
    eligibility : EligibilityEngine
        Eligibility engine over the ledger.
    executor : DisbursementExecutor
        External disbursement action.
    policy : DispensePolicy
        Window, timeout and relayer settings.
    clock : Callable[[], datetime]
        Source of the current UTC instant.
    correlation_ids : Callable[[], str]
        Source of per-attempt correlation identifiers.
    """

    def __init__(
        self,
        eligibility: EligibilityEngine,
        executor: DisbursementExecutor,
        policy: DispensePolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
        correlation_ids: Callable[[], str] = generate_correlation_id,
    ):
        self._eligibility = eligibility
        self._executor = executor
        self._policy = policy or DispensePolicy()
        self._clock = clock
        self._correlation_ids = correlation_ids

    @property
    def policy(self) -> DispensePolicy:
        """Orchestrator policy."""
        return self._policy

    @property
    def eligibility(self) -> EligibilityEngine:
        """Underlying eligibility engine."""
        return self._eligibility

    def now(self) -> datetime:
        """Current instant from the injected clock."""
        return self._clock()

    async def request_dispense(self, address: str, asset: AssetKind) -> DispenseResult:
        """Dispense ``asset`` to ``address`` if the pair is eligible.

        Parameters
        ----------
        address : str
            Recipient address, used exactly as supplied.
        asset : AssetKind
            Asset kind requested.

        Returns
        -------
        DispenseResult
            DISPENSED, REJECTED(ALREADY_USED_RECENTLY) or FAILED with the
            reason and error.
        """
        with REQUEST_DURATION.labels(asset=asset.value).time():
            result = await self._dispense(address, asset)
        self._count(result)
        return result

    async def _dispense(self, address: str, asset: AssetKind) -> DispenseResult:
        if not validate_address(address):
            return self._failed(
                address,
                asset,
                DispenseReason.INVALID_INPUT,
                InvalidInputError("recipientAddress is required and must be alphanumeric"),
            )

        now = self._clock()
        correlation_id = self._correlation_ids()
        try:
            # Reservation outlives the slowest disbursement the policy allows
            decision = await self._eligibility.try_reserve(
                address, asset, now, correlation_id, ttl=self._policy.reservation_ttl
            )
        except StoreUnavailableError as e:
            return self._failed(address, asset, DispenseReason.STORE_UNAVAILABLE, e)

        if decision is Eligibility.THROTTLED:
            logger.info(
                "Dispense rejected",
                extra={"recipient": address, "asset": asset.value, "decision": decision.value},
            )
            return DispenseResult(
                outcome=DispenseOutcome.REJECTED,
                address=address,
                asset=asset,
                reason=DispenseReason.ALREADY_USED_RECENTLY,
                message=f"Address has received {asset.denom} in the last "
                f"{_format_window(self._policy.window)}",
            )

        # Reservation is held from here until the ledger write completes
        try:
            return await self._disburse_and_record(address, asset, now, correlation_id)
        finally:
            await self._release_quietly(address, asset, correlation_id)

    async def _disburse_and_record(
        self, address: str, asset: AssetKind, now: datetime, correlation_id: str
    ) -> DispenseResult:
        error = await self._run_disbursement(
            self._executor.disburse(address, asset, correlation_id),
            address,
            asset.value,
            correlation_id,
        )
        if error is not None:
            return self._failed(
                address,
                asset,
                DispenseReason.TIMEOUT if error.timed_out else DispenseReason.DISBURSEMENT_FAILED,
                error,
                correlation_id,
            )

        try:
            await self._eligibility.mark_dispensed(address, asset, now)
        except Exception as e:
            inconsistent = InconsistentStateError(address, asset, correlation_id, now, e)
            INCONSISTENT_STATE.labels(asset=asset.value).inc()
            logger.critical(
                "Dispense succeeded but was not recorded",
                extra={
                    "recipient": address,
                    "asset": asset.value,
                    "correlation_id": correlation_id,
                    "dispensed_at": now.isoformat(),
                    "error": str(e),
                },
                exc_info=True,
            )
            return self._failed(
                address, asset, DispenseReason.INCONSISTENT_STATE, inconsistent, correlation_id
            )

        logger.info(
            "Dispense completed",
            extra={"recipient": address, "asset": asset.value, "correlation_id": correlation_id},
        )
        return DispenseResult(
            outcome=DispenseOutcome.DISPENSED,
            address=address,
            asset=asset,
            correlation_id=correlation_id,
            message="Command executed successfully",
        )

    async def request_relayer_mint(self, address: str) -> DispenseResult:
        """Mint the relayer amount of the bridged asset to the relayer wallet.

        The ledger is not consulted; only the configured relayer address
        is accepted.

        Parameters
        ----------
        address : str
            Address that must equal the configured relayer address.

        Returns
        -------
        DispenseResult
            DISPENSED, REJECTED(NOT_RELAYER) or FAILED.
        """
        asset = AssetKind.BRIDGED
        if not validate_address(address):
            result = self._failed(
                address,
                asset,
                DispenseReason.INVALID_INPUT,
                InvalidInputError("recipientAddress is required and must be alphanumeric"),
            )
            self._count(result)
            return result

        relayer = self._policy.relayer_address
        if relayer is None or address != relayer:
            logger.info("Relayer mint rejected", extra={"recipient": address})
            result = DispenseResult(
                outcome=DispenseOutcome.REJECTED,
                address=address,
                asset=asset,
                reason=DispenseReason.NOT_RELAYER,
                message="recipientAddress is not the registered relayer address",
            )
            self._count(result)
            return result

        correlation_id = self._correlation_ids()
        error = await self._run_disbursement(
            self._executor.disburse_relayer(address, correlation_id),
            address,
            "relayer",
            correlation_id,
        )
        if error is not None:
            result = self._failed(
                address,
                asset,
                DispenseReason.TIMEOUT if error.timed_out else DispenseReason.DISBURSEMENT_FAILED,
                error,
                correlation_id,
            )
        else:
            result = DispenseResult(
                outcome=DispenseOutcome.DISPENSED,
                address=address,
                asset=asset,
                correlation_id=correlation_id,
                message="Command executed successfully",
            )
        self._count(result)
        return result

    async def _run_disbursement(
        self, call, address: str, label: str, correlation_id: str
    ) -> ExternalDisbursementError | None:
        """Await a disbursement call; return an error if it did not succeed."""
        timeout = self._policy.disburse_timeout.total_seconds()
        try:
            result = await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Disbursement timed out",
                extra={
                    "recipient": address,
                    "asset": label,
                    "correlation_id": correlation_id,
                    "timeout_seconds": timeout,
                },
            )
            return ExternalDisbursementError(
                f"Disbursement timed out after {timeout:g}s", timed_out=True
            )
        except Exception as e:
            logger.error(
                "Disbursement raised",
                extra={"recipient": address, "asset": label, "correlation_id": correlation_id},
                exc_info=True,
            )
            return ExternalDisbursementError(f"Disbursement error: {e}")

        if not result.success:
            return ExternalDisbursementError(result.detail)
        return None

    async def _release_quietly(self, address: str, asset: AssetKind, token: str) -> None:
        """Release a reservation; an unreachable store leaves it to expire."""
        try:
            await self._eligibility.release(address, asset, token)
        except StoreUnavailableError as e:
            logger.warning(
                "Reservation not released, will expire",
                extra={"recipient": address, "asset": asset.value, "error": str(e)},
            )

    def _failed(
        self,
        address: str,
        asset: AssetKind,
        reason: DispenseReason,
        error: DripError,
        correlation_id: str | None = None,
    ) -> DispenseResult:
        if reason is not DispenseReason.INCONSISTENT_STATE:
            logger.warning(
                "Dispense failed",
                extra={
                    "recipient": address,
                    "asset": asset.value,
                    "reason": reason.value,
                    "error": str(error),
                },
            )
        return DispenseResult(
            outcome=DispenseOutcome.FAILED,
            address=address,
            asset=asset,
            reason=reason,
            correlation_id=correlation_id,
            error=error,
            message=str(error),
        )

    @staticmethod
    def _count(result: DispenseResult) -> None:
        REQUESTS.labels(asset=result.asset.value, outcome=result.outcome.value).inc()
        if result.reason is not None:
            REJECTIONS.labels(asset=result.asset.value, reason=result.reason.value).inc()


def _format_window(window: timedelta) -> str:
    """Format the throttle window for user display."""
    hours = window.total_seconds() / 3600
    if hours.is_integer():
        return f"{int(hours)} hours"
    return f"{window.total_seconds() / 60:g} minutes"
