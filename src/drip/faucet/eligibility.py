"""Eligibility Engine for DRIP.

Features:
- Sliding once-per-window throttle per (address, asset kind)
- Atomic check-and-reserve against concurrent attempts
- Dispense recording with the instant used for the check
"""

import logging
from datetime import datetime, timedelta
from enum import Enum

from drip.core.assets import AssetKind
from drip.ledger.store import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=24)


class Eligibility(str, Enum):
    """Outcome of an eligibility check."""

    ELIGIBLE = "eligible"
    THROTTLED = "throttled"
    NEVER_USED = "never_used"

    @property
    def allowed(self) -> bool:
        """True if a dispense may proceed."""
        return self is not Eligibility.THROTTLED


class EligibilityEngine:
    """Decides whether an (address, asset kind) pair may be dispensed.

    Parameters
    ----------
    store : LedgerStore
        Ledger holding last-dispensed instants.
    window : timedelta
        Throttle window measured from the last dispense.
    reservation_ttl : timedelta
        Lifetime of an in-flight reservation that is never released.
    """

    def __init__(
        self,
        store: LedgerStore,
        window: timedelta = DEFAULT_WINDOW,
        reservation_ttl: timedelta = timedelta(minutes=5),
    ):
        if window <= timedelta(0):
            raise ValueError("Eligibility window must be positive")
        self._store = store
        self._window = window
        self._reservation_ttl = reservation_ttl

    @property
    def window(self) -> timedelta:
        """Throttle window."""
        return self._window

    async def check_eligible(self, address: str, asset: AssetKind, now: datetime) -> Eligibility:
        """Evaluate eligibility without mutating the ledger.

        Parameters
        ----------
        address : str
            Recipient address.
        asset : AssetKind
            Asset kind requested.
        now : datetime
            Instant the request is evaluated at.

        Returns
        -------
        Eligibility
            NEVER_USED for unknown pairs, THROTTLED while ``now`` is less
            than one window after the last dispense, ELIGIBLE otherwise.
        """
        if not await self._store.exists(address):
            return Eligibility.NEVER_USED

        last = await self._store.get_last_dispensed(address, asset)
        if last is None:
            return Eligibility.NEVER_USED

        if now - last < self._window:
            return Eligibility.THROTTLED
        return Eligibility.ELIGIBLE

    async def try_reserve(
        self,
        address: str,
        asset: AssetKind,
        now: datetime,
        token: str,
        ttl: timedelta | None = None,
    ) -> Eligibility:
        """Check eligibility and hold the pair for a dispense attempt.

        The reservation is taken before the check so that concurrent
        attempts for the same pair cannot both pass. An attempt that finds
        the pair already reserved is THROTTLED. On any non-THROTTLED result
        the caller owns the reservation and must call :meth:`release` with
        the same ``token``.

        Parameters
        ----------
        address : str
            Recipient address.
        asset : AssetKind
            Asset kind requested.
        now : datetime
            Instant the request is evaluated at.
        token : str
            Identifier of this attempt; only its owner can release it.
        ttl : timedelta | None
            Reservation lifetime; the engine default when None.

        Returns
        -------
        Eligibility
            Decision for this attempt.
        """
        ttl = ttl if ttl is not None else self._reservation_ttl
        if not await self._store.try_reserve(address, asset, ttl, token):
            logger.info(
                "Dispense already in flight",
                extra={"recipient": address, "asset": asset.value},
            )
            return Eligibility.THROTTLED

        try:
            decision = await self.check_eligible(address, asset, now)
        except Exception:
            await self.release(address, asset, token)
            raise

        if decision is Eligibility.THROTTLED:
            await self.release(address, asset, token)
        return decision

    async def release(self, address: str, asset: AssetKind, token: str) -> None:
        """Release a reservation taken by :meth:`try_reserve`."""
        await self._store.release(address, asset, token)

    async def mark_dispensed(self, address: str, asset: AssetKind, now: datetime) -> None:
        """Record a successful dispense at the instant it was evaluated.

        Parameters
        ----------
        address : str
            Recipient address.
        asset : AssetKind
            Asset kind dispensed.
        now : datetime
            Same instant passed to the preceding eligibility check.
        """
        await self._store.record_dispense(address, asset, now)
        logger.debug(
            "Dispense recorded",
            extra={"recipient": address, "asset": asset.value, "at": now.isoformat()},
        )

    async def cooldown_remaining(
        self, address: str, asset: AssetKind, now: datetime
    ) -> timedelta | None:
        """Get time until the pair is eligible again.

        Returns
        -------
        timedelta | None
            Remaining throttle time, or None if the pair is not throttled.
        """
        record = await self._store.get_record(address)
        if record is None:
            return None
        last = record.get(asset)
        if last is None:
            return None
        remaining = last + self._window - now
        if remaining <= timedelta(0):
            return None
        return remaining
