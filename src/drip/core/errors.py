"""Exception hierarchy for DRIP.

- InvalidInputError: malformed or empty address, raised before any store access
- NotFoundError: no ledger record exists for an address
- StoreUnavailableError: ledger backend unreachable
- ExternalDisbursementError: the disbursement action failed or timed out
- InconsistentStateError: disbursement succeeded but the ledger write failed
"""

from datetime import datetime

from .assets import AssetKind


class DripError(Exception):
    """Base class for all DRIP errors."""


class InvalidInputError(DripError):
    """Request input is malformed."""


class NotFoundError(DripError):
    """No ledger record exists for the address."""

    def __init__(self, address: str):
        super().__init__(f"Address not found: {address}")
        self.address = address


class StoreUnavailableError(DripError):
    """The ledger store could not be reached."""


class ExternalDisbursementError(DripError):
    """The external disbursement action failed.

    Parameters
    ----------
    detail : str
        Failure detail reported by the executor.
    timed_out : bool
        True if the action was abandoned after the configured timeout.
    """

    def __init__(self, detail: str, timed_out: bool = False):
        super().__init__(detail)
        self.detail = detail
        self.timed_out = timed_out


class InconsistentStateError(DripError):
    """A dispense happened but its throttle watermark was not recorded.

    The address may be dispensed again before the window closes. This
    cannot be repaired automatically and must be reported to operators.
    """

    def __init__(
        self,
        address: str,
        asset: AssetKind,
        correlation_id: str,
        dispensed_at: datetime,
        cause: Exception,
    ):
        super().__init__(
            f"Dispensed {asset.value} to {address} (correlation {correlation_id}) "
            f"but failed to record it: {cause}"
        )
        self.address = address
        self.asset = asset
        self.correlation_id = correlation_id
        self.dispensed_at = dispensed_at
        self.cause = cause
