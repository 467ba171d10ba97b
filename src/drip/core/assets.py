"""Asset kinds handled by the dispense gateway."""

from enum import Enum


class AssetKind(str, Enum):
    """Disbursable asset kinds.

    Each kind has an independent eligibility window per address.
    """

    NATIVE = "native"
    BRIDGED = "bridged"

    @property
    def denom(self) -> str:
        """On-chain denomination name used in logs and messages."""
        return _DENOMS[self]


_DENOMS = {
    AssetKind.NATIVE: "nyks",
    AssetKind.BRIDGED: "sats",
}
