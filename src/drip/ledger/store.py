"""Ledger Store for DRIP.

Persistent mapping from recipient address to the last time each asset kind
was dispensed to it. One record per address is shared by both asset kinds.

Backends:
- Redis hash per address for production
- In-memory dict for development/testing
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from redis import Redis
from redis.exceptions import RedisError

from drip.core.assets import AssetKind
from drip.core.errors import NotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)


def _to_utc(at: datetime) -> datetime:
    """Normalize an aware datetime to UTC."""
    if at.tzinfo is None:
        raise ValueError("Ledger timestamps must be timezone-aware")
    return at.astimezone(timezone.utc)


@dataclass
class AddressRecord:
    """Ledger row for one recipient address."""

    address: str
    last_dispensed: dict[AssetKind, datetime | None] = field(
        default_factory=lambda: dict.fromkeys(AssetKind)
    )

    def get(self, asset: AssetKind) -> datetime | None:
        """Last dispense instant for an asset kind, or None if never dispensed."""
        return self.last_dispensed.get(asset)


class LedgerStore(ABC):
    """Abstract ledger store.

    All operations raise StoreUnavailableError when the backend cannot be
    reached. Nothing is retried internally.
    """

    @abstractmethod
    async def exists(self, address: str) -> bool:
        """Check whether a record exists for the address.

        Parameters
        ----------
        address : str
            Recipient address, exactly as supplied.

        Returns
        -------
        bool
            True if a record exists, regardless of which asset kinds are set.
        """
        ...

    @abstractmethod
    async def get_last_dispensed(self, address: str, asset: AssetKind) -> datetime | None:
        """Get the last dispense instant for an (address, asset kind) pair.

        Parameters
        ----------
        address : str
            Recipient address.
        asset : AssetKind
            Asset kind to look up.

        Returns
        -------
        datetime | None
            Stored UTC instant, or None if the record exists but this kind
            was never dispensed.

        Raises
        ------
        NotFoundError
            If no record exists for the address.
        """
        ...

    @abstractmethod
    async def record_dispense(self, address: str, asset: AssetKind, at: datetime) -> None:
        """Record a dispense.

        Creates the record if missing, otherwise updates only ``asset``.
        A write older than the stored instant is ignored so the watermark
        never moves backwards.

        Parameters
        ----------
        address : str
            Recipient address.
        asset : AssetKind
            Asset kind dispensed.
        at : datetime
            Timezone-aware instant supplied by the caller.
        """
        ...

    @abstractmethod
    async def get_record(self, address: str) -> AddressRecord | None:
        """Get the full record for an address, or None if unknown."""
        ...

    @abstractmethod
    async def try_reserve(
        self, address: str, asset: AssetKind, ttl: timedelta, token: str
    ) -> bool:
        """Atomically create an in-flight reservation for a pair.

        Parameters
        ----------
        address : str
            Recipient address.
        asset : AssetKind
            Asset kind being dispensed.
        ttl : timedelta
            Lifetime of the reservation if it is never released.
        token : str
            Identifier of the attempt that owns the reservation.

        Returns
        -------
        bool
            True if the reservation was created, False if one already exists.
        """
        ...

    @abstractmethod
    async def release(self, address: str, asset: AssetKind, token: str) -> None:
        """Drop the reservation for a pair if ``token`` still owns it."""
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Check backend connectivity."""
        ...


class MemoryLedgerStore(LedgerStore):
    """In-memory ledger for development and tests.

    Each method completes without awaiting, so every operation is atomic
    with respect to other coroutines on the same event loop.
    """

    def __init__(self):
        self._records: dict[str, AddressRecord] = {}
        # (address, asset) -> (monotonic expiry, owner token)
        self._reservations: dict[tuple[str, AssetKind], tuple[float, str]] = {}

    async def exists(self, address: str) -> bool:
        return address in self._records

    async def get_last_dispensed(self, address: str, asset: AssetKind) -> datetime | None:
        record = self._records.get(address)
        if record is None:
            raise NotFoundError(address)
        return record.get(asset)

    async def record_dispense(self, address: str, asset: AssetKind, at: datetime) -> None:
        at = _to_utc(at)
        record = self._records.setdefault(address, AddressRecord(address=address))
        current = record.get(asset)
        if current is not None and at < current:
            logger.warning(
                "Ignoring out-of-order dispense write",
                extra={"recipient": address, "asset": asset.value, "at": at.isoformat()},
            )
            return
        record.last_dispensed[asset] = at

    async def get_record(self, address: str) -> AddressRecord | None:
        record = self._records.get(address)
        if record is None:
            return None
        return AddressRecord(address=address, last_dispensed=dict(record.last_dispensed))

    async def try_reserve(
        self, address: str, asset: AssetKind, ttl: timedelta, token: str
    ) -> bool:
        now = time.monotonic()
        key = (address, asset)
        held = self._reservations.get(key)
        if held is not None and held[0] > now:
            return False
        self._reservations[key] = (now + ttl.total_seconds(), token)
        return True

    async def release(self, address: str, asset: AssetKind, token: str) -> None:
        key = (address, asset)
        held = self._reservations.get(key)
        if held is not None and held[1] == token:
            del self._reservations[key]

    async def ping(self) -> bool:
        return True


@contextmanager
def _redis_errors(operation: str) -> Iterator[None]:
    """Translate Redis failures into StoreUnavailableError.

    Covers connectivity as well as server-side errors (WRONGTYPE, OOM,
    READONLY replica), none of which leave the ledger usable.
    """
    try:
        yield
    except RedisError as e:
        logger.error(
            "Ledger store unavailable",
            extra={"operation": operation, "error": str(e)},
        )
        raise StoreUnavailableError(f"Ledger store unavailable during {operation}: {e}") from e


# Delete the reservation only while it still carries the caller's token
_RELEASE_IF_OWNER = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class RedisLedgerStore(LedgerStore):
    """Redis-backed ledger.

    Layout:
    - ``<prefix>:address:<address>``: hash with one ISO-8601 field per asset kind
    - ``<prefix>:reservation:<asset>:<address>``: owner token of the in-flight attempt

    Parameters
    ----------
    client : Redis
        Redis client created with ``decode_responses=True``.
    key_prefix : str
        Namespace for all keys.
    """

    def __init__(self, client: Redis, key_prefix: str = "drip"):
        self._redis = client
        self._prefix = key_prefix
        self._release_script = client.register_script(_RELEASE_IF_OWNER)

    @classmethod
    def from_url(cls, redis_url: str, key_prefix: str = "drip") -> "RedisLedgerStore":
        """Connect to Redis and verify the connection.

        Raises
        ------
        StoreUnavailableError
            If Redis cannot be reached.
        """
        client = Redis.from_url(redis_url, decode_responses=True)
        with _redis_errors("connect"):
            client.ping()
        logger.info("Redis connected for ledger", extra={"url": redis_url})
        return cls(client, key_prefix=key_prefix)

    def _record_key(self, address: str) -> str:
        return f"{self._prefix}:address:{address}"

    def _reservation_key(self, address: str, asset: AssetKind) -> str:
        return f"{self._prefix}:reservation:{asset.value}:{address}"

    @staticmethod
    def _parse(value: str | None) -> datetime | None:
        if not value:
            return None
        try:
            return _to_utc(datetime.fromisoformat(value))
        except ValueError as e:
            logger.error("Corrupt ledger timestamp", extra={"value": value})
            raise StoreUnavailableError(f"Corrupt ledger timestamp {value!r}") from e

    async def exists(self, address: str) -> bool:
        with _redis_errors("exists"):
            return bool(self._redis.exists(self._record_key(address)))

    async def get_last_dispensed(self, address: str, asset: AssetKind) -> datetime | None:
        with _redis_errors("get_last_dispensed"):
            fields = self._redis.hgetall(self._record_key(address))
        if not fields:
            raise NotFoundError(address)
        return self._parse(fields.get(asset.value))

    async def record_dispense(self, address: str, asset: AssetKind, at: datetime) -> None:
        at = _to_utc(at)
        key = self._record_key(address)

        def _apply(pipe) -> None:
            current = self._parse(pipe.hget(key, asset.value))
            if current is not None and at < current:
                logger.warning(
                    "Ignoring out-of-order dispense write",
                    extra={"recipient": address, "asset": asset.value, "at": at.isoformat()},
                )
                return
            pipe.multi()
            pipe.hset(key, asset.value, at.isoformat())

        # WATCH/MULTI: retried by redis-py if the hash changes concurrently
        with _redis_errors("record_dispense"):
            self._redis.transaction(_apply, key)

    async def get_record(self, address: str) -> AddressRecord | None:
        with _redis_errors("get_record"):
            fields = self._redis.hgetall(self._record_key(address))
        if not fields:
            return None
        return AddressRecord(
            address=address,
            last_dispensed={asset: self._parse(fields.get(asset.value)) for asset in AssetKind},
        )

    async def try_reserve(
        self, address: str, asset: AssetKind, ttl: timedelta, token: str
    ) -> bool:
        ttl_ms = max(1, int(ttl.total_seconds() * 1000))
        with _redis_errors("try_reserve"):
            created = self._redis.set(
                self._reservation_key(address, asset), token, nx=True, px=ttl_ms
            )
        return bool(created)

    async def release(self, address: str, asset: AssetKind, token: str) -> None:
        with _redis_errors("release"):
            self._release_script(keys=[self._reservation_key(address, asset)], args=[token])

    async def ping(self) -> bool:
        try:
            return bool(self._redis.ping())
        except RedisError as e:
            logger.warning("Ledger ping failed", extra={"error": str(e)})
            return False


def create_store(redis_url: str | None) -> LedgerStore:
    """Create the ledger store for a deployment.

    Parameters
    ----------
    redis_url : str | None
        Redis connection URL, or None for an in-memory ledger.

    Raises
    ------
    StoreUnavailableError
        If ``redis_url`` is set but Redis cannot be reached. A ledger never
        falls back to memory, since that would forget every throttle.
    """
    if redis_url:
        return RedisLedgerStore.from_url(redis_url)
    logger.warning("REDIS_URL not set, using in-memory ledger")
    return MemoryLedgerStore()
