"""
Device State Store

Persists registered push targets and the last signal notified per symbol.

Records live in the key-value store as JSON under `device:<b64(token)[:32]>`;
the set `device_index` lists every record key. Both are written by the
registration endpoint; this module reads them and overwrites records after
notifications go out (last writer wins, no version check).
"""

import base64
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from crosswatch.core.kv_store import KVStore, KVStoreError
from crosswatch.core.logger import Logger
from crosswatch.core.timezone import utc_isoformat
from crosswatch.services.scanner.base import Signal

logger = Logger("DeviceStore")


def device_key_for(push_token: str) -> str:
    """Stable record key derived from the push token."""
    encoded = base64.b64encode(push_token.encode("utf-8")).decode("ascii")
    return f"device:{encoded[:32]}"


class Device(BaseModel):
    """A registered notification target.

    Unknown fields written by the registration collaborator (platform,
    deviceName, ...) are kept and written back untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    key: str = Field("", exclude=True)
    push_token: Optional[str] = Field(None, alias="pushToken")
    watchlist: List[str] = Field(default_factory=list)
    last_signals: Dict[str, str] = Field(default_factory=dict, alias="lastSignals")
    registered_at: Optional[str] = Field(None, alias="registeredAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")

    @property
    def id(self) -> str:
        return self.key or (device_key_for(self.push_token) if self.push_token else "")

    @property
    def label(self) -> str:
        """Name for logs and reports."""
        extra = self.model_extra or {}
        return extra.get("deviceName") or self.id[-8:]

    @property
    def is_notifiable(self) -> bool:
        return bool(self.push_token and self.watchlist)

    def symbols(self) -> List[str]:
        """Watchlist without duplicates, in registration order."""
        return list(dict.fromkeys(self.watchlist))

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"key"})


# ─────────────────────────────────────────────────────────────────────────────
# Dedup
# ─────────────────────────────────────────────────────────────────────────────

def signal_key(symbol: str, signal: Signal) -> str:
    return f"{symbol}|{signal.date}|{signal.type.value}"


def _legacy_signal_key(symbol: str, signal: Signal) -> str:
    return f"{symbol}-{signal.date}-{signal.type.value}"


def is_new_signal(device: Device, symbol: str, signal: Signal) -> bool:
    """True unless this exact date+type was already notified for the symbol."""
    last = device.last_signals.get(symbol)
    return last not in (signal_key(symbol, signal), _legacy_signal_key(symbol, signal))


def record_notified(device: Device, symbol: str, signal: Signal) -> None:
    """Remember only the most recent notified signal per symbol."""
    device.last_signals[symbol] = signal_key(symbol, signal)


# ─────────────────────────────────────────────────────────────────────────────
# Persistence
# ─────────────────────────────────────────────────────────────────────────────

class DeviceStore:
    def __init__(self, kv: KVStore, index_key: str = "device_index"):
        self.kv = kv
        self.index_key = index_key

    async def list_device_keys(self) -> List[str]:
        return await self.kv.smembers(self.index_key)

    async def load(self, key: str) -> Optional[Device]:
        value = await self.kv.get(key)
        if value is None:
            return None
        if not isinstance(value, dict):
            raise KVStoreError(f"Device record {key} is not an object")
        try:
            device = Device.model_validate(value)
        except ValidationError as e:
            raise KVStoreError(f"Malformed device record {key}: {e.error_count()} errors") from e
        device.key = key
        return device

    async def save(self, device: Device) -> None:
        """Whole-record overwrite."""
        device.updated_at = utc_isoformat()
        await self.kv.set(device.id, device.to_record())
        logger.debug(f"Saved {device.id} ({len(device.last_signals)} last signals)")

    async def add_to_index(self, key: str) -> None:
        await self.kv.sadd(self.index_key, key)
