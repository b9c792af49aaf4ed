"""
Signal Checker (crossover notification pipeline)

One invocation:
1. List registered devices from the store
2. Union their watchlists into a unique symbol set
3. Resolve daily bars per symbol (sequential batches, concurrent within a batch)
4. Detect the latest MA10 crossover per symbol
5. For each device, keep signals not already notified for that symbol
6. Push each new signal, record it, persist the device once
7. Report

Devices, and the signals within a device, are processed sequentially.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from crosswatch.core.kv_store import KVStoreError
from crosswatch.core.logger import Logger
from crosswatch.core.timezone import utc_isoformat
from crosswatch.services.data_provider.base import ProviderResult
from crosswatch.services.data_provider.service import DataProviderService
from crosswatch.services.device_store import Device, DeviceStore, is_new_signal, record_notified
from crosswatch.services.push import ExpoPushClient, format_signal_message
from crosswatch.services.scanner import MACrossoverDetector, Signal, compute_indicator

logger = Logger("SignalChecker")


class RunStage(str, Enum):
    COLLECTING_DEVICES = "collecting_devices"
    COLLECTING_SYMBOLS = "collecting_symbols"
    FETCHING_BARS = "fetching_bars"
    DETECTING_SIGNALS = "detecting_signals"
    DISPATCHING = "dispatching"
    PERSISTING = "persisting"
    REPORTING = "reporting"


@dataclass
class RunReport:
    checked_at: str
    stage: RunStage = RunStage.COLLECTING_DEVICES
    message: Optional[str] = None
    devices: int = 0
    symbols_checked: int = 0
    symbols_unavailable: List[str] = field(default_factory=list)
    notifications_sent: int = 0
    notifications_failed: int = 0
    signals_detected: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def notifications_attempted(self) -> int:
        return self.notifications_sent + self.notifications_failed

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": True,
            "checkedAt": self.checked_at,
            "devices": self.devices,
            "symbolsChecked": self.symbols_checked,
            "symbolsUnavailable": self.symbols_unavailable,
            "notificationsSent": self.notifications_sent,
            "notificationsFailed": self.notifications_failed,
            "notificationsAttempted": self.notifications_attempted,
            "signalsDetected": self.signals_detected,
            "errors": self.errors,
        }
        if self.message:
            result["message"] = self.message
        return result


def iter_batches(items: List[str], size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class SignalChecker:
    """Runs the crossover pipeline across every registered device."""

    def __init__(
        self,
        store: DeviceStore,
        data_service: DataProviderService,
        push_client: ExpoPushClient,
        detector: MACrossoverDetector = None,
        batch_size: int = 5,
        history_range: str = "1mo",
    ):
        self.store = store
        self.data_service = data_service
        self.push_client = push_client
        self.detector = detector or MACrossoverDetector()
        self.batch_size = batch_size
        self.history_range = history_range

    def _enter(self, report: RunReport, stage: RunStage):
        report.stage = stage
        logger.debug(f"Stage: {stage.value}")

    async def run(self) -> RunReport:
        report = RunReport(checked_at=utc_isoformat())

        # Index read failure is fatal for the run
        keys = await self.store.list_device_keys()
        if not keys:
            return self._finish(report, "No registered devices")

        devices = await self._load_devices(keys, report)
        report.devices = len(devices)

        self._enter(report, RunStage.COLLECTING_SYMBOLS)
        symbols = list(dict.fromkeys(s for d in devices for s in d.symbols()))
        if not symbols:
            return self._finish(report, "No symbols to check")

        self._enter(report, RunStage.FETCHING_BARS)
        stock_data = await self._fetch_all(symbols, report)
        report.symbols_checked = len(symbols)

        self._enter(report, RunStage.DETECTING_SIGNALS)
        latest = self._detect(stock_data)

        for device in devices:
            staged = [
                (symbol, latest[symbol])
                for symbol in device.symbols()
                if latest.get(symbol) and is_new_signal(device, symbol, latest[symbol])
            ]
            if staged:
                await self._notify_device(device, staged, stock_data, report)

        return self._finish(report)

    def _finish(self, report: RunReport, message: str = None) -> RunReport:
        self._enter(report, RunStage.REPORTING)
        report.message = message
        logger.info(
            f"Run done [{self.detector.signal_id}]: devices={report.devices} symbols={report.symbols_checked} "
            f"sent={report.notifications_sent} failed={report.notifications_failed}"
            + (f" ({message})" if message else "")
        )
        return report

    async def _load_devices(self, keys: List[str], report: RunReport) -> List[Device]:
        devices = []
        for key in keys:
            try:
                device = await self.store.load(key)
            except KVStoreError as e:
                logger.error(f"Failed to load device {key}: {e}")
                report.errors.append(f"load {key}: {e}")
                continue
            if device and device.is_notifiable:
                devices.append(device)
        return devices

    async def _fetch_batch(self, batch: List[str]) -> List[Tuple[str, Optional[ProviderResult]]]:
        results = await asyncio.gather(
            *(self.data_service.resolve_history(s, self.history_range) for s in batch)
        )
        return list(zip(batch, results))

    async def _fetch_all(self, symbols: List[str], report: RunReport) -> Dict[str, ProviderResult]:
        stock_data = {}
        for batch in iter_batches(symbols, self.batch_size):
            for symbol, result in await self._fetch_batch(batch):
                if result:
                    stock_data[symbol] = result
                else:
                    report.symbols_unavailable.append(symbol)
        return stock_data

    def _detect(self, stock_data: Dict[str, ProviderResult]) -> Dict[str, Signal]:
        latest = {}
        for symbol, result in stock_data.items():
            signal = self.detector.detect_latest(compute_indicator(result.history), symbol)
            if signal:
                latest[symbol] = signal
        return latest

    async def _notify_device(
        self,
        device: Device,
        staged: List[Tuple[str, Signal]],
        stock_data: Dict[str, ProviderResult],
        report: RunReport,
    ):
        self._enter(report, RunStage.DISPATCHING)
        for symbol, signal in staged:
            title, body, data = format_signal_message(signal, stock_data[symbol].name)
            result = await self.push_client.send(device.push_token, title, body, data)

            if result.ok:
                report.notifications_sent += 1
            else:
                report.notifications_failed += 1
            report.signals_detected.append({
                "device": device.label,
                "symbol": symbol,
                "type": signal.type.value,
                "date": signal.date,
                "delivered": result.ok,
            })
            # Recorded whatever the delivery outcome
            record_notified(device, symbol, signal)

        self._enter(report, RunStage.PERSISTING)
        try:
            await self.store.save(device)
        except KVStoreError as e:
            logger.error(f"Failed to save device {device.id}: {e}")
            report.errors.append(f"save {device.id}: {e}")
