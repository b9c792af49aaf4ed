"""
Push Notification Dispatcher (Expo push API)

One POST per notification. Failures come back as DeliveryResult(ok=False)
and are never raised, so one bad token cannot stop the rest of a run.
An "ok" ticket is the gateway's acknowledgment, not proof of delivery.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict

from crosswatch.core.logger import Logger
from crosswatch.services.scanner.base import Signal, SignalType

logger = Logger("Push")


class PushTicket(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    id: Optional[str] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class PushError(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: Optional[str] = None
    message: str = ""


class PushResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: Optional[Union[PushTicket, List[PushTicket]]] = None
    errors: Optional[List[PushError]] = None


@dataclass
class DeliveryResult:
    ok: bool
    ticket_id: Optional[str] = None
    error: Optional[str] = None


def _fmt_price(value: float) -> str:
    """71000.0 -> 71,000 ; 150.25 -> 150.25"""
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,}"


def format_signal_message(signal: Signal, name: Optional[str] = None):
    """Title, body and data payload for a crossover notification."""
    if signal.type == SignalType.BUY:
        emoji, action = "📈", "매수"
    else:
        emoji, action = "📉", "매도"
    title = f"{emoji} {signal.symbol} {action} 신호!"
    body = (
        f"{name or signal.symbol}\n"
        f"{signal.reason}\n"
        f"현재가: {_fmt_price(signal.price)} | MA10: {_fmt_price(signal.ma10)}"
    )
    data = {
        "symbol": signal.symbol,
        "type": signal.type.value,
        "price": signal.price,
        "date": signal.date,
    }
    return title, body, data


class ExpoPushClient:
    def __init__(self, client: httpx.AsyncClient, url: str = "https://exp.host/--/api/v2/push/send"):
        self.client = client
        self.url = url
        self._headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }

    async def send(self, push_token: str, title: str, body: str, data: Dict[str, Any] = None) -> DeliveryResult:
        payload = {
            "to": push_token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": data or {},
            "priority": "high",
            "badge": 1,
            "categoryId": "signal",
        }

        try:
            resp = await self.client.post(self.url, json=payload, headers=self._headers)
            parsed = PushResponse.model_validate(resp.json())
        except httpx.HTTPError as e:
            logger.warn(f"Push send error: {e}")
            return DeliveryResult(ok=False, error=f"transport: {e}")
        except ValueError as e:
            # Covers non-JSON bodies and schema mismatches
            logger.warn(f"Malformed push gateway response (HTTP {resp.status_code})")
            return DeliveryResult(ok=False, error=f"malformed response: {type(e).__name__}")

        if parsed.errors:
            error = "; ".join(e.message for e in parsed.errors)
            logger.warn(f"Push gateway rejected request: {error}")
            return DeliveryResult(ok=False, error=error)

        ticket = parsed.data[0] if isinstance(parsed.data, list) and parsed.data else parsed.data
        if not isinstance(ticket, PushTicket):
            return DeliveryResult(ok=False, error="missing ticket")
        if ticket.status != "ok":
            logger.warn(f"Push ticket error: {ticket.message}")
            return DeliveryResult(ok=False, ticket_id=ticket.id, error=ticket.message or ticket.status)
        return DeliveryResult(ok=True, ticket_id=ticket.id)
