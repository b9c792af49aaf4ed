"""
REST key-value store client.

Speaks the Redis-over-HTTP dialect (Upstash / Vercel KV):
    GET  {url}/get/{key}              -> {"result": "<text>" | null}
    POST {url}/set/{key}   body=text  -> {"result": "OK"}
    POST {url}/sadd/{set}/{member}    -> {"result": 1}
    GET  {url}/smembers/{set}         -> {"result": ["a", "b"]}

Every request carries the bearer token. Values are JSON text.
"""

import json
from typing import Any, List, Optional
from urllib.parse import quote

import httpx

from crosswatch.core.logger import Logger

logger = Logger("KVStore")


class KVStoreError(Exception):
    """Transport or protocol failure talking to the key-value store."""


def _path(*parts: str) -> str:
    return "/".join(quote(p, safe=":") for p in parts)


class KVStore:
    def __init__(self, client: httpx.AsyncClient, url: str, token: str):
        self.client = client
        self.url = url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, *parts: str, content: str = None) -> Any:
        url = f"{self.url}/{_path(*parts)}"
        try:
            resp = await self.client.request(method, url, headers=self._headers, content=content)
        except httpx.HTTPError as e:
            raise KVStoreError(f"{method} {parts[0]} failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError as e:
            raise KVStoreError(f"{method} {parts[0]}: HTTP {resp.status_code}, non-JSON body") from e

        if resp.status_code >= 400 or (isinstance(payload, dict) and payload.get("error")):
            detail = payload.get("error") if isinstance(payload, dict) else payload
            raise KVStoreError(f"{method} {parts[0]}: HTTP {resp.status_code} {detail}")

        if not isinstance(payload, dict):
            raise KVStoreError(f"{method} {parts[0]}: unexpected response {payload!r}")
        return payload.get("result")

    async def get(self, key: str) -> Optional[Any]:
        """Fetch and decode a JSON value. Returns None for a missing key."""
        raw = await self._request("GET", "get", key)
        if raw is None:
            return None
        try:
            value = json.loads(raw) if isinstance(raw, str) else raw
            # Records written as {"value": "<json>"} by older clients
            if isinstance(value, dict) and set(value) == {"value"} and isinstance(value["value"], str):
                value = json.loads(value["value"])
        except ValueError as e:
            raise KVStoreError(f"Stored value for {key} is not valid JSON") from e
        return value

    async def set(self, key: str, value: Any) -> None:
        """Overwrite a key with the JSON-serialized value."""
        content = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
        await self._request("POST", "set", key, content=content)
        logger.debug(f"SET {key} ({len(content)} bytes)")

    async def sadd(self, set_key: str, member: str) -> int:
        result = await self._request("POST", "sadd", set_key, member)
        return int(result or 0)

    async def smembers(self, set_key: str) -> List[str]:
        result = await self._request("GET", "smembers", set_key)
        return list(result or [])
