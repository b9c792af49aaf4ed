#!/usr/bin/env python3
"""
Seed a device record for local end-to-end runs.

Writes the record the registration endpoint would write and adds its key
to the device index, using KV_REST_API_URL / KV_REST_API_TOKEN from .env.

Usage:
    python scripts/seed_device.py --token ExponentPushToken[xxx] --symbols AAPL,005930
    python scripts/seed_device.py --token ExponentPushToken[xxx] --symbols AAPL --name "Test iPhone"
"""

import argparse
import asyncio
import os
import sys

import httpx

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from crosswatch.core.config import parse_comma_list, settings  # noqa: E402
from crosswatch.core.kv_store import KVStore  # noqa: E402
from crosswatch.core.timezone import utc_isoformat  # noqa: E402
from crosswatch.services.device_store import Device, DeviceStore, device_key_for  # noqa: E402


async def seed(token: str, symbols, name: str = None):
    if not settings.kv_configured:
        print("❌ KV_REST_API_URL and KV_REST_API_TOKEN are required.")
        return 1

    now = utc_isoformat()
    record = {
        "pushToken": token,
        "watchlist": symbols,
        "platform": "ios",
        "registeredAt": now,
    }
    if name:
        record["deviceName"] = name

    device = Device.model_validate(record)
    device.key = device_key_for(token)

    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
        store = DeviceStore(
            KVStore(client, settings.KV_REST_API_URL, settings.KV_REST_API_TOKEN),
            index_key=settings.DEVICE_INDEX_KEY,
        )
        await store.save(device)
        await store.add_to_index(device.id)
        keys = await store.list_device_keys()

    print(f"✅ Seeded {device.id} watching {', '.join(symbols)}")
    print(f"   {len(keys)} device(s) in {settings.DEVICE_INDEX_KEY}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Seed a device record")
    parser.add_argument("--token", required=True, help="Expo push token")
    parser.add_argument("--symbols", required=True, help="Comma-separated watchlist")
    parser.add_argument("--name", help="Device name shown in reports")
    args = parser.parse_args()

    symbols = [s.upper() for s in parse_comma_list(args.symbols)]
    if not symbols:
        parser.error("--symbols must name at least one symbol")
    sys.exit(asyncio.run(seed(args.token, symbols, args.name)))


if __name__ == "__main__":
    main()
