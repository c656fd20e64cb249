from __future__ import annotations

import asyncio
import json

import httpx


async def main() -> None:
    async with httpx.AsyncClient(base_url="http://127.0.0.1:8000") as client:
        r = await client.get("/api/health")
        r.raise_for_status()
        print("health ok:", r.json().get("store_size"))

        r = await client.get("/api/forecast")
        if r.status_code == 503:
            print("forecast unavailable:", r.json().get("reason"))
            return
        r.raise_for_status()
        print("forecast ok:", len(r.json().get("prices", [])), "prices")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as e:
        print(json.dumps({"smoke_error": str(e)}, ensure_ascii=False))
