r"""WebSocket probe for Semester Planner commands.

Usage:
  export HA_BASE_URL='http://localhost:8123'
  export HA_TOKEN='<your-long-lived-token>'
  export SP_MSG='[{"type":"semester_planner/version"}, {"type":"semester_planner/summary"}]'
  python scripts/ws_probe.py

Environment variables:
- HA_BASE_URL: Home Assistant base URL (http/https). Default: http://localhost:8123
- HA_TOKEN: Long-lived access token (required)
- SP_MSG: one JSON message or a JSON list of messages. Ids are assigned when
  missing. Default: a single semester_planner/schedule request.
- SP_RECV_TIMEOUT: seconds to wait for each reply. Default: 20

Each reply is printed as JSON. The exit code is 0 when every reply succeeded,
1 when any reply carried success=false, 2 on bad input or failed auth and 3
on timeout.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from typing import Any

import aiohttp

DEFAULT_MESSAGE = '{"type": "semester_planner/schedule"}'


def _ws_url_from_base(base_url: str) -> str:
    """Convert an HTTP(S) base URL to a WS(S) endpoint."""
    base_url = base_url.rstrip("/")
    for http, ws in (("https://", "wss://"), ("http://", "ws://")):
        if base_url.startswith(http):
            return f"{ws}{base_url[len(http):]}/api/websocket"
    return f"ws://{base_url}/api/websocket"


def _parse_messages(raw: str) -> list[dict[str, Any]]:
    parsed = json.loads(raw)
    messages = parsed if isinstance(parsed, list) else [parsed]
    if not all(isinstance(m, dict) and "type" in m for m in messages):
        raise ValueError("every message must be an object with a 'type'")
    next_id = 1
    for message in messages:
        if "id" not in message:
            message["id"] = next_id
        next_id = int(message["id"]) + 1
    return messages


async def _exchange(ws: aiohttp.ClientWebSocketResponse, message: dict, timeout: float) -> dict:
    await ws.send_json(message)
    while True:
        reply: Any = await asyncio.wait_for(ws.receive_json(), timeout=timeout)
        if isinstance(reply, dict) and reply.get("id") == message["id"]:
            return reply


async def run_probe() -> int:
    base = os.environ.get("HA_BASE_URL", "http://localhost:8123")
    token = os.environ.get("HA_TOKEN")
    recv_timeout_s = float(os.environ.get("SP_RECV_TIMEOUT", "20"))

    if not token:
        print("Missing HA_TOKEN in environment", file=sys.stderr)
        return 2
    try:
        messages = _parse_messages(os.environ.get("SP_MSG") or DEFAULT_MESSAGE)
    except (json.JSONDecodeError, ValueError) as err:
        print(f"SP_MSG is not usable: {err}", file=sys.stderr)
        return 2

    failed = False
    async with aiohttp.ClientSession() as session:
        async with session.ws_connect(_ws_url_from_base(base)) as ws:
            try:
                await asyncio.wait_for(ws.receive_json(), timeout=recv_timeout_s)
                await ws.send_json({"type": "auth", "access_token": token})
                auth = await asyncio.wait_for(ws.receive_json(), timeout=recv_timeout_s)
                if auth.get("type") != "auth_ok":
                    print(json.dumps(auth, indent=2), file=sys.stderr)
                    return 2

                for message in messages:
                    reply = await _exchange(ws, message, recv_timeout_s)
                    print(json.dumps(reply, indent=2))
                    failed = failed or not reply.get("success", False)
            except TimeoutError:
                print(f"WebSocket receive timed out after {recv_timeout_s:g}s", file=sys.stderr)
                return 3

    return 1 if failed else 0


def main() -> None:
    try:
        code = asyncio.run(run_probe())
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
