r"""Send one Stockroom WebSocket command to a running Home Assistant.

Usage:
  export HA_BASE_URL=http://localhost:8123
  export HA_TOKEN=<your-long-lived-token>
  python scripts/ws_probe.py stockroom/inventory/list low_stock_only=true
  python scripts/ws_probe.py stockroom/stock/adjust location_id=loc-1 \
      item_id=item-x variant_id=var-1 quantity_delta=5 reference=PO-1

Field values are parsed as JSON when possible (numbers, booleans, null),
otherwise sent as strings. A full message may instead be given in
STOCKROOM_MSG, e.g. {"id": 1, "type": "stockroom/version"}.

Environment variables:
- HA_BASE_URL: Home Assistant base URL (http/https). Default: http://localhost:8123
- HA_TOKEN: Long-lived access token (required)
- STOCKROOM_MSG: JSON message to send when no command is given on the command line
- STOCKROOM_RECV_TIMEOUT: seconds to wait for each reply. Default: 20
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any

import aiohttp

EXIT_USAGE = 2
EXIT_TIMEOUT = 3
EXIT_AUTH = 4
EXIT_COMMAND_FAILED = 5


def _ws_url_from_base(base_url: str) -> str:
    """Convert an HTTP(S) base URL to a WS(S) endpoint."""
    base_url = base_url.rstrip("/")
    if base_url.startswith("https://"):
        return f"wss://{base_url[len('https://') :]}/api/websocket"
    if base_url.startswith("http://"):
        return f"ws://{base_url[len('http://') :]}/api/websocket"
    return f"ws://{base_url}/api/websocket"


def _parse_field(raw: str) -> tuple[str, Any]:
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise ValueError(f"expected key=value, got {raw!r}")
    try:
        return key, json.loads(value)
    except json.JSONDecodeError:
        return key, value


def build_message(argv: list[str] | None = None) -> dict[str, Any]:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("command", nargs="?", help="command type, e.g. stockroom/stats")
    parser.add_argument("fields", nargs="*", help="key=value payload fields")
    args = parser.parse_args(argv)

    if args.command:
        message: dict[str, Any] = {"id": 1, "type": args.command}
        message.update(_parse_field(f) for f in args.fields)
        return message

    raw_msg = os.environ.get("STOCKROOM_MSG")
    if not raw_msg:
        raise ValueError("give a command or set STOCKROOM_MSG")
    message = json.loads(raw_msg)
    if not isinstance(message, dict) or "type" not in message:
        raise ValueError("STOCKROOM_MSG must be a JSON object with a type")
    message.setdefault("id", 1)
    return message


async def run_probe(message: dict[str, Any]) -> int:
    base = os.environ.get("HA_BASE_URL", "http://localhost:8123")
    token = os.environ.get("HA_TOKEN")
    recv_timeout_s = float(os.environ.get("STOCKROOM_RECV_TIMEOUT", "20"))

    if not token:
        print("Missing HA_TOKEN in environment", file=sys.stderr)
        return EXIT_USAGE

    async with aiohttp.ClientSession() as session:
        timeout = aiohttp.ClientTimeout(total=recv_timeout_s)
        async with session.ws_connect(_ws_url_from_base(base), timeout=timeout) as ws:
            try:
                await asyncio.wait_for(ws.receive_json(), timeout=recv_timeout_s)
                await ws.send_json({"type": "auth", "access_token": token})
                auth = await asyncio.wait_for(ws.receive_json(), timeout=recv_timeout_s)
                if auth.get("type") != "auth_ok":
                    print(json.dumps(auth, indent=2), file=sys.stderr)
                    return EXIT_AUTH

                await ws.send_json(message)
                while True:
                    reply: Any = await asyncio.wait_for(ws.receive_json(), timeout=recv_timeout_s)
                    if isinstance(reply, dict) and reply.get("id") == message["id"]:
                        break
            except TimeoutError:
                print(f"No reply within {recv_timeout_s:g}s", file=sys.stderr)
                return EXIT_TIMEOUT

    print(json.dumps(reply, indent=2))
    return 0 if reply.get("success", True) else EXIT_COMMAND_FAILED


def main() -> None:
    try:
        message = build_message()
    except (ValueError, json.JSONDecodeError) as err:
        print(str(err), file=sys.stderr)
        sys.exit(EXIT_USAGE)
    try:
        code = asyncio.run(run_probe(message))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
