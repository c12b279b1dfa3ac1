"""Starlette WebSocket adapter for the connection registry."""

from __future__ import annotations

from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from relayhub.exceptions import ConnectionClosed


class WebSocketConnection:
    """Wraps an accepted FastAPI ``WebSocket`` as a registry ``Connection``."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, payload: Any, **options: Any) -> None:
        if isinstance(payload, (bytes, bytearray)):
            await self.websocket.send_bytes(bytes(payload))
        elif isinstance(payload, str):
            await self.websocket.send_text(payload)
        else:
            await self.websocket.send_json(payload, mode=options.get("mode", "text"))

    async def receive(self) -> str | bytes:
        try:
            message = await self.websocket.receive()
        except WebSocketDisconnect as exc:
            raise ConnectionClosed(exc.code, exc.reason) from exc
        if message["type"] == "websocket.disconnect":
            raise ConnectionClosed(message.get("code"), message.get("reason") or "")
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    def __repr__(self) -> str:
        return f"<WebSocketConnection {id(self.websocket):#x}>"
