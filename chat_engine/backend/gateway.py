"""
Generation Gateway Backend

Commands go over HTTP, results come back as push events on a WebSocket:

    GET  /models                     -> [descriptor, ...] or {"models": [...]}
    GET  /models/active              -> {"id": "..."} | {"id": null}
    PUT  /models/active              {"id": "..."}
    POST /models/import              {"path": "...", "family": "..."} -> descriptor
    GET  /models/metadata?id=...     -> meta
    POST /generate                   {"prompt", "model_id"} -> {"text": "..."}
    POST /generate/stream            {"prompt", "model_id", "session_id"} -> 202
    POST /generate/cancel

Event frames:
    {"event": "stream-delta",    "payload": {"delta": "...", "session_id": "..."}}
    {"event": "stream-complete", "payload": {"text": "...",  "session_id": "..."}}

The event socket is opened before the first streaming request so a fast
gateway cannot emit deltas nobody is listening for.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import httpx
import websockets

from chat_engine.client.events import EventBus
from chat_engine.config import GATEWAY_EVENTS_URL, GATEWAY_URL, REQUEST_TIMEOUT
from chat_engine.core.errors import BackendError
from chat_engine.core.models import (
    STREAM_COMPLETE_EVENT,
    STREAM_DELTA_EVENT,
    ModelDescriptor,
    ModelMeta,
)

from .base import Backend

logger = logging.getLogger(__name__)

KNOWN_EVENTS = (STREAM_DELTA_EVENT, STREAM_COMPLETE_EVENT)


class GatewayBackend(Backend):
    """HTTP command client plus a WebSocket event pump."""

    name = "gateway"

    def __init__(
        self,
        url: str = GATEWAY_URL,
        events_url: str | None = GATEWAY_EVENTS_URL,
        timeout: float = REQUEST_TIMEOUT,
        events: EventBus | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        super().__init__(events)
        self.url = url.rstrip("/")
        self.events_url = events_url
        self.timeout = timeout
        self._http = http
        self._ws = None
        self._pump_task: asyncio.Task | None = None

    @classmethod
    def from_backend_config(cls, backend_config: dict[str, Any], **kwargs) -> GatewayBackend:
        """Create a client from a BACKENDS entry."""
        return cls(
            url=backend_config.get("url") or GATEWAY_URL,
            events_url=backend_config.get("events") or GATEWAY_EVENTS_URL,
            **kwargs,
        )

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(base_url=self.url, timeout=self.timeout)
        return self._http

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        http = await self._get_http()
        try:
            response = await http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise BackendError(f"Gateway {method} {path} failed: {e}") from e
        if response.status_code >= 400:
            raise BackendError(
                f"Gateway {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Gateway {path} returned invalid JSON") from e

    # ------------------------------------------------------------------
    # Event pump
    # ------------------------------------------------------------------

    @property
    def events_connected(self) -> bool:
        return self._pump_task is not None and not self._pump_task.done()

    async def connect_events(self) -> None:
        """Open the event socket and start forwarding frames to the bus."""
        if self.events_connected:
            return
        if not self.events_url:
            raise BackendError("No events URL configured", code="no_events_url")
        try:
            self._ws = await websockets.connect(self.events_url, open_timeout=self.timeout)
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise BackendError(f"Event socket {self.events_url} failed: {e}") from e
        self._pump_task = asyncio.create_task(self._pump(self._ws))
        logger.info(f"Event socket connected: {self.events_url}")

    async def _pump(self, ws) -> None:
        try:
            async for message in ws:
                self.dispatch(message)
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning(f"Event socket closed: {e}")
        finally:
            self._ws = None

    def dispatch(self, message: str | bytes) -> bool:
        """
        Forward one event frame to the bus.

        Returns:
            True if the frame was a known event and was emitted
        """
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        try:
            frame = json.loads(message)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON frame: {message[:80]!r}")
            return False
        if not isinstance(frame, dict) or frame.get("event") not in KNOWN_EVENTS:
            logger.debug(f"Ignoring unknown frame: {message[:80]!r}")
            return False
        payload = frame.get("payload")
        self.events.emit(frame["event"], payload if isinstance(payload, dict) else {})
        return True

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def list_models(self) -> list[ModelDescriptor]:
        data = await self._call("GET", "/models")
        if isinstance(data, dict):
            data = data.get("models")
        entries = data if isinstance(data, list) else []
        return [m for m in (ModelDescriptor.from_payload(e) for e in entries) if m is not None]

    async def get_active_model(self) -> str | None:
        data = await self._call("GET", "/models/active")
        if isinstance(data, dict) and isinstance(data.get("id"), str) and data["id"]:
            return data["id"]
        return None

    async def set_active_model(self, model_id: str) -> None:
        await self._call("PUT", "/models/active", json={"id": model_id})

    async def import_model(self, path: str | Path, family: str | None = None) -> ModelDescriptor:
        data = await self._call(
            "POST", "/models/import", json={"path": str(path), "family": family}
        )
        model = ModelDescriptor.from_payload(data)
        if model is None:
            raise BackendError(f"Gateway returned no model for {path}", code="bad_payload")
        return model

    async def get_model_metadata(self, model_id: str) -> ModelMeta:
        data = await self._call("GET", "/models/metadata", params={"id": model_id})
        return ModelMeta.from_payload(data)

    async def generate(self, prompt: str, model_id: str | None = None) -> str:
        data = await self._call("POST", "/generate", json={"prompt": prompt, "model_id": model_id})
        if isinstance(data, dict) and isinstance(data.get("text"), str):
            return data["text"]
        return ""

    async def generate_stream(
        self, prompt: str, model_id: str | None = None, session_id: str | None = None
    ) -> None:
        await self.connect_events()
        await self._call(
            "POST",
            "/generate/stream",
            json={"prompt": prompt, "model_id": model_id, "session_id": session_id},
        )

    async def cancel_generation(self) -> None:
        await self._call("POST", "/generate/cancel")

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None
        if ws is not None:
            await ws.close()
        if self._http:
            await self._http.aclose()
            self._http = None
