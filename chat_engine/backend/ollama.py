"""
Ollama Backend

Talks to a local Ollama server over its HTTP API:

    GET  /api/tags                catalog
    GET  /api/ps                  loaded models (active fallback)
    POST /api/generate            preload on select (no prompt)
    POST /api/chat                generation (NDJSON lines when streaming)
    POST /api/show                metadata
    HEAD/POST /api/blobs/<digest> + POST /api/create    import of a local file

Ollama has no notion of an "active" model, so the id recorded by
``set_active_model`` is kept here. Conversation history lives here too and is
replayed on every chat request.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import httpx

from chat_engine.client.events import EventBus
from chat_engine.config import (
    OLLAMA_URL,
    REASONING_CLOSE_TAG,
    REASONING_OPEN_TAG,
    REQUEST_TIMEOUT,
    SYSTEM_PROMPT,
)
from chat_engine.core.errors import BackendError
from chat_engine.core.models import ModelDescriptor, ModelMeta

from .base import Backend, check_model_file, family_for, infer_backend_hint

logger = logging.getLogger(__name__)

# Ollama can only build models from these
IMPORTABLE_EXTS = ("gguf", "safetensors")

_NAME_RE = re.compile(r"[^a-z0-9._/-]+")


def _error_text(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return response.text[:200]


def _text_field(message: dict[str, Any], key: str) -> str:
    value = message.get(key)
    return value if isinstance(value, str) else ""


def _descriptor_from_tag(entry: Any) -> ModelDescriptor | None:
    """Map one /api/tags entry to a ModelDescriptor."""
    if not isinstance(entry, dict):
        return None
    details = entry.get("details") if isinstance(entry.get("details"), dict) else {}
    file_type = details.get("format") or "gguf"
    return ModelDescriptor.from_payload(
        {
            "id": entry.get("model") or entry.get("name"),
            "name": entry.get("name"),
            "backend_hint": infer_backend_hint(str(file_type)),
            "file_type": file_type,
            "family": details.get("family"),
        }
    )


def _meta_from_show(model_id: str, data: dict[str, Any]) -> ModelMeta:
    """Map an /api/show response to ModelMeta."""
    details = data.get("details") if isinstance(data.get("details"), dict) else {}
    model_info = data.get("model_info") if isinstance(data.get("model_info"), dict) else {}

    context_length = None
    for key, value in model_info.items():
        if key.endswith(".context_length"):
            context_length = value
            break

    file_type = details.get("format") or "gguf"
    return ModelMeta.from_payload(
        {
            "name": model_id,
            "family": details.get("family"),
            "backend": infer_backend_hint(str(file_type)),
            "file_type": file_type,
            "quantization": details.get("quantization_level"),
            "parameter_size": details.get("parameter_size"),
            "context_length": context_length,
            "has_chat_template": bool(data.get("template")),
            "raw": {k: v for k, v in details.items() if isinstance(v, (str, int, float))},
        }
    )


def ollama_model_name(src: Path, family: str) -> str:
    """Model name for an imported file, e.g. "qwen/qwen3-8b-q4_k_m"."""
    name = f"{family}/{src.stem}".lower()
    return _NAME_RE.sub("-", name).strip("-/")


def file_digest(path: Path, chunk_size: int = 1 << 20) -> str:
    sha = hashlib.sha256()
    with open(path, "rb") as fh:
        while chunk := fh.read(chunk_size):
            sha.update(chunk)
    return f"sha256:{sha.hexdigest()}"


async def _file_chunks(path: Path, chunk_size: int = 1 << 20) -> AsyncIterator[bytes]:
    with open(path, "rb") as fh:
        while chunk := await asyncio.to_thread(fh.read, chunk_size):
            yield chunk


class OllamaBackend(Backend):
    """Ollama HTTP API with connection pooling."""

    name = "ollama"

    def __init__(
        self,
        url: str = OLLAMA_URL,
        timeout: float = REQUEST_TIMEOUT,
        system_prompt: str = SYSTEM_PROMPT,
        events: EventBus | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        super().__init__(events)
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.system_prompt = system_prompt
        self.history: list[dict[str, str]] = []
        self._active_id: str | None = None
        self._stop_requested = False
        self._http = http

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-init HTTP client with connection pooling."""
        if self._http is None:
            self._http = httpx.AsyncClient(base_url=self.url, timeout=self.timeout)
        return self._http

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        http = await self._get_http()
        try:
            response = await http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise BackendError(f"Ollama {method} {path} failed: {e}") from e
        if response.status_code >= 400:
            raise BackendError(
                f"Ollama {path} returned {response.status_code}: {_error_text(response)}",
                status_code=response.status_code,
            )
        return response

    async def _json(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        response = await self._request(method, path, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(f"Ollama {path} returned invalid JSON") from e
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def list_models(self) -> list[ModelDescriptor]:
        data = await self._json("GET", "/api/tags")
        entries = data.get("models") if isinstance(data.get("models"), list) else []
        models = [m for m in (_descriptor_from_tag(e) for e in entries) if m is not None]
        models.sort(key=lambda m: ((m.family or "").lower(), m.name.lower()))
        logger.info(f"Ollama catalog: {len(models)} models")
        return models

    async def get_active_model(self) -> str | None:
        if self._active_id:
            return self._active_id
        data = await self._json("GET", "/api/ps")
        loaded = data.get("models") if isinstance(data.get("models"), list) else []
        for entry in loaded:
            if isinstance(entry, dict) and (entry.get("model") or entry.get("name")):
                return entry.get("model") or entry.get("name")
        return None

    async def set_active_model(self, model_id: str) -> None:
        # Empty generate request loads the model into memory
        await self._json("POST", "/api/generate", json={"model": model_id, "stream": False})
        self._active_id = model_id
        logger.info(f"Active model: {model_id}")

    async def import_model(self, path: str | Path, family: str | None = None) -> ModelDescriptor:
        src, ext = check_model_file(path)
        if ext not in IMPORTABLE_EXTS:
            raise BackendError(f"Ollama cannot import .{ext} files", code="unsupported_extension")

        family_dir = family_for(src, family)
        name = ollama_model_name(src, family_dir)
        digest = await asyncio.to_thread(file_digest, src)

        http = await self._get_http()
        try:
            head = await http.head(f"/api/blobs/{digest}")
        except httpx.HTTPError as e:
            raise BackendError(f"Ollama blob check failed: {e}") from e
        if head.status_code != 200:
            logger.info(f"Uploading {src.name} ({digest[:19]}...)")
            await self._request("POST", f"/api/blobs/{digest}", content=_file_chunks(src))

        await self._json(
            "POST",
            "/api/create",
            json={"model": name, "files": {src.name: digest}, "stream": False},
        )
        logger.info(f"Imported {src} as {name}")
        return ModelDescriptor(
            id=f"{name}:latest",
            name=name,
            backend_hint=infer_backend_hint(ext),
            file_type=ext,
            family=family_dir,
            path=str(src),
        )

    async def get_model_metadata(self, model_id: str) -> ModelMeta:
        data = await self._json("POST", "/api/show", json={"model": model_id})
        return _meta_from_show(model_id, data)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _chat_body(self, prompt: str, model_id: str | None, stream: bool) -> dict[str, Any]:
        model = model_id or self._active_id
        if not model:
            raise BackendError("No model selected", code="no_model")
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(self.history)
        messages.append({"role": "user", "content": prompt})
        return {"model": model, "messages": messages, "stream": stream}

    def _remember(self, prompt: str, content: str, thinking: str = "") -> None:
        """Record a turn; reasoning goes back in Ollama's ``thinking`` field."""
        self.history.append({"role": "user", "content": prompt})
        reply = {"role": "assistant", "content": content}
        if thinking:
            reply["thinking"] = thinking
        self.history.append(reply)

    async def generate(self, prompt: str, model_id: str | None = None) -> str:
        body = self._chat_body(prompt, model_id, stream=False)
        data = await self._json("POST", "/api/chat", json=body)
        message = data.get("message") if isinstance(data.get("message"), dict) else {}
        content = _text_field(message, "content")
        thinking = _text_field(message, "thinking")
        self._remember(prompt, content, thinking)
        if thinking:
            return f"{REASONING_OPEN_TAG}{thinking}{REASONING_CLOSE_TAG}{content}"
        return content

    async def generate_stream(
        self, prompt: str, model_id: str | None = None, session_id: str | None = None
    ) -> None:
        """
        Stream a chat reply as "stream-delta" events, then one "stream-complete".

        Returns after the completion event. A cancel request ends the stream
        early and the completion carries the text produced so far. Transport
        errors and error lines from the server raise BackendError and emit no
        completion.
        """
        body = self._chat_body(prompt, model_id, stream=True)
        self._stop_requested = False
        http = await self._get_http()
        accumulated = ""
        content = ""
        thinking = ""
        in_thinking = False

        try:
            async with http.stream("POST", "/api/chat", json=body) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise BackendError(
                        f"Ollama /api/chat returned {response.status_code}: {_error_text(response)}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    if self._stop_requested:
                        logger.info("Generation stopped by cancel request")
                        break
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if not isinstance(data, dict):
                        continue

                    # Ollama reports mid-stream failures as an error line with status 200
                    if data.get("error"):
                        raise BackendError(f"Ollama generation failed: {data['error']}")

                    message = data.get("message") if isinstance(data.get("message"), dict) else {}
                    thinking_part = _text_field(message, "thinking")
                    content_part = _text_field(message, "content")
                    delta = ""
                    if thinking_part:
                        if not in_thinking:
                            delta += REASONING_OPEN_TAG
                            in_thinking = True
                        delta += thinking_part
                        thinking += thinking_part
                    if content_part:
                        if in_thinking:
                            delta += REASONING_CLOSE_TAG
                            in_thinking = False
                        delta += content_part
                        content += content_part
                    if delta:
                        accumulated += delta
                        self.emit_delta(delta, session_id)

                    if data.get("done") is True:
                        break
        except httpx.HTTPError as e:
            raise BackendError(f"Ollama stream failed: {e}") from e

        if in_thinking:
            accumulated += REASONING_CLOSE_TAG
        self._remember(prompt, content, thinking)
        self.emit_complete(accumulated, session_id)

    async def cancel_generation(self) -> None:
        self._stop_requested = True

    def reset_history(self) -> None:
        self.history.clear()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http:
            await self._http.aclose()
            self._http = None
