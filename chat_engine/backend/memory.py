"""
In-memory Backend

Scriptable backend with no transport. Tests queue responses and failures on
it; the CLI uses it for offline demos (CHAT_BACKEND=memory).

Usage:
    backend = InMemoryBackend(models=[...])
    backend.queue_response(["<think>hm", "hm</think>", "Hello"])
    backend.fail["set_active_model"] = BackendError("offline")
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from chat_engine.client.events import EventBus
from chat_engine.core.errors import BackendError
from chat_engine.core.models import ModelDescriptor, ModelMeta

from .base import Backend, check_model_file, family_for, infer_backend_hint

logger = logging.getLogger(__name__)


class InMemoryBackend(Backend):
    name = "memory"

    def __init__(
        self,
        models: list[ModelDescriptor] | None = None,
        active_id: str | None = None,
        events: EventBus | None = None,
        chunk_delay: float = 0.0,
    ):
        super().__init__(events)
        self.models: list[ModelDescriptor] = list(models or [])
        self.active_id = active_id
        self.chunk_delay = chunk_delay
        self.history: list[dict[str, str]] = []
        self.metadata: dict[str, ModelMeta] = {}

        # Command name -> exception raised on the next calls
        self.fail: dict[str, Exception] = {}
        self.calls: list[tuple] = []

        self._script: list[list[str]] = []
        self._stop_requested = False

    def queue_response(self, chunks: str | list[str]) -> None:
        """Queue the fragments of the next generation (a str is split on spaces)."""
        if isinstance(chunks, str):
            words = chunks.split(" ")
            chunks = [w if i == 0 else " " + w for i, w in enumerate(words)]
        self._script.append(list(chunks))

    def _record(self, command: str, *args) -> None:
        self.calls.append((command, *args))
        exc = self.fail.get(command)
        if exc is not None:
            raise exc

    def _next_chunks(self, prompt: str) -> list[str]:
        if self._script:
            return self._script.pop(0)
        return ["You said: ", prompt]

    async def list_models(self) -> list[ModelDescriptor]:
        self._record("list_models")
        return list(self.models)

    async def get_active_model(self) -> str | None:
        self._record("get_active_model")
        return self.active_id

    async def set_active_model(self, model_id: str) -> None:
        self._record("set_active_model", model_id)
        self.active_id = model_id

    async def import_model(self, path: str | Path, family: str | None = None) -> ModelDescriptor:
        self._record("import_model", str(path), family)
        src, ext = check_model_file(path)
        family_dir = family_for(src, family)
        model = ModelDescriptor(
            id=f"{family_dir}/{src.name}",
            name=src.stem,
            backend_hint=infer_backend_hint(ext),
            file_type=ext,
            family=family_dir,
            path=str(src),
        )
        self.models = [m for m in self.models if m.id != model.id] + [model]
        return model

    async def get_model_metadata(self, model_id: str) -> ModelMeta:
        self._record("get_model_metadata", model_id)
        if model_id in self.metadata:
            return self.metadata[model_id]
        for model in self.models:
            if model.id == model_id:
                return ModelMeta(
                    name=model.name,
                    family=model.family,
                    backend=model.backend_hint,
                    file_type=model.file_type,
                )
        raise BackendError(f"Unknown model: {model_id}", code="unknown_model")

    async def generate(self, prompt: str, model_id: str | None = None) -> str:
        self._record("generate", prompt, model_id)
        text = "".join(self._next_chunks(prompt))
        self.history += [{"role": "user", "content": prompt}, {"role": "assistant", "content": text}]
        return text

    async def generate_stream(
        self, prompt: str, model_id: str | None = None, session_id: str | None = None
    ) -> None:
        self._record("generate_stream", prompt, model_id, session_id)
        self._stop_requested = False
        final_text = ""
        for chunk in self._next_chunks(prompt):
            if self._stop_requested:
                logger.info("Generation stopped")
                break
            final_text += chunk
            self.emit_delta(chunk, session_id)
            await asyncio.sleep(self.chunk_delay)

        self.history += [
            {"role": "user", "content": prompt},
            {"role": "assistant", "content": final_text},
        ]
        self.emit_complete(final_text, session_id)

    async def cancel_generation(self) -> None:
        self._record("cancel_generation")
        self._stop_requested = True
