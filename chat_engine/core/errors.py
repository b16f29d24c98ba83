"""Error taxonomy for chat_engine.

Backend adapters raise ``BackendError``. The store and the controller catch it
at their operation boundary and surface one of the engine errors below as a
value (or a log line); none of them propagates to callers.
"""

from __future__ import annotations


class EngineError(RuntimeError):
    code = "engine_error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class BackendError(EngineError):
    """A backend command failed (transport, HTTP status or payload)."""

    code = "backend_error"

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message, code)
        self.status_code = status_code


class CatalogError(EngineError):
    """Listing or importing models failed. Catalog is empty or partial."""

    code = "catalog_error"

    def __init__(self, message: str, code: str | None = None, path: str | None = None):
        super().__init__(message, code)
        self.path = path


class SelectionPersistError(EngineError):
    """The backend could not record the active model. Local selection stands."""

    code = "selection_persist_error"


class GenerationError(EngineError):
    """A generation request or stream setup failed."""

    code = "generation_error"


class MetadataError(EngineError):
    """Metadata fetch failed for a single model."""

    code = "metadata_error"

    def __init__(self, message: str, code: str | None = None, model_id: str | None = None):
        super().__init__(message, code)
        self.model_id = model_id
