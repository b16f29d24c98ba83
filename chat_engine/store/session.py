"""
Session Store

Owns the model catalog and decides which model is active.

Selection precedence on refresh:
  1. The id the backend reports as active, if it is in the catalog
  2. The most recent persisted id that is in the catalog
  3. The first catalog entry
  4. Nothing, if the catalog is empty

Failures never raise out of this class. Catalog and import failures are
surfaced as CatalogError values (``error``, ``import_errors``), metadata
failures per model (``metadata_errors``), and a backend that cannot record
the active model only produces a warning.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from chat_engine.core.errors import CatalogError, MetadataError, SelectionPersistError
from chat_engine.core.models import ModelDescriptor, ModelMeta

from .recent import RecentModels

if TYPE_CHECKING:
    from chat_engine.backend.base import Backend

logger = logging.getLogger(__name__)


def resolve_active(
    catalog: Sequence[ModelDescriptor],
    active_id: str | None = None,
    recent_ids: Iterable[str] = (),
) -> ModelDescriptor | None:
    """
    Pick the model that should be selected.

    Examples:
        catalog [A, B, C], active None, recent [B, Z] -> B
        catalog [A, B, C], active "C", recent [B]     -> C
        catalog [],        anything                   -> None
    """
    if not catalog:
        return None
    by_id = {m.id: m for m in catalog}
    if active_id and active_id in by_id:
        return by_id[active_id]
    for model_id in recent_ids:
        if model_id in by_id:
            return by_id[model_id]
    return catalog[0]


class SessionStore:
    """
    Model catalog, selection and recency list.

    Attributes:
        models: Current catalog
        selected: Selected model (updated optimistically on select)
        error: CatalogError from the last refresh, if it failed
        import_errors: CatalogErrors from the last batch import
        metadata_errors: MetadataError per model id
        selection_error: Last SelectionPersistError (logged, never raised)
    """

    def __init__(self, backend: Backend, recent: RecentModels):
        self.backend = backend
        self.recent = recent
        self.models: list[ModelDescriptor] = []
        self.selected: ModelDescriptor | None = None
        self.loading = False
        self.error: CatalogError | None = None
        self.import_errors: list[CatalogError] = []
        self.metadata_errors: dict[str, MetadataError] = {}
        self.selection_error: SelectionPersistError | None = None
        self._metadata_cache: dict[str, ModelMeta] = {}

    @property
    def recent_models(self) -> list[ModelDescriptor]:
        return self.recent.present_in(self.models)

    def get(self, model_id: str) -> ModelDescriptor | None:
        for model in self.models:
            if model.id == model_id:
                return model
        return None

    async def list_models(self) -> list[ModelDescriptor]:
        """Fetch the catalog. On failure the catalog is empty and ``error`` is set."""
        try:
            models = await self.backend.list_models()
        except Exception as e:
            logger.error(f"list_models failed: {e}")
            self.error = CatalogError(str(e))
            self.models = []
            return []

        # Keep the first occurrence of each id
        seen: set[str] = set()
        unique = []
        for model in models:
            if model.id not in seen:
                seen.add(model.id)
                unique.append(model)
        self.error = None
        self.models = unique
        return list(unique)

    async def active_model_id(self) -> str | None:
        """Backend-reported active id; failures count as none."""
        try:
            return await self.backend.get_active_model()
        except Exception as e:
            logger.warning(f"get_active_model failed: {e}")
            return None

    async def refresh(self) -> ModelDescriptor | None:
        """Reload the catalog and re-resolve the selection."""
        self.loading = True
        try:
            catalog = await self.list_models()
            if not catalog:
                self.selected = None
                return None

            active_id = await self.active_model_id()
            pick = resolve_active(catalog, active_id, self.recent.reload())
            if pick is not None:
                await self.select(pick)
            return pick
        finally:
            self.loading = False

    async def select(self, model: ModelDescriptor) -> None:
        """
        Make model the selected one.

        The local selection and the recency list change first; the backend is
        told afterwards and a failure there does not roll anything back.
        """
        self.selected = model
        self.recent.record(model.id)
        try:
            await self.backend.set_active_model(model.id)
        except Exception as e:
            self.selection_error = SelectionPersistError(
                f"set_active_model({model.id}) failed: {e}"
            )
            logger.warning(str(self.selection_error))
            return
        self.selection_error = None

    async def select_id(self, model_id: str) -> ModelDescriptor | None:
        """Select a catalog entry by id. Returns None if it is not in the catalog."""
        model = self.get(model_id)
        if model is None:
            logger.warning(f"Unknown model id: {model_id}")
            return None
        await self.select(model)
        return model

    async def import_model(self, path: str | Path, family: str | None = None) -> ModelDescriptor:
        """
        Import one model file through the backend.

        Raises:
            CatalogError: If the backend rejects the file
        """
        try:
            return await self.backend.import_model(path, family)
        except Exception as e:
            raise CatalogError(f"import_model failed for {path}: {e}", path=str(path)) from e

    async def import_models(
        self, paths: Iterable[str | Path], family: str | None = None
    ) -> list[ModelDescriptor]:
        """
        Import several files. One failure does not stop the others.

        After the batch the catalog is refreshed and the last model that was
        imported successfully becomes the selection.
        """
        imported: list[ModelDescriptor] = []
        self.import_errors = []
        for path in paths:
            try:
                imported.append(await self.import_model(path, family))
            except CatalogError as e:
                logger.error(str(e))
                self.import_errors.append(e)

        await self.refresh()

        if imported:
            last = imported[-1]
            await self.select(self.get(last.id) or last)
        return imported

    async def metadata(
        self, model: ModelDescriptor | None = None, force: bool = False
    ) -> ModelMeta | None:
        """
        Metadata for model (default: the selected one), cached per id.

        A failure is recorded in ``metadata_errors[model.id]`` and returns None.
        """
        model = model or self.selected
        if model is None:
            return None
        if not force and model.id in self._metadata_cache:
            return self._metadata_cache[model.id]

        try:
            meta = await self.backend.get_model_metadata(model.id)
        except Exception as e:
            logger.warning(f"get_model_metadata({model.id}) failed: {e}")
            self.metadata_errors[model.id] = MetadataError(str(e), model_id=model.id)
            return None

        self.metadata_errors.pop(model.id, None)
        self._metadata_cache[model.id] = meta
        return meta

    def clear_metadata(self) -> None:
        self._metadata_cache.clear()
        self.metadata_errors.clear()
