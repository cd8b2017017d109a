"""
Hairfolio Backend: Local Fallback Store
========================================

What:  Always-available local mirror of designer records.
How:   Synchronous get/set over one JSON document, namespaced by a collection
       key:  {"hairfolio_designers": {"<designer id>": {...record...}}}.
       With no path configured the namespace lives in memory only.
Who:   PersistenceGateway writes here first on every save and reads from here
       when the remote store fails or has no record.

Failures (unwritable disk, corrupt file) are logged and reported as a False
return from the write methods; reads of a corrupt file behave as empty.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from hairfolio.utils.documents import apply_field_updates

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class LocalFallbackStore:
    """Keyed document mirror backed by a JSON file (or memory)."""

    def __init__(self, path: Optional[str] = None, collection: str = "hairfolio_designers"):
        self.path = Path(path) if path else None
        self.collection = collection
        self._data: Dict[str, Dict[str, Document]] = self._load()

    # ── File I/O ──────────────────────────────────────────────────────────

    def _load(self) -> Dict[str, Dict[str, Document]]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Local store at %s is unreadable, starting empty: %s", self.path, str(e))
            return {}
        if not isinstance(loaded, dict):
            logger.error("Local store at %s has unexpected shape, starting empty", self.path)
            return {}
        return loaded

    def _flush(self) -> bool:
        if self.path is None:
            return True
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to write local store %s: %s", self.path, str(e))
            return False
        return True

    def _namespace(self) -> Dict[str, Document]:
        return self._data.setdefault(self.collection, {})

    # ── Public API ────────────────────────────────────────────────────────

    def get(self, designer_id: str) -> Optional[Document]:
        """Return a copy of the stored document, or None."""
        document = self._data.get(self.collection, {}).get(designer_id)
        return copy.deepcopy(document) if document is not None else None

    def set(self, designer_id: str, document: Document) -> bool:
        self._namespace()[designer_id] = copy.deepcopy(document)
        return self._flush()

    def update_fields(self, designer_id: str, updates: Mapping[str, Any]) -> bool:
        """Apply dotted-path updates. False when the document is missing or unwritable."""
        current = self._namespace().get(designer_id)
        if current is None:
            return False
        self._namespace()[designer_id] = apply_field_updates(current, updates)
        return self._flush()

    def delete(self, designer_id: str) -> bool:
        if self._namespace().pop(designer_id, None) is None:
            return False
        return self._flush()

    def ids(self) -> list:
        return list(self._data.get(self.collection, {}).keys())
