from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from salesperf.filters import FilterState, normalize_filters


logger = logging.getLogger(__name__)

STORAGE_KEY = "dashboard_saved_filters"
SAVED_FILTERS_PATH = Path(
    os.getenv("SALESPERF_SAVED_FILTERS_PATH", Path(__file__).resolve().parents[1] / "data" / "saved_filters.json")
)


@dataclass(frozen=True)
class SavedFilter:
    id: str
    name: str
    filters: Dict[str, Any]
    isDefault: bool
    createdAt: str

    @property
    def state(self) -> FilterState:
        return normalize_filters(self.filters)


class SavedFilterStore:
    """Named filter presets persisted as JSON under a fixed key.

    Exactly one preset is the default whenever any exist: the first saved preset becomes the
    default, and deleting the default promotes the first remaining one.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, key: str = STORAGE_KEY):
        self.path = Path(path or SAVED_FILTERS_PATH)
        self.key = key

    # ----- storage -----
    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("unreadable saved filters at %s: %s", self.path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _write(self, presets: List[SavedFilter]) -> None:
        payload = self._read()
        payload[self.key] = [asdict(p) for p in presets]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def list(self) -> List[SavedFilter]:
        out: List[SavedFilter] = []
        for entry in self._read().get(self.key, []) or []:
            try:
                out.append(
                    SavedFilter(
                        id=str(entry["id"]),
                        name=str(entry["name"]),
                        filters=dict(entry.get("filters") or {}),
                        isDefault=bool(entry.get("isDefault", False)),
                        createdAt=str(entry.get("createdAt", "")),
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.warning("dropping malformed saved filter entry: %r", entry)
        return out

    # ----- actions -----
    def _new_id(self, existing: List[SavedFilter]) -> str:
        taken = {p.id for p in existing}
        stamp = int(time.time() * 1000)
        while f"filter_{stamp}" in taken:
            stamp += 1
        return f"filter_{stamp}"

    def save_current(self, name: str, filters: Union[FilterState, Dict[str, Any]]) -> SavedFilter:
        presets = self.list()
        state = filters if isinstance(filters, FilterState) else normalize_filters(filters)
        preset = SavedFilter(
            id=self._new_id(presets),
            name=name,
            filters=state.to_dict(),
            isDefault=not presets,
            createdAt=pd.Timestamp.now(tz="UTC").isoformat(),
        )
        self._write([*presets, preset])
        return preset

    def delete(self, preset_id: str) -> bool:
        presets = self.list()
        remaining = [p for p in presets if p.id != preset_id]
        if len(remaining) == len(presets):
            return False
        if remaining and not any(p.isDefault for p in remaining):
            remaining[0] = replace(remaining[0], isDefault=True)
        self._write(remaining)
        return True

    def set_as_default(self, preset_id: str) -> bool:
        presets = self.list()
        if not any(p.id == preset_id for p in presets):
            return False
        self._write([replace(p, isDefault=p.id == preset_id) for p in presets])
        return True

    def rename(self, preset_id: str, name: str) -> bool:
        presets = self.list()
        if not any(p.id == preset_id for p in presets):
            return False
        self._write([replace(p, name=name) if p.id == preset_id else p for p in presets])
        return True

    def get_default(self) -> Optional[SavedFilter]:
        return next((p for p in self.list() if p.isDefault), None)
