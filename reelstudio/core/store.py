"""In-process entity store with optional JSON snapshot persistence.

The store keeps four keyed collections (projects, tracks, keyframes, media).
Each entity write is atomic on its own; there are no multi-entity
transactions, so cascades (delete media -> delete keyframes) are issued by the
caller one write at a time.

Entities handed out by ``find``/``list`` are the stored instances. ``update``
never mutates them in place: it stores a ``dataclasses.replace`` copy, so an
object read before an update keeps showing the old values. Code that needs
the latest state re-reads it with ``find``.

When constructed with a ``path`` the whole store is written to that JSON file
after every mutation and reloaded from it on construction.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from .schema import (
    MEDIA_MUTABLE_FIELDS,
    Keyframe,
    MediaItem,
    Project,
    Track,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Collection(Generic[T]):
    def __init__(
        self,
        name: str,
        loader: Callable[[dict[str, Any]], T],
        on_change: Callable[[], None],
        mutable_fields: Optional[Iterable[str]] = None,
    ):
        self.name = name
        self._loader = loader
        self._on_change = on_change
        self._mutable = frozenset(mutable_fields) if mutable_fields else None
        self._items: dict[str, T] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._items

    def create(self, entity: T) -> str:
        entity_id = entity.id  # type: ignore[attr-defined]
        if entity_id in self._items:
            raise ValueError(f"{self.name} {entity_id!r} already exists")
        self._items[entity_id] = entity
        logger.debug("created %s %s", self.name, entity_id)
        self._on_change()
        return entity_id

    def find(self, entity_id: str) -> Optional[T]:
        return self._items.get(entity_id)

    def update(self, entity_id: str, **changes: Any) -> Optional[T]:
        """Store a copy of the entity with ``changes`` applied.

        Returns the new entity, or None when ``entity_id`` is unknown (the
        entity may have been deleted by a concurrent operation).
        """
        current = self._items.get(entity_id)
        if current is None:
            return None
        if "id" in changes:
            raise ValueError("entity id cannot change")
        known = {f.name for f in fields(current)}  # type: ignore[arg-type]
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"unknown {self.name} fields: {sorted(unknown)}")
        if self._mutable is not None:
            frozen = set(changes) - self._mutable
            if frozen:
                raise ValueError(
                    f"{self.name} fields are immutable after creation: {sorted(frozen)}"
                )
        updated = replace(current, **changes)  # type: ignore[type-var]
        self._items[entity_id] = updated
        self._on_change()
        return updated

    def delete(self, entity_id: str) -> None:
        if self._items.pop(entity_id, None) is not None:
            logger.debug("deleted %s %s", self.name, entity_id)
            self._on_change()

    def list(self) -> list[T]:
        return list(self._items.values())

    def _dump(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self._items.values()]  # type: ignore[attr-defined]

    def _restore(self, rows: Iterable[dict[str, Any]]) -> None:
        self._items = {}
        for row in rows:
            entity = self._loader(row)
            self._items[entity.id] = entity  # type: ignore[attr-defined]


class TrackCollection(Collection[Track]):
    def by_project(self, project_id: str) -> list[Track]:
        return [t for t in self._items.values() if t.project_id == project_id]


class KeyframeCollection(Collection[Keyframe]):
    def by_track(self, track_id: str) -> list[Keyframe]:
        """Keyframes of one track, sorted by timestamp."""
        found = [k for k in self._items.values() if k.track_id == track_id]
        found.sort(key=lambda k: (k.timestamp, k.id))
        return found


class MediaCollection(Collection[MediaItem]):
    def by_project(self, project_id: str) -> list[MediaItem]:
        """Media of one project, newest first."""
        found = [m for m in self._items.values() if m.project_id == project_id]
        found.sort(key=lambda m: m.created_at, reverse=True)
        return found


class EntityStore:
    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path is not None else None
        self._loading = False
        self.projects: Collection[Project] = Collection(
            "project", Project.from_dict, self._changed
        )
        self.tracks = TrackCollection("track", Track.from_dict, self._changed)
        self.keyframes = KeyframeCollection(
            "keyframe", Keyframe.from_dict, self._changed
        )
        self.media = MediaCollection(
            "media", MediaItem.from_dict, self._changed, MEDIA_MUTABLE_FIELDS
        )
        if self.path is not None and self.path.exists():
            self.load()

    def _collections(self) -> dict[str, Collection]:
        return {
            "projects": self.projects,
            "tracks": self.tracks,
            "keyframes": self.keyframes,
            "media": self.media,
        }

    def _changed(self) -> None:
        if self.path is not None and not self._loading:
            self.save()

    def to_dict(self) -> dict[str, Any]:
        return {name: col._dump() for name, col in self._collections().items()}

    def save(self, path: str | Path | None = None) -> None:
        p = Path(path) if path is not None else self.path
        if p is None:
            raise ValueError("no path to save the store to")
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(p.suffix + ".tmp")
        tmp.write_text(json.dumps(self.to_dict(), indent=2))
        os.replace(tmp, p)

    def load(self, path: str | Path | None = None) -> None:
        p = Path(path) if path is not None else self.path
        if p is None:
            raise ValueError("no path to load the store from")
        data = json.loads(p.read_text())
        self._loading = True
        try:
            for name, col in self._collections().items():
                col._restore(data.get(name, []))
        finally:
            self._loading = False
        logger.info(
            "loaded store from %s (%d projects, %d media)",
            p,
            len(self.projects),
            len(self.media),
        )


__all__ = [
    "Collection",
    "TrackCollection",
    "KeyframeCollection",
    "MediaCollection",
    "EntityStore",
]
