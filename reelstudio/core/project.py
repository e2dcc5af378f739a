"""Project operations: create, look up, edit settings, delete with cascade."""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import EntityNotFoundError
from .schema import PROJECT_PLACEHOLDER, Project, new_id
from .store import EntityStore

logger = logging.getLogger(__name__)

PROJECT_SETTINGS = ("title", "description", "aspect_ratio")


def create_project(
    store: EntityStore,
    title: str = "",
    description: str = "",
    aspect_ratio: str = "16:9",
    project_id: Optional[str] = None,
) -> Project:
    project = Project(
        id=project_id or new_id(),
        title=title,
        description=description,
        aspect_ratio=aspect_ratio,
    )
    store.projects.create(project)
    logger.info("created project %s (%s)", project.id, aspect_ratio)
    return project


def get_project(store: EntityStore, project_id: Optional[str]) -> Project:
    """The stored project, or ``PROJECT_PLACEHOLDER`` when it does not exist."""
    if not project_id:
        return PROJECT_PLACEHOLDER
    return store.projects.find(project_id) or PROJECT_PLACEHOLDER


def update_project(store: EntityStore, project_id: str, **settings) -> Project:
    bad = set(settings) - set(PROJECT_SETTINGS)
    if bad:
        raise ValueError(f"not a project setting: {sorted(bad)}")
    updated = store.projects.update(project_id, **settings)
    if updated is None:
        raise EntityNotFoundError("project", project_id)
    return updated


def delete_project(store: EntityStore, project_id: str) -> None:
    """Delete a project along with its tracks, their keyframes and its media.

    Children go first so a crash part way leaves orphans that no lookup by
    project can reach, never a project pointing at half-deleted children.
    """
    for track in store.tracks.by_project(project_id):
        for keyframe in store.keyframes.by_track(track.id):
            store.keyframes.delete(keyframe.id)
        store.tracks.delete(track.id)
    for media in store.media.by_project(project_id):
        store.media.delete(media.id)
    store.projects.delete(project_id)
    logger.info("deleted project %s", project_id)


__all__ = [
    "PROJECT_SETTINGS",
    "create_project",
    "get_project",
    "update_project",
    "delete_project",
]
