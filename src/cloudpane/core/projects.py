"""Project listing and search for the project switcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from cloudpane.core.cache import TTLCache
from cloudpane.core.gateway import Gateway

logger = logging.getLogger(__name__)

PROJECTS_URL = "https://cloudresourcemanager.googleapis.com/v1/projects"
PROJECTS_CACHE_KEY = "projects:list"
PROJECTS_TTL = 300.0


@dataclass(frozen=True)
class Project:
    id: str
    name: str = ""

    @property
    def label(self) -> str:
        if self.name and self.name != self.id:
            return f"{self.id} ({self.name})"
        return self.id


class ProjectManager:
    """Lists the projects the caller can see.

    Only ACTIVE projects are returned, sorted by ID. The list is cached so
    reopening the switcher does not hit the API again.
    """

    def __init__(self, gateway: Gateway, cache: TTLCache, ttl: float = PROJECTS_TTL):
        self.gateway = gateway
        self.cache = cache
        self.ttl = ttl
        self._projects: List[Project] = []

    @property
    def projects(self) -> List[Project]:
        return list(self._projects)

    async def list_projects(self, force: bool = False) -> List[Project]:
        if not force:
            cached, found = self.cache.get(PROJECTS_CACHE_KEY)
            if found:
                self._projects = cached
                return list(cached)

        projects: List[Project] = []
        token: Optional[str] = None
        while True:
            params = {"pageToken": token} if token else None
            page = await self.gateway.get_json(PROJECTS_URL, params=params)
            for entry in page.get("projects", []):
                if entry.get("lifecycleState") != "ACTIVE":
                    continue
                projects.append(Project(id=entry["projectId"], name=entry.get("name", "")))
            token = page.get("nextPageToken")
            if not token:
                break

        projects.sort(key=lambda p: p.id)
        self._projects = projects
        self.cache.set(PROJECTS_CACHE_KEY, projects, self.ttl)
        logger.info(f"Projects: {len(projects)} active projects")
        return list(projects)

    def search(self, query: str) -> List[Project]:
        """Case-insensitive substring match on ID or name."""
        if not query:
            return list(self._projects)
        needle = query.lower()
        return [p for p in self._projects if needle in p.id.lower() or needle in p.name.lower()]
