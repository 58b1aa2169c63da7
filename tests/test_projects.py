from __future__ import annotations

from typing import Any, Optional

import pytest

from cloudpane.core.cache import TTLCache
from cloudpane.core.projects import Project, ProjectManager


class PagedProjects:
    def __init__(self) -> None:
        self.calls: list[Optional[dict]] = []

    async def get_json(self, url: str, params: Optional[dict] = None, **kwargs: Any) -> Any:
        self.calls.append(params)
        if not params:
            return {
                "projects": [
                    {"projectId": "zeta", "name": "Zeta Prod", "lifecycleState": "ACTIVE"},
                    {"projectId": "old", "name": "Old", "lifecycleState": "DELETE_REQUESTED"},
                ],
                "nextPageToken": "p2",
            }
        return {"projects": [{"projectId": "alpha", "name": "Alpha Dev", "lifecycleState": "ACTIVE"}]}


@pytest.mark.asyncio
async def test_lists_active_projects_sorted_across_pages() -> None:
    gateway = PagedProjects()
    manager = ProjectManager(gateway, TTLCache())

    projects = await manager.list_projects()
    assert [p.id for p in projects] == ["alpha", "zeta"]
    assert gateway.calls == [None, {"pageToken": "p2"}]


@pytest.mark.asyncio
async def test_list_is_cached_until_forced() -> None:
    gateway = PagedProjects()
    manager = ProjectManager(gateway, TTLCache())
    await manager.list_projects()
    await manager.list_projects()
    assert len(gateway.calls) == 2

    await manager.list_projects(force=True)
    assert len(gateway.calls) == 4


@pytest.mark.asyncio
async def test_search_matches_id_or_name() -> None:
    manager = ProjectManager(PagedProjects(), TTLCache())
    await manager.list_projects()

    assert [p.id for p in manager.search("PROD")] == ["zeta"]
    assert [p.id for p in manager.search("alp")] == ["alpha"]
    assert len(manager.search("")) == 2


def test_project_label() -> None:
    assert Project("demo", "Demo App").label == "demo (Demo App)"
    assert Project("demo", "demo").label == "demo"
