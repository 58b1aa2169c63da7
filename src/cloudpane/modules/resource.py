"""Data-driven list/detail module for one remote resource type.

Most resource types look the same from the dashboard: list them for the
current project, filter, drill into one, and maybe run a confirmed action
on it. A ``ResourceSpec`` describes one such type (where to list it, which
fields to show, which actions exist) and ``ResourceListModule`` does the
rest.

A spec may name a ``child`` spec. Its ``list_url`` is formatted with the
selected item as ``item`` (``{item[name]}``, ``{item[tableReference][tableId]}``),
so Enter on a detail view opens the nested list and Esc/q walks back up.

Usage:
    REDIS = ResourceSpec(
        key="redis",
        name="Memorystore (Redis)",
        list_url="https://redis.googleapis.com/v1/projects/{project}/locations/-/instances",
        items_path="instances",
        columns=(Column("Name", "name", 30, basename=True), Column("State", "state", 10)),
    )
    module = ResourceListModule(cache, gateway, REDIS)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from rich.markup import escape

from cloudpane.core.cache import TTLCache
from cloudpane.core.events import KeyInput, ModuleEffect
from cloudpane.core.gateway import Gateway
from cloudpane.modules.base import BaseModule, ModuleState, PendingAction

logger = logging.getLogger(__name__)

# Google list APIs cap pages anyway; this only guards against a server that
# keeps returning the same token.
MAX_PAGES = 50

ActionBody = Union[Dict[str, Any], Callable[[Dict[str, Any]], Dict[str, Any]], None]


@dataclass(frozen=True)
class Column:
    """One table column, read from a dotted path into each item."""

    title: str
    path: str
    width: int = 20
    basename: bool = False


@dataclass(frozen=True)
class ResourceAction:
    """A mutating call on the selected item.

    ``url_template`` is formatted with the item's top-level string fields,
    ``project`` and ``short_name`` (the last path segment of the item name).
    """

    key: str
    label: str
    method: str
    url_template: str
    body: ActionBody = None
    confirm: bool = True


@dataclass(frozen=True)
class ResourceSpec:
    """Description of one listable resource type."""

    key: str
    name: str
    list_url: str
    items_path: str
    columns: Tuple[Column, ...]
    category: str = ""
    description: str = ""
    name_path: str = "name"
    aggregated_key: Optional[str] = None
    actions: Tuple[ResourceAction, ...] = field(default_factory=tuple)
    ttl: Optional[float] = None
    child: Optional["ResourceSpec"] = None


@dataclass(frozen=True)
class Listing:
    """Items fetched from one list URL."""

    url: str
    items: List[Dict[str, Any]]


@dataclass
class Frame:
    """One drill-down step: the child list opened and the parent view to restore."""

    spec: ResourceSpec
    url: str
    title: str
    parent_items: List[Dict[str, Any]]
    parent_cursor: int
    parent_filter: str
    parent_selected: Dict[str, Any]


class ListView(str, Enum):
    LIST = "list"
    DETAIL = "detail"


def lookup(item: Dict[str, Any], path: str) -> Any:
    """Read a dotted path (``settings.tier``) from nested dicts."""
    value: Any = item
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def basename(value: Any) -> str:
    text = "" if value is None else str(value)
    return text.rstrip("/").rsplit("/", 1)[-1]


def cell(item: Dict[str, Any], column: Column) -> str:
    value = lookup(item, column.path)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(basename(v) if column.basename else str(v) for v in value)
    return basename(value) if column.basename else str(value)


async def list_resources(
    gateway: Gateway,
    url: str,
    items_path: str,
    aggregated_key: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """List every item behind a Google-style paginated list endpoint.

    Args:
        gateway: Gateway each page request goes through.
        url: Fully formatted list URL.
        items_path: Dotted path to the items in each response
            (``schema.fields`` reads a nested list from a single GET).
        aggregated_key: For ``aggregatedList`` responses, the per-scope key
            holding the items (``items -> {scope: {aggregated_key: [...]}}``).

    Returns:
        All items across pages.
    """
    items: List[Dict[str, Any]] = []
    token: Optional[str] = None

    for _ in range(MAX_PAGES):
        params = {"pageToken": token} if token else None
        data = await gateway.get_json(url, params=params)
        found = lookup(data, items_path) or ([] if aggregated_key is None else {})
        if aggregated_key is not None:
            for scope in found.values():
                items.extend(scope.get(aggregated_key, []))
        else:
            items.extend(found)
        token = data.get("nextPageToken")
        if not token:
            break
    else:
        logger.warning(f"Stopped listing {url} after {MAX_PAGES} pages")

    return items


class ResourceListModule(BaseModule):
    """List, filter, inspect and act on one resource type."""

    def __init__(
        self,
        cache: TTLCache,
        gateway: Gateway,
        spec: ResourceSpec,
        poll_interval: Optional[float] = 60.0,
        ttl: float = 60.0,
        region: str = "us-central1",
    ):
        super().__init__(cache, poll_interval=poll_interval)
        self.region = region
        self.gateway = gateway
        self.spec = spec
        self.key = spec.key
        self.name = spec.name
        self.ttl = spec.ttl if spec.ttl is not None else ttl
        self.items: List[Dict[str, Any]] = []
        self.cursor = 0
        self.view = ListView.LIST
        self.selected: Optional[Dict[str, Any]] = None
        self.filter_text = ""
        self.filtering = False
        self.trail: List[Frame] = []

    @property
    def depth(self) -> int:
        return len(self.trail)

    @property
    def level_spec(self) -> ResourceSpec:
        return self.trail[-1].spec if self.trail else self.spec

    @property
    def level_url(self) -> str:
        if self.trail:
            return self.trail[-1].url
        return self.spec.list_url.format(project=self.param, region=self.region)

    @property
    def cache_key(self) -> str:
        if self.trail:
            return f"{self.spec.key}:{self.param}:{self.level_url}"
        return f"{self.spec.key}:{self.param}"

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------

    def setup(self, param: Optional[str]) -> None:
        if not param:
            raise ValueError(f"{self.name} needs a project; use Switch Project")

    def teardown(self) -> None:
        self.items = []

    async def fetch(self, force: bool) -> Listing:
        key = self.cache_key
        url = self.level_url
        spec = self.level_spec
        if not force:
            cached, found = self.cache.get(key)
            if found:
                return Listing(url, cached)

        items = await list_resources(self.gateway, url, spec.items_path, spec.aggregated_key)
        self.cache.set(key, items, self.ttl)
        logger.info(f"{self.key}: fetched {len(items)} {spec.name} for {self.param}")
        return Listing(url, items)

    def on_data(self, data: Listing) -> None:
        if data.url != self.level_url:
            logger.debug(f"{self.key}: dropping rows for {data.url}, now showing {self.level_url}")
            return
        self.items = list(data.items)
        self._clamp_cursor()

    def on_reset(self) -> None:
        self.trail = []
        self.view = ListView.LIST
        self.selected = None
        self.cursor = 0
        self.filtering = False
        self.filter_text = ""

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def visible_items(self) -> List[Dict[str, Any]]:
        if not self.filter_text:
            return self.items
        needle = self.filter_text.lower()
        columns = self.level_spec.columns
        return [item for item in self.items if any(needle in cell(item, c).lower() for c in columns)]

    def _clamp_cursor(self) -> None:
        count = len(self.visible_items())
        self.cursor = max(0, min(self.cursor, count - 1))

    def current_item(self) -> Optional[Dict[str, Any]]:
        if self.view == ListView.DETAIL:
            return self.selected
        rows = self.visible_items()
        if 0 <= self.cursor < len(rows):
            return rows[self.cursor]
        return None

    # ------------------------------------------------------------------
    # Drill-down
    # ------------------------------------------------------------------

    def _open_child(self) -> List[ModuleEffect]:
        child = self.level_spec.child
        item = self.selected
        if child is None or item is None or self.state != ModuleState.LOADED:
            return []

        url = child.list_url.format(project=self.param, region=self.region, item=item)
        self.trail.append(
            Frame(
                spec=child,
                url=url,
                title=basename(lookup(item, self.level_spec.name_path)),
                parent_items=self.items,
                parent_cursor=self.cursor,
                parent_filter=self.filter_text,
                parent_selected=item,
            )
        )
        self.items = []
        self.cursor = 0
        self.filter_text = ""
        self.selected = None
        self.view = ListView.LIST
        return self.refresh(force=False)

    def _close_child(self) -> None:
        frame = self.trail.pop()
        self.items = frame.parent_items
        self.cursor = frame.parent_cursor
        self.filter_text = frame.parent_filter
        self.selected = frame.parent_selected
        self.view = ListView.DETAIL

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def on_key(self, event: KeyInput) -> List[ModuleEffect]:
        if self.filtering:
            return self._filter_key(event)

        if self.view == ListView.DETAIL:
            if event.key in ("escape", "q"):
                self.view = ListView.LIST
                self.selected = None
                return []
            if event.key == "enter":
                return self._open_child()
            return self._action_key(event)

        key = event.key
        if key in ("escape", "q") and self.trail:
            self._close_child()
        elif key in ("down", "j"):
            self.cursor = min(self.cursor + 1, max(0, len(self.visible_items()) - 1))
        elif key in ("up", "k"):
            self.cursor = max(0, self.cursor - 1)
        elif key == "slash" or event.character == "/":
            self.filtering = True
        elif key == "r":
            return self.refresh()
        elif key == "enter":
            item = self.current_item()
            if item is not None:
                self.selected = item
                self.view = ListView.DETAIL
        else:
            return self._action_key(event)
        return []

    def _filter_key(self, event: KeyInput) -> List[ModuleEffect]:
        if event.key == "escape":
            self.filtering = False
            self.filter_text = ""
        elif event.key == "enter":
            self.filtering = False
        elif event.key == "backspace":
            self.filter_text = self.filter_text[:-1]
        elif event.is_printable:
            self.filter_text += event.character or ""
        self.cursor = 0
        return []

    def _action_key(self, event: KeyInput) -> List[ModuleEffect]:
        spec = self.level_spec
        action = next((a for a in spec.actions if a.key == event.key), None)
        if action is None:
            return []
        item = self.current_item()
        if item is None or self.state != ModuleState.LOADED:
            return []

        short = basename(lookup(item, spec.name_path))
        pending = PendingAction(
            label=f"{action.label} {short}",
            run=lambda: self._run_action(action, item, spec),
        )
        if action.confirm:
            return self.request_confirmation(pending)
        self._pending = pending
        return self._confirm()

    async def _run_action(self, action: ResourceAction, item: Dict[str, Any], spec: ResourceSpec) -> str:
        # The project may change while the request is in flight.
        key = self.cache_key
        fields = {k: v for k, v in item.items() if isinstance(v, str)}
        fields["project"] = self.param or ""
        fields["short_name"] = basename(lookup(item, spec.name_path))
        url = action.url_template.format(**fields)
        body = action.body(item) if callable(action.body) else action.body

        response = await self.gateway.request(action.method, url, json=body)
        self.cache.delete(key)
        operation = {}
        if response.content:
            operation = response.json()
        return basename(operation.get("name", "")) if isinstance(operation, dict) else ""

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def help_text(self) -> str:
        if self.state == ModuleState.CONFIRMING:
            return super().help_text()
        if self.filtering:
            return "Type to filter  Enter:Apply  Esc:Clear"
        spec = self.level_spec
        actions = "  ".join(f"{a.key}:{a.label}" for a in spec.actions)
        if self.view == ListView.DETAIL:
            child = f"Enter:Open {spec.child.name}" if spec.child else ""
            return "  ".join(filter(None, ["Esc/q:Back", child, actions]))
        back = "Esc/q:Up" if self.trail else ""
        return "  ".join(filter(None, ["r:Refresh  /:Filter  Enter:Detail", back, actions]))

    def is_at_root(self) -> bool:
        return self.view == ListView.LIST and not self.filtering and not self.trail

    def render_content(self) -> str:
        if self.view == ListView.DETAIL and self.selected is not None:
            return self._render_detail(self.selected)
        return self._render_list()

    def _breadcrumb(self) -> str:
        parts = [self.name] + [f"{frame.title} / {frame.spec.name}" for frame in self.trail]
        return " / ".join(parts)

    def _render_list(self) -> str:
        spec = self.level_spec
        lines: List[str] = [f"[bold]{escape(self._breadcrumb())}[/bold]  [dim]{escape(self.param or '')}[/dim]"]
        if self.filtering or self.filter_text:
            cursor = "_" if self.filtering else ""
            lines.append(f"/ {escape(self.filter_text)}{cursor}")

        header = " ".join(c.title.ljust(c.width)[: c.width] for c in spec.columns)
        lines.append(f"[bold]{escape(header)}[/bold]")

        rows = self.visible_items()
        if not rows:
            lines.append(f"[dim]No {escape(spec.name)} found.[/dim]")
            return "\n".join(lines)

        window = max(5, self.height - 6)
        start = max(0, min(self.cursor - window // 2, len(rows) - window))
        for index in range(start, min(len(rows), start + window)):
            item = rows[index]
            text = escape(" ".join(cell(item, c).ljust(c.width)[: c.width] for c in spec.columns))
            if index == self.cursor:
                style = "reverse" if self.focused else "on grey23"
                text = f"[{style}]{text}[/{style}]"
            lines.append(text)

        lines.append(f"[dim]{len(rows)} of {len(self.items)}[/dim]")
        return "\n".join(lines)

    def _render_detail(self, item: Dict[str, Any]) -> str:
        spec = self.level_spec
        title = basename(lookup(item, spec.name_path))
        lines = [f"[bold]{escape(self._breadcrumb())}: {escape(title)}[/bold]", ""]
        for key, value in item.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value, separators=(", ", ": "))
                if len(value) > 200:
                    value = value[:197] + "..."
            lines.append(f"[cyan]{escape(str(key))}[/cyan]: {escape(str(value))}")
        if spec.child is not None:
            lines.append("")
            lines.append(f"[dim]Enter to open {escape(spec.child.name)}[/dim]")
        return "\n".join(lines)


def resource_factory(
    gateway: Gateway,
    spec: ResourceSpec,
    poll_interval: Optional[float] = 60.0,
    ttl: float = 60.0,
    region: str = "us-central1",
) -> Callable[[TTLCache], ResourceListModule]:
    """Registry factory for a resource spec."""

    def factory(cache: TTLCache) -> ResourceListModule:
        return ResourceListModule(
            cache, gateway, spec, poll_interval=poll_interval, ttl=ttl, region=region
        )

    return factory
