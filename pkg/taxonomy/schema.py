"""
Taxonomy entity schema and status vocabularies.

Entities:
  Idea → Story → Sprint → Update, plus Figure and Material as supporting content.

Rows arrive from the datastore as loosely-typed dicts; every record is built
through ``from_row`` so unknown status values fall back to the entity default
instead of leaking into templates.
"""
from enum import Enum
from dataclasses import dataclass, field, fields
from typing import Optional, List, Dict, Any, Type
import json


def _coerce(enum_cls, value, default):
    """Map a raw value onto ``enum_cls``, falling back to ``default``."""
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return default
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        return default


def _json_list(value) -> List[str]:
    """Normalize a tags/goals column (JSON text, list or NULL) to a list."""
    if value is None:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return []
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value]


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _str(value) -> str:
    return "" if value is None else str(value)


class IdeaStatus(Enum):
    """Lifecycle of an idea."""
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    @classmethod
    def from_str(cls, value: str) -> "IdeaStatus":
        return _coerce(cls, value, cls.PLANNED)


class StoryStatus(Enum):
    """Lifecycle of a story."""
    BACKLOG = "backlog"
    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def from_str(cls, value: str) -> "StoryStatus":
        return _coerce(cls, value, cls.BACKLOG)


class StoryPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_str(cls, value: str) -> "StoryPriority":
        return _coerce(cls, value, cls.MEDIUM)


class SprintStatus(Enum):
    """Lifecycle of a sprint."""
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"

    @classmethod
    def from_str(cls, value: str) -> "SprintStatus":
        return _coerce(cls, value, cls.PLANNED)


class UpdateType(Enum):
    """Kind of progress note attached to a sprint/idea/story triple."""
    PROGRESS = "progress"
    COMPLETION = "completion"
    BLOCKER = "blocker"
    NOTE = "note"

    @classmethod
    def from_str(cls, value: str) -> "UpdateType":
        return _coerce(cls, value, cls.NOTE)


class FigureStatus(Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"

    @classmethod
    def from_str(cls, value: str) -> "FigureStatus":
        return _coerce(cls, value, cls.ACTIVE)


# ── Badge colors ─────────────────────────────────────────────────────────────

IDEA_STATUS_COLORS = {
    "planned": "bg-gray-100 text-gray-800 dark:bg-gray-800 dark:text-gray-200",
    "active": "bg-green-100 text-green-800 dark:bg-green-900 dark:text-green-200",
    "completed": "bg-blue-100 text-blue-800 dark:bg-blue-900 dark:text-blue-200",
    "archived": "bg-yellow-100 text-yellow-800 dark:bg-yellow-900 dark:text-yellow-200",
}

STORY_STATUS_COLORS = {
    "backlog": "bg-gray-100 text-gray-800 dark:bg-gray-800 dark:text-gray-200",
    "planned": "bg-blue-100 text-blue-800 dark:bg-blue-900 dark:text-blue-200",
    "in-progress": "bg-yellow-100 text-yellow-800 dark:bg-yellow-900 dark:text-yellow-200",
    "done": "bg-green-100 text-green-800 dark:bg-green-900 dark:text-green-200",
}

STORY_PRIORITY_COLORS = {
    "low": "text-gray-500",
    "medium": "text-blue-500",
    "high": "text-orange-500",
    "critical": "text-red-500",
}

SPRINT_STATUS_COLORS = {
    "planned": "bg-gray-100 text-gray-800 dark:bg-gray-800 dark:text-gray-200",
    "active": "bg-green-100 text-green-800 dark:bg-green-900 dark:text-green-200",
    "completed": "bg-blue-100 text-blue-800 dark:bg-blue-900 dark:text-blue-200",
}

UPDATE_TYPE_COLORS = {
    "progress": "bg-blue-100 text-blue-800 dark:bg-blue-900 dark:text-blue-200",
    "completion": "bg-green-100 text-green-800 dark:bg-green-900 dark:text-green-200",
    "blocker": "bg-red-100 text-red-800 dark:bg-red-900 dark:text-red-200",
    "note": "bg-gray-100 text-gray-800 dark:bg-gray-800 dark:text-gray-200",
}

FIGURE_STATUS_COLORS = {
    "active": "bg-green-100 text-green-800 dark:bg-green-900 dark:text-green-200",
    "archived": "bg-gray-100 text-gray-800 dark:bg-gray-800 dark:text-gray-200",
}


# ── Records ──────────────────────────────────────────────────────────────────


class Record:
    """Shared serialization for taxonomy records."""

    # Column holding the display key; set per subclass
    key_field: str = "id"

    @property
    def display_key(self):
        return getattr(self, self.key_field)

    @property
    def status_token(self) -> Optional[str]:
        """Status value used by the filter engine, or None if not filterable."""
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-friendly dict (enums become their values)."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            data[f.name] = value
        return data

    def to_row(self) -> Dict[str, Any]:
        """Serialize to datastore columns (lists as JSON text, no id)."""
        row = self.to_dict()
        row.pop("id", None)
        for name, value in row.items():
            if isinstance(value, list):
                row[name] = json.dumps(value)
        return row

    @classmethod
    def columns(cls) -> List[str]:
        return [f.name for f in fields(cls)]


@dataclass
class Idea(Record):
    """A core concept being developed (display key: i<idea_number>)."""
    idea_number: int
    title: str
    description: str = ""
    status: IdeaStatus = IdeaStatus.PLANNED
    created: str = ""
    tags: List[str] = field(default_factory=list)
    body: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    key_field = "idea_number"

    @property
    def status_token(self) -> Optional[str]:
        return self.status.value

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Idea":
        return cls(
            idea_number=_int(data.get("idea_number")),
            title=_str(data.get("title")),
            description=_str(data.get("description")),
            status=IdeaStatus.from_str(data.get("status")),
            created=_str(data.get("created")),
            tags=_json_list(data.get("tags")),
            body=data.get("body"),
            id=data.get("id"),
            created_at=_str(data.get("created_at")),
            updated_at=_str(data.get("updated_at")),
        )


@dataclass
class Story(Record):
    """A specific task or user story (display key: s<story_number>)."""
    story_number: int
    title: str
    description: str = ""
    status: StoryStatus = StoryStatus.BACKLOG
    priority: StoryPriority = StoryPriority.MEDIUM
    created: str = ""
    body: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    key_field = "story_number"

    @property
    def status_token(self) -> Optional[str]:
        return self.status.value

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Story":
        return cls(
            story_number=_int(data.get("story_number")),
            title=_str(data.get("title")),
            description=_str(data.get("description")),
            status=StoryStatus.from_str(data.get("status")),
            priority=StoryPriority.from_str(data.get("priority")),
            created=_str(data.get("created")),
            body=data.get("body"),
            id=data.get("id"),
            created_at=_str(data.get("created_at")),
            updated_at=_str(data.get("updated_at")),
        )


@dataclass
class Sprint(Record):
    """A time-boxed development period, e.g. sprint_id "2025-03"."""
    sprint_id: str
    year: int = 0
    sprint_number: int = 0
    start_date: str = ""
    end_date: str = ""
    status: SprintStatus = SprintStatus.PLANNED
    goals: List[str] = field(default_factory=list)
    body: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    key_field = "sprint_id"

    @property
    def status_token(self) -> Optional[str]:
        return self.status.value

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Sprint":
        return cls(
            sprint_id=_str(data.get("sprint_id")),
            year=_int(data.get("year")),
            sprint_number=_int(data.get("sprint_number")),
            start_date=_str(data.get("start_date")),
            end_date=_str(data.get("end_date")),
            status=SprintStatus.from_str(data.get("status")),
            goals=_json_list(data.get("goals")),
            body=data.get("body"),
            id=data.get("id"),
            created_at=_str(data.get("created_at")),
            updated_at=_str(data.get("updated_at")),
        )


@dataclass
class Update(Record):
    """A progress note linking a sprint, an idea and a story."""
    notation: str
    sprint_id: str = ""
    idea_number: int = 0
    story_number: int = 0
    date: str = ""
    type: UpdateType = UpdateType.NOTE
    body: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    key_field = "notation"

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Update":
        return cls(
            notation=_str(data.get("notation")),
            sprint_id=_str(data.get("sprint_id")),
            idea_number=_int(data.get("idea_number")),
            story_number=_int(data.get("story_number")),
            date=_str(data.get("date")),
            type=UpdateType.from_str(data.get("type")),
            body=data.get("body"),
            id=data.get("id"),
            created_at=_str(data.get("created_at")),
            updated_at=_str(data.get("updated_at")),
        )


@dataclass
class Figure(Record):
    """An image or visual asset (display key: fig_<figure_number>)."""
    figure_number: int
    title: str
    image_path: str = ""
    description: Optional[str] = None
    alt_text: Optional[str] = None
    created: str = ""
    uploaded_date: Optional[str] = None
    file_type: Optional[str] = None
    status: FigureStatus = FigureStatus.ACTIVE
    tags: List[str] = field(default_factory=list)
    dimensions: Optional[str] = None
    file_size: Optional[str] = None
    body: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    key_field = "figure_number"

    @property
    def status_token(self) -> Optional[str]:
        return self.status.value

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Figure":
        return cls(
            figure_number=_int(data.get("figure_number")),
            title=_str(data.get("title")),
            image_path=_str(data.get("image_path")),
            description=data.get("description"),
            alt_text=data.get("alt_text"),
            created=_str(data.get("created")),
            uploaded_date=data.get("uploaded_date"),
            file_type=data.get("file_type"),
            status=FigureStatus.from_str(data.get("status")),
            tags=_json_list(data.get("tags")),
            dimensions=data.get("dimensions"),
            file_size=data.get("file_size"),
            body=data.get("body"),
            id=data.get("id"),
            created_at=_str(data.get("created_at")),
            updated_at=_str(data.get("updated_at")),
        )


@dataclass
class Material(Record):
    """A blog post or piece of documentation, addressed by slug."""
    slug: str
    title: str
    date: str = ""
    author: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    excerpt: Optional[str] = None
    canonical_source_url: Optional[str] = None
    body: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    key_field = "slug"

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Material":
        return cls(
            slug=_str(data.get("slug")),
            title=_str(data.get("title")),
            date=_str(data.get("date")),
            author=data.get("author"),
            tags=_json_list(data.get("tags")),
            excerpt=data.get("excerpt"),
            canonical_source_url=data.get("canonical_source_url"),
            body=data.get("body"),
            id=data.get("id"),
            created_at=_str(data.get("created_at")),
            updated_at=_str(data.get("updated_at")),
        )


# ── Entity registry ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EntityType:
    """Table-level metadata for one entity kind."""
    name: str                       # singular, e.g. "idea"
    table: str                      # datastore table, e.g. "ideas"
    title: str                      # section heading, e.g. "Ideas"
    description: str                # home page blurb
    record: Type[Record]
    order_by: str
    descending: bool = False
    status_enum: Optional[Type[Enum]] = None
    colors: Dict[str, str] = field(default_factory=dict)
    label_format: str = "{}"       # how the display key is shown, e.g. "i{}"

    @property
    def key_field(self) -> str:
        return self.record.key_field

    @property
    def key_is_int(self) -> bool:
        return self.key_field in ("idea_number", "story_number", "figure_number")

    @property
    def filterable(self) -> bool:
        """Whether list pages carry status filter controls."""
        return self.status_enum is not None

    @property
    def card_class(self) -> str:
        return f"{self.name}-card"

    def label(self, record: Record) -> str:
        return self.label_format.format(record.display_key)

    def heading(self, record: Record) -> str:
        """Human name of a record for prompts and flashes."""
        return getattr(record, "title", None) or self.label(record)

    def statuses(self) -> List[str]:
        if self.status_enum is None:
            return []
        return [s.value for s in self.status_enum]

    def default_status(self) -> Optional[str]:
        if self.status_enum is None:
            return None
        return self.status_enum.from_str(None).value

    def badge_class(self, value: Optional[str]) -> str:
        """Color classes for a status/type value, defaulting like the vocabulary."""
        if value in self.colors:
            return self.colors[value]
        fallback = self.default_status()
        if fallback is None and self.table == "updates":
            fallback = UpdateType.NOTE.value
        return self.colors.get(fallback, "")

    def parse_key(self, raw: str):
        """Convert a URL segment to the display key's type. Returns None if invalid."""
        if self.key_is_int:
            try:
                return int(raw)
            except (TypeError, ValueError):
                return None
        return raw


ENTITIES: Dict[str, EntityType] = {
    "ideas": EntityType(
        name="idea", table="ideas", title="Ideas",
        description="Core concepts and features being developed",
        record=Idea, order_by="idea_number",
        label_format="i{}",
        status_enum=IdeaStatus, colors=IDEA_STATUS_COLORS,
    ),
    "stories": EntityType(
        name="story", table="stories", title="Stories",
        description="Specific tasks and user stories",
        record=Story, order_by="story_number",
        label_format="s{}",
        status_enum=StoryStatus, colors=STORY_STATUS_COLORS,
    ),
    "sprints": EntityType(
        name="sprint", table="sprints", title="Sprints",
        description="Time-boxed development periods",
        record=Sprint, order_by="sprint_id", descending=True,
        label_format="Sprint {}",
        status_enum=SprintStatus, colors=SPRINT_STATUS_COLORS,
    ),
    "updates": EntityType(
        name="update", table="updates", title="Updates",
        description="Progress notes and status changes",
        record=Update, order_by="date", descending=True,
        colors=UPDATE_TYPE_COLORS,
    ),
    "figures": EntityType(
        name="figure", table="figures", title="Figures",
        description="Images and visual assets",
        record=Figure, order_by="figure_number",
        label_format="fig_{}",
        status_enum=FigureStatus, colors=FIGURE_STATUS_COLORS,
    ),
    "materials": EntityType(
        name="material", table="materials", title="Materials",
        description="Blog posts and documentation",
        record=Material, order_by="date", descending=True,
    ),
}


def get_entity(table: str) -> Optional[EntityType]:
    return ENTITIES.get(table)
