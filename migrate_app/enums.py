# migrate_app/enums.py
from enum import Enum, auto


class SourceType(Enum):
    """The kind of media manager being migrated from."""
    RADARR = "radarr"
    SONARR = "sonarr"

    def __str__(self):
        return self.name.title()

    @property
    def is_movies(self) -> bool:
        return self is SourceType.RADARR

    @property
    def media_noun(self) -> str:
        return "movies" if self.is_movies else "series"


class ConnectionMethod(Enum):
    SQLITE = "sqlite"
    API = "api"

    def __str__(self):
        return "SQLite Database" if self is ConnectionMethod.SQLITE else "HTTP API"


class WizardStep(Enum):
    CONNECT = auto()
    MAPPING = auto()
    PREVIEW = auto()
    IMPORTING = auto()

    def __str__(self):
        return self.name.title()


class PreviewStatus(Enum):
    """Classification of a source library item against the target library."""
    NEW = "new"
    DUPLICATE = "duplicate"
    SKIP = "skip"

    def __str__(self):
        return self.name.title()

    @property
    def badge(self) -> str:
        # Labels shown in the preview table
        return {
            PreviewStatus.NEW: "Ready",
            PreviewStatus.DUPLICATE: "Duplicate",
            PreviewStatus.SKIP: "Unknown",
        }[self]


class PreviewFilter(Enum):
    ALL = "all"
    NEW = "new"
    DUPLICATE = "duplicate"
    SKIP = "skip"

    def label(self, source_type: SourceType) -> str:
        if self is PreviewFilter.ALL:
            return "All Movies" if source_type.is_movies else "All TV Shows"
        if self is PreviewFilter.NEW:
            return "Ready to Migrate"
        if self is PreviewFilter.DUPLICATE:
            return "Already in Library"
        return "Unknown"

    def matches(self, status: PreviewStatus) -> bool:
        return self is PreviewFilter.ALL or self.value == status.value


class ActivityStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def __str__(self):
        return self.name.replace("_", " ").title()

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({ActivityStatus.COMPLETED, ActivityStatus.FAILED, ActivityStatus.CANCELLED})


class ImportOutcomeKind(Enum):
    """Which completion view a terminal activity renders as."""
    COMPLETE = auto()         # Terminal, but no report attached
    SUCCESS = auto()          # Report with zero errors
    PARTIAL_FAILURE = auto()  # Report with one or more errors

    def __str__(self):
        return self.name.replace("_", " ").title()


class ConfigItemStatus(Enum):
    NEW = "new"
    DUPLICATE = "duplicate"
    UNSUPPORTED = "unsupported"
    INCOMPLETE = "incomplete"

    def __str__(self):
        return self.name.title()

    @property
    def selectable(self) -> bool:
        return self in (ConfigItemStatus.NEW, ConfigItemStatus.INCOMPLETE)
