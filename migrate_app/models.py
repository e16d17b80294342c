# models.py
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Union

from .enums import SourceType, ConnectionMethod, PreviewStatus, ActivityStatus, ConfigItemStatus


# --- Connection ---

@dataclass(frozen=True)
class SqliteConnection:
    """Read the source directly from its SQLite database file."""
    source_type: SourceType
    db_path: str

    @property
    def method(self) -> ConnectionMethod:
        return ConnectionMethod.SQLITE


@dataclass(frozen=True)
class ApiConnection:
    """Read the source through its HTTP API."""
    source_type: SourceType
    url: str
    api_key: str = field(repr=False)

    @property
    def method(self) -> ConnectionMethod:
        return ConnectionMethod.API


ConnectionConfig = Union[SqliteConnection, ApiConnection]


def connection_to_payload(config: ConnectionConfig) -> Dict[str, Any]:
    if isinstance(config, SqliteConnection):
        return {'sourceType': config.source_type.value, 'dbPath': config.db_path}
    if isinstance(config, ApiConnection):
        return {'sourceType': config.source_type.value, 'url': config.url, 'apiKey': config.api_key}
    raise TypeError(f"Unsupported connection config: {type(config).__name__}")


def describe_connection(config: ConnectionConfig) -> str:
    if isinstance(config, SqliteConnection):
        return f"{config.source_type} database at {config.db_path}"
    if isinstance(config, ApiConnection):
        return f"{config.source_type} API at {config.url}"
    raise TypeError(f"Unsupported connection config: {type(config).__name__}")


# --- Reference entities ---

@dataclass(frozen=True)
class SourceRootFolder:
    id: int
    path: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceRootFolder":
        return cls(id=int(data['id']), path=str(data['path']))


@dataclass(frozen=True)
class SourceQualityProfile:
    id: int
    name: str
    in_use: bool = False # Referenced by at least one source item

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceQualityProfile":
        return cls(id=int(data['id']), name=str(data['name']), in_use=bool(data.get('inUse', False)))


@dataclass(frozen=True)
class TargetRootFolder:
    id: int
    path: str
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetRootFolder":
        return cls(id=int(data['id']), path=str(data['path']), name=data.get('name'))


@dataclass(frozen=True)
class TargetQualityProfile:
    id: int
    name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetQualityProfile":
        return cls(id=int(data['id']), name=str(data['name']))


# --- Mappings ---

@dataclass
class ImportMappings:
    root_folder_mapping: Dict[str, int] = field(default_factory=dict) # source path -> target root folder id
    quality_profile_mapping: Dict[int, int] = field(default_factory=dict) # source profile id -> target profile id
    selected_movie_tmdb_ids: Optional[List[int]] = None
    selected_series_tvdb_ids: Optional[List[int]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'rootFolderMapping': dict(self.root_folder_mapping),
            # JSON object keys are strings
            'qualityProfileMapping': {str(k): v for k, v in self.quality_profile_mapping.items()},
        }
        if self.selected_movie_tmdb_ids is not None:
            payload['selectedMovieTmdbIds'] = list(self.selected_movie_tmdb_ids)
        if self.selected_series_tvdb_ids is not None:
            payload['selectedSeriesTvdbIds'] = list(self.selected_series_tvdb_ids)
        return payload


# --- Preview ---

def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "": return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class MoviePreview:
    title: str
    tmdb_id: Optional[int]
    status: PreviewStatus
    year: Optional[int] = None
    has_file: bool = False
    quality: Optional[str] = None
    monitored: bool = False
    quality_profile_id: Optional[int] = None
    poster_url: Optional[str] = None
    skip_reason: Optional[str] = None

    @property
    def natural_id(self) -> Optional[int]:
        return self.tmdb_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MoviePreview":
        return cls(
            title=str(data.get('title', '')),
            tmdb_id=_optional_int(data.get('tmdbId')) or None,
            status=PreviewStatus(data.get('status', 'skip')),
            year=_optional_int(data.get('year')),
            has_file=bool(data.get('hasFile', False)),
            quality=data.get('quality') or None,
            monitored=bool(data.get('monitored', False)),
            quality_profile_id=_optional_int(data.get('qualityProfileId')),
            poster_url=data.get('posterUrl') or None,
            skip_reason=data.get('skipReason') or None,
        )


@dataclass(frozen=True)
class SeriesPreview:
    title: str
    tvdb_id: Optional[int]
    status: PreviewStatus
    year: Optional[int] = None
    tmdb_id: Optional[int] = None
    episode_count: int = 0
    file_count: int = 0
    monitored: bool = False
    quality_profile_id: Optional[int] = None
    poster_url: Optional[str] = None
    skip_reason: Optional[str] = None

    @property
    def natural_id(self) -> Optional[int]:
        return self.tvdb_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SeriesPreview":
        return cls(
            title=str(data.get('title', '')),
            tvdb_id=_optional_int(data.get('tvdbId')) or None,
            status=PreviewStatus(data.get('status', 'skip')),
            year=_optional_int(data.get('year')),
            tmdb_id=_optional_int(data.get('tmdbId')) or None,
            episode_count=int(data.get('episodeCount') or 0),
            file_count=int(data.get('fileCount') or 0),
            monitored=bool(data.get('monitored', False)),
            quality_profile_id=_optional_int(data.get('qualityProfileId')),
            poster_url=data.get('posterUrl') or None,
            skip_reason=data.get('skipReason') or None,
        )


PreviewItem = Union[MoviePreview, SeriesPreview]


@dataclass(frozen=True)
class ImportSummary:
    total_movies: int = 0
    total_series: int = 0
    total_episodes: int = 0
    total_files: int = 0
    new_movies: int = 0
    new_series: int = 0
    duplicate_movies: int = 0
    duplicate_series: int = 0
    skipped_movies: int = 0
    skipped_series: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ImportSummary":
        data = data or {}
        return cls(
            total_movies=int(data.get('totalMovies') or 0),
            total_series=int(data.get('totalSeries') or 0),
            total_episodes=int(data.get('totalEpisodes') or 0),
            total_files=int(data.get('totalFiles') or 0),
            new_movies=int(data.get('newMovies') or 0),
            new_series=int(data.get('newSeries') or 0),
            duplicate_movies=int(data.get('duplicateMovies') or 0),
            duplicate_series=int(data.get('duplicateSeries') or 0),
            skipped_movies=int(data.get('skippedMovies') or 0),
            skipped_series=int(data.get('skippedSeries') or 0),
        )


@dataclass(frozen=True)
class ImportPreview:
    """Diff between the source library and the target library. Never mutated after receipt."""
    movies: tuple = ()
    series: tuple = ()
    summary: ImportSummary = field(default_factory=ImportSummary)

    def items_for(self, source_type: SourceType) -> tuple:
        return self.movies if source_type.is_movies else self.series

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportPreview":
        return cls(
            movies=tuple(MoviePreview.from_dict(m) for m in (data.get('movies') or [])),
            series=tuple(SeriesPreview.from_dict(s) for s in (data.get('series') or [])),
            summary=ImportSummary.from_dict(data.get('summary')),
        )


# --- Import progress ---

@dataclass(frozen=True)
class ImportReport:
    movies_created: int = 0
    movies_skipped: int = 0
    movies_errored: int = 0
    series_created: int = 0
    series_skipped: int = 0
    series_errored: int = 0
    total_files: int = 0
    files_imported: int = 0
    errors: tuple = ()

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportReport":
        return cls(
            movies_created=int(data.get('moviesCreated') or 0),
            movies_skipped=int(data.get('moviesSkipped') or 0),
            movies_errored=int(data.get('moviesErrored') or 0),
            series_created=int(data.get('seriesCreated') or 0),
            series_skipped=int(data.get('seriesSkipped') or 0),
            series_errored=int(data.get('seriesErrored') or 0),
            total_files=int(data.get('totalFiles') or 0),
            files_imported=int(data.get('filesImported') or 0),
            errors=tuple(str(e) for e in (data.get('errors') or [])),
        )


@dataclass(frozen=True)
class Activity:
    """Snapshot of a long-running job's progress record."""
    id: str
    status: ActivityStatus
    progress: int = -1 # 0-100, -1 for indeterminate
    type: Optional[str] = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def report(self) -> Optional[ImportReport]:
        raw = self.metadata.get('report') if self.metadata else None
        if isinstance(raw, ImportReport):
            return raw
        if isinstance(raw, dict):
            return ImportReport.from_dict(raw)
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        progress = _optional_int(data.get('progress'))
        return cls(
            id=str(data.get('id', '')),
            status=ActivityStatus(data.get('status', 'pending')),
            progress=-1 if progress is None else progress,
            type=data.get('type'),
            title=data.get('title') or None,
            subtitle=data.get('subtitle') or None,
            started_at=data.get('startedAt'),
            completed_at=data.get('completedAt'),
            metadata=dict(data.get('metadata') or {}),
        )


# --- Configuration import ---

@dataclass(frozen=True)
class ConfigPreviewItem:
    source_id: int
    source_name: str
    source_type: str
    status: ConfigItemStatus
    mapped_type: Optional[str] = None # Target implementation the source entity maps onto
    status_reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigPreviewItem":
        return cls(
            source_id=int(data['sourceId']),
            source_name=str(data.get('sourceName', '')),
            source_type=str(data.get('sourceType', '')),
            status=ConfigItemStatus(data.get('status', 'unsupported')),
            mapped_type=data.get('mappedType') or None,
            status_reason=data.get('statusReason') or None,
        )


@dataclass(frozen=True)
class NamingConfigPreview:
    status: str # 'same' or 'different'
    source: Dict[str, Any] = field(default_factory=dict)

    @property
    def differs(self) -> bool:
        return self.status == 'different'


CONFIG_CATEGORIES = ('download_clients', 'indexers', 'notifications', 'quality_profiles')


@dataclass(frozen=True)
class ConfigPreview:
    download_clients: tuple = ()
    indexers: tuple = ()
    notifications: tuple = ()
    quality_profiles: tuple = ()
    naming_config: Optional[NamingConfigPreview] = None
    warnings: tuple = ()

    def category(self, name: str) -> tuple:
        if name not in CONFIG_CATEGORIES:
            raise KeyError(name)
        return getattr(self, name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigPreview":
        naming = data.get('namingConfig')
        return cls(
            download_clients=tuple(ConfigPreviewItem.from_dict(i) for i in (data.get('downloadClients') or [])),
            indexers=tuple(ConfigPreviewItem.from_dict(i) for i in (data.get('indexers') or [])),
            notifications=tuple(ConfigPreviewItem.from_dict(i) for i in (data.get('notifications') or [])),
            quality_profiles=tuple(ConfigPreviewItem.from_dict(i) for i in (data.get('qualityProfiles') or [])),
            naming_config=NamingConfigPreview(status=str(naming.get('status', 'same')), source=dict(naming.get('source') or {})) if isinstance(naming, dict) else None,
            warnings=tuple(str(w) for w in (data.get('warnings') or [])),
        )


@dataclass(frozen=True)
class ConfigImportReport:
    download_clients_created: int = 0
    download_clients_skipped: int = 0
    indexers_created: int = 0
    indexers_skipped: int = 0
    notifications_created: int = 0
    notifications_skipped: int = 0
    quality_profiles_created: int = 0
    quality_profiles_skipped: int = 0
    naming_config_imported: bool = False
    warnings: tuple = ()
    errors: tuple = ()

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigImportReport":
        return cls(
            download_clients_created=int(data.get('downloadClientsCreated') or 0),
            download_clients_skipped=int(data.get('downloadClientsSkipped') or 0),
            indexers_created=int(data.get('indexersCreated') or 0),
            indexers_skipped=int(data.get('indexersSkipped') or 0),
            notifications_created=int(data.get('notificationsCreated') or 0),
            notifications_skipped=int(data.get('notificationsSkipped') or 0),
            quality_profiles_created=int(data.get('qualityProfilesCreated') or 0),
            quality_profiles_skipped=int(data.get('qualityProfilesSkipped') or 0),
            naming_config_imported=bool(data.get('namingConfigImported', False)),
            warnings=tuple(str(w) for w in (data.get('warnings') or [])),
            errors=tuple(str(e) for e in (data.get('errors') or [])),
        )
