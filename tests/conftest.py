# tests/conftest.py
import pytest
from pathlib import Path
from unittest.mock import MagicMock
import sys
import argparse

# Ensure the app package is findable by pytest by adding the project root to the path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from migrate_app.enums import ActivityStatus, PreviewStatus
from migrate_app.models import (
    Activity, ImportPreview, ImportSummary, MoviePreview, SeriesPreview,
    SourceRootFolder, SourceQualityProfile, TargetRootFolder, TargetQualityProfile,
    ConfigPreview, ConfigImportReport
)
from migrate_app.target_client import MigrationClient


# --- Mock Config Fixture ---
@pytest.fixture
def mock_cfg_helper(mocker):
    mock_args = argparse.Namespace(profile='default')
    mock_config_manager = MagicMock()
    class MockConfigHelper:
        def __init__(self, manager, args): self.manager = manager; self.args = args; self.profile = getattr(args, 'profile', 'default') or 'default'
        def __call__(self, key, default_value=None, arg_value=None):
             if arg_value is not None: return arg_value
             if key in self.manager._mock_values: return self.manager._mock_values[key]
             return default_value
        def get_api_key(self, service_name): return self.manager._mock_apikeys.get(service_name)
        def get_list(self, key, default_value=None):
            val = self(key, default_value)
            if isinstance(val, str): return [i.strip() for i in val.split(',') if i.strip()]
            if isinstance(val, list): return val
            return default_value if isinstance(default_value, list) else []
    mock_config_manager._mock_values = {}
    mock_config_manager._mock_apikeys = {}
    helper = MockConfigHelper(mock_config_manager, mock_args)
    helper.manager = mock_config_manager
    return helper


# --- Reference Data Fixtures ---
@pytest.fixture
def source_roots():
    return [SourceRootFolder(1, "/movies"), SourceRootFolder(2, "/media/4k")]

@pytest.fixture
def source_profiles():
    return [
        SourceQualityProfile(1, "HD-1080p", in_use=True),
        SourceQualityProfile(2, "Ultra-HD", in_use=True),
        SourceQualityProfile(3, "SD", in_use=False),
    ]

@pytest.fixture
def target_roots():
    return [TargetRootFolder(10, "/movies"), TargetRootFolder(11, "/data/4k")]

@pytest.fixture
def target_profiles():
    return [TargetQualityProfile(100, "hd-1080p"), TargetQualityProfile(101, "Ultra-HD")]


def make_movie_preview():
    movies = (
        MoviePreview(title="Alien", tmdb_id=348, status=PreviewStatus.NEW, year=1979, has_file=True, quality="Bluray-1080p", monitored=True, quality_profile_id=1),
        MoviePreview(title="Heat", tmdb_id=949, status=PreviewStatus.NEW, year=1995, has_file=False, quality_profile_id=2),
        MoviePreview(title="Ronin", tmdb_id=8195, status=PreviewStatus.DUPLICATE, year=1998, has_file=True, quality="WEBDL-720p", quality_profile_id=1),
        MoviePreview(title="Mystery", tmdb_id=None, status=PreviewStatus.SKIP, skip_reason="No TMDb ID"),
    )
    summary = ImportSummary(total_movies=4, new_movies=2, duplicate_movies=1, skipped_movies=1, total_files=2)
    return ImportPreview(movies=movies, series=(), summary=summary)


def make_series_preview():
    series = (
        SeriesPreview(title="Dark", tvdb_id=334824, status=PreviewStatus.NEW, episode_count=26, file_count=26, quality_profile_id=1),
        SeriesPreview(title="Lost", tvdb_id=73739, status=PreviewStatus.DUPLICATE, episode_count=121, file_count=0),
    )
    summary = ImportSummary(total_series=2, total_episodes=147, new_series=1, duplicate_series=1, total_files=26)
    return ImportPreview(movies=(), series=series, summary=summary)


@pytest.fixture
def movie_preview():
    return make_movie_preview()

@pytest.fixture
def series_preview():
    return make_series_preview()


# --- Fake Client ---
class FakeMigrationClient(MigrationClient):
    """In-memory MigrationClient; set the *_error attributes to make a call raise."""

    def __init__(self, source_roots=None, source_profiles=None, target_roots=None, target_profiles=None,
                 preview=None, activities=None, job_id="arrimport"):
        self.source_roots = source_roots if source_roots is not None else [SourceRootFolder(1, "/movies")]
        self.source_profiles = source_profiles if source_profiles is not None else [SourceQualityProfile(1, "HD-1080p", in_use=True)]
        self.target_roots = target_roots if target_roots is not None else [TargetRootFolder(10, "/movies")]
        self.target_profiles = target_profiles if target_profiles is not None else [TargetQualityProfile(100, "HD-1080p")]
        self.preview = preview if preview is not None else make_movie_preview()
        self.activities = activities if activities is not None else [
            Activity(id=job_id, status=ActivityStatus.IN_PROGRESS, progress=50, title="Importing movies"),
            Activity(id=job_id, status=ActivityStatus.COMPLETED, progress=100, metadata={'report': {'moviesCreated': 2, 'totalFiles': 1, 'filesImported': 1}}),
        ]
        self.job_id = job_id
        self.detected_path = None
        self.config_preview = ConfigPreview()
        self.config_report = ConfigImportReport()

        self.connect_error = None
        self.disconnect_error = None
        self.fetch_errors = {}
        self.preview_error = None
        self.execute_error = None
        self.progress_error = None

        self.calls = []
        self.submissions = []
        self.config_selections = []

    async def detect_source_database(self, source_type):
        self.calls.append('detect_source_database')
        return self.detected_path

    async def connect(self, config):
        self.calls.append('connect')
        if self.connect_error: raise self.connect_error

    async def disconnect(self):
        self.calls.append('disconnect')
        if self.disconnect_error: raise self.disconnect_error

    async def _fetch(self, name, value):
        self.calls.append(name)
        if name in self.fetch_errors: raise self.fetch_errors[name]
        return value

    async def fetch_source_root_folders(self):
        return await self._fetch('fetch_source_root_folders', self.source_roots)

    async def fetch_source_quality_profiles(self):
        return await self._fetch('fetch_source_quality_profiles', self.source_profiles)

    async def fetch_target_root_folders(self):
        return await self._fetch('fetch_target_root_folders', self.target_roots)

    async def fetch_target_quality_profiles(self):
        return await self._fetch('fetch_target_quality_profiles', self.target_profiles)

    async def compute_preview(self, mappings):
        self.calls.append('compute_preview')
        if self.preview_error: raise self.preview_error
        return self.preview

    async def execute_import(self, mappings):
        self.calls.append('execute_import')
        self.submissions.append(mappings)
        if self.execute_error: raise self.execute_error
        return self.job_id

    async def observe_progress(self, job_id):
        self.calls.append('observe_progress')
        for activity in self.activities:
            yield activity
        if self.progress_error: raise self.progress_error

    async def fetch_config_preview(self):
        self.calls.append('fetch_config_preview')
        return self.config_preview

    async def execute_config_import(self, selections):
        self.calls.append('execute_config_import')
        self.config_selections.append(selections)
        return self.config_report


@pytest.fixture
def fake_client():
    return FakeMigrationClient()
