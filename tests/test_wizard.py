# tests/test_wizard.py

import asyncio
import logging
import pytest

from conftest import FakeMigrationClient
from migrate_app.enums import ActivityStatus, ImportOutcomeKind, SourceType, WizardStep
from migrate_app.exceptions import (
    ImportSubmitError, PreviewError, ReferenceFetchError, SourceConnectionError, WizardStateError
)
from migrate_app.models import (
    Activity, ApiConnection, SqliteConnection,
    SourceQualityProfile, SourceRootFolder, TargetRootFolder, TargetQualityProfile
)
from migrate_app.wizard import MigrationWizard

SQLITE = SqliteConnection(source_type=SourceType.RADARR, db_path="/config/radarr.db")


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def wizard(fake_client):
    return MigrationWizard(fake_client)


async def _to_preview(wizard):
    assert await wizard.connect(SQLITE)
    assert await wizard.request_preview()


async def _to_importing(wizard):
    await _to_preview(wizard)
    assert await wizard.start_import()


# --- Connect ---

def test_initial_state(wizard):
    assert wizard.step is WizardStep.CONNECT
    assert wizard.connected is False
    assert wizard.source_type is SourceType.RADARR

def test_connect_loads_reference_lists(wizard, fake_client):
    assert run(wizard.connect(SQLITE)) is True
    assert wizard.step is WizardStep.MAPPING
    assert wizard.connected is True
    assert wizard.connection == SQLITE
    assert wizard.gate.root_folder_mapping == {"/movies": 10}
    assert wizard.gate.quality_profile_mapping == {1: 100}
    assert wizard.target_quality_profiles == fake_client.target_profiles
    assert {'fetch_source_root_folders', 'fetch_source_quality_profiles',
            'fetch_target_root_folders', 'fetch_target_quality_profiles'} <= set(fake_client.calls)

def test_connect_adopts_connection_source_type(wizard):
    config = ApiConnection(source_type=SourceType.SONARR, url="http://sonarr:8989", api_key="k")
    run(wizard.connect(config))
    assert wizard.source_type is SourceType.SONARR

def test_connect_failure_stays_on_connect(wizard, fake_client):
    fake_client.connect_error = SourceConnectionError("Could not connect to Radarr")
    assert run(wizard.connect(SQLITE)) is False
    assert wizard.step is WizardStep.CONNECT
    assert wizard.connected is False
    assert wizard.connection_error == "Could not connect to Radarr"
    assert wizard.loading is False
    assert 'fetch_source_root_folders' not in fake_client.calls

def test_reference_fetch_failure_blocks_mapping(wizard, fake_client):
    fake_client.fetch_errors['fetch_source_quality_profiles'] = ReferenceFetchError("Failed to load source quality profiles")
    assert run(wizard.connect(SQLITE)) is False
    assert wizard.step is WizardStep.CONNECT
    assert wizard.connected is True
    assert wizard.reference_error == "Failed to load source quality profiles"

def test_target_fetch_failure_blocks_mapping(wizard, fake_client):
    fake_client.fetch_errors['fetch_target_root_folders'] = ReferenceFetchError("target down")
    assert run(wizard.connect(SQLITE)) is False
    assert wizard.step is WizardStep.CONNECT
    assert wizard.reference_error == "target down"

def test_none_reference_result_blocks_mapping(wizard, fake_client):
    fake_client.source_roots = None
    assert run(wizard.connect(SQLITE)) is False
    assert "no data returned" in wizard.reference_error

def test_empty_reference_lists_are_allowed():
    client = FakeMigrationClient(source_roots=[], source_profiles=[], target_roots=[], target_profiles=[])
    wizard = MigrationWizard(client)
    assert run(wizard.connect(SQLITE)) is True
    assert wizard.gate.can_proceed is True

def test_retry_reference_fetch_after_failure(wizard, fake_client):
    fake_client.fetch_errors['fetch_source_root_folders'] = ReferenceFetchError("flaky")
    assert run(wizard.connect(SQLITE)) is False
    fake_client.fetch_errors.clear()
    assert run(wizard.retry_reference_fetch()) is True
    assert wizard.step is WizardStep.MAPPING
    assert wizard.reference_error is None

def test_connect_when_connected_only_refetches(wizard, fake_client):
    fake_client.fetch_errors['fetch_source_root_folders'] = ReferenceFetchError("flaky")
    run(wizard.connect(SQLITE))
    fake_client.fetch_errors.clear()
    assert run(wizard.connect(SQLITE)) is True
    assert fake_client.calls.count('connect') == 1

def test_retry_reference_fetch_requires_connection(wizard):
    with pytest.raises(WizardStateError):
        run(wizard.retry_reference_fetch())

def test_reference_lists_fetched_concurrently():
    started = []
    gate = {}

    class SlowClient(FakeMigrationClient):
        async def _fetch(self, name, value):
            started.append(name)
            if len(started) == 4:
                gate['event'].set()
            await asyncio.wait_for(gate['event'].wait(), timeout=1)
            return value

    async def scenario():
        gate['event'] = asyncio.Event()
        wizard = MigrationWizard(SlowClient())
        return await wizard.connect(SQLITE)

    # Each fetch waits until all four have started; sequential fetching would time out
    assert run(scenario()) is True
    assert len(started) == 4

def test_set_source_type(wizard):
    listener_calls = []
    wizard.subscribe(lambda w: listener_calls.append(w.source_type))
    wizard.set_source_type(SourceType.SONARR)
    assert wizard.source_type is SourceType.SONARR
    assert listener_calls == [SourceType.SONARR]

def test_set_source_type_rejected_after_connect(wizard, fake_client):
    fake_client.fetch_errors['fetch_source_root_folders'] = ReferenceFetchError("x")
    run(wizard.connect(SQLITE))
    with pytest.raises(WizardStateError):
        wizard.set_source_type(SourceType.SONARR)

def test_detect_source_database(wizard, fake_client):
    fake_client.detected_path = "/config/radarr.db"
    assert run(wizard.detect_source_database()) == "/config/radarr.db"

def test_detect_source_database_failure_is_best_effort(wizard, fake_client, mocker):
    mocker.patch.object(fake_client, 'detect_source_database', side_effect=RuntimeError("nope"))
    assert run(wizard.detect_source_database()) is None


# --- Mapping -> Preview ---

def test_request_preview_blocked_when_gate_incomplete():
    client = FakeMigrationClient(target_roots=[TargetRootFolder(10, "/elsewhere")])
    wizard = MigrationWizard(client)
    run(wizard.connect(SQLITE))
    assert wizard.gate.can_proceed is False
    assert run(wizard.request_preview()) is False
    assert 'compute_preview' not in client.calls
    assert wizard.step is WizardStep.MAPPING
    assert wizard.preview_error is None

def test_request_preview_success(wizard):
    run(_to_preview(wizard))
    assert wizard.step is WizardStep.PREVIEW
    assert wizard.selection.selected == {348, 949}
    assert wizard.mappings.root_folder_mapping == {"/movies": 10}

def test_request_preview_failure_stays_on_mapping(wizard, fake_client):
    run(wizard.connect(SQLITE))
    fake_client.preview_error = PreviewError("Source database is locked")
    assert run(wizard.request_preview()) is False
    assert wizard.step is WizardStep.MAPPING
    assert wizard.preview_error == "Source database is locked"
    assert wizard.loading is False

def test_disabled_profiles_not_sent_to_preview():
    client = FakeMigrationClient(
        source_profiles=[SourceQualityProfile(1, "HD-1080p", in_use=True), SourceQualityProfile(2, "SD", in_use=True)],
        target_profiles=[TargetQualityProfile(100, "HD-1080p"), TargetQualityProfile(101, "SD")],
    )
    captured = []
    original = client.compute_preview

    async def capture(mappings):
        captured.append(mappings)
        return await original(mappings)

    client.compute_preview = capture
    wizard = MigrationWizard(client)
    run(wizard.connect(SQLITE))
    wizard.gate.set_profile_enabled(2, False)
    run(wizard.request_preview())
    assert captured[0].quality_profile_mapping == {1: 100}


# --- Preview -> Importing ---

def test_start_import_sends_selection(wizard, fake_client):
    run(_to_preview(wizard))
    wizard.selection.toggle_one(949)
    assert run(wizard.start_import()) is True
    submission = fake_client.submissions[0]
    assert submission.selected_movie_tmdb_ids == [348]
    assert submission.selected_series_tvdb_ids is None
    assert wizard.step is WizardStep.IMPORTING
    assert wizard.selection is None
    assert wizard.submitted_count == 1
    assert wizard.job_id == "arrimport"

def test_start_import_with_empty_selection_is_blocked(wizard, fake_client):
    run(_to_preview(wizard))
    wizard.selection.toggle_all()
    assert run(wizard.start_import()) is False
    assert 'execute_import' not in fake_client.calls
    assert wizard.step is WizardStep.PREVIEW

def test_start_import_failure_keeps_selection(wizard, fake_client):
    run(_to_preview(wizard))
    wizard.selection.toggle_one(949)
    fake_client.execute_error = ImportSubmitError("Target rejected import")
    assert run(wizard.start_import()) is False
    assert wizard.step is WizardStep.PREVIEW
    assert wizard.import_error == "Target rejected import"
    assert wizard.selection.selected == {348}

def test_monitor_progress_reaches_outcome(wizard):
    run(_to_importing(wizard))
    outcome = run(wizard.monitor_progress())
    assert outcome.kind is ImportOutcomeKind.SUCCESS
    assert wizard.is_finished is True

def test_monitor_progress_ignores_updates_after_terminal():
    client = FakeMigrationClient(activities=[
        Activity(id="arrimport", status=ActivityStatus.COMPLETED, progress=100),
        Activity(id="arrimport", status=ActivityStatus.IN_PROGRESS, progress=10),
    ])
    wizard = MigrationWizard(client)
    run(_to_importing(wizard))
    run(wizard.monitor_progress())
    assert wizard.monitor.progress_value == 100
    assert wizard.is_finished is True

def test_monitor_progress_feed_error_can_resume(wizard, fake_client):
    fake_client.activities = [Activity(id="arrimport", status=ActivityStatus.IN_PROGRESS, progress=30)]
    fake_client.progress_error = RuntimeError("connection reset")
    run(_to_importing(wizard))
    assert run(wizard.monitor_progress()) is None
    assert "connection reset" in wizard.import_error
    assert wizard.step is WizardStep.IMPORTING

    fake_client.progress_error = None
    fake_client.activities = [Activity(id="arrimport", status=ActivityStatus.COMPLETED, progress=100)]
    assert run(wizard.monitor_progress()).kind is ImportOutcomeKind.COMPLETE
    assert wizard.import_error is None

def test_monitor_progress_stream_ending_early(wizard, fake_client):
    fake_client.activities = [Activity(id="arrimport", status=ActivityStatus.IN_PROGRESS, progress=30)]
    run(_to_importing(wizard))
    assert run(wizard.monitor_progress()) is None
    assert wizard.import_error == "Progress feed ended before the import finished."

def test_partial_failure_outcome_uses_error_limit():
    errors = [f"Movie {i} failed" for i in range(75)]
    client = FakeMigrationClient(activities=[
        Activity(id="arrimport", status=ActivityStatus.COMPLETED, metadata={'report': {'moviesCreated': 1, 'errors': errors}}),
    ])
    wizard = MigrationWizard(client, error_list_limit=50)
    run(_to_importing(wizard))
    outcome = run(wizard.monitor_progress())
    assert outcome.kind is ImportOutcomeKind.PARTIAL_FAILURE
    assert outcome.hidden_error_count == 25


# --- Done / abort ---

def test_handle_done_requires_finished_import(wizard):
    run(_to_importing(wizard))
    with pytest.raises(WizardStateError):
        run(wizard.handle_done())

def test_handle_done_resets_even_if_disconnect_fails(wizard, fake_client, caplog):
    run(_to_importing(wizard))
    run(wizard.monitor_progress())
    fake_client.disconnect_error = RuntimeError("session already gone")
    with caplog.at_level(logging.WARNING, logger="migrate_app"):
        run(wizard.handle_done())
    assert 'disconnect' in fake_client.calls
    assert wizard.step is WizardStep.CONNECT
    assert wizard.connected is False
    assert wizard.preview is None
    assert wizard.monitor is None
    assert wizard.gate.root_folder_mapping == {}
    assert "session already gone" in caplog.text

def test_abort_from_mapping(wizard, fake_client):
    run(wizard.connect(SQLITE))
    run(wizard.abort())
    assert fake_client.calls[-1] == 'disconnect'
    assert wizard.step is WizardStep.CONNECT
    assert wizard.connection is None

def test_abort_while_importing_logs_warning(wizard, caplog):
    run(_to_importing(wizard))
    with caplog.at_level(logging.WARNING, logger="migrate_app"):
        run(wizard.abort())
    assert "will continue on the server" in caplog.text
    assert wizard.step is WizardStep.CONNECT

def test_abort_before_connect_still_attempts_disconnect(wizard, fake_client):
    run(wizard.abort())
    assert fake_client.calls == ['disconnect']

def test_reset_restores_initial_source_type(fake_client):
    wizard = MigrationWizard(fake_client, source_type=SourceType.SONARR)
    run(wizard.connect(ApiConnection(source_type=SourceType.RADARR, url="http://r", api_key="k")))
    run(wizard.abort())
    assert wizard.source_type is SourceType.SONARR


# --- Step guards and notifications ---

@pytest.mark.parametrize("action", ["request_preview", "start_import", "monitor_progress"])
def test_actions_from_wrong_step_raise(wizard, action):
    with pytest.raises(WizardStateError):
        run(getattr(wizard, action)())

def test_connect_from_wrong_step_raises(wizard):
    run(wizard.connect(SQLITE))
    with pytest.raises(WizardStateError):
        run(wizard.connect(SQLITE))

def test_subscribe_and_unsubscribe(wizard):
    steps = []
    unsubscribe = wizard.subscribe(lambda w: steps.append(w.step))
    run(wizard.connect(SQLITE))
    assert steps[-1] is WizardStep.MAPPING
    unsubscribe()
    count = len(steps)
    run(wizard.request_preview())
    assert len(steps) == count
    unsubscribe()
