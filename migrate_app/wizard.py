# migrate_app/wizard.py
"""
Step state machine for one migration run: connect -> mapping -> preview -> importing.

Actions are coroutines that return True when the wizard advanced. Failures of
the collaborator are caught here and stored as a message on the step that
triggered them (`connection_error`, `reference_error`, `preview_error`,
`import_error`), so the caller can show it and let the user retry. Calling an
action from the wrong step is a programming error and raises WizardStateError.
"""
import asyncio
import logging
from typing import Callable, List, Optional

from .enums import SourceType, WizardStep
from .exceptions import WizardStateError
from .import_monitor import ImportMonitor, ImportOutcome
from .mapping_state import MappingGate
from .models import (
    ConnectionConfig, ImportMappings, ImportPreview,
    TargetRootFolder, TargetQualityProfile, describe_connection
)
from .preview_state import PreviewSelection
from .target_client import MigrationClient

log = logging.getLogger(__name__)

Listener = Callable[["MigrationWizard"], None]


class MigrationWizard:
    def __init__(self, client: MigrationClient, source_type: SourceType = SourceType.RADARR,
                 auto_match_enabled: bool = True, enable_unused_profiles: bool = False,
                 error_list_limit: int = 50):
        self.client = client
        self._initial_source_type = source_type
        self._auto_match_enabled = auto_match_enabled
        self._enable_unused_profiles = enable_unused_profiles
        self._error_list_limit = error_list_limit
        self._listeners: List[Listener] = []
        self._reset_state()

    def _reset_state(self) -> None:
        self.step = WizardStep.CONNECT
        self.source_type = self._initial_source_type
        self.connection: Optional[ConnectionConfig] = None
        self.connected = False
        self.loading = False

        self.connection_error: Optional[str] = None
        self.reference_error: Optional[str] = None
        self.preview_error: Optional[str] = None
        self.import_error: Optional[str] = None

        self.gate = MappingGate(auto_match_enabled=self._auto_match_enabled,
                                enable_unused_profiles=self._enable_unused_profiles)
        self.target_root_folders: List[TargetRootFolder] = []
        self.target_quality_profiles: List[TargetQualityProfile] = []
        self.mappings: Optional[ImportMappings] = None
        self.preview: Optional[ImportPreview] = None
        self.selection: Optional[PreviewSelection] = None
        self.submitted_count = 0
        self.job_id: Optional[str] = None
        self.monitor: Optional[ImportMonitor] = None

    # --- Change notification ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _require_step(self, *allowed: WizardStep) -> None:
        if self.step not in allowed:
            names = ", ".join(str(s) for s in allowed)
            raise WizardStateError(f"Action not allowed in step '{self.step}' (expected: {names}).")

    # --- Connect ---

    def set_source_type(self, source_type: SourceType) -> None:
        self._require_step(WizardStep.CONNECT)
        if self.connected:
            raise WizardStateError("Source type cannot change after connecting.")
        if source_type is not self.source_type:
            self.source_type = source_type
            self.connection_error = None
            self._notify()

    async def detect_source_database(self) -> Optional[str]:
        """Best-effort lookup of the source database at its default location."""
        try:
            found = await self.client.detect_source_database(self.source_type)
        except Exception as e:
            log.debug(f"Database detection for {self.source_type} failed: {e}")
            return None
        if found:
            log.info(f"Database found at default location: {found}")
        return found

    async def connect(self, config: ConnectionConfig) -> bool:
        self._require_step(WizardStep.CONNECT)
        if self.connected:
            # Already connected; only the reference lists are missing
            return await self.retry_reference_fetch()

        self.source_type = config.source_type
        self.connection_error = None
        self.reference_error = None
        self.loading = True
        self._notify()
        try:
            await self.client.connect(config)
        except Exception as e:
            self.connection_error = str(e)
            log.warning(f"Connection to {describe_connection(config)} failed: {e}")
            return False
        finally:
            self.loading = False
        self.connection = config
        self.connected = True
        log.info(f"Connected to {describe_connection(config)}.")
        return await self._load_reference_lists()

    async def retry_reference_fetch(self) -> bool:
        self._require_step(WizardStep.CONNECT)
        if not self.connected:
            raise WizardStateError("Cannot load reference lists before connecting.")
        return await self._load_reference_lists()

    async def _load_reference_lists(self) -> bool:
        self.reference_error = None
        self.loading = True
        self._notify()
        try:
            results = await asyncio.gather(
                self.client.fetch_source_root_folders(),
                self.client.fetch_source_quality_profiles(),
                self.client.fetch_target_root_folders(),
                self.client.fetch_target_quality_profiles(),
                return_exceptions=True,
            )
        finally:
            self.loading = False

        labels = ("source root folders", "source quality profiles", "target root folders", "target quality profiles")
        for label, result in zip(labels, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                self.reference_error = str(result) or f"Failed to load {label}"
            elif result is None:
                self.reference_error = f"Failed to load {label}: no data returned"
            if self.reference_error:
                log.warning(f"Loading reference lists failed: {self.reference_error}")
                self._notify()
                return False

        source_roots, source_profiles, target_roots, target_profiles = results
        self.target_root_folders = list(target_roots)
        self.target_quality_profiles = list(target_profiles)
        self.gate.sync_reference_lists(source_roots, source_profiles, target_roots, target_profiles)
        self.step = WizardStep.MAPPING
        log.info(f"Loaded {len(source_roots)} root folder(s) and {len(source_profiles)} quality profile(s) from {self.source_type}.")
        self._notify()
        return True

    # --- Mapping -> Preview ---

    async def request_preview(self) -> bool:
        self._require_step(WizardStep.MAPPING)
        if not self.gate.can_proceed:
            log.info("Mapping incomplete; preview not requested.")
            return False

        mappings = self.gate.build_mappings()
        self.preview_error = None
        self.loading = True
        self._notify()
        try:
            preview = await self.client.compute_preview(mappings)
        except Exception as e:
            self.preview_error = str(e)
            log.warning(f"Preview request failed: {e}")
            self._notify()
            return False
        finally:
            self.loading = False

        self.mappings = mappings
        self.preview = preview
        self.selection = PreviewSelection(preview, self.source_type)
        self.step = WizardStep.PREVIEW
        log.info(f"Preview ready: {len(self.selection.items)} {self.source_type.media_noun}, {len(self.selection.new_ids)} new.")
        self._notify()
        return True

    # --- Preview -> Importing ---

    async def start_import(self) -> bool:
        self._require_step(WizardStep.PREVIEW)
        if self.selection is None or self.mappings is None:
            raise WizardStateError("No preview loaded.")
        submission = self.selection.build_submission(self.mappings)
        if submission is None:
            return False

        self.import_error = None
        self.loading = True
        self._notify()
        try:
            job_id = await self.client.execute_import(submission)
        except Exception as e:
            self.import_error = str(e)
            log.warning(f"Import submission failed: {e}")
            self._notify()
            return False
        finally:
            self.loading = False

        self.submitted_count = len(self.selection.selected)
        self.selection = None
        self.job_id = job_id
        self.monitor = ImportMonitor(job_id, error_list_limit=self._error_list_limit)
        self.step = WizardStep.IMPORTING
        log.info(f"Import job '{job_id}' submitted with {self.submitted_count} {self.source_type.media_noun}.")
        self._notify()
        return True

    async def monitor_progress(self) -> Optional[ImportOutcome]:
        """Follows the job's activity until it is terminal. Safe to call again after a dropped feed."""
        self._require_step(WizardStep.IMPORTING)
        if self.monitor is None or self.job_id is None:
            raise WizardStateError("No import job to monitor.")
        if self.monitor.is_finished:
            return self.monitor.outcome

        self.import_error = None
        try:
            outcome = await self.monitor.watch(self.client.observe_progress(self.job_id),
                                               on_update=lambda _monitor: self._notify())
        except Exception as e:
            self.import_error = f"Lost track of import progress: {e}"
            log.warning(self.import_error)
            self._notify()
            return None
        if outcome is None:
            self.import_error = "Progress feed ended before the import finished."
        self._notify()
        return outcome

    @property
    def is_finished(self) -> bool:
        return self.step is WizardStep.IMPORTING and self.monitor is not None and self.monitor.is_finished

    # --- Reset ---

    async def handle_done(self) -> None:
        if not self.is_finished:
            raise WizardStateError("The import has not finished yet.")
        await self._teardown()

    async def abort(self) -> None:
        """Leaves the wizard from any step. A submitted job keeps running server-side."""
        if self.step is WizardStep.IMPORTING and not self.is_finished:
            log.warning(f"Leaving while import job '{self.job_id}' is still running; it will continue on the server.")
        await self._teardown()

    async def _teardown(self) -> None:
        try:
            await self.client.disconnect()
        except Exception as e:
            log.warning(f"Disconnecting from source failed (ignored): {e}")
        finally:
            self._reset_state()
            self._notify()
