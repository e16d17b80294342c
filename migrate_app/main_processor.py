# migrate_app/main_processor.py
import argparse
import logging
from typing import List, Optional, Tuple

from rich.console import Console
from rich.prompt import Confirm, Prompt

from .config_import import ConfigImporter
from .config_manager import ConfigHelper
from .enums import SourceType, ConnectionMethod, PreviewFilter, WizardStep, ImportOutcomeKind
from .exceptions import MigratorError, MappingError, UserAbortError, ConfigError
from .import_monitor import ImportOutcome
from .models import ApiConnection, ConnectionConfig, SqliteConnection
from .preview_state import build_profile_name_map
from .target_client import MigrationClient
from .ui_utils import (
    build_root_folder_table, build_profile_table, build_target_choices_table,
    build_summary_panel, build_filter_bar, build_preview_table,
    create_import_progress, update_import_progress, build_outcome_panel,
    build_config_preview_table, build_config_report_panel
)
from .wizard import MigrationWizard

log = logging.getLogger(__name__)


def parse_pair(raw: str, flag: str) -> Tuple[str, int]:
    """Splits 'SOURCE=TARGET_ID' as given on the command line."""
    source, sep, target = raw.rpartition('=')
    if not sep or not source:
        raise ConfigError(f"{flag} expects SOURCE=TARGET_ID, got '{raw}'")
    try:
        return source, int(target)
    except ValueError:
        raise ConfigError(f"{flag} target must be a numeric id, got '{target}'")


class MigrationProcessor:
    """Drives a MigrationWizard from the terminal, interactively or with --auto."""

    def __init__(self, args: argparse.Namespace, cfg_helper: ConfigHelper, client: MigrationClient,
                 console: Optional[Console] = None):
        self.args = args
        self.cfg = cfg_helper
        self.client = client
        self.console = console or Console(quiet=getattr(args, 'quiet', False))
        self.auto = bool(getattr(args, 'auto', False))

        source_type = SourceType(self.cfg('default_source_type', 'radarr', arg_value=getattr(args, 'source_type', None)))
        self.wizard = MigrationWizard(
            client,
            source_type=source_type,
            auto_match_enabled=bool(self.cfg('auto_match', True)),
            enable_unused_profiles=bool(self.cfg('enable_unused_profiles', False)),
            error_list_limit=int(self.cfg('error_list_limit', 50)),
        )
        self.preview_filter = PreviewFilter(getattr(args, 'filter', None) or 'all')
        self.view_mode = str(self.cfg('preview_view_mode', 'table'))
        self.preview_columns: List[str] = self.cfg.get_list('preview_columns')
        self.page_size = int(self.cfg('preview_page_size', 50))

    def _ask(self, prompt: str, default: Optional[str] = None, password: bool = False) -> str:
        if default:
            return Prompt.ask(prompt, default=default, password=password, show_default=not password, console=self.console)
        return Prompt.ask(prompt, password=password, console=self.console)

    async def run(self) -> Optional[ImportOutcome]:
        try:
            await self._connect_step()
            self._mapping_step()
            if not await self._request_preview():
                return None
            self._show_preview()
            if getattr(self.args, 'dry_run', False):
                self.console.print("[yellow]Dry run: stopping before import.[/yellow]")
                await self.wizard.abort()
                return None
            if not self.auto:
                self._selection_step()
            outcome = await self._import_step()
            if getattr(self.args, 'with_config', False):
                await self._config_import_step()
            await self.wizard.handle_done()
            return outcome
        finally:
            if self.wizard.step is not WizardStep.CONNECT or self.wizard.connected:
                await self.wizard.abort()

    # --- Connect ---

    async def _build_connection(self) -> ConnectionConfig:
        source_type = self.wizard.source_type
        method_raw = getattr(self.args, 'method', None)
        if getattr(self.args, 'url', None):
            method_raw = 'api'
        elif getattr(self.args, 'db_path', None):
            method_raw = 'sqlite'
        method = ConnectionMethod(self.cfg('default_connection_method', 'sqlite', arg_value=method_raw))

        if method is ConnectionMethod.API:
            url = self.cfg('source_url', None, arg_value=getattr(self.args, 'url', None))
            api_key = getattr(self.args, 'api_key', None) or self.cfg.get_api_key('source')
            if not self.auto:
                url = self._ask(f"{source_type} URL", url)
                api_key = self._ask(f"{source_type} API key", api_key, password=True)
            if not url or not api_key:
                raise ConfigError("An API connection needs both a URL and an API key (set SOURCE_API_KEY or pass --api-key).")
            return ApiConnection(source_type=source_type, url=url.rstrip('/'), api_key=api_key)

        db_path = self.cfg('source_db_path', None, arg_value=getattr(self.args, 'db_path', None))
        if not db_path:
            with self.console.status("Looking for the source database..."):
                db_path = await self.wizard.detect_source_database()
            if db_path:
                self.console.print(f"[green]Database found at default location:[/green] {db_path}")
            else:
                self.console.print("[yellow]Database not found at default locations. Please enter the path manually.[/yellow]")
        if not self.auto:
            db_path = self._ask(f"Path to {source_type} database", db_path)
        if not db_path:
            raise ConfigError("No source database path given (use --db-path).")
        return SqliteConnection(source_type=source_type, db_path=db_path)

    async def _connect_step(self) -> None:
        while True:
            config = await self._build_connection()
            with self.console.status("Connecting..."):
                connected = await self.wizard.connect(config)
            if connected:
                return
            if self.wizard.connection_error:
                self.console.print(f"[bold red]Connection failed:[/bold red] {self.wizard.connection_error}")
            while self.wizard.connected and self.wizard.reference_error:
                self.console.print(f"[bold red]Failed to load source configuration:[/bold red] {self.wizard.reference_error}")
                if self.auto or not Confirm.ask("Retry loading?", default=True, console=self.console):
                    raise MigratorError(self.wizard.reference_error)
                with self.console.status("Loading source configuration..."):
                    if await self.wizard.retry_reference_fetch():
                        return
            if self.auto or not Confirm.ask("Try again?", default=True, console=self.console):
                raise MigratorError(self.wizard.connection_error or "Could not connect to source.")

    # --- Mapping ---

    def _apply_cli_overrides(self) -> None:
        gate = self.wizard.gate
        for raw in getattr(self.args, 'map_root', None) or []:
            source, target_id = parse_pair(raw, '--map-root')
            gate.set_root_folder(source, target_id)
        for raw in getattr(self.args, 'map_profile', None) or []:
            source, target_id = parse_pair(raw, '--map-profile')
            try:
                source_id = int(source)
            except ValueError:
                raise ConfigError(f"--map-profile source must be a profile id, got '{source}'")
            gate.set_profile_enabled(source_id, True)
            gate.set_quality_profile(source_id, target_id)
        for source_id in getattr(self.args, 'skip_profile', None) or []:
            gate.set_profile_enabled(int(source_id), False)

    def _show_mapping(self) -> None:
        self.console.print(build_root_folder_table(self.wizard.gate))
        self.console.print(build_profile_table(self.wizard.gate))

    def _mapping_step(self) -> None:
        gate = self.wizard.gate
        self._apply_cli_overrides()
        self._show_mapping()
        if self.auto:
            if not gate.can_proceed:
                missing = [f.path for f in gate.unmapped_root_folders] + [p.name for p in gate.unmapped_profiles]
                raise MappingError(f"Automatic mapping is incomplete; map these with --map-root/--map-profile/--skip-profile: {', '.join(missing)}")
            return

        while True:
            for folder in gate.unmapped_root_folders:
                self._prompt_root_folder(folder.path)
            for profile in gate.unmapped_profiles:
                self._prompt_profile(profile.id, profile.name)
            if gate.can_proceed and not Confirm.ask("Change any mapping?", default=False, console=self.console):
                return
            self._edit_mapping()
            self._show_mapping()

    def _prompt_root_folder(self, source_path: str) -> None:
        gate = self.wizard.gate
        if not gate.target_root_folders:
            raise MappingError("The target has no root folders to map onto. Add one on the target first.")
        self.console.print(build_target_choices_table("Target Root Folders", ((f.id, f.path) for f in gate.target_root_folders)))
        choices = [str(f.id) for f in gate.target_root_folders]
        answer = Prompt.ask(f"Target folder for [cyan]{source_path}[/cyan]", choices=choices, console=self.console)
        gate.set_root_folder(source_path, int(answer))

    def _prompt_profile(self, source_id: int, source_name: str) -> None:
        gate = self.wizard.gate
        self.console.print(build_target_choices_table("Target Quality Profiles", ((p.id, p.name) for p in gate.target_quality_profiles)))
        choices = [str(p.id) for p in gate.target_quality_profiles] + ['skip']
        answer = Prompt.ask(f"Target profile for [cyan]{source_name}[/cyan] ('skip' to exclude)", choices=choices, console=self.console)
        if answer == 'skip':
            gate.set_profile_enabled(source_id, False)
        else:
            gate.set_quality_profile(source_id, int(answer))

    def _edit_mapping(self) -> None:
        gate = self.wizard.gate
        kind = Prompt.ask("Edit [r]oot folder or [p]rofile?", choices=['r', 'p'], default='p', console=self.console)
        try:
            if kind == 'r':
                paths = [f.path for f in gate.source_root_folders]
                if not paths:
                    raise MappingError("The source has no root folders to edit.")
                index = Prompt.ask("Root folder #", choices=[str(i) for i in range(1, len(paths) + 1)], console=self.console)
                self._prompt_root_folder(paths[int(index) - 1])
                return
            profile_ids = [str(p.id) for p in gate.source_quality_profiles]
            if not profile_ids:
                raise MappingError("The source has no quality profiles to edit.")
            source_id = int(Prompt.ask("Source profile ID", choices=profile_ids, console=self.console))
            name = next(p.name for p in gate.source_quality_profiles if p.id == source_id)
            if not gate.is_profile_enabled(source_id):
                if not Confirm.ask(f"'{name}' is skipped. Enable it?", default=True, console=self.console):
                    return
                gate.set_profile_enabled(source_id, True)
            self._prompt_profile(source_id, name)
        except MappingError as e:
            self.console.print(f"[red]{e}[/red]")

    # --- Preview ---

    async def _request_preview(self) -> bool:
        while True:
            with self.console.status("Computing preview..."):
                if await self.wizard.request_preview():
                    return True
            if not self.wizard.preview_error:
                raise MappingError("Mapping is incomplete.")
            self.console.print(f"[bold red]Preview failed:[/bold red] {self.wizard.preview_error}")
            if self.auto or not Confirm.ask("Retry preview?", default=True, console=self.console):
                raise MigratorError(self.wizard.preview_error)

    def _show_preview(self) -> None:
        wizard = self.wizard
        selection = wizard.selection
        self.console.print(build_summary_panel(wizard.preview.summary, wizard.source_type))
        self.console.print(build_filter_bar(selection, self.preview_filter))
        profile_names = build_profile_name_map(wizard.mappings, wizard.target_quality_profiles)
        self.console.print(build_preview_table(selection, self.preview_filter, profile_names,
                                               self.preview_columns, self.page_size, self.view_mode))
        self.console.print(f"[bold]{selection.selection_label()}[/bold]")

    def _selection_step(self) -> None:
        selection = self.wizard.selection
        help_text = "IDs to toggle (space separated), [b]a[/b] toggle all, [b]f[/b] change filter, Enter to continue"
        while True:
            answer = Prompt.ask(help_text, default="", show_default=False, console=self.console).strip().lower()
            if not answer:
                if selection.can_submit:
                    return
                self.console.print("[yellow]Select at least one item to import.[/yellow]")
                continue
            if answer == 'a':
                selection.toggle_all()
            elif answer == 'f':
                choice = Prompt.ask("Filter", choices=[f.value for f in PreviewFilter], default=self.preview_filter.value, console=self.console)
                self.preview_filter = PreviewFilter(choice)
            else:
                for token in answer.split():
                    if not token.isdigit() or int(token) not in selection.new_ids:
                        self.console.print(f"[yellow]'{token}' is not a selectable id.[/yellow]")
                        continue
                    selection.toggle_one(int(token))
            self._show_preview()

    # --- Import ---

    async def _import_step(self) -> Optional[ImportOutcome]:
        wizard = self.wizard
        selection = wizard.selection
        if not selection.can_submit:
            raise UserAbortError("Nothing selected for import.")
        if not self.auto and self.cfg('confirm_before_import', True):
            if not Confirm.ask(f"{selection.submit_label()}?", default=True, console=self.console):
                raise UserAbortError("Import cancelled by user.")

        while not await wizard.start_import():
            self.console.print(f"[bold red]Import could not be started:[/bold red] {wizard.import_error}")
            if self.auto or not Confirm.ask("Retry?", default=True, console=self.console):
                raise MigratorError(wizard.import_error or "Import submission failed.")

        outcome: Optional[ImportOutcome] = None
        with create_import_progress(self.console) as progress:
            task_id = progress.add_task(wizard.monitor.title, total=None, subtitle="")
            unsubscribe = wizard.subscribe(lambda w: update_import_progress(progress, task_id, w.monitor) if w.monitor else None)
            try:
                while outcome is None:
                    outcome = await wizard.monitor_progress()
                    if outcome is None:
                        self.console.print(f"[yellow]{wizard.import_error}[/yellow]")
                        if self.auto or not Confirm.ask("Resume watching the import?", default=True, console=self.console):
                            raise MigratorError(wizard.import_error or "Lost track of the import.")
            finally:
                unsubscribe()

        self.console.print(build_outcome_panel(outcome, wizard.source_type))
        if outcome.kind is ImportOutcomeKind.PARTIAL_FAILURE:
            log.warning(f"Import finished with {len(outcome.report.errors)} error(s).")
            for error in outcome.report.errors:
                log.debug(f"Import error: {error}")
        return outcome

    # --- Configuration ---

    async def _config_import_step(self) -> None:
        importer = ConfigImporter(self.client)
        with self.console.status("Loading source configuration..."):
            loaded = await importer.load_preview()
        if not loaded:
            self.console.print(f"[bold red]{importer.error}[/bold red]")
            return
        self.console.print(build_config_preview_table(importer.preview, importer.selection.selected))
        for warning in importer.preview.warnings:
            self.console.print(f"[yellow]Warning: {warning}[/yellow]")
        if importer.selection.is_empty:
            self.console.print("No new configuration to import.")
            return
        if not self.auto and not Confirm.ask("Import the selected configuration?", default=True, console=self.console):
            return
        if await importer.execute():
            self.console.print(build_config_report_panel(importer.report))
        else:
            self.console.print(f"[bold red]{importer.error}[/bold red]")
