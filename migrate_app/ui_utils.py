# migrate_app/ui_utils.py
import sys
from typing import Any, Dict, Iterable, List

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from .enums import SourceType, PreviewFilter, PreviewStatus, ImportOutcomeKind, ActivityStatus
from .import_monitor import ImportMonitor, ImportOutcome
from .mapping_state import MappingGate
from .models import ConfigPreview, ConfigImportReport, ImportSummary, MoviePreview, CONFIG_CATEGORIES
from .preview_state import PreviewSelection, quality_label

STATUS_STYLES = {
    PreviewStatus.NEW: "green",
    PreviewStatus.DUPLICATE: "yellow",
    PreviewStatus.SKIP: "dim",
}


def print_stderr_message(console: Console, message: Any, is_quiet: bool = False) -> None:
    """Prints to stderr; styled unless quiet, where Rich objects fall back to plain text."""
    if not is_quiet:
        Console(file=sys.stderr, width=console.width).print(message)
        return
    plain = message.plain if isinstance(message, Text) else str(message)
    print(plain, file=sys.stderr)


def build_root_folder_table(gate: MappingGate) -> Table:
    targets = {f.id: f.path for f in gate.target_root_folders}
    table = Table(title="Root Folders", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Source Path", style="cyan")
    table.add_column("Target Folder", style="green")
    for idx, folder in enumerate(gate.source_root_folders, 1):
        target_id = gate.root_folder_mapping.get(folder.path)
        target_cell = f"{targets.get(target_id, '?')} (id {target_id})" if target_id is not None else "[red]Unmapped[/red]"
        table.add_row(str(idx), folder.path, target_cell)
    return table


def build_profile_table(gate: MappingGate) -> Table:
    targets = {p.id: p.name for p in gate.target_quality_profiles}
    table = Table(title="Quality Profiles", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Source Profile", style="cyan")
    table.add_column("In Use", justify="center")
    table.add_column("Target Profile", style="green")
    for profile in gate.source_quality_profiles:
        target_id = gate.quality_profile_mapping.get(profile.id)
        if not gate.is_profile_enabled(profile.id):
            target_cell = "[dim]Skipped[/dim]"
        elif target_id is not None:
            target_cell = f"{targets.get(target_id, '?')} (id {target_id})"
        else:
            target_cell = "[red]Unmapped[/red]"
        table.add_row(str(profile.id), profile.name, "✓" if profile.in_use else "", target_cell)
    return table


def build_target_choices_table(title: str, rows: Iterable[tuple]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold blue")
    table.add_column("ID", justify="right")
    table.add_column("Name / Path")
    for row_id, label in rows:
        table.add_row(str(row_id), str(label))
    return table


def build_summary_panel(summary: ImportSummary, source_type: SourceType) -> Panel:
    if source_type.is_movies:
        lines = [
            f"Total movies:     {summary.total_movies}",
            f"[green]Ready to migrate: {summary.new_movies}[/green]",
            f"[yellow]Already in library: {summary.duplicate_movies}[/yellow]",
            f"[dim]Unknown:          {summary.skipped_movies}[/dim]",
        ]
    else:
        lines = [
            f"Total series:     {summary.total_series} ({summary.total_episodes} episodes)",
            f"[green]Ready to migrate: {summary.new_series}[/green]",
            f"[yellow]Already in library: {summary.duplicate_series}[/yellow]",
            f"[dim]Unknown:          {summary.skipped_series}[/dim]",
        ]
    lines.append(f"Files:            {summary.total_files}")
    return Panel("\n".join(lines), title="Import Preview", border_style="blue", expand=False)


def build_filter_bar(selection: PreviewSelection, active: PreviewFilter) -> Text:
    text = Text()
    counts = selection.filter_counts()
    for preview_filter in PreviewFilter:
        label = f" {preview_filter.label(selection.source_type)} ({counts[preview_filter]}) "
        text.append(label, style="reverse bold" if preview_filter is active else "")
        text.append(" ")
    return text


def build_preview_table(selection: PreviewSelection, preview_filter: PreviewFilter,
                        profile_names: Dict[int, str], columns: List[str],
                        page_size: int = 0, view_mode: str = 'table') -> Table:
    items = selection.filtered(preview_filter)
    shown = items[:page_size] if page_size and page_size > 0 else items
    table = Table(show_header=True, header_style="bold magenta", show_lines=False,
                  box=box.SIMPLE if view_mode == "compact" else box.HEAVY_HEAD)
    table.add_column("Sel", justify="center")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Title", style="cyan")
    for column in columns:
        table.add_column(column.title(), justify="center" if column in ('monitored', 'status') else "left")

    for item in shown:
        natural_id = item.natural_id
        if item.status is PreviewStatus.NEW and natural_id is not None:
            sel = "[green]●[/green]" if selection.is_selected(natural_id) else "○"
        else:
            sel = ""
        cells = []
        for column in columns:
            if column == 'year':
                cells.append(str(item.year or ""))
            elif column == 'quality':
                cells.append(quality_label(item))
            elif column == 'profile':
                cells.append(profile_names.get(item.quality_profile_id, "Unknown") if item.quality_profile_id is not None else "Unknown")
            elif column == 'monitored':
                cells.append("✓" if item.monitored else "")
            elif column == 'status':
                cells.append(f"[{STATUS_STYLES[item.status]}]{item.status.badge}[/]")
            elif column == 'episodes':
                cells.append("" if isinstance(item, MoviePreview) else str(item.episode_count))
            elif column == 'reason':
                cells.append(item.skip_reason or "")
        table.add_row(sel, str(natural_id or "-"), item.title, *cells)

    if len(shown) < len(items):
        table.caption = f"Showing {len(shown)} of {len(items)}"
    return table


def create_import_progress(console: Console) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        TextColumn("[cyan]{task.fields[subtitle]}"),
        console=console,
        transient=False,
    )


def update_import_progress(progress: Progress, task_id: Any, monitor: ImportMonitor) -> None:
    value = monitor.progress_value
    progress.update(
        task_id,
        description=monitor.title,
        subtitle=monitor.subtitle or "",
        total=None if value < 0 else 100,
        completed=max(value, 0),
    )


def build_outcome_panel(outcome: ImportOutcome, source_type: SourceType) -> Panel:
    body: List[Any] = []
    if outcome.status is ActivityStatus.FAILED:
        body.append(Text("The import job reported a failure.", style="red"))
    elif outcome.status is ActivityStatus.CANCELLED:
        body.append(Text("The import job was cancelled.", style="yellow"))

    report = outcome.report
    if report is None:
        body.append(Text("The import has finished."))
    else:
        counts = Table.grid(padding=(0, 2))
        counts.add_column(); counts.add_column(justify="right")
        if source_type.is_movies:
            counts.add_row("Movies Created", str(report.movies_created))
            counts.add_row("Movies Skipped", str(report.movies_skipped))
            counts.add_row("Movies Errored", str(report.movies_errored))
        else:
            counts.add_row("Series Created", str(report.series_created))
            counts.add_row("Series Skipped", str(report.series_skipped))
            counts.add_row("Series Errored", str(report.series_errored))
        counts.add_row(f"Files Imported ({report.files_imported}/{report.total_files})", "")
        body.append(counts)

    if outcome.kind is ImportOutcomeKind.PARTIAL_FAILURE and report is not None:
        body.append(Text(f"\nErrors ({len(report.errors)})", style="bold red"))
        for error in outcome.visible_errors:
            body.append(Text(f"  • {error}", style="red"))
        if outcome.hidden_error_count:
            body.append(Text(f"  ... and {outcome.hidden_error_count} more (see log file)", style="dim"))

    style = "yellow" if outcome.kind is ImportOutcomeKind.PARTIAL_FAILURE else "green"
    if outcome.status is ActivityStatus.FAILED:
        style = "red"
    return Panel(Group(*body), title=outcome.heading, border_style=style, expand=False)


_CATEGORY_TITLES = {
    'download_clients': "Download Clients",
    'indexers': "Indexers",
    'notifications': "Notifications",
    'quality_profiles': "Quality Profiles",
}


def build_config_preview_table(preview: ConfigPreview, selected: Dict[str, set]) -> Table:
    table = Table(title="Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Sel", justify="center")
    table.add_column("Category")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    for category in CONFIG_CATEGORIES:
        for item in preview.category(category):
            sel = ("[green]●[/green]" if item.source_id in selected.get(category, set()) else "○") if item.status.selectable else ""
            status = str(item.status) + (f" ({item.status_reason})" if item.status_reason else "")
            table.add_row(sel, _CATEGORY_TITLES[category], str(item.source_id), item.source_name,
                          item.mapped_type or item.source_type, status)
    return table


def build_config_report_panel(report: ConfigImportReport) -> Panel:
    lines = [
        f"Download clients: {report.download_clients_created} created, {report.download_clients_skipped} skipped",
        f"Indexers:         {report.indexers_created} created, {report.indexers_skipped} skipped",
        f"Notifications:    {report.notifications_created} created, {report.notifications_skipped} skipped",
        f"Quality profiles: {report.quality_profiles_created} created, {report.quality_profiles_skipped} skipped",
        f"Naming config:    {'imported' if report.naming_config_imported else 'unchanged'}",
    ]
    for warning in report.warnings:
        lines.append(f"[yellow]Warning: {warning}[/yellow]")
    for error in report.errors:
        lines.append(f"[red]Error: {error}[/red]")
    return Panel("\n".join(lines), title="Configuration Import",
                 border_style="yellow" if report.has_errors else "green", expand=False)
