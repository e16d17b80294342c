# migrate_app/import_monitor.py
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Optional

from .enums import ActivityStatus, ImportOutcomeKind
from .models import Activity, ImportReport

log = logging.getLogger(__name__)

DEFAULT_TITLE = "Importing..."


@dataclass(frozen=True)
class ImportOutcome:
    kind: ImportOutcomeKind
    status: ActivityStatus
    report: Optional[ImportReport] = None
    visible_errors: tuple = field(default_factory=tuple) # Bounded slice of report.errors
    hidden_error_count: int = 0

    @property
    def heading(self) -> str:
        if self.kind is ImportOutcomeKind.PARTIAL_FAILURE:
            return "Import Completed with Errors"
        return "Import Complete"


class ImportMonitor:
    """
    Observes activity snapshots for one submitted import job.

    `finished` latches on the first terminal snapshot; anything observed after
    that is ignored so a late in-progress update cannot reopen a finished job.
    """

    def __init__(self, job_id: str, error_list_limit: int = 50):
        self.job_id = job_id
        self.error_list_limit = max(1, int(error_list_limit))
        self.latest: Optional[Activity] = None
        self.finished: Optional[Activity] = None

    @property
    def is_finished(self) -> bool:
        return self.finished is not None

    def observe(self, activity: Activity) -> bool:
        """Records a snapshot. Returns True only when this snapshot fires the terminal latch."""
        if self.finished is not None:
            log.debug(f"Ignoring activity update after completion: {activity.id} {activity.status.value}")
            return False
        if activity.id and activity.id != self.job_id:
            log.debug(f"Ignoring activity for unrelated job '{activity.id}' (watching '{self.job_id}').")
            return False
        self.latest = activity
        if activity.status.is_terminal:
            self.finished = activity
            log.info(f"Import job '{self.job_id}' reached terminal status: {activity.status}")
            return True
        return False

    @property
    def progress_value(self) -> int:
        if self.latest is None:
            return -1
        progress = self.latest.progress
        if progress < 0:
            return -1
        return min(progress, 100)

    @property
    def is_indeterminate(self) -> bool:
        return self.progress_value < 0

    @property
    def title(self) -> str:
        return (self.latest.title if self.latest and self.latest.title else DEFAULT_TITLE)

    @property
    def subtitle(self) -> Optional[str]:
        return self.latest.subtitle if self.latest else None

    @property
    def outcome(self) -> Optional[ImportOutcome]:
        if self.finished is None:
            return None
        report = self.finished.report
        if report is None:
            return ImportOutcome(kind=ImportOutcomeKind.COMPLETE, status=self.finished.status)
        if not report.has_errors:
            return ImportOutcome(kind=ImportOutcomeKind.SUCCESS, status=self.finished.status, report=report)
        visible = report.errors[:self.error_list_limit]
        return ImportOutcome(
            kind=ImportOutcomeKind.PARTIAL_FAILURE,
            status=self.finished.status,
            report=report,
            visible_errors=visible,
            hidden_error_count=len(report.errors) - len(visible),
        )

    async def watch(self, stream: AsyncIterator[Activity],
                    on_update: Optional[Callable[["ImportMonitor"], None]] = None) -> Optional[ImportOutcome]:
        """Consumes `stream` until the latch fires. Returns None if the stream ends first."""
        if self.finished is not None:
            return self.outcome
        try:
            async for activity in stream:
                self.observe(activity)
                if on_update:
                    on_update(self)
                if self.finished is not None:
                    break
        finally:
            # Stop the producer; nothing after the latch is consumed
            aclose = getattr(stream, 'aclose', None)
            if aclose is not None:
                await aclose()
        if self.finished is None:
            log.warning(f"Progress stream for job '{self.job_id}' ended before a terminal status was observed.")
        return self.outcome
