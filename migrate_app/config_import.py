# migrate_app/config_import.py
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from .models import ConfigPreview, ConfigImportReport, CONFIG_CATEGORIES
from .target_client import MigrationClient

log = logging.getLogger(__name__)

# Selection attribute -> request key
_SELECTION_KEYS = {
    'download_clients': 'downloadClientIds',
    'indexers': 'indexerIds',
    'notifications': 'notificationIds',
    'quality_profiles': 'qualityProfileIds',
}


@dataclass
class ConfigImportSelection:
    """Which source configuration entities to copy into the target."""
    selected: Dict[str, Set[int]] = field(default_factory=lambda: {c: set() for c in CONFIG_CATEGORIES})
    import_naming_config: bool = False

    @classmethod
    def defaults(cls, preview: ConfigPreview) -> "ConfigImportSelection":
        selection = cls()
        for category in CONFIG_CATEGORIES:
            selection.selected[category] = {item.source_id for item in preview.category(category) if item.status.selectable}
        selection.import_naming_config = bool(preview.naming_config and preview.naming_config.differs)
        return selection

    def toggle(self, category: str, source_id: int) -> None:
        ids = self.selected[category]
        if source_id in ids:
            ids.discard(source_id)
        else:
            ids.add(source_id)

    @property
    def is_empty(self) -> bool:
        return not self.import_naming_config and not any(self.selected.values())

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {key: sorted(self.selected[category]) for category, key in _SELECTION_KEYS.items()}
        payload['importNamingConfig'] = self.import_naming_config
        return payload


class ConfigImporter:
    """Preview-then-import flow for download clients, indexers, notifications, quality profiles and naming."""

    def __init__(self, client: MigrationClient):
        self.client = client
        self.preview: Optional[ConfigPreview] = None
        self.selection: Optional[ConfigImportSelection] = None
        self.report: Optional[ConfigImportReport] = None
        self.error: Optional[str] = None

    async def load_preview(self) -> bool:
        self.error = None
        try:
            self.preview = await self.client.fetch_config_preview()
        except Exception as e:
            self.error = f"Failed to load source configuration: {e}"
            log.warning(self.error)
            return False
        self.selection = ConfigImportSelection.defaults(self.preview)
        for warning in self.preview.warnings:
            log.warning(f"Config preview: {warning}")
        return True

    async def execute(self) -> bool:
        if self.selection is None or self.selection.is_empty:
            log.info("No configuration entities selected; nothing to import.")
            return False
        self.error = None
        try:
            self.report = await self.client.execute_config_import(self.selection.to_payload())
        except Exception as e:
            self.error = f"Configuration import failed: {e}"
            log.warning(self.error)
            return False
        for error in self.report.errors:
            log.error(f"Config import: {error}")
        return True
