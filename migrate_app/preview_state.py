# migrate_app/preview_state.py
import logging
from dataclasses import replace
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from .enums import SourceType, PreviewStatus, PreviewFilter
from .models import ImportPreview, ImportMappings, MoviePreview, PreviewItem, TargetQualityProfile

log = logging.getLogger(__name__)


class PreviewSelection:
    """
    Selection over the `new` items of an immutable preview.

    The initial selection is every `new` id. Filtering is display-only and
    never touches the selection.
    """

    def __init__(self, preview: ImportPreview, source_type: SourceType):
        self.preview = preview
        self.source_type = source_type
        self._new_ids: FrozenSet[int] = frozenset(
            item.natural_id for item in self.items
            if item.status is PreviewStatus.NEW and item.natural_id is not None
        )
        self.selected: Set[int] = set(self._new_ids)

    @property
    def items(self) -> tuple:
        return self.preview.items_for(self.source_type)

    @property
    def new_ids(self) -> FrozenSet[int]:
        return self._new_ids

    @property
    def is_all_selected(self) -> bool:
        return self.selected == self._new_ids

    @property
    def can_submit(self) -> bool:
        return len(self.selected) > 0

    def is_selected(self, natural_id: int) -> bool:
        return natural_id in self.selected

    def toggle_one(self, natural_id: int) -> None:
        # Callers only offer `new` ids; not re-validated here.
        if natural_id in self.selected:
            self.selected.discard(natural_id)
        else:
            self.selected.add(natural_id)

    def toggle_all(self) -> None:
        if self.is_all_selected:
            self.selected = set()
        else:
            self.selected = set(self._new_ids)

    def filtered(self, preview_filter: PreviewFilter = PreviewFilter.ALL) -> List[PreviewItem]:
        return [item for item in self.items if preview_filter.matches(item.status)]

    def filter_counts(self) -> Dict[PreviewFilter, int]:
        return {f: len(self.filtered(f)) for f in PreviewFilter}

    def selection_label(self) -> str:
        noun = "movies" if self.source_type.is_movies else "series"
        return f"{len(self.selected)} of {len(self._new_ids)} new {noun} selected"

    def submit_label(self) -> str:
        count = len(self.selected)
        if self.source_type.is_movies:
            return f"Import {count} Movie{'s' if count != 1 else ''}"
        return f"Import {count} Series"

    def build_submission(self, mappings: ImportMappings) -> Optional[ImportMappings]:
        """Returns the mappings with the selection attached, or None when nothing is selected."""
        if not self.can_submit:
            log.info("Nothing selected for import; submission blocked.")
            return None
        selected_ids = sorted(self.selected)
        if self.source_type.is_movies:
            return replace(mappings, selected_movie_tmdb_ids=selected_ids, selected_series_tvdb_ids=None)
        return replace(mappings, selected_movie_tmdb_ids=None, selected_series_tvdb_ids=selected_ids)


def build_profile_name_map(mappings: Optional[ImportMappings], target_profiles: Iterable[TargetQualityProfile]) -> Dict[int, str]:
    """Maps a source quality profile id to the name of the target profile it was mapped to."""
    if mappings is None:
        return {}
    target_names = {p.id: p.name for p in target_profiles}
    return {source_id: target_names[target_id]
            for source_id, target_id in mappings.quality_profile_mapping.items()
            if target_id in target_names}


def quality_label(item: PreviewItem) -> str:
    if isinstance(item, MoviePreview):
        if not item.has_file:
            return "No File"
        return item.quality or "Unknown"
    if item.file_count <= 0:
        return "No Files"
    return f"{item.file_count} file{'s' if item.file_count != 1 else ''}"
