# migrate_app/mapping_state.py
import logging
from typing import Dict, List, Optional, Sequence

from .auto_matcher import match_root_folders, match_quality_profiles
from .exceptions import MappingError
from .models import (
    ImportMappings, SourceRootFolder, SourceQualityProfile,
    TargetRootFolder, TargetQualityProfile
)

log = logging.getLogger(__name__)


class MappingGate:
    """
    Root-folder and quality-profile mapping state for one wizard run.

    Root folders are always required. A quality profile is required only while
    its `enabled` flag is set; the flag defaults to the profile's `in_use`.
    Disabled profiles keep their stored mapping so re-enabling restores it, but
    `build_mappings()` never emits them.
    """

    def __init__(self, auto_match_enabled: bool = True, enable_unused_profiles: bool = False):
        self.auto_match_enabled = auto_match_enabled
        self.enable_unused_profiles = enable_unused_profiles

        self.source_root_folders: List[SourceRootFolder] = []
        self.source_quality_profiles: List[SourceQualityProfile] = []
        self.target_root_folders: List[TargetRootFolder] = []
        self.target_quality_profiles: List[TargetQualityProfile] = []

        self.root_folder_mapping: Dict[str, int] = {}
        self.quality_profile_mapping: Dict[int, int] = {}
        self.profile_enabled: Dict[int, bool] = {}

        # Last seen reference inputs, compared by value
        self._root_inputs: Optional[tuple] = None
        self._profile_inputs: Optional[tuple] = None
        self._enabled_inputs: Optional[tuple] = None

    # --- Watch-and-resync ---

    def sync_reference_lists(
        self,
        source_root_folders: Sequence[SourceRootFolder],
        source_quality_profiles: Sequence[SourceQualityProfile],
        target_root_folders: Sequence[TargetRootFolder],
        target_quality_profiles: Sequence[TargetQualityProfile],
    ) -> bool:
        """
        Re-derives mapping state for whichever reference inputs changed.
        Returns True if anything was re-derived. Repeated calls with equal
        data leave manual overrides untouched.
        """
        changed = False
        root_inputs = (tuple(source_root_folders), tuple(target_root_folders))
        profile_inputs = (tuple(source_quality_profiles), tuple(target_quality_profiles))
        enabled_inputs = tuple(source_quality_profiles)

        if root_inputs != self._root_inputs:
            self._root_inputs = root_inputs
            self.source_root_folders = list(source_root_folders)
            self.target_root_folders = list(target_root_folders)
            self.root_folder_mapping = match_root_folders(source_root_folders, target_root_folders) if self.auto_match_enabled else {}
            log.debug(f"Root folder mapping re-derived: {self.root_folder_mapping}")
            changed = True

        if profile_inputs != self._profile_inputs:
            self._profile_inputs = profile_inputs
            self.source_quality_profiles = list(source_quality_profiles)
            self.target_quality_profiles = list(target_quality_profiles)
            self.quality_profile_mapping = match_quality_profiles(source_quality_profiles, target_quality_profiles) if self.auto_match_enabled else {}
            log.debug(f"Quality profile mapping re-derived: {self.quality_profile_mapping}")
            changed = True

        if enabled_inputs != self._enabled_inputs:
            self._enabled_inputs = enabled_inputs
            self.profile_enabled = {p.id: (p.in_use or self.enable_unused_profiles) for p in source_quality_profiles}
            changed = True

        if not changed:
            log.debug("Reference lists unchanged; keeping current mapping state.")
        return changed

    # --- Edits ---

    def set_root_folder(self, source_path: str, target_id: Optional[int]) -> None:
        if source_path not in {f.path for f in self.source_root_folders}:
            raise MappingError(f"Unknown source root folder: '{source_path}'")
        if target_id is None:
            self.root_folder_mapping.pop(source_path, None)
            return
        if target_id not in {f.id for f in self.target_root_folders}:
            raise MappingError(f"Unknown target root folder id: {target_id}")
        self.root_folder_mapping[source_path] = target_id

    def set_quality_profile(self, source_id: int, target_id: Optional[int]) -> None:
        if source_id not in self.profile_enabled:
            raise MappingError(f"Unknown source quality profile id: {source_id}")
        if target_id is None:
            self.quality_profile_mapping.pop(source_id, None)
            return
        if target_id not in {p.id for p in self.target_quality_profiles}:
            raise MappingError(f"Unknown target quality profile id: {target_id}")
        self.quality_profile_mapping[source_id] = target_id

    def set_profile_enabled(self, source_id: int, enabled: bool) -> None:
        if source_id not in self.profile_enabled:
            raise MappingError(f"Unknown source quality profile id: {source_id}")
        self.profile_enabled[source_id] = enabled

    def is_profile_enabled(self, source_id: int) -> bool:
        return self.profile_enabled.get(source_id, False)

    # --- Readiness ---

    @property
    def unmapped_root_folders(self) -> List[SourceRootFolder]:
        return [f for f in self.source_root_folders if f.path not in self.root_folder_mapping]

    @property
    def unmapped_profiles(self) -> List[SourceQualityProfile]:
        return [p for p in self.source_quality_profiles
                if self.is_profile_enabled(p.id) and p.id not in self.quality_profile_mapping]

    @property
    def all_root_folders_mapped(self) -> bool:
        return all(f.path in self.root_folder_mapping for f in self.source_root_folders)

    @property
    def all_profiles_mapped(self) -> bool:
        return all(not self.is_profile_enabled(p.id) or p.id in self.quality_profile_mapping
                   for p in self.source_quality_profiles)

    @property
    def can_proceed(self) -> bool:
        return self.all_root_folders_mapped and self.all_profiles_mapped

    def build_mappings(self) -> ImportMappings:
        profile_mapping = {source_id: target_id for source_id, target_id in self.quality_profile_mapping.items()
                           if self.is_profile_enabled(source_id)}
        dropped = set(self.quality_profile_mapping) - set(profile_mapping)
        if dropped:
            log.info(f"Excluding disabled quality profile(s) from import: {sorted(dropped)}")
        return ImportMappings(
            root_folder_mapping=dict(self.root_folder_mapping),
            quality_profile_mapping=profile_mapping,
        )
