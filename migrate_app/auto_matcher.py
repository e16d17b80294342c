# migrate_app/auto_matcher.py
"""
Best-effort matching of source reference entities (root folders, quality
profiles) onto target entities.

Every source item is matched independently:
  1. exact, case-insensitive key equality (first target in input order wins);
  2. substring: first target, in input order, whose key is contained in the
     source key or contains it;
  3. otherwise left unmapped.

The substring rule trades precision for recall. When several targets share a
common substring the first one in input order is chosen; callers treat the
result as an overridable default only.
"""
import logging
from typing import Any, Callable, Dict, Hashable, Iterable, Optional, Sequence, TypeVar

from .models import SourceRootFolder, SourceQualityProfile, TargetRootFolder, TargetQualityProfile

log = logging.getLogger(__name__)

S = TypeVar('S')
T = TypeVar('T')


def _find_target(source_key: str, normalized_targets: Sequence[tuple]) -> Optional[Any]:
    for target_key, target_id in normalized_targets:
        if target_key == source_key:
            return target_id
    for target_key, target_id in normalized_targets:
        if target_key in source_key or source_key in target_key:
            return target_id
    return None


def auto_match(
    source_items: Iterable[S],
    target_items: Iterable[T],
    key_of: Callable[[Any], str],
    map_key_of: Optional[Callable[[S], Hashable]] = None,
    target_id_of: Callable[[T], Any] = lambda t: t.id,
) -> Dict[Hashable, Any]:
    """
    Returns {map_key: target_id} for every source item that matched.

    `key_of` extracts the comparison string from both source and target items.
    `map_key_of` chooses the key of the returned mapping (defaults to `key_of`).
    """
    map_key_of = map_key_of or key_of
    normalized_targets = [(str(key_of(t)).lower(), target_id_of(t)) for t in target_items]
    result: Dict[Hashable, Any] = {}
    for source in source_items:
        source_key = str(key_of(source)).lower()
        target_id = _find_target(source_key, normalized_targets)
        if target_id is not None:
            result[map_key_of(source)] = target_id
        else:
            log.debug(f"No automatic match for '{key_of(source)}'.")
    return result


def match_root_folders(source: Iterable[SourceRootFolder], target: Iterable[TargetRootFolder]) -> Dict[str, int]:
    matches = auto_match(source, target, key_of=lambda f: f.path)
    log.debug(f"Auto-matched {len(matches)} root folder(s).")
    return matches # type: ignore[return-value]


def match_quality_profiles(source: Iterable[SourceQualityProfile], target: Iterable[TargetQualityProfile]) -> Dict[int, int]:
    matches = auto_match(source, target, key_of=lambda p: p.name, map_key_of=lambda p: p.id)
    log.debug(f"Auto-matched {len(matches)} quality profile(s).")
    return matches # type: ignore[return-value]
