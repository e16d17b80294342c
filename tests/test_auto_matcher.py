# tests/test_auto_matcher.py

from migrate_app.auto_matcher import auto_match, match_root_folders, match_quality_profiles
from migrate_app.models import SourceRootFolder, SourceQualityProfile, TargetRootFolder, TargetQualityProfile


def test_exact_match_is_case_insensitive():
    source = [SourceRootFolder(1, "/Movies")]
    target = [TargetRootFolder(10, "/movies")]
    assert match_root_folders(source, target) == {"/Movies": 10}

def test_exact_match_wins_over_earlier_substring_match():
    source = [SourceQualityProfile(1, "HD")]
    target = [TargetQualityProfile(100, "HD-1080p"), TargetQualityProfile(101, "hd")]
    assert match_quality_profiles(source, target) == {1: 101}

def test_target_contained_in_source():
    source = [SourceQualityProfile(1, "HD-1080p Remux")]
    target = [TargetQualityProfile(100, "SD"), TargetQualityProfile(101, "hd-1080p")]
    assert match_quality_profiles(source, target) == {1: 101}

def test_source_contained_in_target():
    source = [SourceRootFolder(1, "/data/movies")]
    target = [TargetRootFolder(10, "/mnt/data/movies/library")]
    assert match_root_folders(source, target) == {"/data/movies": 10}

def test_substring_match_takes_first_target_in_either_direction():
    source = [SourceQualityProfile(1, "Ultra-HD")]
    target = [TargetQualityProfile(100, "Ultra-HD 2160p"), TargetQualityProfile(101, "HD")]
    assert match_quality_profiles(source, target) == {1: 100}

def test_substring_root_folder_earlier_container_wins():
    source = [SourceRootFolder(1, "/data/movies")]
    target = [TargetRootFolder(10, "/data/movies/4k"), TargetRootFolder(11, "/data")]
    assert match_root_folders(source, target) == {"/data/movies": 10}

def test_substring_root_folder_earlier_contained_wins():
    source = [SourceRootFolder(1, "/data/movies")]
    target = [TargetRootFolder(11, "/data"), TargetRootFolder(10, "/data/movies/4k")]
    assert match_root_folders(source, target) == {"/data/movies": 11}

def test_first_target_in_input_order_wins():
    source = [SourceQualityProfile(1, "Any")]
    target = [TargetQualityProfile(5, "any"), TargetQualityProfile(6, "ANY")]
    assert match_quality_profiles(source, target) == {1: 5}

def test_unmatched_items_are_omitted():
    source = [SourceRootFolder(1, "/movies"), SourceRootFolder(2, "/anime")]
    target = [TargetRootFolder(10, "/movies")]
    assert match_root_folders(source, target) == {"/movies": 10}

def test_empty_inputs():
    assert match_root_folders([], [TargetRootFolder(10, "/movies")]) == {}
    assert match_quality_profiles([SourceQualityProfile(1, "HD")], []) == {}

def test_profiles_keyed_by_source_id():
    source = [SourceQualityProfile(7, "Any"), SourceQualityProfile(8, "any")]
    target = [TargetQualityProfile(100, "Any")]
    assert match_quality_profiles(source, target) == {7: 100, 8: 100}

def test_generic_auto_match_with_custom_keys():
    source = [("a", "Alpha"), ("b", "Beta")]
    target = [("x", "alpha"), ("y", "BETA")]
    result = auto_match(source, target, key_of=lambda t: t[1], map_key_of=lambda s: s[0], target_id_of=lambda t: t[0])
    assert result == {"a": "x", "b": "y"}
