# tests/test_config_import.py

import asyncio

from conftest import FakeMigrationClient
from migrate_app.config_import import ConfigImportSelection, ConfigImporter
from migrate_app.enums import ConfigItemStatus
from migrate_app.models import ConfigPreview, ConfigPreviewItem, ConfigImportReport, NamingConfigPreview


def make_config_preview(naming_status='different'):
    return ConfigPreview(
        download_clients=(
            ConfigPreviewItem(1, "qBittorrent", "QBittorrent", ConfigItemStatus.NEW),
            ConfigPreviewItem(2, "SAB", "Sabnzbd", ConfigItemStatus.DUPLICATE),
        ),
        indexers=(
            ConfigPreviewItem(5, "Old Tracker", "Torznab", ConfigItemStatus.INCOMPLETE, status_reason="Missing API key"),
            ConfigPreviewItem(6, "Legacy", "Omgwtfnzbs", ConfigItemStatus.UNSUPPORTED),
        ),
        naming_config=NamingConfigPreview(status=naming_status),
        warnings=("Legacy indexer is not supported",),
    )


def test_default_selection():
    selection = ConfigImportSelection.defaults(make_config_preview())
    assert selection.selected['download_clients'] == {1}
    assert selection.selected['indexers'] == {5}
    assert selection.selected['notifications'] == set()
    assert selection.import_naming_config is True

def test_default_selection_skips_identical_naming():
    selection = ConfigImportSelection.defaults(make_config_preview(naming_status='same'))
    assert selection.import_naming_config is False

def test_toggle_and_payload():
    selection = ConfigImportSelection.defaults(make_config_preview())
    selection.toggle('indexers', 5)
    selection.toggle('quality_profiles', 9)
    assert selection.to_payload() == {
        'downloadClientIds': [1],
        'indexerIds': [],
        'notificationIds': [],
        'qualityProfileIds': [9],
        'importNamingConfig': True,
    }

def test_is_empty():
    selection = ConfigImportSelection()
    assert selection.is_empty is True
    selection.import_naming_config = True
    assert selection.is_empty is False

def test_importer_flow():
    client = FakeMigrationClient()
    client.config_preview = make_config_preview()
    client.config_report = ConfigImportReport(download_clients_created=1, indexers_created=1, naming_config_imported=True)
    importer = ConfigImporter(client)

    assert asyncio.run(importer.load_preview()) is True
    assert asyncio.run(importer.execute()) is True
    assert importer.report.download_clients_created == 1
    assert client.config_selections[0]['indexerIds'] == [5]

def test_importer_nothing_selected():
    client = FakeMigrationClient()
    client.config_preview = ConfigPreview(naming_config=NamingConfigPreview(status='same'))
    importer = ConfigImporter(client)
    asyncio.run(importer.load_preview())
    assert asyncio.run(importer.execute()) is False
    assert 'execute_config_import' not in client.calls

def test_importer_preview_failure(mocker):
    client = FakeMigrationClient()
    mocker.patch.object(client, 'fetch_config_preview', side_effect=RuntimeError("Source database is locked"))
    importer = ConfigImporter(client)
    assert asyncio.run(importer.load_preview()) is False
    assert "Source database is locked" in importer.error
    assert importer.selection is None

def test_importer_execute_failure(mocker):
    client = FakeMigrationClient()
    client.config_preview = make_config_preview()
    mocker.patch.object(client, 'execute_config_import', side_effect=RuntimeError("target rejected"))
    importer = ConfigImporter(client)
    asyncio.run(importer.load_preview())
    assert asyncio.run(importer.execute()) is False
    assert importer.error == "Configuration import failed: target rejected"
