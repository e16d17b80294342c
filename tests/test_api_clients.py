# tests/test_api_clients.py
import pytest
from unittest.mock import MagicMock

# Import the module we are testing
import migrate_app.api_clients as api_clients

# --- Fixtures ---

@pytest.fixture
def mock_cfg_helper(mocker):
    """Provides a MagicMock for the cfg_helper dependency."""
    mock = MagicMock()
    mock.get_api_key.return_value = None
    mock.side_effect = lambda key, default=None: {'target_url': 'http://target:8080/'}.get(key, default)
    return mock

@pytest.fixture(autouse=True)
def reset_api_clients_state():
    """Fixture to automatically reset the global state before each test."""
    api_clients._target_session = None
    api_clients._target_base_url = None
    api_clients._clients_initialized = False
    yield # Test runs here
    api_clients._target_session = None
    api_clients._target_base_url = None
    api_clients._clients_initialized = False

# --- Test Cases ---

def test_initialize_with_api_key(mocker, mock_cfg_helper):
    mock_log = mocker.patch('migrate_app.api_clients.log')
    mock_cfg_helper.get_api_key.side_effect = lambda k: {'target': 'target-key'}.get(k)

    result = api_clients.initialize_api_client(mock_cfg_helper)

    assert result is True
    session = api_clients.get_target_session()
    assert session.headers['X-Api-Key'] == 'target-key'
    assert session.headers['Accept'] == 'application/json'
    assert session.headers['User-Agent'].startswith('arr-migrate/')
    # Trailing slash stripped
    assert api_clients.get_target_base_url() == 'http://target:8080'
    mock_log.info.assert_any_call("Target API client initialized (http://target:8080).")

def test_initialize_without_api_key(mocker, mock_cfg_helper):
    mock_log = mocker.patch('migrate_app.api_clients.log')

    result = api_clients.initialize_api_client(mock_cfg_helper)

    assert result is False
    assert 'X-Api-Key' not in api_clients.get_target_session().headers
    assert any("without an API key" in call_args[0][0] for call_args in mock_log.warning.call_args_list)

def test_initialize_is_idempotent(mock_cfg_helper):
    mock_cfg_helper.get_api_key.return_value = 'k'
    api_clients.initialize_api_client(mock_cfg_helper)
    first = api_clients.get_target_session()
    assert api_clients.initialize_api_client(mock_cfg_helper) is True
    assert api_clients.get_target_session() is first

def test_get_session_before_init(mocker):
    mock_log = mocker.patch('migrate_app.api_clients.log')
    assert api_clients.get_target_session() is None
    assert api_clients.get_target_base_url() is None
    mock_log.warning.assert_called_once()

def test_close_api_client(mocker, mock_cfg_helper):
    api_clients.initialize_api_client(mock_cfg_helper)
    session = api_clients.get_target_session()
    close_spy = mocker.spy(session, 'close')
    api_clients.close_api_client()
    close_spy.assert_called_once()
    assert api_clients._clients_initialized is False
    assert api_clients._target_session is None

def test_close_api_client_without_init():
    api_clients.close_api_client()
    assert api_clients._target_session is None
