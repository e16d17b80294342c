# migrate_app/api_clients.py

import logging
from typing import Optional

import requests

from . import __version__

log = logging.getLogger(__name__)

# Global client instances
_target_session: Optional[requests.Session] = None
_target_base_url: Optional[str] = None
_clients_initialized = False


def initialize_api_client(cfg_helper) -> bool:
    """Creates the shared HTTP session for the target server. Returns True if an API key was configured."""
    global _target_session, _target_base_url, _clients_initialized
    if _clients_initialized:
        log.debug("Target API client already initialized.")
        return _target_session is not None and 'X-Api-Key' in _target_session.headers

    base_url = str(cfg_helper('target_url', 'http://localhost:8080')).rstrip('/')
    api_key = cfg_helper.get_api_key('target')

    session = requests.Session()
    session.headers.update({
        'Accept': 'application/json',
        'User-Agent': f'arr-migrate/{__version__}',
    })
    if api_key:
        session.headers['X-Api-Key'] = api_key
        log.info(f"Target API client initialized ({base_url}).")
    else:
        log.warning(f"Target API client initialized for {base_url} without an API key (TARGET_API_KEY not set).")

    _target_session = session
    _target_base_url = base_url
    _clients_initialized = True
    return bool(api_key)


def get_target_session() -> Optional[requests.Session]:
    """Returns the initialized target session, or None."""
    if not _clients_initialized:
        log.warning("Attempted to get target session before initialization.")
        return None
    return _target_session


def get_target_base_url() -> Optional[str]:
    if not _clients_initialized:
        return None
    return _target_base_url


def close_api_client() -> None:
    global _target_session, _target_base_url, _clients_initialized
    if _target_session is not None:
        _target_session.close()
        log.debug("Target API session closed.")
    _target_session = None
    _target_base_url = None
    _clients_initialized = False
