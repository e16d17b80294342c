# migrate_app/target_client.py

import abc
import asyncio
import logging
import time
from functools import partial
from typing import Any, AsyncIterator, Dict, List, Optional

import requests
import requests.exceptions as req_exceptions
from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_fixed, retry_if_exception

from .api_clients import get_target_session, get_target_base_url
from .config_manager import ConfigHelper
from .enums import SourceType, ActivityStatus
from .exceptions import (
    TransportError, SourceConnectionError, ReferenceFetchError,
    PreviewError, ImportSubmitError
)
from .models import (
    ConnectionConfig, connection_to_payload, ImportMappings, ImportPreview, Activity,
    SourceRootFolder, SourceQualityProfile, TargetRootFolder, TargetQualityProfile,
    ConfigPreview, ConfigImportReport
)

log = logging.getLogger(__name__)

DEFAULT_JOB_ID = "arrimport"
ARRIMPORT_BASE = "/api/v1/arrimport"


class MigrationClient(abc.ABC):
    """Operations the migration wizard needs from the source backend and the target catalog."""

    @abc.abstractmethod
    async def detect_source_database(self, source_type: SourceType) -> Optional[str]: ...

    @abc.abstractmethod
    async def connect(self, config: ConnectionConfig) -> None: ...

    @abc.abstractmethod
    async def disconnect(self) -> None: ...

    @abc.abstractmethod
    async def fetch_source_root_folders(self) -> List[SourceRootFolder]: ...

    @abc.abstractmethod
    async def fetch_source_quality_profiles(self) -> List[SourceQualityProfile]: ...

    @abc.abstractmethod
    async def fetch_target_root_folders(self) -> List[TargetRootFolder]: ...

    @abc.abstractmethod
    async def fetch_target_quality_profiles(self) -> List[TargetQualityProfile]: ...

    @abc.abstractmethod
    async def compute_preview(self, mappings: ImportMappings) -> ImportPreview: ...

    @abc.abstractmethod
    async def execute_import(self, mappings: ImportMappings) -> str: ...

    @abc.abstractmethod
    def observe_progress(self, job_id: str) -> AsyncIterator[Activity]:
        """Fresh sequence of activity snapshots for `job_id`; each call starts over."""

    @abc.abstractmethod
    async def fetch_config_preview(self) -> ConfigPreview: ...

    @abc.abstractmethod
    async def execute_config_import(self, selections: Dict[str, Any]) -> ConfigImportReport: ...


class AsyncRateLimiter:
    def __init__(self, delay: float):
        self.delay = delay
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def wait(self):
        if self.delay <= 0: return
        async with self._lock:
            now = time.monotonic()
            since_last = now - self.last_call
            if since_last < self.delay:
                wait_time = self.delay - since_last
                log.debug(f"Rate limiting: sleeping for {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
            self.last_call = time.monotonic()


def should_retry_api_error(exception: BaseException) -> bool:
    if isinstance(exception, (req_exceptions.ConnectionError, req_exceptions.Timeout)):
        log.debug(f"Retry check PASSED for Connection/Timeout Error: {type(exception).__name__}")
        return True
    if isinstance(exception, req_exceptions.HTTPError):
        status_code = getattr(getattr(exception, 'response', None), 'status_code', 0) or 0
        if status_code == 429: log.warning("Retry check PASSED for HTTP 429 (Rate Limit)."); return True
        if 500 <= status_code <= 599: log.warning(f"Retry check PASSED for HTTP {status_code} (Server Error)."); return True
        if status_code == 401: log.error("Retry check FAILED for HTTP 401 (Unauthorized - Check API Key)."); return False
        if status_code == 403: log.error("Retry check FAILED for HTTP 403 (Forbidden - Check API Key/Permissions)."); return False
        if status_code == 404: log.debug("Retry check FAILED for HTTP 404 (Not Found)."); return False
        log.debug(f"Retry check FAILED for other HTTP Status Code: {status_code}"); return False
    log.debug(f"Retry check FAILED by default for: {type(exception).__name__}: {exception}")
    return False


def _http_error_message(exc: req_exceptions.HTTPError) -> str:
    response = getattr(exc, 'response', None)
    status_code = getattr(response, 'status_code', 0) or 0
    if response is not None:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get('message') or body.get('error')
            if message:
                return str(message)
        text = (getattr(response, 'text', '') or '').strip()
        if text and len(text) < 300:
            return text
    if status_code == 401:
        return "Unauthorized: check TARGET_API_KEY."
    return f"HTTP {status_code} error"


class HttpMigrationClient(MigrationClient):
    """MigrationClient backed by the target server's REST API."""

    def __init__(self, cfg_helper: ConfigHelper, session: Optional[requests.Session] = None, base_url: Optional[str] = None):
        self.cfg = cfg_helper
        self.session = session or get_target_session()
        self.base_url = (base_url or get_target_base_url() or "").rstrip('/')
        if self.session is None or not self.base_url:
            raise TransportError("Target API client is not initialized.")

        self.timeout = float(self.cfg('request_timeout', 30.0))
        self.rate_limiter = AsyncRateLimiter(float(self.cfg('api_rate_limit_delay', 0.0)))
        self.max_attempts = max(1, int(self.cfg('api_retry_attempts', 3)))
        self.retry_wait_seconds = float(self.cfg('api_retry_wait_seconds', 2.0))
        self.poll_interval = float(self.cfg('progress_poll_interval', 1.0))
        self.progress_timeout = float(self.cfg('progress_timeout', 0.0) or 0.0)
        log.debug(f"Client Config: Base URL={self.base_url}, Timeout={self.timeout}s, Attempts={self.max_attempts}, Retry Wait={self.retry_wait_seconds}s, Poll Interval={self.poll_interval}s")

    async def _run_sync(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def _sync_request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json_body: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        log.debug(f"{method} {url}")
        response = self.session.request(method, url, params=params, json=json_body, timeout=self.timeout)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json_body: Any = None) -> Any:
        async_retryer = AsyncRetrying(stop=stop_after_attempt(self.max_attempts), wait=wait_fixed(self.retry_wait_seconds), retry=retry_if_exception(should_retry_api_error), reraise=True)

        async def _attempt():
            await self.rate_limiter.wait()
            return await self._run_sync(self._sync_request, method, path, params=params, json_body=json_body)

        try:
            return await async_retryer(_attempt)
        except RetryError as e:
            last_exception = e.last_attempt.exception() if e.last_attempt else e
            log.error(f"All {self.max_attempts} attempts failed for {method} {path}. Last error: {last_exception}")
            raise TransportError(f"{method} {path} failed after {self.max_attempts} attempts: {last_exception}") from e
        except req_exceptions.HTTPError as e:
            status_code = getattr(getattr(e, 'response', None), 'status_code', 0) or 0
            raise TransportError(_http_error_message(e), status_code=status_code) from e
        except (req_exceptions.ConnectionError, req_exceptions.Timeout) as e:
            raise TransportError(f"Could not reach {self.base_url}: {e}") from e
        except ValueError as e:
            # requests' JSONDecodeError is also a RequestException
            raise TransportError(f"Invalid JSON response from {path}: {e}") from e
        except req_exceptions.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

    # --- Source session ---

    async def detect_source_database(self, source_type: SourceType) -> Optional[str]:
        data = await self._request('GET', f"{ARRIMPORT_BASE}/detect-db", params={'type': source_type.value})
        found = data.get('found') if isinstance(data, dict) else None
        return str(found) if found else None

    async def connect(self, config: ConnectionConfig) -> None:
        try:
            await self._request('POST', f"{ARRIMPORT_BASE}/connect", json_body=connection_to_payload(config))
        except TransportError as e:
            raise SourceConnectionError(str(e)) from e

    async def disconnect(self) -> None:
        await self._request('DELETE', f"{ARRIMPORT_BASE}/session")

    async def _fetch_list(self, path: str, label: str) -> List[Dict[str, Any]]:
        try:
            data = await self._request('GET', path)
        except TransportError as e:
            raise ReferenceFetchError(f"Failed to load {label}: {e}") from e
        if data is None:
            raise ReferenceFetchError(f"Failed to load {label}: empty response")
        if not isinstance(data, list):
            raise ReferenceFetchError(f"Failed to load {label}: unexpected response type {type(data).__name__}")
        return data

    async def fetch_source_root_folders(self) -> List[SourceRootFolder]:
        data = await self._fetch_list(f"{ARRIMPORT_BASE}/source/rootfolders", "source root folders")
        return [SourceRootFolder.from_dict(d) for d in data]

    async def fetch_source_quality_profiles(self) -> List[SourceQualityProfile]:
        data = await self._fetch_list(f"{ARRIMPORT_BASE}/source/qualityprofiles", "source quality profiles")
        return [SourceQualityProfile.from_dict(d) for d in data]

    async def fetch_target_root_folders(self) -> List[TargetRootFolder]:
        data = await self._fetch_list("/api/v1/rootfolders", "target root folders")
        return [TargetRootFolder.from_dict(d) for d in data]

    async def fetch_target_quality_profiles(self) -> List[TargetQualityProfile]:
        data = await self._fetch_list("/api/v1/qualityprofiles", "target quality profiles")
        return [TargetQualityProfile.from_dict(d) for d in data]

    # --- Preview and import ---

    async def compute_preview(self, mappings: ImportMappings) -> ImportPreview:
        try:
            data = await self._request('POST', f"{ARRIMPORT_BASE}/preview", json_body=mappings.to_payload())
        except TransportError as e:
            raise PreviewError(str(e)) from e
        if not isinstance(data, dict):
            raise PreviewError("Preview response was empty or malformed.")
        return ImportPreview.from_dict(data)

    async def execute_import(self, mappings: ImportMappings) -> str:
        try:
            data = await self._request('POST', f"{ARRIMPORT_BASE}/execute", json_body=mappings.to_payload())
        except TransportError as e:
            raise ImportSubmitError(str(e)) from e
        job_id = data.get('jobId') if isinstance(data, dict) else None
        return str(job_id) if job_id else DEFAULT_JOB_ID

    async def observe_progress(self, job_id: str) -> AsyncIterator[Activity]:
        started = time.monotonic()
        while True:
            try:
                data = await self._request('GET', f"/api/v1/progress/{job_id}")
            except TransportError as e:
                if e.status_code != 404:
                    raise
                # Activity not registered yet
                data = None
            if isinstance(data, dict):
                activity = Activity.from_dict(data)
            else:
                activity = Activity(id=job_id, status=ActivityStatus.PENDING)
            yield activity
            if activity.status.is_terminal:
                return
            if self.progress_timeout and time.monotonic() - started > self.progress_timeout:
                raise TransportError(f"Timed out after {self.progress_timeout:.0f}s waiting for import job '{job_id}'.")
            await asyncio.sleep(self.poll_interval)

    # --- Configuration import ---

    async def fetch_config_preview(self) -> ConfigPreview:
        data = await self._request('GET', f"{ARRIMPORT_BASE}/config/preview")
        if not isinstance(data, dict):
            raise TransportError("Configuration preview response was empty or malformed.")
        return ConfigPreview.from_dict(data)

    async def execute_config_import(self, selections: Dict[str, Any]) -> ConfigImportReport:
        data = await self._request('POST', f"{ARRIMPORT_BASE}/config/execute", json_body=selections)
        return ConfigImportReport.from_dict(data if isinstance(data, dict) else {})
