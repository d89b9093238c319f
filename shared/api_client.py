"""
HTTP client for the Soundspots API.

A thin layer over a shared requests.Session. It owns the global bearer
header of the regular session, lets admin calls attach their own token per
request, and turns transport and HTTP failures into the client's error
hierarchy.
"""

import logging
import mimetypes
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests

from shared.config import API_TIMEOUT, resolve_base_url
from shared.constants import ENDPOINTS, MSG_NETWORK_ERROR
from shared.exceptions import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_ERRORS = {
    400: ValidationError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
}


@dataclass
class ConnectionReport:
    """Outcome of a backend reachability check."""
    success: bool
    message: str
    url: str
    status: Optional[int] = None


@contextmanager
def open_upload(path: str, field: str) -> Iterator[Dict[str, Any]]:
    """Open a local file as a multipart `files` mapping for requests."""
    file_path = Path(path).expanduser()
    mime, _ = mimetypes.guess_type(file_path.name)
    with open(file_path, "rb") as fh:
        yield {field: (file_path.name, fh, mime or "application/octet-stream")}


class ApiClient:
    """
    Sends requests to the API and decodes JSON answers.

    The regular session's token is installed as a default header on the
    underlying requests.Session. Admin calls never touch that header: they
    pass `token=` and the header is set for that request only.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or resolve_base_url()).rstrip("/")
        self.timeout = timeout or API_TIMEOUT
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self._auth_token: Optional[str] = None
        self._unauthorized_callbacks: List[Callable[[str], None]] = []

    # Global auth header

    @property
    def auth_token(self) -> Optional[str]:
        return self._auth_token

    def set_auth_token(self, token: str) -> None:
        self._auth_token = token
        self.session.headers["Authorization"] = f"Bearer {token}"

    def clear_auth_token(self) -> None:
        self._auth_token = None
        self.session.headers.pop("Authorization", None)

    def add_unauthorized_callback(self, callback: Callable[[str], None]) -> None:
        """Register a callback invoked with the token that produced a 401."""
        if callback not in self._unauthorized_callbacks:
            self._unauthorized_callbacks.append(callback)

    # Requests

    def request(self, method: str, path: str, *, json: Any = None,
                params: Optional[Dict[str, Any]] = None, data: Optional[Dict[str, Any]] = None,
                files: Optional[Dict[str, Any]] = None, token: Optional[str] = None,
                authenticated: bool = True, default_message: str = "Request failed") -> Any:
        """
        Perform a request and return the decoded body.

        Args:
            method: HTTP verb
            path: Path below the base URL
            token: Bearer token for this request only (admin calls)
            authenticated: False strips the default auth header (login, signup)
            default_message: Message used when the server gives none

        Raises:
            NetworkError: No response was received
            ApiError: The server answered with a non-success status
        """
        url = f"{self.base_url}{path}"
        headers: Dict[str, Optional[str]] = {}
        used_token = self._auth_token
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
            used_token = token
        elif not authenticated:
            # None removes the session-level header for this request
            headers["Authorization"] = None
            used_token = None

        logger.debug("%s %s", method, path)
        try:
            response = self.session.request(
                method, url, json=json, params=params, data=data, files=files,
                headers=headers, timeout=self.timeout,
            )
        except requests.Timeout as e:
            logger.warning("%s %s timed out", method, path)
            raise NetworkError(details={"reason": "timeout"}) from e
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e.__class__.__name__)
            raise NetworkError(details={"reason": e.__class__.__name__}) from e

        logger.debug("%s %s -> %s", method, path, response.status_code)
        body = self._decode(response)
        if response.ok:
            return body

        message = self._server_message(body) or default_message
        if response.status_code == 401 and used_token:
            self._notify_unauthorized(used_token)
        error_cls = _STATUS_ERRORS.get(response.status_code)
        details = body if isinstance(body, dict) else {}
        if error_cls is None:
            raise ApiError(message, response.status_code, details)
        raise error_cls(message, details)

    def get(self, path: str, **kwargs) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> Any:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs) -> Any:
        return self.request("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        return self.request("DELETE", path, **kwargs)

    def check_connection(self) -> ConnectionReport:
        """Probe a public endpoint and describe what went wrong, if anything."""
        url = f"{self.base_url}{ENDPOINTS['SUBSCRIPTION_PLANS']}"
        try:
            response = self.session.request("GET", url, headers={"Authorization": None},
                                            timeout=self.timeout)
        except requests.Timeout:
            return ConnectionReport(False, "Connection timeout - server took too long to respond", self.base_url)
        except requests.ConnectionError:
            return ConnectionReport(False, "Network request failed - unable to reach server", self.base_url)
        except requests.RequestException as e:
            logger.warning("Connection check failed: %s", e)
            return ConnectionReport(False, MSG_NETWORK_ERROR, self.base_url)

        if response.ok:
            return ConnectionReport(True, "Successfully connected to backend", self.base_url, response.status_code)
        return ConnectionReport(False, f"Backend responded with error: {response.status_code}",
                                self.base_url, response.status_code)

    # Helpers

    def _notify_unauthorized(self, token: str) -> None:
        for callback in list(self._unauthorized_callbacks):
            try:
                callback(token)
            except Exception:
                logger.exception("Error in unauthorized callback")

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _server_message(body: Any) -> Optional[str]:
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            if isinstance(message, str) and message:
                return message
        return None
