"""
REST client for the remote proving service.

This is the transport half of the remote backend: each method is one HTTP
exchange and maps failures onto the error kinds in headerchain.exceptions.
Sequencing, concurrency and polling live in headerchain.session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from headerchain.exceptions import (
    ConfigError,
    DownloadFailed,
    SessionCreationFailed,
    StatusQueryFailed,
    UploadFailed,
    UploadLocationUnavailable,
)

API_KEY_HEADER = "x-api-key"
DEFAULT_TIMEOUT_S = 60.0

IMAGES_ROUTE = "images"
INPUTS_ROUTE = "inputs"


@dataclass(frozen=True)
class RemoteEndpoint:
    url: str
    api_key: str

    @classmethod
    def parse(cls, value: str) -> "RemoteEndpoint":
        """Parse the packed '<api_url>|<api_key>' endpoint string."""
        parts = str(value).split("|")
        if len(parts) != 2:
            raise ConfigError("Invalid BONSAI_ENDPOINT URL, must be in format: '<api_url>|<api_key>'")
        url, key = parts[0].strip().rstrip("/"), parts[1].strip()
        if not url:
            raise ConfigError("Remote endpoint URL is empty")
        if not key:
            raise ConfigError("Remote endpoint API key is empty")
        return cls(url=url, api_key=key)

    def __repr__(self) -> str:
        return f"RemoteEndpoint(url={self.url!r}, api_key='***')"


@dataclass(frozen=True)
class UploadLocation:
    # Presigned URL for the PUT
    url: str
    uuid: str


@dataclass(frozen=True)
class SessionId:
    uuid: str


@dataclass(frozen=True)
class SessionStatus:
    # RUNNING | SUCCEEDED | FAILED | TIMED_OUT | ABORTED
    status: str
    # Present when status == SUCCEEDED
    receipt_url: Optional[str] = None

    @classmethod
    def from_json(cls, payload: Any) -> "SessionStatus":
        if not isinstance(payload, dict) or not isinstance(payload.get("status"), str):
            raise StatusQueryFailed(f"Failed to deserialize Session status result: {payload!r}")
        receipt_url = payload.get("receipt_url")
        if receipt_url is not None and not isinstance(receipt_url, str):
            raise StatusQueryFailed(f"Failed to deserialize Session status result: receipt_url {receipt_url!r}")
        return cls(status=payload["status"], receipt_url=receipt_url or None)


def _json_object(resp: requests.Response, error: type, what: str) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as e:
        raise error(f"Failed to deserialize {what}: {e}", body=resp.text) from e
    if not isinstance(data, dict):
        raise error(f"Failed to deserialize {what}: expected object", body=resp.text)
    return data


class BonsaiClient:
    """
    Blocking client for the proving service REST API.

    Every request carries the API key header and an explicit timeout.
    """

    def __init__(self, url: str, api_key: str, timeout_s: float = DEFAULT_TIMEOUT_S,
                 session: Optional[requests.Session] = None):
        if not api_key:
            raise ConfigError("Remote endpoint API key is empty")
        self.url = url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self.http = session if session is not None else requests.Session()
        self.http.headers.update({API_KEY_HEADER: api_key})

    @classmethod
    def from_parts(cls, url: str, api_key: str, timeout_s: float = DEFAULT_TIMEOUT_S) -> "BonsaiClient":
        return cls(url, api_key, timeout_s)

    @classmethod
    def from_endpoint(cls, endpoint: RemoteEndpoint, timeout_s: float = DEFAULT_TIMEOUT_S) -> "BonsaiClient":
        return cls(endpoint.url, endpoint.api_key, timeout_s)

    # - uploads

    def upload_location(self, route: str) -> UploadLocation:
        """Fetch a presigned upload URL for the images or inputs route."""
        try:
            resp = self.http.get(f"{self.url}/{route}/upload", timeout=self.timeout_s)
        except requests.RequestException as e:
            raise UploadLocationUnavailable(f"Failed to fetch upload location for /{route}: {e}") from e
        if not resp.ok:
            raise UploadLocationUnavailable(
                f"Request failed - server error ({resp.status_code}): '{resp.text}'", body=resp.text
            )
        data = _json_object(resp, UploadLocationUnavailable, "upload response")
        url, uuid = data.get("url"), data.get("uuid")
        if not url or not uuid:
            raise UploadLocationUnavailable(f"Upload response missing url or uuid: {data}", body=resp.text)
        return UploadLocation(url=str(url), uuid=str(uuid))

    def put_bytes(self, url: str, data: bytes) -> None:
        """Upload a body to a presigned URL."""
        try:
            resp = self.http.put(url, data=data, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise UploadFailed(f"Failed to PUT data to destination: {e}") from e
        if not resp.ok:
            raise UploadFailed(f"Failed to PUT to provided URL ({resp.status_code})", body=resp.text)

    # - sessions

    def create_session(self, img_id: str, input_id: str) -> SessionId:
        """Create a proof session from an uploaded image and input."""
        try:
            resp = self.http.post(
                f"{self.url}/sessions/create",
                json={"img": img_id, "input": input_id},
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise SessionCreationFailed(f"Failed to submit session/create POST request: {e}") from e
        if not resp.ok:
            raise SessionCreationFailed(
                f"Request failed - server error ({resp.status_code}): '{resp.text}'", body=resp.text
            )
        data = _json_object(resp, SessionCreationFailed, "session create result")
        if not data.get("uuid"):
            raise SessionCreationFailed(f"Session create response missing uuid: {data}", body=resp.text)
        return SessionId(uuid=str(data["uuid"]))

    def get_status(self, session: SessionId) -> SessionStatus:
        try:
            resp = self.http.get(f"{self.url}/sessions/status/{session.uuid}", timeout=self.timeout_s)
        except requests.RequestException as e:
            raise StatusQueryFailed(f"Failed to GET session status: {e}") from e
        if not resp.ok:
            raise StatusQueryFailed(
                f"Request failed - server error ({resp.status_code}): '{resp.text}'", body=resp.text
            )
        return SessionStatus.from_json(_json_object(resp, StatusQueryFailed, "session status result"))

    # - utilities

    def download(self, url: str) -> bytes:
        """Download a URL (e.g. a session receipt_url) to a buffer."""
        try:
            resp = self.http.get(url, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise DownloadFailed(f"Failed to download url to buffer: {e}") from e
        if not resp.ok:
            raise DownloadFailed(f"Receipt download failed ({resp.status_code})", body=resp.text)
        return resp.content

    def close(self) -> None:
        self.http.close()
