"""Persistence of the observation state.

The state is a small JSON document (last signature, last count and the
serialized cookie jar) kept under a single key in a blob store.  Two
backends are provided: a Cloud Storage bucket for deployment and a local
SQLite file for development.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

import google.auth
import google.auth.exceptions
import requests
from google.auth.transport.requests import AuthorizedSession

from . import config
from .errors import ConfigError, StorageError
from .utils import RunDeadline, request_timeout, retryable_get

logger = logging.getLogger(__name__)

GCS_SCOPE = "https://www.googleapis.com/auth/devstorage.read_write"
GCS_API = "https://storage.googleapis.com"


@dataclass
class State:
    sig: str = ""
    count: Optional[int] = None
    cookies_json: Optional[str] = None

    def to_json(self) -> str:
        # Fixed key order and no timestamps: equal states give equal bytes.
        return json.dumps(
            {"sig": self.sig, "count": self.count, "cookies_json": self.cookies_json}
        )

    @classmethod
    def from_json(cls, text: str) -> "State":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("state document is not a JSON object")
        count = data.get("count")
        cookies = data.get("cookies_json")
        return cls(
            sig=str(data.get("sig") or ""),
            count=int(count) if count is not None else None,
            cookies_json=str(cookies) if cookies is not None else None,
        )


class StateStore:
    """Key/blob store holding one `State` per key.

    Subclasses implement `read_blob` (None when the key does not exist,
    otherwise the raw text or bytes) and `write_blob`; both raise
    `StorageError` on any other failure.
    """

    def read_blob(self, key: str) -> Optional[Union[str, bytes]]:
        raise NotImplementedError

    def write_blob(self, key: str, body: str) -> None:
        raise NotImplementedError

    def load(self, key: str) -> State:
        body = self.read_blob(key)
        if body is None:
            logger.warning("State object %s not found; treating as cold start.", key)
            return State()
        try:
            if isinstance(body, bytes):
                body = body.decode("utf-8")
            return State.from_json(body)
        except (ValueError, TypeError) as exc:
            logger.warning("State object %s is unreadable (%s); treating as cold start.", key, exc)
            return State()

    def save(self, key: str, state: State) -> None:
        self.write_blob(key, state.to_json())

    def close(self) -> None:
        pass


# ---- Cloud Storage -----------------------------------------------------------

@retryable_get
def _get(session: requests.Session, url: str, **kwargs) -> requests.Response:
    return session.get(url, **kwargs)


def _authorized_session() -> AuthorizedSession:
    try:
        credentials, _ = google.auth.default(scopes=[GCS_SCOPE])
    except google.auth.exceptions.DefaultCredentialsError as exc:
        raise StorageError(f"No Google credentials available: {exc}") from exc
    return AuthorizedSession(credentials)


class GCSStateStore(StateStore):
    """State kept as an object in a Cloud Storage bucket (JSON API)."""

    def __init__(
        self,
        bucket: str,
        *,
        session: Optional[requests.Session] = None,
        deadline: Optional[RunDeadline] = None,
    ) -> None:
        if not bucket:
            raise ConfigError("BUCKET_NAME env missing")
        self.bucket = bucket
        self.deadline = deadline
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = _authorized_session()
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()

    def _object_url(self, key: str) -> str:
        return f"{GCS_API}/storage/v1/b/{quote(self.bucket, safe='')}/o/{quote(key, safe='')}"

    def _upload_url(self) -> str:
        return f"{GCS_API}/upload/storage/v1/b/{quote(self.bucket, safe='')}/o"

    def read_blob(self, key: str) -> Optional[bytes]:
        try:
            resp = _get(self.session, self._object_url(key), params={"alt": "media"}, deadline=self.deadline)
        except (requests.RequestException, google.auth.exceptions.GoogleAuthError) as exc:
            raise StorageError(f"gcs read failed: {exc}") from exc

        if resp.status_code == 404:
            return None
        if not resp.ok:
            raise StorageError(f"gcs read failed: {resp.status_code} {resp.text[:200]}")
        return resp.content

    def write_blob(self, key: str, body: str) -> None:
        try:
            resp = self.session.post(
                self._upload_url(),
                params={"uploadType": "media", "name": key},
                data=body.encode("utf-8"),
                headers={"Content-Type": "application/json"},
                timeout=request_timeout(self.deadline),
            )
        except (requests.RequestException, google.auth.exceptions.GoogleAuthError) as exc:
            raise StorageError(f"gcs write failed: {exc}") from exc

        if not resp.ok:
            raise StorageError(f"gcs write failed: {resp.status_code} {resp.text[:200]}")


# ---- SQLite ------------------------------------------------------------------

class SqliteStateStore(StateStore):
    """State kept in a local SQLite file, one row per key."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or config.SQLITE_DB_PATH
        self.init_db()

    def _get_connection(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.path)

    def init_db(self) -> None:
        """Create the table if it doesn't exist."""
        try:
            with closing(self._get_connection()) as conn, conn:
                conn.execute("""
                  CREATE TABLE IF NOT EXISTS state_blobs (
                    key TEXT PRIMARY KEY,
                    body TEXT NOT NULL
                  )
                """)
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"sqlite init failed: {exc}") from exc

    def read_blob(self, key: str) -> Optional[str]:
        try:
            with closing(self._get_connection()) as conn:
                row = conn.execute(
                    "SELECT body FROM state_blobs WHERE key = ? LIMIT 1",
                    (key,),
                ).fetchone()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"sqlite read failed: {exc}") from exc
        return row[0] if row else None

    def write_blob(self, key: str, body: str) -> None:
        try:
            with closing(self._get_connection()) as conn, conn:
                conn.execute(
                    """
                    INSERT INTO state_blobs (key, body) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET body = excluded.body
                    """,
                    (key, body),
                )
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"sqlite write failed: {exc}") from exc


def make_store(deadline: Optional[RunDeadline] = None) -> StateStore:
    """Build the backend selected by STATE_BACKEND."""
    backend = config.STATE_BACKEND
    if backend == "sqlite":
        return SqliteStateStore(config.SQLITE_DB_PATH)
    if backend == "gcs":
        return GCSStateStore(config.BUCKET_NAME or "", deadline=deadline)
    raise ConfigError(f"Unknown STATE_BACKEND {backend!r}")


__all__ = ["State", "StateStore", "GCSStateStore", "SqliteStateStore", "make_store"]
