from __future__ import annotations

import base64
import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from .encryption import DecryptionAuthError, EncryptedStore, MalformedBlobError


logger = logging.getLogger(__name__)

SESSION_SUFFIX = ".session"
ENVELOPE_VERSION = 1
_SESSION_ID_RE = re.compile(r"^session-[0-9a-f]+-[0-9a-f]{12}$")


class PersistenceError(RuntimeError):
    """Saving, loading or deleting a session failed (I/O or unreadable file)."""


class SessionNotFoundError(PersistenceError):
    """No session file exists for the requested id."""


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    created_at: datetime
    updated_at: datetime
    encrypted_payload: bytes
    current_step_index: int


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    created_at: datetime
    updated_at: datetime


class _Envelope(BaseModel):
    """On-disk JSON shape of one session file."""

    version: int = ENVELOPE_VERSION
    session_id: str
    created_at: datetime
    updated_at: datetime
    current_step_index: int
    payload_sha256: str
    payload: str  # base64 of the encrypted blob


def _dump_envelope(envelope: _Envelope) -> bytes:
    return envelope.model_dump_json(indent=2).encode("utf-8")


def _load_envelope(data: bytes) -> _Envelope:
    raw = json.loads(data.decode("utf-8"))
    return _Envelope.model_validate(raw)


def _to_record(envelope: _Envelope) -> SessionRecord:
    return SessionRecord(
        session_id=envelope.session_id,
        created_at=envelope.created_at,
        updated_at=envelope.updated_at,
        encrypted_payload=base64.b64decode(envelope.payload),
        current_step_index=envelope.current_step_index,
    )


class SessionManager:
    """
    Encrypted, file-backed persistence for wizard sessions.

    Usage
    - One JSON envelope per session under `storage_dir`, named
      `<session_id>.session`. Timestamps and the step index are stored in
      clear so `list()` never decrypts; the draft itself is an opaque
      encrypted blob.
    - `save()` writes a temp file in the same directory and swaps it in with
      `os.replace`, so a crash leaves the previous save intact.
    - The passphrase is held in memory only.

    Concurrent writers on the same session id are not coordinated; the last
    write wins.
    """

    def __init__(
        self,
        storage_dir: os.PathLike[str] | str,
        passphrase: str,
        *,
        crypto: Optional[EncryptedStore] = None,
        clock=lambda: datetime.now(UTC),
    ) -> None:
        if not passphrase:
            raise ValueError("passphrase is required")
        self._dir = Path(storage_dir)
        self._passphrase = passphrase
        self._crypto = crypto or EncryptedStore()
        self._clock = clock

    @property
    def storage_dir(self) -> Path:
        return self._dir

    # -------- Identity --------
    @staticmethod
    def new_session_id() -> str:
        stamp = int(datetime.now(UTC).timestamp())
        return f"session-{stamp:x}-{uuid4().hex[:12]}"

    def _path(self, session_id: str) -> Path:
        if not _SESSION_ID_RE.match(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self._dir / f"{session_id}{SESSION_SUFFIX}"

    # -------- Core operations --------
    def save(self, session_id: str, serialized_draft: bytes, step_index: int) -> SessionRecord:
        """Encrypt and atomically persist a draft snapshot.

        Raises PersistenceError when the file cannot be written.
        """
        path = self._path(session_id)
        now = self._clock()
        created_at = now
        try:
            existing = self._read_envelope(path)
        except PersistenceError as ex:
            # An unreadable previous file is replaced, not fatal for a save
            logger.warning("Overwriting unreadable session %s: %s", session_id, ex)
            existing = None
        if existing is not None:
            created_at = existing.created_at

        blob = self._crypto.encrypt(serialized_draft, self._passphrase)
        envelope = _Envelope(
            session_id=session_id,
            created_at=created_at,
            updated_at=now,
            current_step_index=step_index,
            payload_sha256=self._crypto.hash(blob),
            payload=base64.b64encode(blob).decode("ascii"),
        )
        self._atomic_write(path, _dump_envelope(envelope))
        logger.debug("Saved session %s at step %d", session_id, step_index)
        return _to_record(envelope)

    def load(self, session_id: str) -> SessionRecord:
        """Read a session record without decrypting it.

        Raises MalformedBlobError when the payload is not valid base64 and
        DecryptionAuthError when it no longer matches its stored digest.
        """
        envelope = self._read_envelope(self._path(session_id))
        if envelope is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        try:
            record = _to_record(envelope)
        except ValueError as ex:
            raise MalformedBlobError(f"Session {session_id} payload is not valid base64") from ex
        if envelope.payload_sha256 != self._crypto.hash(record.encrypted_payload):
            raise DecryptionAuthError(f"Session {session_id} payload was altered (digest mismatch)")
        logger.debug("Loaded session %s", session_id)
        return record

    def open(self, record: SessionRecord) -> bytes:
        """Decrypt a record's payload.

        Raises:
        - MalformedBlobError if the payload is damaged.
        - DecryptionAuthError if the passphrase is wrong or the payload was altered.
        """
        return self._crypto.decrypt(record.encrypted_payload, self._passphrase)

    def list(self) -> List[SessionSummary]:
        """Summaries of stored sessions, most recently updated first."""
        if not self._dir.exists():
            return []
        summaries: List[SessionSummary] = []
        try:
            paths = sorted(self._dir.glob(f"session-*{SESSION_SUFFIX}"))
        except OSError as ex:
            raise PersistenceError(f"Cannot list sessions in {self._dir}: {ex}") from ex
        for path in paths:
            try:
                envelope = self._read_envelope(path)
            except PersistenceError as ex:
                logger.warning("Skipping unreadable session file %s: %s", path.name, ex)
                continue
            if envelope is None:
                continue
            summaries.append(
                SessionSummary(
                    session_id=envelope.session_id,
                    created_at=envelope.created_at,
                    updated_at=envelope.updated_at,
                )
            )
        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        return summaries

    def delete(self, session_id: str) -> None:
        path = self._path(session_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as ex:
            raise PersistenceError(f"Failed to delete session {session_id}: {ex}") from ex
        logger.info("Deleted session %s", session_id)

    def cleanup(self, older_than_days: int) -> int:
        """Delete sessions not updated within `older_than_days`; returns the count."""
        cutoff = self._clock() - timedelta(days=older_than_days)
        removed = 0
        for summary in self.list():
            if summary.updated_at < cutoff:
                self.delete(summary.session_id)
                removed += 1
        return removed

    # -------- Internal --------
    def _read_envelope(self, path: Path) -> Optional[_Envelope]:
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as ex:
            raise PersistenceError(f"Failed to read {path.name}: {ex}") from ex
        try:
            return _load_envelope(data)
        except (ValueError, ValidationError) as ex:
            raise PersistenceError(f"Session file {path.name} is not a valid envelope") from ex

    def _atomic_write(self, path: Path, data: bytes) -> None:
        tmp_name: Optional[str] = None
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=self._dir)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as ex:
            logger.error("Failed to save %s: %s", path.name, ex)
            raise PersistenceError(f"Failed to save session {path.stem}: {ex}") from ex
        finally:
            # Best-effort cleanup of the temp file after a failed swap
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass


__all__ = [
    "SessionManager",
    "SessionRecord",
    "SessionSummary",
    "PersistenceError",
    "SessionNotFoundError",
]
