"""
Durable record of the upload in progress.

A single JSON file at a fixed path describes the one resumable upload
this installation may have in flight:

    {
        "upload_url": "https://www.googleapis.com/upload/youtube/v3/videos?...&upload_id=xyz",
        "content_file": "1AbCdEf...",        # source descriptor (path or cloud id)
        "content_length": 734003200
    }

The file's existence IS the lock: while it exists, no other upload may be
initiated. It is written once, right after the session URL is obtained
and before any chunk is sent, and removed only when the upload reaches a
terminal outcome (completed or permanently rejected).

Acknowledged progress is not stored. The endpoint is asked for it with a
status probe on every start.
"""

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tube_publisher.core.exceptions import SessionStateError, UploadInProgressError
from tube_publisher.core.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionState:
    """
    Persisted description of an in-flight upload.

    Attributes:
        upload_url: Resumable session URL returned by the initiation request.
        source_descriptor: Identifies the content: a local path, a Google
                           Drive file id or a Dropbox path.
        total_length: Content length in bytes declared at initiation.
                      Never changes for the life of the session.
    """
    upload_url: str
    source_descriptor: str
    total_length: int

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the on-disk key names."""
        return {
            "upload_url": self.upload_url,
            "content_file": self.source_descriptor,
            "content_length": self.total_length,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionState":
        """
        Build from the on-disk representation.

        Raises:
            ValueError: If a key is missing or has the wrong type.
        """
        try:
            upload_url = data["upload_url"]
            source_descriptor = data["content_file"]
            total_length = data["content_length"]
        except KeyError as e:
            raise ValueError(f"missing key {e}") from e

        if not isinstance(upload_url, str) or not upload_url:
            raise ValueError("upload_url must be a non-empty string")
        if not isinstance(source_descriptor, str) or not source_descriptor:
            raise ValueError("content_file must be a non-empty string")
        if isinstance(total_length, bool) or not isinstance(total_length, int) or total_length <= 0:
            raise ValueError("content_length must be a positive integer")

        return cls(
            upload_url=upload_url,
            source_descriptor=source_descriptor,
            total_length=total_length,
        )


class SessionStateStore:
    """
    Reads and writes the session state record.

    Usage:
        store = SessionStateStore(config.upload.state_file)
        state = store.load()      # None means idle
        store.save(state)         # raises UploadInProgressError if one exists
        store.clear()
    """

    def __init__(self, path: Path) -> None:
        """
        Args:
            path: Location of the JSON record. The parent directory is
                  created on first save.
        """
        self.path = path

    def exists(self) -> bool:
        """True if a record is present on disk (an upload is in progress)."""
        return self.path.exists()

    def load(self) -> SessionState | None:
        """
        Read the persisted record.

        Returns:
            The SessionState, or None when there is no usable record.
            An unreadable or corrupt file is logged and treated as idle,
            never raised.
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable upload state {self.path}: {e}")
            return None

        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed upload state {self.path}: not an object")
            return None

        try:
            return SessionState.from_dict(raw)
        except ValueError as e:
            logger.warning(f"Ignoring malformed upload state {self.path}: {e}")
            return None

    def save(self, state: SessionState, overwrite: bool = False) -> None:
        """
        Durably write the record.

        The content is written to a temporary file in the same directory
        and fsynced before it appears under the final name, so a crash
        never leaves a half-written record behind. Without overwrite the
        final name is claimed with a hard link, which fails atomically if
        another process got there first.

        Args:
            state: The record to persist.
            overwrite: Replace an existing record instead of failing.

        Raises:
            UploadInProgressError: If a record already exists and
                                   overwrite is False.
            SessionStateError: If the record cannot be written.
        """
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".upload-state-", dir=directory)
        except OSError as e:
            raise SessionStateError(
                f"Cannot write upload state in {directory}: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())

            if overwrite:
                os.replace(tmp_path, self.path)
            else:
                os.link(tmp_path, self.path)
        except FileExistsError as e:
            raise UploadInProgressError(
                "Upload already in progress",
                details={"path": str(self.path)}
            ) from e
        except OSError as e:
            raise SessionStateError(
                f"Failed to save upload state: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.debug(f"Saved upload state to {self.path}")

    def clear(self) -> None:
        """
        Remove the record. Missing records are fine.

        Raises:
            SessionStateError: If the file exists but cannot be removed.
        """
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise SessionStateError(
                f"Failed to remove upload state: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e
        logger.debug(f"Cleared upload state {self.path}")

    def discard_unreadable(self) -> bool:
        """
        Remove a record that exists on disk but that load() rejects.

        A readable record is left alone: it still holds the lock.

        Returns:
            True if an unreadable record was removed.

        Raises:
            SessionStateError: If the file cannot be removed.
        """
        if not self.exists() or self.load() is not None:
            return False
        logger.warning(f"Removing unreadable upload state {self.path}")
        self.clear()
        return True
