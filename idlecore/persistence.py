"""Storage collaborators for encoded player blobs."""

from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from idlecore.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.@-]+$")


class Database(ABC):
    """Stores one opaque blob per player id."""

    @abstractmethod
    def load_all_players(self) -> list[bytes]: ...

    @abstractmethod
    def save_player(self, player_id: str, blob: bytes) -> None: ...

    @abstractmethod
    def load_player(self, player_id: str) -> bytes: ...

    def player_ids(self) -> list[str]:
        return []


class InMemoryDatabase(Database):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._blobs: dict[str, bytes] = {}

    def load_all_players(self) -> list[bytes]:
        with self._lock:
            return list(self._blobs.values())

    def save_player(self, player_id: str, blob: bytes) -> None:
        with self._lock:
            self._blobs[player_id] = bytes(blob)

    def load_player(self, player_id: str) -> bytes:
        with self._lock:
            blob = self._blobs.get(player_id)
        if blob is None:
            raise NotFoundError(f"Unknown player: {player_id!r}")
        return blob

    def player_ids(self) -> list[str]:
        with self._lock:
            return list(self._blobs)


class JSONFileDatabase(Database):
    """One ``<player_id>.json`` file per player under *directory*.

    Writes go to a temporary file that is renamed into place, so a reader
    never sees a half-written blob.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot create {self.directory}: {exc}") from exc

    def load_all_players(self) -> list[bytes]:
        blobs = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                blobs.append(path.read_bytes())
            except OSError as exc:
                raise PersistenceError(f"Cannot read {path}: {exc}") from exc
        return blobs

    def save_player(self, player_id: str, blob: bytes) -> None:
        path = self._path(player_id)
        fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(blob)
            os.replace(tmp, path)
        except OSError as exc:
            Path(tmp).unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write {path}: {exc}") from exc
        logger.debug("Saved player %s to %s", player_id, path)

    def load_player(self, player_id: str) -> bytes:
        path = self._path(player_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"Unknown player: {player_id!r}") from None
        except OSError as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}") from exc

    def player_ids(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def _path(self, player_id: str) -> Path:
        if not _SAFE_ID.match(player_id) or player_id in (".", ".."):
            raise PersistenceError(f"Invalid player id: {player_id!r}")
        return self.directory / f"{player_id}.json"
