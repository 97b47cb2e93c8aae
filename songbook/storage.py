"""
File-backed song store: one ``<id>.song`` file per song under the songs root.

Writes go to a ``.tmp`` sibling and are renamed into place, so readers only
ever see a complete file. Writes to the same id are serialized on one of a
fixed set of striped locks; most different ids proceed in parallel.
"""

import hashlib
import re
import threading
import unicodedata
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Tuple

from loguru import logger

from .errors import SongNotFound, StorageError

SONG_EXTENSION = ".song"
_SLUG_MAX = 40
LOCK_STRIPES = 64
_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")


def _slug(text: str) -> str:
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return text[:_SLUG_MAX].rstrip("-")


def generate_id(title: str, artist: str) -> str:
    """Deterministic id for a (title, artist) pair.

    Readable slug of both parts plus a hash of the exact pair, so pairs that
    slug the same ("Hey!" / "Hey?") still get different ids.
    """
    title, artist = title.strip(), artist.strip()
    digest = hashlib.sha1(f"{title}\x00{artist}".encode("utf-8")).hexdigest()[:10]
    parts = [p for p in (_slug(title), _slug(artist)) if p]
    return "-".join(parts + [digest])


def is_valid_id(candidate: str) -> bool:
    return bool(_ID_PATTERN.match(candidate))


class SongStore:
    """Authoritative song storage. Content is cached in memory after first read."""

    def __init__(self, songs_root: Path) -> None:
        self.root = songs_root
        self._cache: Dict[str, str] = {}
        # bumped by every write, delete and cache clear
        self._generation = 0
        self._cache_lock = threading.Lock()
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Songs root {self.root} is not accessible: {e}") from e

    def path_for(self, song_id: str) -> Path:
        return self.root / f"{song_id}{SONG_EXTENSION}"

    @contextmanager
    def locked(self, song_id: str) -> Iterator[None]:
        """Hold the write lock for ``song_id``. Not re-entrant, and never hold two ids at once."""
        with self._locks[hash(song_id) % len(self._locks)]:
            yield

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def exists(self, song_id: str) -> bool:
        return is_valid_id(song_id) and self.path_for(song_id).is_file()

    def read(self, song_id: str) -> str:
        """Song content, or ``SongNotFound``."""
        with self._cache_lock:
            cached = self._cache.get(song_id)
            generation = self._generation
        if cached is not None:
            return cached
        if not self.exists(song_id):
            raise SongNotFound(song_id)
        try:
            content = self.path_for(song_id).read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise SongNotFound(song_id) from e
        except OSError as e:
            logger.error(f"Failed to read song {song_id}: {e}")
            raise StorageError() from e
        with self._cache_lock:
            # a write, delete or clear since we started reading may make this stale
            if self._generation == generation:
                self._cache[song_id] = content
        return content

    def ids(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.stem for p in self.root.glob(f"*{SONG_EXTENSION}")
            if p.is_file() and is_valid_id(p.stem)
        )

    def iter_songs(self) -> Iterator[Tuple[str, str]]:
        """Yield ``(id, content)`` for every stored song; unreadable files are skipped."""
        for song_id in self.ids():
            try:
                yield song_id, self.read(song_id)
            except (SongNotFound, StorageError) as e:
                logger.warning(f"Skipping song {song_id}: {e}")

    # ------------------------------------------------------------------
    # Write operations (callers hold ``locked(song_id)``)
    # ------------------------------------------------------------------

    def write(self, song_id: str, content: str) -> None:
        if not is_valid_id(song_id):
            raise StorageError(f"Invalid song id {song_id!r}")
        path = self.path_for(song_id)
        tmp = path.with_suffix(".tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(content, encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            logger.error(f"Failed to write song {song_id}: {e}")
            raise StorageError() from e
        finally:
            self._forget(song_id)

    def delete(self, song_id: str) -> None:
        if not is_valid_id(song_id):
            raise SongNotFound(song_id)
        try:
            self.path_for(song_id).unlink()
        except FileNotFoundError as e:
            raise SongNotFound(song_id) from e
        except OSError as e:
            logger.error(f"Failed to delete song {song_id}: {e}")
            raise StorageError() from e
        finally:
            self._forget(song_id)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _forget(self, song_id: str) -> None:
        with self._cache_lock:
            self._cache.pop(song_id, None)
            self._generation += 1

    def clear_cache(self) -> int:
        with self._cache_lock:
            dropped = len(self._cache)
            self._cache.clear()
            self._generation += 1
        return dropped

    def __len__(self) -> int:
        return len(self.ids())

    def __repr__(self) -> str:
        return f"SongStore(root={self.root})"
