"""
Song catalog. Keeps the file store and the search index in step.

Every mutation writes the song file first and then updates the index, under
the per-id lock of the store. The pair is not transactional:

* file write fails  -> ``StorageError``, the index is not touched;
* index update fails after the file write -> the song is durable but not
  searchable. This is logged and reported as ``IndexUpdateError``; nothing is
  rolled back. A full reindex (``reindex``, admin command ``index/reset``)
  brings the index back in line with the files.
"""

import time
from dataclasses import dataclass
from typing import Iterator, Optional

from loguru import logger

from . import songmark
from .errors import IndexUpdateError, SongNotFound, ValidationError
from .models import IndexDocument, Song
from .search import SearchIndex
from .storage import SongStore, generate_id


def project(song_id: str, content: str) -> IndexDocument:
    """Index document for a song; every field derives from ``content``."""
    song = songmark.parse(content)
    return IndexDocument(
        id=song_id,
        lyrics=songmark.searchable_text(song),
        title=song.title,
        author=song.artist,
        album=song.album or "",
    )


@dataclass(frozen=True)
class Deletion:
    id: str
    title: Optional[str]

    @property
    def label(self) -> str:
        return self.title or self.id


class SongCatalog:
    """Create / update / delete / fetch songs and rebuild the index."""

    def __init__(self, store: SongStore, index: SearchIndex) -> None:
        self.store = store
        self.index = index

    @staticmethod
    def parse_valid(content: str) -> Song:
        song = songmark.parse(content)
        if not song.is_complete:
            raise ValidationError()
        return song

    def _index_song(self, song_id: str, content: str, operation: str) -> None:
        try:
            self.index.upsert(project(song_id, content))
        except Exception as e:
            logger.exception(
                f"{operation}: song {song_id} stored but not indexed, "
                f"run a full reindex to repair: {e}"
            )
            raise IndexUpdateError(song_id) from e

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, content: str) -> str:
        """Store a new song (or replace the one with the same title and artist)."""
        song = self.parse_valid(content)
        song_id = generate_id(song.title, song.artist)
        with self.store.locked(song_id):
            self.store.write(song_id, content)
            self._index_song(song_id, content, "create")
        logger.info(f"Created song {song_id}")
        return song_id

    def update(self, song_id: str, content: str) -> str:
        """Overwrite an existing song; the id never changes, even if the title does."""
        if not self.store.exists(song_id):
            raise SongNotFound(song_id)
        self.parse_valid(content)
        with self.store.locked(song_id):
            if not self.store.exists(song_id):
                raise SongNotFound(song_id)
            self.store.write(song_id, content)
            self._index_song(song_id, content, "update")
        logger.info(f"Updated song {song_id}")
        return song_id

    def delete(self, song_id: str) -> Deletion:
        with self.store.locked(song_id):
            if not self.store.exists(song_id):
                raise SongNotFound(song_id)
            # read before removal so the confirmation can name the song
            title = self.index.title_of(song_id)
            self.store.delete(song_id)
            try:
                self.index.remove(song_id)
            except Exception as e:
                logger.exception(f"delete: song {song_id} removed from disk but not from the index: {e}")
                raise IndexUpdateError(song_id) from e
        logger.info(f"Deleted song {song_id}")
        return Deletion(song_id, title)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch(self, song_id: str) -> str:
        return self.store.read(song_id)

    def song(self, song_id: str) -> Song:
        return songmark.parse(self.fetch(song_id))

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _projections(self) -> Iterator[IndexDocument]:
        for song_id, content in self.store.iter_songs():
            yield project(song_id, content)

    def reindex(self) -> int:
        """Drop cached song content and rebuild the whole index from the files."""
        start = time.monotonic()
        dropped = self.store.clear_cache()
        count = self.index.rebuild(self._projections())
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Reindexed {count} songs in {elapsed_ms} ms ({dropped} cached entries dropped)")
        return count
