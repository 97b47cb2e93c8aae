"""
Data Models for the Songbook

A song is owned by the file store as raw markup; everything here is derived
from that markup (``Song``) or projected from it for search (``IndexDocument``).
"""

from typing import List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Song models
# ---------------------------------------------------------------------------

class Song(BaseModel):
    """Structured view of a song's markup."""

    title: str = Field("", description="Song title ({title: ...})")
    artist: str = Field("", description="Performer or author ({artist: ...})")
    album: Optional[str] = Field(None, description="Album name ({album: ...})")
    body: List[str] = Field(default_factory=list, description="Body lines, chords inline")

    @property
    def is_complete(self) -> bool:
        return bool(self.title.strip()) and bool(self.artist.strip())


class SongSubmission(BaseModel):
    """JSON form of a song accepted by POST /songs and PUT /songs/{id}."""

    title: str = ""
    artist: str = ""
    album: Optional[str] = None
    body: str = ""


# ---------------------------------------------------------------------------
# Search models
# ---------------------------------------------------------------------------

# field name -> tokenized? (every field is stored)
INDEX_FIELDS = {
    "id": False,
    "lyrics": True,
    "title": True,
    "author": True,
    "album": True,
}
DEFAULT_SEARCH_FIELD = "lyrics"
SEARCHABLE_FIELDS = tuple(name for name, tokenized in INDEX_FIELDS.items() if tokenized)


class IndexDocument(BaseModel):
    """Search projection of one song, rebuilt from the markup on every write."""

    model_config = {"frozen": True}

    id: str = Field(..., description="Song id, stored untokenized, unique in the index")
    lyrics: str = Field("", description="Title, artist, album and body text without chords or directives")
    title: str = ""
    author: str = ""
    album: str = ""

    def field(self, name: str) -> str:
        return getattr(self, name)


class SearchHit(BaseModel):
    """One ranked result; summaries come from stored index fields only."""

    id: str
    title: str = ""
    author: str = ""
    album: str = ""
    score: float = 0.0
