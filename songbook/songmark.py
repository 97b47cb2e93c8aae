"""
Song markup (ChordPro-style) reading and writing.

    {title: Imagine}
    {artist: John Lennon}
    {album: Imagine}

    [C]Imagine there's no [F]heaven

Directives are ``{name: value}`` lines; ``{meta: name value}`` is accepted as
well. Chords sit inline in square brackets. Everything that is not a directive
is body.
"""

import re
from typing import List, Optional

from markupsafe import Markup, escape

from .models import Song

_DIRECTIVE = re.compile(r"^\{\s*([A-Za-z_]+)\s*(?::\s*(.*?))?\s*\}$")
_META = re.compile(r"^(\w+)\s+(.+)$")
_CHORD = re.compile(r"\[([^\]\n]*)\]")

# directive name -> Song field
_FIELD_ALIASES = {
    "title": "title",
    "t": "title",
    "artist": "artist",
    "subtitle": "artist",
    "st": "artist",
    "album": "album",
}

BLANK_SONG = """{title: }
{artist: }
{album: }

[C]First line of the [G]song
"""


def _directive(line: str) -> Optional[tuple]:
    match = _DIRECTIVE.match(line.strip())
    if not match:
        return None
    name = match.group(1).lower()
    value = (match.group(2) or "").strip()
    if name == "meta":
        meta = _META.match(value)
        if not meta:
            return (name, value)
        return (meta.group(1).lower(), meta.group(2).strip())
    return (name, value)


def parse(content: str) -> Song:
    """Split markup into title/artist/album and body lines.

    The first occurrence of a directive wins; unknown directives are dropped.
    """
    fields = {}
    body: List[str] = []
    for line in content.splitlines():
        directive = _directive(line)
        if directive is None:
            body.append(line.rstrip())
            continue
        name, value = directive
        field = _FIELD_ALIASES.get(name)
        if field and field not in fields:
            fields[field] = value

    while body and not body[0].strip():
        body.pop(0)
    while body and not body[-1].strip():
        body.pop()

    return Song(
        title=fields.get("title", ""),
        artist=fields.get("artist", ""),
        album=fields.get("album") or None,
        body=body,
    )


def title_of(content: str) -> str:
    return parse(content).title


def strip_chords(line: str) -> str:
    return " ".join(_CHORD.sub("", line).split())


def lyrics(song: Song) -> str:
    """Plain body text: chords removed, whitespace collapsed, blank lines dropped."""
    lines = (strip_chords(line) for line in song.body)
    return "\n".join(line for line in lines if line)


def searchable_text(song: Song) -> str:
    """Title, artist and album lines followed by the lyrics; what an unqualified search looks at."""
    header = [part.strip() for part in (song.title, song.artist, song.album or "") if part.strip()]
    body = lyrics(song)
    return "\n".join(header + [body] if body else header)


def compose(title: str, artist: str, body: str = "", album: Optional[str] = None) -> str:
    """Build markup from separate fields (JSON submissions)."""
    lines = [f"{{title: {title.strip()}}}", f"{{artist: {artist.strip()}}}"]
    if album and album.strip():
        lines.append(f"{{album: {album.strip()}}}")
    lines.append("")
    lines.extend(body.strip("\n").splitlines())
    return "\n".join(lines) + "\n"


def _render_line(line: str) -> Markup:
    parts = []
    position = 0
    for match in _CHORD.finditer(line):
        parts.append(escape(line[position:match.start()]))
        parts.append(Markup('<span class="chord">{}</span>').format(match.group(1)))
        position = match.end()
    parts.append(escape(line[position:]))
    return Markup("").join(parts)


def render_html(song: Song) -> Markup:
    """Body as HTML: one ``<p class="verse">`` per block, chords in spans."""
    blocks: List[List[str]] = [[]]
    for line in song.body:
        if line.strip():
            blocks[-1].append(line)
        elif blocks[-1]:
            blocks.append([])

    html = []
    for block in blocks:
        if not block:
            continue
        rendered = Markup("<br>\n").join(_render_line(line) for line in block)
        html.append(Markup('<p class="verse">{}</p>').format(rendered))
    return Markup("\n").join(html)
