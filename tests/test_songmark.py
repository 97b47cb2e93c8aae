"""Unit tests for song markup parsing and rendering."""

from songbook import songmark

IMAGINE = """{title: Imagine}
{artist: John Lennon}
{album: Imagine}

[C]Imagine there's no [F]heaven
It's easy if you try

No hell below us
"""


class TestParse:
    def test_metadata(self):
        song = songmark.parse(IMAGINE)
        assert song.title == "Imagine"
        assert song.artist == "John Lennon"
        assert song.album == "Imagine"
        assert song.is_complete

    def test_body_keeps_inner_blank_lines(self):
        song = songmark.parse(IMAGINE)
        assert song.body == [
            "[C]Imagine there's no [F]heaven",
            "It's easy if you try",
            "",
            "No hell below us",
        ]

    def test_aliases_and_meta(self):
        song = songmark.parse("{t: Yesterday}\n{st: The Beatles}\n{meta: album Help!}\n")
        assert (song.title, song.artist, song.album) == ("Yesterday", "The Beatles", "Help!")

    def test_first_directive_wins(self):
        song = songmark.parse("{title: One}\n{title: Two}\n{artist: A}")
        assert song.title == "One"

    def test_unknown_directives_dropped(self):
        song = songmark.parse("{title: T}\n{artist: A}\n{key: G}\n{start_of_chorus}\nla la")
        assert song.body == ["la la"]

    def test_missing_artist_is_incomplete(self):
        song = songmark.parse("{title: Untitled}\nsome words")
        assert not song.is_complete
        assert song.album is None

    def test_blank_title_is_incomplete(self):
        assert not songmark.parse(songmark.BLANK_SONG).is_complete


class TestLyrics:
    def test_chords_removed(self):
        assert songmark.strip_chords("[C]Imagine there's no [F]heaven") == "Imagine there's no heaven"

    def test_lyrics_drop_blank_lines(self):
        text = songmark.lyrics(songmark.parse(IMAGINE))
        assert text == "Imagine there's no heaven\nIt's easy if you try\nNo hell below us"

    def test_searchable_text_starts_with_metadata(self):
        text = songmark.searchable_text(songmark.parse(IMAGINE))
        assert text.splitlines()[:4] == ["Imagine", "John Lennon", "Imagine", "Imagine there's no heaven"]

    def test_searchable_text_without_body(self):
        assert songmark.searchable_text(songmark.parse("{title: T}\n{artist: A}\n")) == "T\nA"

    def test_title_of(self):
        assert songmark.title_of(IMAGINE) == "Imagine"


class TestCompose:
    def test_compose_parses_back(self):
        content = songmark.compose(" Imagine ", "John Lennon", "[C]Imagine\n", album="Imagine")
        song = songmark.parse(content)
        assert song.title == "Imagine"
        assert song.artist == "John Lennon"
        assert song.album == "Imagine"
        assert song.body == ["[C]Imagine"]

    def test_compose_without_album(self):
        content = songmark.compose("T", "A")
        assert "{album" not in content
        assert songmark.parse(content).album is None


class TestRenderHtml:
    def test_chords_and_verses(self):
        html = str(songmark.render_html(songmark.parse(IMAGINE)))
        assert html.count('<p class="verse">') == 2
        assert '<span class="chord">C</span>Imagine' in html
        assert "heaven<br>" in html

    def test_text_is_escaped(self):
        song = songmark.parse("{title: T}\n{artist: A}\n<script>[<b>]x")
        html = str(songmark.render_html(song))
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert '<span class="chord">&lt;b&gt;</span>' in html
