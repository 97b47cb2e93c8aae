"""Unit tests for the song catalog (store and index kept in step)."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from songbook.catalog import SongCatalog, project
from songbook.errors import IndexUpdateError, SongNotFound, StorageError, ValidationError
from songbook.search import SearchIndex
from songbook.storage import SongStore, generate_id


def make_song(title="Imagine", artist="John Lennon", body="[C]Imagine there's no [F]heaven", album=None):
    lines = [f"{{title: {title}}}", f"{{artist: {artist}}}"]
    if album:
        lines.append(f"{{album: {album}}}")
    return "\n".join(lines + ["", body, ""])


@pytest.fixture
def store(tmp_path):
    s = SongStore(tmp_path / "songs")
    s.ensure_root()
    return s


@pytest.fixture
def catalog(store):
    return SongCatalog(store, SearchIndex())


def hit_ids(catalog, query=None):
    return [h.id for h in catalog.index.query(query)]


class TestProject:
    def test_fields_derive_from_content(self):
        doc = project("x", make_song(album="Imagine"))
        assert doc.id == "x"
        assert doc.title == "Imagine"
        assert doc.author == "John Lennon"
        assert doc.album == "Imagine"
        assert doc.lyrics == "Imagine\nJohn Lennon\nImagine\nImagine there's no heaven"

    def test_song_without_body_is_found_by_title(self):
        doc = project("x", make_song(title="Imagine", artist="Lennon", body="..."))
        assert doc.lyrics == "Imagine\nLennon\n..."


class TestCreate:
    def test_create_is_durable_and_searchable(self, catalog, store):
        song_id = catalog.create(make_song())
        assert song_id == generate_id("Imagine", "John Lennon")
        assert catalog.fetch(song_id) == make_song()
        assert store.path_for(song_id).exists()
        assert hit_ids(catalog, "heaven") == [song_id]
        assert hit_ids(catalog, "title:imagine") == [song_id]

    def test_unqualified_search_matches_title_and_artist(self, catalog):
        song_id = catalog.create(make_song(title="Imagine", artist="Lennon", body="..."))
        assert hit_ids(catalog, "Imagine") == [song_id]
        assert hit_ids(catalog, "lennon") == [song_id]

    def test_same_title_and_artist_overwrites(self, catalog, store):
        first = catalog.create(make_song(body="first version"))
        second = catalog.create(make_song(body="second version"))
        assert first == second
        assert len(store) == 1
        assert hit_ids(catalog, "second") == [first]
        assert hit_ids(catalog, "first") == []

    @pytest.mark.parametrize("content", [
        "{title: Imagine}\nno artist",
        "{artist: John Lennon}\nno title",
        "{title: }\n{artist: }\n",
        "",
    ])
    def test_incomplete_song_rejected_without_writes(self, catalog, store, content):
        with pytest.raises(ValidationError) as exc:
            catalog.create(content)
        assert exc.value.status_code == 400
        assert exc.value.message == "You must provide a title and an artist information"
        assert store.ids() == []
        assert len(catalog.index) == 0

    def test_file_write_failure_leaves_index_untouched(self, catalog, monkeypatch):
        def broken(song_id, content):
            raise StorageError()

        monkeypatch.setattr(catalog.store, "write", broken)
        with pytest.raises(StorageError):
            catalog.create(make_song())
        assert len(catalog.index) == 0

    def test_index_failure_after_write_is_reported(self, catalog, store, monkeypatch):
        def broken(document):
            raise RuntimeError("index unavailable")

        monkeypatch.setattr(catalog.index, "upsert", broken)
        with pytest.raises(IndexUpdateError) as exc:
            catalog.create(make_song())
        assert exc.value.status_code == 500
        # durable but not searchable until a reindex
        assert store.ids() == [exc.value.song_id]
        monkeypatch.undo()
        assert catalog.index.query("heaven") == []
        catalog.reindex()
        assert hit_ids(catalog, "heaven") == [exc.value.song_id]


class TestUpdate:
    def test_update_keeps_id_when_title_changes(self, catalog, store):
        song_id = catalog.create(make_song())
        catalog.update(song_id, make_song(title="Imagine (Live)", body="live lyrics"))
        assert store.ids() == [song_id]
        assert "Imagine (Live)" in catalog.fetch(song_id)
        assert hit_ids(catalog, "live") == [song_id]
        assert hit_ids(catalog, "heaven") == []
        assert catalog.index.title_of(song_id) == "Imagine (Live)"

    def test_update_unknown_id_changes_nothing(self, catalog, store):
        song_id = catalog.create(make_song())
        with pytest.raises(SongNotFound):
            catalog.update("missing", make_song(title="Other"))
        assert store.ids() == [song_id]
        assert len(catalog.index) == 1

    def test_update_validates(self, catalog):
        song_id = catalog.create(make_song())
        with pytest.raises(ValidationError):
            catalog.update(song_id, "{title: Imagine}\n")
        assert catalog.fetch(song_id) == make_song()


class TestDelete:
    def test_delete_removes_file_and_index_entry(self, catalog, store):
        song_id = catalog.create(make_song())
        deletion = catalog.delete(song_id)
        assert deletion.id == song_id
        assert deletion.label == "Imagine"
        assert store.ids() == []
        assert catalog.index.query("heaven") == []
        with pytest.raises(SongNotFound):
            catalog.fetch(song_id)

    def test_delete_unknown(self, catalog):
        with pytest.raises(SongNotFound):
            catalog.delete("missing")

    def test_delete_label_falls_back_to_id(self, catalog, store):
        store.write("orphan", make_song())
        assert catalog.delete("orphan").label == "orphan"


class TestReindex:
    def test_reindex_matches_store(self, catalog, store):
        a = catalog.create(make_song())
        b = catalog.create(make_song(title="Yesterday", artist="The Beatles", body="all my troubles"))
        store.write("manual", make_song(title="Added By Hand", artist="Nobody", body="by hand"))
        store.path_for(a).unlink()

        assert catalog.reindex() == 2
        assert sorted(d.id for d in catalog.index.documents()) == sorted(["manual", b])

    def test_reindex_is_idempotent(self, catalog):
        catalog.create(make_song())
        catalog.create(make_song(title="Yesterday", artist="The Beatles", body="all my troubles"))
        catalog.reindex()
        first = catalog.index.documents()
        catalog.reindex()
        assert catalog.index.documents() == first

    def test_reindex_picks_up_external_edits(self, catalog, store):
        song_id = catalog.create(make_song())
        catalog.fetch(song_id)
        store.path_for(song_id).write_text(make_song(body="rewritten outside"))
        catalog.reindex()
        assert hit_ids(catalog, "rewritten") == [song_id]
        assert "rewritten outside" in catalog.fetch(song_id)


class TestConcurrency:
    def test_readers_see_old_or_new_index_during_reindex(self, catalog, store):
        for n in range(30):
            catalog.create(make_song(title=f"Old {n}", body=f"verse {n}"))
        old_ids = frozenset(store.ids())
        for song_id in sorted(old_ids)[:10]:
            store.path_for(song_id).unlink()
        for n in range(15):
            store.write(generate_id(f"New {n}", "John Lennon"), make_song(title=f"New {n}", body=f"verse {n}"))
        new_ids = frozenset(store.ids())

        started = threading.Barrier(5)
        done = threading.Event()

        def reader():
            seen = []
            started.wait(timeout=10)
            while True:
                finished = done.is_set()
                seen.append(frozenset(hit_ids(catalog)))
                if finished:
                    return seen

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(reader) for _ in range(4)]
            started.wait(timeout=10)
            try:
                rebuilt = catalog.reindex()
            finally:
                done.set()
            results = [f.result() for f in futures]

        assert rebuilt == len(new_ids)

        for seen in results:
            assert set(seen) <= {old_ids, new_ids}
            assert seen[-1] == new_ids

    def test_concurrent_updates_leave_file_and_index_in_step(self, catalog, store):
        song_id = catalog.create(make_song())

        def writer(name):
            for n in range(50):
                catalog.update(song_id, make_song(body=f"{name} verse {n}"))

        with ThreadPoolExecutor(max_workers=2) as pool:
            for future in [pool.submit(writer, name) for name in ("left", "right")]:
                future.result()

        content = store.path_for(song_id).read_text(encoding="utf-8")
        assert content.endswith("verse 49\n")
        assert catalog.index.get(song_id) == project(song_id, content)
        assert catalog.fetch(song_id) == content
        assert list(store.root.glob("*.tmp")) == []
