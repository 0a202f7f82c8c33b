"""Listing walker: filtering, ordering, laziness, resume."""
import asyncio

import pytest

from errors import ErrorKind, ListingError
from walker import START, Checkpoint, is_video, make_video_predicate, walk

from fakes import FakeStore, folder, other, video


def collect(store, prefix, start=START, on_folder=None, limit=None):
    async def _run():
        out = []
        gen = walk(store, prefix, start, is_video, on_folder)
        try:
            async for item in gen:
                out.append(item)
                if limit is not None and len(out) >= limit:
                    break
        finally:
            await gen.aclose()
        return out
    return asyncio.run(_run())


def test_is_video_case_insensitive():
    assert is_video("a/b/clip.MP4")
    assert is_video("movie.mkv")
    assert is_video("x.WebM")
    assert not is_video("notes.txt")
    assert not is_video("mp4")
    assert not is_video("folder.mp4/")


def test_custom_extensions():
    pred = make_video_predicate(('.ts', '.M2TS'))
    assert pred("a.m2ts")
    assert pred("b.TS")
    assert not pred("c.mp4")


def test_filters_files_and_reports_folders():
    store = FakeStore({"": [folder("clips/"), video("intro.mp4"), folder("movies/"), other("notes.txt")]})
    folders = []
    items = collect(store, "", on_folder=folders.append)
    assert [i.entry.key for i in items] == ["intro.mp4"]
    assert folders == ["clips/", "movies/"]


def test_preserves_store_order_across_batches():
    keys = [f"v{i:02d}.mp4" for i in range(12)]
    listing = []
    for i, k in enumerate(keys):
        listing.append(video(k))
        if i % 3 == 0:
            listing.append(other(f"v{i:02d}.srt"))
    store = FakeStore({"p/": listing}, batch_size=4)
    items = collect(store, "p/")
    assert [i.entry.key for i in items] == keys


def test_fetches_lazily():
    store = FakeStore({"p/": [video(f"{i}.mp4") for i in range(30)]}, batch_size=10)
    items = collect(store, "p/", limit=3)
    assert len(items) == 3
    assert len(store.list_calls) == 1

    store.list_calls.clear()
    collect(store, "p/", limit=11)
    assert len(store.list_calls) == 2


def test_positions_resume_at_entry():
    listing = [video(f"{i:02d}.mp4") for i in range(25)]
    store = FakeStore({"p/": listing}, batch_size=7)
    items = collect(store, "p/")

    position = items[16].position
    assert position == Checkpoint("0:14", 2)

    resumed = collect(store, "p/", start=position)
    assert [i.entry.key for i in resumed] == [e.key for e in listing[16:]]


def test_skip_counts_only_matching_files():
    listing = [other("a.txt"), video("b.mp4"), other("c.txt"), video("d.mp4"), video("e.mp4")]
    store = FakeStore({"": listing}, batch_size=10)
    resumed = collect(store, "", start=Checkpoint(None, 2))
    assert [i.entry.key for i in resumed] == ["e.mp4"]


def test_skip_beyond_batch_is_cursor_invalid():
    store = FakeStore({"p/": [video("a.mp4"), video("b.mp4")]}, batch_size=10)
    with pytest.raises(ListingError) as exc:
        collect(store, "p/", start=Checkpoint(None, 5))
    assert exc.value.kind == ErrorKind.CURSOR_INVALID


def test_lister_failure_propagates_without_retry():
    store = FakeStore({"p/": [video(f"{i}.mp4") for i in range(20)]}, batch_size=10, fail_on_call=2)
    with pytest.raises(ListingError) as exc:
        collect(store, "p/")
    assert exc.value.kind == ErrorKind.STORE_UNAVAILABLE
    assert len(store.list_calls) == 2


def test_unexpected_lister_exception_becomes_store_unavailable():
    class Broken:
        async def list_batch(self, prefix, cursor):
            raise ConnectionResetError("peer reset")

    with pytest.raises(ListingError) as exc:
        collect(Broken(), "p/")
    assert exc.value.kind == ErrorKind.STORE_UNAVAILABLE
    assert isinstance(exc.value.source, ConnectionResetError)
