# Copyright (c) 2026 Panayotis Katsaloulis
# SPDX-License-Identifier: AGPL-3.0-or-later
"""Page resolver: page number + page size -> one slice of a prefix listing.

The store only lists forward from a cursor, so a page is reached by walking
from the closest cached boundary checkpoint at or before it. Totals need one
full walk per prefix; that walk is cached with the folder list and reused
until the cache is refreshed.
"""

import logging
import math
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime

from checkpoints import CheckpointCache, PrefixSummary
from errors import ErrorKind, ListingError, invalid_request
from helpers import is_valid_key
from storage import Entry, ObjectLister, UrlSigner
from walker import START, Checkpoint, is_video, walk

log = logging.getLogger(__name__)

DEFAULT_URL_TTL = 3600
DEFAULT_MAX_PAGE_SIZE = 100


@dataclass
class VideoItem:
    key: str
    size: int
    last_modified: str | None
    stream_url: str

    def to_dict(self) -> dict:
        return {
            'key': self.key,
            'size': self.size,
            'lastModified': self.last_modified,
            'streamUrl': self.stream_url,
        }


@dataclass
class PageResult:
    prefix: str
    page: int
    page_size: int
    total_pages: int
    total_items: int
    has_next_page: bool
    has_prev_page: bool
    folders: list[str] = field(default_factory=list)
    videos: list[VideoItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'prefix': self.prefix,
            'folders': list(self.folders),
            'videos': [v.to_dict() for v in self.videos],
            'pagination': {
                'page': self.page,
                'pageSize': self.page_size,
                'totalPages': self.total_pages,
                'totalVideos': self.total_items,
                'hasNextPage': self.has_next_page,
                'hasPrevPage': self.has_prev_page,
            },
        }


def _format_timestamp(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def parse_int(value: str | int, name: str) -> int:
    """Query-string number -> int, INVALID_REQUEST when it is not one."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise invalid_request(f"{name} must be an integer, got {value!r}") from None


def validate_request(prefix: str, page: int, page_size: int, max_page_size: int = DEFAULT_MAX_PAGE_SIZE):
    if not isinstance(page, int) or isinstance(page, bool) or page < 1:
        raise invalid_request(f"page must be a positive integer, got {page!r}")
    if not isinstance(page_size, int) or isinstance(page_size, bool) or page_size < 1:
        raise invalid_request(f"pageSize must be a positive integer, got {page_size!r}")
    if page_size > max_page_size:
        raise invalid_request(f"pageSize must be at most {max_page_size}, got {page_size}")
    if not isinstance(prefix, str) or not is_valid_key(prefix, allow_empty=True):
        raise invalid_request(f"Malformed prefix {prefix!r}")


# ── Prefix totals ───────────────────────────────────────────────────────────

async def scan_prefix(
    lister: ObjectLister,
    cache: CheckpointCache,
    prefix: str,
    page_size: int,
    predicate: Callable[[str], bool] = is_video,
) -> PrefixSummary:
    """Walk the whole prefix once: count matches, collect folders.

    Page boundaries for page_size are recorded as they are reached. The
    summary itself is only stored once the walk has finished.
    """
    folder_keys: dict[str, None] = {}
    count = 0

    def _add_folder(key: str):
        folder_keys.setdefault(key, None)

    try:
        async with aclosing(walk(lister, prefix, START, predicate, on_folder=_add_folder)) as items:
            async for item in items:
                if count % page_size == 0:
                    cache.record(prefix, count, item.position)
                count += 1
    except ListingError as e:
        # A token issued during this same scan was rejected
        if e.kind == ErrorKind.CURSOR_INVALID:
            raise ListingError(f"Listing of '{prefix}' broke mid-scan: {e.message}", source=e) from e
        raise

    summary = PrefixSummary(total_items=count, folders=tuple(folder_keys))
    cache.store_summary(prefix, summary)
    log.info(f"Scanned '{prefix}': {count} video(s), {len(folder_keys)} folder(s)")
    return summary


async def get_summary(lister, cache, prefix, page_size, predicate=is_video) -> PrefixSummary:
    summary = cache.summary(prefix)
    if summary is None:
        summary = await scan_prefix(lister, cache, prefix, page_size, predicate)
    return summary


# ── Page walk ───────────────────────────────────────────────────────────────

async def _walk_page(
    lister: ObjectLister,
    cache: CheckpointCache,
    prefix: str,
    target: int,
    page_size: int,
    index: int,
    start: Checkpoint,
    predicate: Callable[[str], bool],
) -> tuple[list[Entry], bool]:
    """Skip from index to target, then collect page_size entries plus one lookahead."""
    entries: list[Entry] = []
    lookahead = False
    async with aclosing(walk(lister, prefix, start, predicate)) as items:
        async for item in items:
            if index % page_size == 0:
                cache.record(prefix, index, item.position)
            if index < target:
                index += 1
                continue
            if len(entries) == page_size:
                lookahead = True
                break
            entries.append(item.entry)
            index += 1
    return entries, lookahead


async def collect_page(
    lister: ObjectLister,
    cache: CheckpointCache,
    prefix: str,
    page: int,
    page_size: int,
    predicate: Callable[[str], bool] = is_video,
) -> tuple[list[Entry], bool, bool]:
    """Return (entries of page, whether a next entry exists, whether the cache was stale).

    When a cached checkpoint no longer resumes the listing, the prefix is
    dropped from the cache and the page is walked again from the start.
    """
    target = (page - 1) * page_size
    index, start = cache.nearest(prefix, target)
    try:
        entries, has_next = await _walk_page(lister, cache, prefix, target, page_size, index, start, predicate)
        return entries, has_next, False
    except ListingError as e:
        if e.kind != ErrorKind.CURSOR_INVALID:
            raise
        if start == START:
            raise ListingError(f"Listing of '{prefix}' broke mid-walk: {e.message}", source=e) from e
        log.warning(f"Stale checkpoint at {index} for '{prefix}', restarting from prefix start")
        cache.invalidate(prefix)

    try:
        entries, has_next = await _walk_page(lister, cache, prefix, target, page_size, 0, START, predicate)
        return entries, has_next, True
    except ListingError as e:
        if e.kind == ErrorKind.CURSOR_INVALID:
            raise ListingError(f"Listing of '{prefix}' broke mid-walk: {e.message}", source=e) from e
        raise


async def sign_entries(signer: UrlSigner, entries: list[Entry], ttl: int) -> list[VideoItem]:
    """Sign each entry once, in order. One failure fails the whole page."""
    videos = []
    for entry in entries:
        try:
            url = await signer.sign(entry.key, ttl)
        except ListingError as e:
            if e.kind != ErrorKind.SIGNING_FAILURE:
                raise ListingError(e.message, kind=ErrorKind.SIGNING_FAILURE, source=e) from e
            raise
        except Exception as e:
            raise ListingError(f"Failed to sign '{entry.key}': {e}",
                               kind=ErrorKind.SIGNING_FAILURE, source=e) from e
        videos.append(VideoItem(
            key=entry.key,
            size=entry.size or 0,
            last_modified=_format_timestamp(entry.last_modified),
            stream_url=url,
        ))
    return videos


async def resolve_page(
    lister: ObjectLister,
    signer: UrlSigner,
    cache: CheckpointCache,
    prefix: str = "",
    page: int = 1,
    page_size: int = 18,
    *,
    refresh: bool = False,
    url_ttl: int = DEFAULT_URL_TTL,
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
    predicate: Callable[[str], bool] = is_video,
) -> PageResult:
    """Resolve one page of videos under prefix.

    Raises ListingError: INVALID_REQUEST before any store access,
    STORE_UNAVAILABLE when listing fails, SIGNING_FAILURE when any URL of
    the page cannot be signed.
    """
    validate_request(prefix, page, page_size, max_page_size)

    if refresh:
        cache.invalidate()

    summary = await get_summary(lister, cache, prefix, page_size, predicate)
    total_pages = math.ceil(summary.total_items / page_size)

    entries, has_next = [], False
    if page <= total_pages:
        entries, has_next, stale = await collect_page(lister, cache, prefix, page, page_size, predicate)
        if stale:
            # Cached totals predate the change that broke the checkpoint
            summary = await scan_prefix(lister, cache, prefix, page_size, predicate)
            total_pages = math.ceil(summary.total_items / page_size)
            if page > total_pages:
                entries, has_next = [], False

    total_items = summary.total_items
    folders = list(summary.folders)

    if total_items == 0:
        # An empty listing is page 1 of 0, not an error
        return PageResult(prefix=prefix, page=1, page_size=page_size, total_pages=0,
                          total_items=0, has_next_page=False, has_prev_page=False,
                          folders=folders)

    videos = await sign_entries(signer, entries, url_ttl)
    log.debug(f"Resolved '{prefix}' page {page}/{total_pages}: {len(videos)} video(s)")

    return PageResult(
        prefix=prefix,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        total_items=total_items,
        has_next_page=has_next,
        has_prev_page=page > 1,
        folders=folders,
        videos=videos,
    )
