# Copyright (c) 2026 Panayotis Katsaloulis
# SPDX-License-Identifier: AGPL-3.0-or-later
"""Listing walker: lazily drive the store lister over one prefix.

The walk pulls one batch at a time and only when the consumer asks for an
entry past the current batch. Store tokens only resume at batch granularity,
so a resume point is the batch cursor plus how many matching files of that
batch to skip.
"""

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from errors import ErrorKind, ListingError
from helpers import DEFAULT_VIDEO_EXTENSIONS
from storage import Entry, ObjectLister

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Checkpoint:
    cursor: Any = None  # opaque store token, None = start of prefix
    skip: int = 0       # matching files of that batch to pass over


START = Checkpoint()


@dataclass(frozen=True)
class WalkItem:
    entry: Entry
    position: Checkpoint  # resumes the walk at exactly this entry


def make_video_predicate(extensions=DEFAULT_VIDEO_EXTENSIONS) -> Callable[[str], bool]:
    exts = tuple(e.lower() for e in extensions)

    def _match(key: str) -> bool:
        return key.lower().endswith(exts)
    return _match


is_video = make_video_predicate()


async def walk(
    lister: ObjectLister,
    prefix: str,
    start: Checkpoint = START,
    predicate: Callable[[str], bool] = is_video,
    on_folder: Callable[[str], None] | None = None,
) -> AsyncIterator[WalkItem]:
    """Yield matching file entries directly under prefix, in store order.

    Folder markers are never filtered; each one is reported to on_folder.
    Lister failures propagate as-is. Raises CURSOR_INVALID when the batch
    at start holds fewer matching files than start.skip, which means the
    listing changed since the checkpoint was taken.
    """
    cursor = start.cursor
    skip = start.skip
    while True:
        try:
            batch = await lister.list_batch(prefix, cursor)
        except ListingError:
            raise
        except Exception as e:
            raise ListingError(f"Failed to list '{prefix}': {e}", source=e) from e
        matched = 0
        for entry in batch.entries:
            if entry.is_folder:
                if on_folder is not None:
                    on_folder(entry.key)
                continue
            if not predicate(entry.key):
                continue
            if matched >= skip:
                yield WalkItem(entry, Checkpoint(cursor, matched))
            matched += 1

        if matched < skip:
            raise ListingError(
                f"Checkpoint for '{prefix}' expects {skip} entries in batch, found {matched}",
                kind=ErrorKind.CURSOR_INVALID)
        skip = 0

        if batch.next_cursor is None:
            return
        if cursor is not None and batch.next_cursor == cursor:
            raise ListingError(f"Listing of '{prefix}' did not advance past its cursor")
        cursor = batch.next_cursor
