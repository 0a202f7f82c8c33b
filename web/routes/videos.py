# Copyright (c) 2026 Panayotis Katsaloulis
# SPDX-License-Identifier: AGPL-3.0-or-later
"""Video routes: paged folder listing, signed-URL redirect, health."""
import logging

from fastapi import APIRouter, HTTPException, Query, Request, Depends
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from checkpoints import CheckpointCache
from errors import ErrorKind, ListingError
from helpers import Settings, is_valid_key
from pages import parse_int, resolve_page

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

_RETRY_MESSAGES = {
    ErrorKind.STORE_UNAVAILABLE: "Could not list videos right now, please retry",
    ErrorKind.SIGNING_FAILURE: "Could not prepare video links, please retry",
}


# ── Response models ─────────────────────────────────────────────────────────

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class VideoOut(_CamelModel):
    key: str
    size: int
    last_modified: str | None = None
    stream_url: str

class PaginationOut(_CamelModel):
    page: int
    page_size: int
    total_pages: int
    total_videos: int
    has_next_page: bool
    has_prev_page: bool

class ListResponse(_CamelModel):
    prefix: str
    folders: list[str]
    videos: list[VideoOut]
    pagination: PaginationOut


# ── Dependencies ────────────────────────────────────────────────────────────

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request):
    return request.app.state.storage


def get_cache(request: Request) -> CheckpointCache:
    return request.app.state.cache


def get_predicate(request: Request):
    return request.app.state.predicate


def _to_http(e: ListingError, what: str) -> HTTPException:
    if e.kind == ErrorKind.INVALID_REQUEST:
        return HTTPException(status_code=400, detail=e.message)
    log.error(f"{what} failed ({e.kind}): {e.message}")
    detail = _RETRY_MESSAGES.get(e.kind, "Internal error, please retry")
    return HTTPException(status_code=e.status_code, detail=detail)


# ── Routes ──────────────────────────────────────────────────────────────────

@router.get("/videos", response_model=ListResponse)
async def list_videos(
    prefix: str = Query(default=""),
    page: str = Query(default="1"),
    page_size: str | None = Query(default=None, alias="pageSize"),
    refresh: bool = Query(default=False),
    settings: Settings = Depends(get_settings),
    storage=Depends(get_storage),
    cache: CheckpointCache = Depends(get_cache),
    predicate=Depends(get_predicate),
):
    """List one page of videos and all sub-folders under prefix."""
    try:
        page_number = parse_int(page, "page")
        size = settings.page_size if page_size is None else parse_int(page_size, "pageSize")
        result = await resolve_page(
            storage, storage, cache, prefix, page_number, size,
            refresh=refresh,
            url_ttl=settings.signed_url_ttl,
            max_page_size=settings.max_page_size,
            predicate=predicate,
        )
    except ListingError as e:
        raise _to_http(e, f"Listing '{prefix}' page {page}")
    return ListResponse.model_validate(result.to_dict())


@router.get("/videos/stream/{key:path}")
async def stream_video(
    key: str,
    settings: Settings = Depends(get_settings),
    storage=Depends(get_storage),
    predicate=Depends(get_predicate),
):
    """Redirect to a freshly signed URL for one video."""
    if not is_valid_key(key) or not predicate(key):
        raise HTTPException(status_code=400, detail="Invalid video key")
    try:
        url = await storage.sign(key, settings.signed_url_ttl)
    except ListingError as e:
        raise _to_http(e, f"Signing '{key}'")
    return RedirectResponse(url, status_code=302)


@router.get("/health")
async def health(cache: CheckpointCache = Depends(get_cache)):
    return {"status": "ok", "cache": cache.stats()}
