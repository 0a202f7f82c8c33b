# Copyright (c) 2026 Panayotis Katsaloulis
# SPDX-License-Identifier: AGPL-3.0-or-later
"""Error types for listing, paging and signing."""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Classification of listing errors."""

    INVALID_REQUEST = "invalid_request"
    STORE_UNAVAILABLE = "store_unavailable"
    SIGNING_FAILURE = "signing_failure"
    CURSOR_INVALID = "cursor_invalid"  # internal, never reaches a client


# kind -> HTTP status used by the routes
HTTP_STATUS = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.STORE_UNAVAILABLE: 502,
    ErrorKind.SIGNING_FAILURE: 502,
    ErrorKind.CURSOR_INVALID: 500,
}


class ListingError(Exception):
    """Base error for every failure of a page request."""

    __slots__ = ("kind", "message", "source")

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.STORE_UNAVAILABLE,
        source: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.source = source

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    def __repr__(self) -> str:
        return f"ListingError({self.message!r}, kind={self.kind!r})"


def invalid_request(message: str) -> ListingError:
    return ListingError(message, kind=ErrorKind.INVALID_REQUEST)
