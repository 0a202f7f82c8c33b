# Copyright (c) 2026 Panayotis Katsaloulis
# SPDX-License-Identifier: AGPL-3.0-or-later
"""Object store access: one listing batch in, one signed URL out.

Each call is stateless. The continuation token handed back by the store is
passed through as an opaque cursor and never parsed here. No retries: the
botocore client configuration owns retry policy.
"""

import asyncio
import heapq
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from errors import ErrorKind, ListingError
from helpers import Settings

log = logging.getLogger(__name__)

# Error codes S3 (and MinIO) return for a stale or foreign continuation token
_BAD_TOKEN_CODES = ('InvalidArgument', 'InvalidToken', 'InvalidContinuationToken')


class EntryKind(StrEnum):
    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True)
class Entry:
    key: str
    kind: EntryKind = EntryKind.FILE
    size: int | None = None
    last_modified: datetime | None = None

    @property
    def is_folder(self) -> bool:
        return self.kind == EntryKind.FOLDER


@dataclass(frozen=True)
class Batch:
    entries: list[Entry]
    next_cursor: Any = None  # None = end of listing


class ObjectLister(Protocol):
    async def list_batch(self, prefix: str, cursor: Any) -> Batch:
        """Return one batch of entries directly under prefix."""
        ...


class UrlSigner(Protocol):
    async def sign(self, key: str, ttl: int) -> str:
        """Return a time-limited URL for key, raise ListingError on failure."""
        ...


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "Unknown")


class S3Storage:
    """boto3-backed lister and signer for one bucket."""

    def __init__(self, client, bucket: str, batch_size: int = 1000):
        self._client = client
        self.bucket = bucket
        self.batch_size = batch_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Storage":
        s3_opts = {'addressing_style': 'path'} if settings.force_path_style else {}
        client = boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            endpoint_url=settings.endpoint_url,
            config=Config(
                signature_version='s3v4',
                s3=s3_opts,
                retries={'max_attempts': 3, 'mode': 'standard'},
            ),
        )
        log.info(f"S3 client for bucket {settings.bucket} "
                 f"(endpoint={settings.endpoint_url or 'aws'}, path_style={settings.force_path_style})")
        return cls(client, settings.bucket, settings.list_batch_size)

    # ── Listing ─────────────────────────────────────────────────────────────

    def _list_sync(self, prefix: str, cursor: Any) -> Batch:
        kwargs = {
            'Bucket': self.bucket,
            'Prefix': prefix,
            'Delimiter': '/',
            'MaxKeys': self.batch_size,
        }
        if cursor is not None:
            kwargs['ContinuationToken'] = cursor

        try:
            response = self._client.list_objects_v2(**kwargs)
        except ClientError as e:
            code = _error_code(e)
            if cursor is not None and code in _BAD_TOKEN_CODES:
                raise ListingError(f"Store rejected cursor for '{prefix}': {code}",
                                   kind=ErrorKind.CURSOR_INVALID, source=e) from e
            raise ListingError(f"Failed to list '{prefix}': {e}", source=e) from e
        except BotoCoreError as e:
            raise ListingError(f"Failed to list '{prefix}': {e}", source=e) from e

        files = [
            Entry(key=obj['Key'], size=obj.get('Size', 0), last_modified=obj.get('LastModified'))
            for obj in response.get('Contents', [])
            if obj.get('Key')
        ]
        folders = [
            Entry(key=cp['Prefix'], kind=EntryKind.FOLDER)
            for cp in response.get('CommonPrefixes', [])
            if cp.get('Prefix')
        ]
        # Both lists come back key-ordered; interleave them into one listing order
        entries = list(heapq.merge(files, folders, key=lambda e: e.key))

        next_cursor = None
        if response.get('IsTruncated'):
            next_cursor = response.get('NextContinuationToken') or None
            if next_cursor is None:
                log.warning(f"Truncated listing for '{prefix}' without a continuation token")
        return Batch(entries, next_cursor)

    async def list_batch(self, prefix: str, cursor: Any) -> Batch:
        return await asyncio.to_thread(self._list_sync, prefix, cursor)

    # ── Signing ─────────────────────────────────────────────────────────────

    def _sign_sync(self, key: str, ttl: int) -> str:
        try:
            return self._client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': key},
                ExpiresIn=ttl,
            )
        except (ClientError, BotoCoreError) as e:
            raise ListingError(f"Failed to presign '{key}': {e}",
                               kind=ErrorKind.SIGNING_FAILURE, source=e) from e

    async def sign(self, key: str, ttl: int) -> str:
        return await asyncio.to_thread(self._sign_sync, key, ttl)
