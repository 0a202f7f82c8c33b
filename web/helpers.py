# Copyright (c) 2026 Panayotis Katsaloulis
# SPDX-License-Identifier: AGPL-3.0-or-later
"""Shared configuration, key validation helpers, and cleanup registry."""
import logging
import os
import time
from dataclasses import dataclass

log = logging.getLogger(__name__)

DEFAULT_VIDEO_EXTENSIONS = ('.mp4', '.mov', '.avi', '.mkv', '.webm')

# S3 limits keys to 1024 bytes of UTF-8
MAX_KEY_BYTES = 1024


# ── Settings ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    aws_region: str
    aws_access_key_id: str
    aws_secret_access_key: str
    bucket: str
    endpoint_url: str | None = None
    force_path_style: bool = False
    port: int = 3000
    static_dir: str = "static"
    page_size: int = 18
    max_page_size: int = 100
    list_batch_size: int = 1000
    signed_url_ttl: int = 3600
    checkpoint_capacity: int = 4096
    summary_capacity: int = 512
    checkpoint_ttl: int = 3600
    video_extensions: tuple[str, ...] = DEFAULT_VIDEO_EXTENSIONS
    log_level: str = "INFO"


def parse_bool_env(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _required(env, name: str) -> str:
    value = env.get(name)
    if not value:
        raise RuntimeError(f"Missing {name}")
    return value


def _int(env, name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def _extensions(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_VIDEO_EXTENSIONS
    exts = []
    for part in raw.split(','):
        part = part.strip().lower()
        if not part:
            continue
        exts.append(part if part.startswith('.') else f".{part}")
    return tuple(exts) or DEFAULT_VIDEO_EXTENSIONS


def load_settings(env=None) -> Settings:
    """Read settings from the environment (or the given mapping)."""
    env = os.environ if env is None else env
    return Settings(
        aws_region=_required(env, "AWS_REGION"),
        aws_access_key_id=_required(env, "AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=_required(env, "AWS_SECRET_ACCESS_KEY"),
        bucket=_required(env, "AWS_S3_BUCKET_NAME"),
        endpoint_url=env.get("AWS_S3_ENDPOINT_URL") or None,
        force_path_style=parse_bool_env(env.get("AWS_S3_FORCE_PATH_STYLE")),
        port=_int(env, "PORT", 3000),
        static_dir=env.get("STATIC_DIR") or "static",
        page_size=max(1, _int(env, "PAGE_SIZE", 18)),
        max_page_size=max(1, _int(env, "MAX_PAGE_SIZE", 100)),
        list_batch_size=min(1000, max(1, _int(env, "LIST_BATCH_SIZE", 1000))),
        signed_url_ttl=max(1, _int(env, "SIGNED_URL_TTL", 3600)),
        checkpoint_capacity=max(1, _int(env, "CHECKPOINT_CAPACITY", 4096)),
        summary_capacity=max(1, _int(env, "SUMMARY_CAPACITY", 512)),
        checkpoint_ttl=max(1, _int(env, "CHECKPOINT_TTL", 3600)),
        video_extensions=_extensions(env.get("VIDEO_EXTENSIONS")),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )


# ── Key validation ──────────────────────────────────────────────────────────

def is_valid_key(key: str, allow_empty: bool = False) -> bool:
    """Check that a prefix or object key is something the store could hold.

    Rejects leading slashes, control characters and keys over the S3 limit.
    The empty string is the bucket root and only valid as a prefix.
    """
    if key == "":
        return allow_empty
    if key.startswith('/'):
        return False
    if any(ord(c) < 0x20 or ord(c) == 0x7f for c in key):
        return False
    return len(key.encode('utf-8')) <= MAX_KEY_BYTES


# ── Cleanup registry ─────────────────────────────────────────────────────────

_cleanup_registry: list = []
_last_cleanup: float = 0
CLEANUP_INTERVAL = 300


def register_cleanup(fn):
    """Register a cleanup function to be called periodically."""
    _cleanup_registry.append(fn)


def unregister_cleanup(fn):
    if fn in _cleanup_registry:
        _cleanup_registry.remove(fn)


def maybe_cleanup():
    """Run all registered cleanup functions if 5+ minutes since last run."""
    global _last_cleanup
    now = time.time()
    if now - _last_cleanup < CLEANUP_INTERVAL:
        return
    _last_cleanup = now
    for fn in _cleanup_registry:
        try:
            fn()
        except Exception as e:
            log.warning(f"Cleanup error: {e}")
