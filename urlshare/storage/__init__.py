"""Storage backend selection helpers."""

from __future__ import annotations

from urlshare.config.settings import Settings
from urlshare.storage.kv import MappingStore
from urlshare.storage.sqlite_store import SqliteMappingStore


def create_store(settings: Settings) -> MappingStore:
    return SqliteMappingStore(
        db_path=settings.db_path,
        bucket=settings.bucket,
        key_radix=settings.key_radix,
        key_separator=settings.key_separator,
        key_min_width=settings.key_min_width,
        write_timeout_seconds=settings.write_timeout_seconds,
        read_retries=settings.read_retries,
    )
