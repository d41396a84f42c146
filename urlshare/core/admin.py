"""Mapping create / update operations."""

from __future__ import annotations

from urlshare.core.errors import InvalidInputError, MethodNotAllowedError
from urlshare.core.iri import canonical_iri
from urlshare.observability.logging import log_event
from urlshare.storage.kv import MappingStore


_WRITE_METHODS = frozenset({"PATCH", "POST"})


class MappingAdmin:
    def __init__(self, store: MappingStore, *, key_base: str = "", write_method: str = "PATCH") -> None:
        write_method = (write_method or "PATCH").strip().upper()
        if write_method not in _WRITE_METHODS:
            raise ValueError(f"unsupported write method: {write_method}")
        self.store = store
        self.key_base = key_base
        self.write_method = write_method

    def submit(self, method: str, from_iri: str | None, to_iri: str | None) -> str:
        """Create (empty from_iri) or upsert (from_iri given) one mapping.

        Returns the key that was written. The HTTP layer does not echo it.
        """
        method = (method or "").strip().upper()
        if method != self.write_method:
            raise MethodNotAllowedError(method, self.write_method)

        raw_target = (to_iri or "").strip()
        if not raw_target:
            raise InvalidInputError("toIri required")
        try:
            target = canonical_iri(raw_target)
        except ValueError as exc:
            raise InvalidInputError(f"toIri is not a valid IRI: {exc}") from exc
        if not target:
            raise InvalidInputError("toIri is empty after canonicalization")

        key = (from_iri or "").strip()
        if not key:
            key = self.store.create(target, base=self.key_base)
            log_event("mapping_created", key=key, target=target)
            return key
        self.store.update(key, target)
        log_event("mapping_updated", key=key, target=target)
        return key
