"""Short link resolution."""

from __future__ import annotations

from urlshare.core.errors import MalformedTargetError
from urlshare.core.iri import merge_query
from urlshare.core.models import Resolution
from urlshare.storage.kv import MappingStore
from urlshare.util.logger import get_logger


logger = get_logger("resolver")

KEY_MODE_PATH = "path"
KEY_MODE_EXTERNAL = "external"


class RedirectResolver:
    """Maps an inbound request to a stored target.

    ``path`` mode looks up the last path segment; ``external`` mode looks up the
    reconstructed external IRI (``base_url`` + path, with and then without the
    query string).
    """

    def __init__(self, store: MappingStore, *, base_url: str = "", key_mode: str = KEY_MODE_PATH) -> None:
        key_mode = (key_mode or KEY_MODE_PATH).strip().lower()
        if key_mode not in {KEY_MODE_PATH, KEY_MODE_EXTERNAL}:
            raise ValueError(f"unsupported key mode: {key_mode}")
        base_url = (base_url or "").strip().rstrip("/")
        # external 模式的 key 以 base_url 为前缀，缺失时生成的短链无法命中
        if key_mode == KEY_MODE_EXTERNAL and not base_url:
            raise ValueError("external key mode requires a base_url")
        self.store = store
        self.base_url = base_url
        self.key_mode = key_mode

    def candidate_keys(self, path: str, query: str = "") -> list[tuple[str, str]]:
        """Return (lookup key, query left to merge) pairs in lookup order."""
        if self.key_mode == KEY_MODE_EXTERNAL:
            path = path if path.startswith("/") else f"/{path}"
            external = f"{self.base_url}{path}"
            if not query:
                return [(external, "")]
            return [(f"{external}?{query}", ""), (external, query)]
        segments = [segment for segment in path.split("/") if segment]
        if not segments:
            return []
        return [(segments[-1], query)]

    def external_address(self, key: str) -> str:
        """Full short address a visitor would use for key."""
        if self.key_mode == KEY_MODE_EXTERNAL:
            return key
        return f"{self.base_url}/{key}"

    def resolve(self, path: str, query: str = "") -> Resolution | None:
        for key, pending_query in self.candidate_keys(path, query):
            mapping = self.store.get(key)
            if mapping is None:
                continue
            try:
                location = merge_query(mapping.target, pending_query)
            except ValueError as exc:
                raise MalformedTargetError(key, mapping.target) from exc
            return Resolution(key=key, target=mapping.target, location=location)
        logger.debug("no mapping path=%s", path)
        return None
