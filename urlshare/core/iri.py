"""IRI parsing, canonicalization and query merging."""

from __future__ import annotations

import re
from urllib.parse import SplitResult, quote, unquote, urlsplit, urlunsplit


_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_PATH_SAFE = "/:@!$&'()*+,;=~"
_QUERY_SAFE = "/?:@!$&'()*+,;=~"


def _has_control_char(raw: str) -> bool:
    return any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in raw)


def parse_iri(raw: str) -> SplitResult:
    """Syntactic parse of an absolute or relative IRI.

    Raises ValueError for anything a redirect could not be built from.
    """
    if raw is None or not str(raw).strip():
        raise ValueError("empty IRI")
    raw = str(raw)
    if _has_control_char(raw):
        raise ValueError("invalid control character in IRI")
    if raw.startswith(":"):
        raise ValueError("missing protocol scheme")
    parts = urlsplit(raw)
    if parts.netloc:
        if any(ch.isspace() for ch in parts.netloc):
            raise ValueError(f"invalid character in host: {parts.netloc!r}")
        # 访问 port/hostname 会校验端口数值与 IPv6 方括号
        _ = parts.port
        _ = parts.hostname
    for component in (parts.netloc, parts.path):
        if _BAD_ESCAPE_RE.search(component):
            raise ValueError(f"invalid escape in IRI component: {component!r}")
    return parts


def canonical_iri(raw: str) -> str:
    """Percent-decode, parse and re-serialize a caller supplied IRI."""
    decoded = unquote(str(raw or "").strip())
    parts = parse_iri(decoded)
    return urlunsplit(
        (
            parts.scheme,
            parts.netloc,
            quote(parts.path, safe=_PATH_SAFE),
            quote(parts.query, safe=_QUERY_SAFE),
            quote(parts.fragment, safe=_QUERY_SAFE),
        )
    )


def merge_query(target: str, query: str) -> str:
    """Append request query parameters to the target's own parameters.

    Repeated names keep every value: target values first, request values
    after. Both query strings are joined as given, so the target's own
    parameters come back byte-for-byte. An empty request query returns the
    target untouched.
    """
    parts = parse_iri(target)
    if not query:
        return target
    merged = f"{parts.query}&{query}" if parts.query else query
    return urlunsplit(parts._replace(query=merged))
