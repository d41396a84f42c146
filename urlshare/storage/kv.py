"""KV abstraction for short link mappings."""

from __future__ import annotations

from abc import ABC, abstractmethod

from urlshare.core.models import Mapping


def format_key(seq: int, *, base: str = "", separator: str = "r", radix: int = 10, min_width: int = 0) -> str:
    """Turn a sequence value into a mapping key.

    ``format_key(26, radix=16)`` gives ``"1a"``;
    ``format_key(3, base="https://s.example/")`` gives ``"https://s.example/r/3"``.
    """
    if radix == 10:
        digits = str(seq)
    elif radix == 16:
        digits = format(seq, "x")
    else:
        raise ValueError(f"unsupported key radix: {radix}")
    if min_width > 0:
        digits = digits.rjust(min_width, "0")
    base = (base or "").rstrip("/")
    if not base:
        return digits
    separator = (separator or "").strip("/")
    if not separator:
        return f"{base}/{digits}"
    return f"{base}/{separator}/{digits}"


class MappingStore(ABC):
    @abstractmethod
    def create(self, target: str, *, base: str = "") -> str:
        """Store target under a freshly generated key and return the key."""

    @abstractmethod
    def update(self, key: str, target: str) -> None:
        """Create or fully replace the mapping for key."""

    @abstractmethod
    def get(self, key: str) -> Mapping | None:
        pass

    @abstractmethod
    def list_mappings(self) -> list[Mapping]:
        """All mappings in descending key order."""

    @abstractmethod
    def close(self) -> None:
        pass
