"""Domain records."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Mapping:
    key: str
    target: str


@dataclass(frozen=True, slots=True)
class Resolution:
    key: str
    target: str
    location: str
