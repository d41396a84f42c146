"""Structured logging bridge: one ``key=value`` line per event."""

from __future__ import annotations

import logging

from urlshare.util.logger import get_logger


event_logger = get_logger("events")
request_logger = get_logger("access")


def _format_payload(payload: dict[str, object]) -> str:
    return " ".join(f"{key}={value!r}" if isinstance(value, str) else f"{key}={value}" for key, value in payload.items())


def log_event(event: str, level: int = logging.INFO, **payload: object) -> None:
    event_logger.log(level, "event=%s %s", event, _format_payload(payload))


def log_request(method: str, url: str, status_code: int, elapsed_ms: float, handler: str = "-") -> None:
    request_logger.info(
        "%s %s status=%s handler=%s elapsed_ms=%.1f", method, url, status_code, handler, elapsed_ms
    )
