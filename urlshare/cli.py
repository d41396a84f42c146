"""Command line entry: run the short link service.

Usage:
  urlshare --addr :8080 --db urlshare.db --base-url https://s.example
"""

from __future__ import annotations

import argparse

import uvicorn

from urlshare.config.settings import Settings
from urlshare.core.gateway import create_app


def parse_addr(addr: str, default_host: str = "0.0.0.0") -> tuple[str, int]:
    """Split ``host:port``; an empty host (``:8080``) listens on all interfaces."""
    raw = (addr or "").strip()
    host, sep, port = raw.rpartition(":")
    if not sep:
        raise argparse.ArgumentTypeError(f"invalid address {addr!r}, expected host:port")
    host = host.strip("[]") or default_host
    try:
        port_number = int(port)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port in address {addr!r}") from exc
    if not 0 < port_number < 65536:
        raise argparse.ArgumentTypeError(f"port out of range in address {addr!r}")
    return host, port_number


def base_url_for(host: str, port: int) -> str:
    """Address visitors reach a listener on; wildcard hosts map to loopback."""
    lowered = (host or "").strip().lower()
    if lowered in {"", "0.0.0.0", "::"}:
        lowered = "127.0.0.1"
    if ":" in lowered:
        lowered = f"[{lowered}]"
    return f"http://{lowered}:{port}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="urlshare", description="short link redirect service")
    parser.add_argument("--addr", default=None, help="http service address, e.g. :8080 or 127.0.0.1:8080")
    parser.add_argument("--db", default=None, help="path to the database file")
    parser.add_argument("--base-url", default=None, help="external base address of short links")
    return parser


def settings_from_args(argv: list[str] | None = None) -> Settings:
    args = build_parser().parse_args(argv)
    overrides: dict[str, object] = {}
    if args.addr:
        try:
            overrides["host"], overrides["port"] = parse_addr(args.addr)
        except argparse.ArgumentTypeError as exc:
            build_parser().error(str(exc))
    if args.db:
        overrides["db_path"] = args.db
    if args.base_url:
        overrides["base_url"] = args.base_url
    config = Settings(**overrides)
    # 未显式配置 base_url 时跟随监听地址
    if args.addr and "base_url" not in config.model_fields_set:
        config.base_url = base_url_for(config.host, config.port)
    return config


def main(argv: list[str] | None = None) -> None:
    config = settings_from_args(argv)
    app = create_app(config)
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
