"""FastAPI app entry."""

from __future__ import annotations

import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.staticfiles import StaticFiles
from starlette.templating import Jinja2Templates

from urlshare.config.settings import Settings, settings as default_settings
from urlshare.core.admin import MappingAdmin
from urlshare.core.errors import (
    InvalidInputError,
    MalformedTargetError,
    MethodNotAllowedError,
    StorageFailureError,
    TemplateFailureError,
)
from urlshare.core.handlers import AdminPageHandler, MappingWriteHandler, RedirectHandler
from urlshare.core.resolver import KEY_MODE_EXTERNAL, RedirectResolver
from urlshare.observability.logging import log_request
from urlshare.storage import create_store
from urlshare.util.logger import configure_logging, logger

_PACKAGE_DIR = Path(__file__).resolve().parent.parent
_WRITE_ROUTE_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
_HTTP_ERROR_CODES = {404: "not_found", 405: "method_not_allowed"}


def _resolve_dir(configured: str, default_name: str) -> Path:
    if not configured:
        return _PACKAGE_DIR / default_name
    path = Path(configured)
    if path.is_absolute():
        return path
    candidates = [Path.cwd() / path, _PACKAGE_DIR.parent / path]
    for candidate in candidates:
        if candidate.exists():
            return candidate.resolve()
    return candidates[0].resolve()


def _error_response(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    body: dict[str, str] = {"error": error}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    """Map typed errors to responses; log only the ones an operator must see."""

    @app.exception_handler(InvalidInputError)
    async def handle_invalid_input(_request: Request, exc: InvalidInputError) -> JSONResponse:
        logger.debug("invalid input: %s", exc)
        return _error_response(400, "invalid_input", str(exc))

    @app.exception_handler(MethodNotAllowedError)
    async def handle_method_not_allowed(_request: Request, exc: MethodNotAllowedError) -> JSONResponse:
        logger.debug("method not allowed method=%s allowed=%s", exc.method, exc.allowed)
        response = _error_response(405, "method_not_allowed", str(exc))
        response.headers["allow"] = exc.allowed
        return response

    @app.exception_handler(MalformedTargetError)
    async def handle_malformed_target(request: Request, exc: MalformedTargetError) -> JSONResponse:
        logger.error("malformed stored target key=%s path=%s error=%s", exc.key, request.url.path, exc.__cause__)
        return _error_response(500, "malformed_target", "stored target is not a valid IRI")

    @app.exception_handler(StorageFailureError)
    async def handle_storage_failure(request: Request, exc: StorageFailureError) -> JSONResponse:
        logger.error("storage failure path=%s error=%s", request.url.path, exc)
        return _error_response(500, "storage_failure", "Whoops! Our bad")

    @app.exception_handler(TemplateFailureError)
    async def handle_template_failure(request: Request, exc: TemplateFailureError) -> JSONResponse:
        logger.error("template failure path=%s error=%s", request.url.path, exc)
        return _error_response(500, "template_failure", "Whoops! Our bad")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        response = _error_response(exc.status_code, _HTTP_ERROR_CODES.get(exc.status_code, "http_error"), str(exc.detail))
        for name, value in (exc.headers or {}).items():
            response.headers[name] = value
        return response


def create_app(config: Settings | None = None) -> FastAPI:
    """Build the application and open the store once for its lifetime."""
    config = config or default_settings
    configure_logging(config)
    store = create_store(config)
    try:
        resolver = RedirectResolver(store, base_url=config.base_url, key_mode=config.key_mode)
    except ValueError:
        store.close()
        raise
    key_base = config.base_url if resolver.key_mode == KEY_MODE_EXTERNAL else ""
    admin = MappingAdmin(store, key_base=key_base, write_method=config.write_method)
    templates = Jinja2Templates(directory=str(_resolve_dir(config.template_dir, "templates")))

    redirect_handler = RedirectHandler(resolver)
    admin_page_handler = AdminPageHandler(store, resolver, templates, write_method=admin.write_method)
    mapping_write_handler = MappingWriteHandler(admin)

    app = FastAPI(title=config.app_name)
    app.state.settings = config
    app.state.store = store
    register_error_handlers(app)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:  # pragma: no cover - fail-safe
            logger.exception("unhandled exception method=%s path=%s", request.method, request.url.path)
            return _error_response(500, "internal_error", "Whoops! Our bad")
        if config.log_requests:
            log_request(
                request.method,
                str(request.url),
                response.status_code,
                (time.perf_counter() - started) * 1000,
                handler=getattr(request.state, "route_handler", "-"),
            )
        return response

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    app.add_api_route("/admin", admin_page_handler.dispatch, methods=["GET"], include_in_schema=False)
    app.add_api_route(
        "/admin/mappings",
        mapping_write_handler.dispatch,
        methods=_WRITE_ROUTE_METHODS,
        include_in_schema=False,
    )
    app.mount(
        "/static",
        StaticFiles(directory=str(_resolve_dir(config.static_dir, "static")), check_dir=False),
        name="static",
    )
    # 兜底路由必须最后注册
    app.add_api_route("/{path:path}", redirect_handler.dispatch, methods=["GET"], include_in_schema=False)

    @app.on_event("shutdown")
    def close_store() -> None:
        store.close()

    logger.info(
        "app created db=%s key_mode=%s write_method=%s",
        config.db_path,
        resolver.key_mode,
        admin.write_method,
    )
    return app
