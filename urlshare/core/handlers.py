"""Route handlers: one request-handling capability per route."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from jinja2 import TemplateError
from starlette.templating import Jinja2Templates

from urlshare.core.admin import MappingAdmin
from urlshare.core.errors import TemplateFailureError
from urlshare.core.resolver import RedirectResolver
from urlshare.storage.kv import MappingStore


ADMIN_TEMPLATE = "index.html"


class RouteHandler(ABC):
    name = "base"

    async def dispatch(self, request: Request) -> Response:
        """Route entry: tag the request with this handler's name, then handle it."""
        request.state.route_handler = self.name
        return await self.handle(request)

    @abstractmethod
    async def handle(self, request: Request) -> Response:
        pass


class RedirectHandler(RouteHandler):
    name = "redirect"

    def __init__(self, resolver: RedirectResolver) -> None:
        self.resolver = resolver

    async def handle(self, request: Request) -> Response:
        resolution = await asyncio.to_thread(self.resolver.resolve, request.url.path, request.url.query)
        if resolution is None:
            return JSONResponse(
                status_code=404,
                content={"error": "not_found", "detail": "no such mapping"},
            )
        return RedirectResponse(resolution.location, status_code=307)


class AdminPageHandler(RouteHandler):
    name = "admin_page"

    def __init__(
        self,
        store: MappingStore,
        resolver: RedirectResolver,
        templates: Jinja2Templates,
        *,
        write_method: str = "PATCH",
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.templates = templates
        self.write_method = write_method

    async def handle(self, request: Request) -> Response:
        mappings = await asyncio.to_thread(self.store.list_mappings)
        rows = [
            {"key": item.key, "target": item.target, "short_url": self.resolver.external_address(item.key)}
            for item in mappings
        ]
        try:
            return self.templates.TemplateResponse(
                request,
                ADMIN_TEMPLATE,
                {"rows": rows, "write_method": self.write_method},
            )
        except TemplateError as exc:
            raise TemplateFailureError(f"cannot render {ADMIN_TEMPLATE}: {exc}") from exc


class MappingWriteHandler(RouteHandler):
    name = "mapping_write"

    def __init__(self, admin: MappingAdmin) -> None:
        self.admin = admin

    async def handle(self, request: Request) -> Response:
        form = await request.form()
        from_iri = form.get("fromIri")
        to_iri = form.get("toIri")
        await asyncio.to_thread(
            self.admin.submit,
            request.method,
            from_iri if isinstance(from_iri, str) else None,
            to_iri if isinstance(to_iri, str) else None,
        )
        return Response(status_code=200)
