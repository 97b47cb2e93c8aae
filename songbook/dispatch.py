"""
Request dispatch: session key -> access gate -> router -> handler -> response.

``Dispatcher.handle`` is synchronous and runs on the server's worker thread
pool. Every failure, whether returned as a value by the gate and the router or
raised by a handler, ends up in ``error_response``.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from loguru import logger

from .context import ServiceContext
from .errors import SongbookError
from .keys import ROLE_USER
from .negotiation import MIME_TEXT_HTML, negotiate, wants_json
from .router import Router
from .session import (
    SESSION_COOKIE,
    SESSION_COOKIE_MAX_AGE,
    Session,
    check_admin_access,
    check_user_access,
    resolve_session,
)
from .views import page_title


@dataclass
class RequestCall:
    """Transport-independent view of one HTTP request."""

    method: str
    path: str  # raw, still percent-encoded
    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)  # lower-case names
    cookies: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    params: Dict[str, str] = field(default_factory=dict)
    session: Session = field(default_factory=lambda: Session(None))
    role: str = ROLE_USER

    def param(self, name: str) -> Optional[str]:
        """Path parameter, else query parameter of that name."""
        value = self.params.get(name)
        return value if value is not None else self.query.get(name)

    @property
    def accept(self) -> Optional[str]:
        return self.headers.get("accept")

    @property
    def content_type(self) -> str:
        return (self.headers.get("content-type") or "").split(";")[0].strip().lower()

    @property
    def mime_type(self) -> str:
        return negotiate(self.accept)

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def error_response(ctx: ServiceContext, call: RequestCall, error: SongbookError) -> Response:
    """Render ``error`` as JSON, an HTML error page, or plain text."""
    status = error.status_code
    if status >= 500:
        logger.error(f"[{call.method}] {call.path} failed with {status}: {error.message}")
    if wants_json(call.accept):
        return JSONResponse({"message": error.message}, status_code=status)
    if call.mime_type == MIME_TEXT_HTML:
        html = ctx.views.render(
            "error.html",
            title=page_title(str(status)),
            role=call.role,
            path=call.path,
            alert=status != 401,
            status_code=status,
            message=error.message,
        )
        return HTMLResponse(html, status_code=status)
    return PlainTextResponse(error.message, status_code=status)


class Dispatcher:
    def __init__(self, ctx: ServiceContext, router: Router) -> None:
        self.ctx = ctx
        self.router = router

    def handle(self, call: RequestCall) -> Response:
        keys = self.ctx.keys
        call.session = resolve_session(call.cookies, call.query)
        keys.activate(call.session.key)
        call.role = keys.role(call.session.key)

        response = self._dispatch(call)

        if call.session.refresh_cookie:
            response.set_cookie(
                SESSION_COOKIE,
                call.session.key,
                max_age=SESSION_COOKIE_MAX_AGE,
                path="/",
                httponly=True,
                samesite="lax",
            )
        return response

    def _dispatch(self, call: RequestCall) -> Response:
        denied = check_user_access(self.ctx.keys, call.session)
        if denied is not None:
            return error_response(self.ctx, call, denied)

        resolution = self.router.resolve(call.method, call.path)
        if resolution.error is not None:
            return error_response(self.ctx, call, resolution.error)

        route = resolution.route
        if route.admin_only:
            denied = check_admin_access(self.ctx.keys, call.session)
            if denied is not None:
                return error_response(self.ctx, call, denied)

        call.params = resolution.params
        try:
            return route.handler(self.ctx, call)
        except SongbookError as e:
            return error_response(self.ctx, call, e)
        except Exception:
            logger.exception(f"Unhandled error in {route.name} for [{call.method}] {call.path}")
            return error_response(self.ctx, call, SongbookError())
