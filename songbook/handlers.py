"""
Route handlers and the route table.

Each handler takes the service context and the request call and returns a
response; failures are raised as ``SongbookError`` and rendered by the
dispatcher. Admin-only routes are flagged in ``build_router``, not checked here.
"""

import mimetypes
from urllib.parse import unquote

from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, Response
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from . import songmark
from .context import ServiceContext
from .dispatch import RequestCall
from .errors import (
    CommandNotSupported,
    NotFound,
    SongNotFound,
    StorageError,
    ValidationError,
)
from .models import SongSubmission
from .negotiation import MIME_JSON, MIME_TEXT_HTML, MIME_TEXT_PLAIN
from .router import Router
from .search import render_hits_text
from .views import page_title

_STATIC_TYPES = {
    ".js": "application/javascript",
    ".css": "text/css",
    ".html": "text/html",
}


def _html(ctx: ServiceContext, call: RequestCall, template: str, title: str, status_code: int = 200, **context) -> HTMLResponse:
    body = ctx.views.render(template, title=title, role=call.role, path=call.path, **context)
    return HTMLResponse(body, status_code=status_code)


def _submitted_content(call: RequestCall) -> str:
    """Song markup from the request body; JSON bodies are composed into markup."""
    if call.content_type != MIME_JSON:
        return call.text()
    try:
        submission = SongSubmission.model_validate_json(call.body or b"{}")
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid song submission: {e}") from e
    return songmark.compose(submission.title, submission.artist, submission.body, submission.album)


# ---------------------------------------------------------------------------
# Public pages
# ---------------------------------------------------------------------------

def search(ctx: ServiceContext, call: RequestCall) -> Response:
    query = call.param("query")
    hits = ctx.index.query(query)
    if call.mime_type != MIME_TEXT_HTML:
        return PlainTextResponse(render_hits_text(hits))
    return _html(
        ctx, call, "search.html",
        title=page_title(query or ""),
        query=query,
        results=ctx.views.results_fragment(hits),
    )


def get_song(ctx: ServiceContext, call: RequestCall) -> Response:
    song_id = call.param("id") or ""
    content = ctx.catalog.fetch(song_id)
    mime_type = call.mime_type
    logger.info(f"Serve Song {song_id}")
    if mime_type != MIME_TEXT_HTML:
        return Response(content, media_type=mime_type)
    song = songmark.parse(content)
    return _html(
        ctx, call, "song.html",
        title=page_title(song.title),
        id=song_id,
        song=song,
        body=songmark.render_html(song),
    )


def console_api(ctx: ServiceContext, call: RequestCall) -> Response:
    base = f"http://{ctx.settings.host}:{ctx.settings.port}"
    return _html(ctx, call, "console_api.html", title="Song Console Api", base=base)


def signin(ctx: ServiceContext, call: RequestCall) -> Response:
    return _html(ctx, call, "signin.html", title="SongBook Sign In")


def serve_file(ctx: ServiceContext, call: RequestCall) -> Response:
    """Static assets under the web root."""
    web_root = ctx.settings.web_root.resolve()
    relative = unquote(call.path).lstrip("/") or "index.html"
    target = (web_root / relative).resolve()
    if not target.is_relative_to(web_root) or not target.is_file():
        raise NotFound()
    media_type = _STATIC_TYPES.get(target.suffix) or mimetypes.guess_type(target.name)[0] or MIME_TEXT_PLAIN
    return FileResponse(target, media_type=media_type)


# ---------------------------------------------------------------------------
# Song editing (admin)
# ---------------------------------------------------------------------------

def edit_song(ctx: ServiceContext, call: RequestCall) -> Response:
    song_id = call.param("id")
    if song_id:
        content = ctx.catalog.fetch(song_id)
        title = page_title("Edit", songmark.title_of(content))
        return _html(ctx, call, "edit.html", title=title, id=song_id, content=content)
    return _html(ctx, call, "edit.html", title=page_title("Create Song"), id="", content=songmark.BLANK_SONG)


def _saved(ctx: ServiceContext, call: RequestCall, song_id: str) -> Response:
    if call.mime_type == MIME_TEXT_HTML:
        return _html(
            ctx, call, "message.html",
            title=page_title("Saved"),
            level="success",
            message="Song saved.",
            link=f"/view/{song_id}",
            link_label="View the song",
        )
    return PlainTextResponse(song_id)


def create_song(ctx: ServiceContext, call: RequestCall) -> Response:
    song_id = ctx.catalog.create(_submitted_content(call))
    return _saved(ctx, call, song_id)


def modify_song(ctx: ServiceContext, call: RequestCall) -> Response:
    song_id = call.param("id") or ""
    try:
        ctx.catalog.update(song_id, _submitted_content(call))
    except SongNotFound as e:
        raise SongNotFound(song_id, "The song doesn't exist and cannot be updated", status_code=400) from e
    return _saved(ctx, call, song_id)


def delete_song(ctx: ServiceContext, call: RequestCall) -> Response:
    song_id = call.param("id") or ""
    try:
        deletion = ctx.catalog.delete(song_id)
    except SongNotFound as e:
        raise SongNotFound(song_id, "The song doesn't exist and cannot be deleted", status_code=400) from e
    if call.mime_type == MIME_TEXT_HTML:
        return _html(
            ctx, call, "message.html",
            title=page_title(),
            level="success",
            message=f"Song '{deletion.label}' has been removed.",
        )
    return PlainTextResponse(deletion.id)


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------

def _admin_page(ctx: ServiceContext, call: RequestCall, status_code: int = 200, **context) -> Response:
    return _html(
        ctx, call, "admin.html",
        title=page_title("Administration"),
        status_code=status_code,
        song_count=len(ctx.store),
        indexed_count=len(ctx.index),
        **context,
    )


def admin(ctx: ServiceContext, call: RequestCall) -> Response:
    return _admin_page(ctx, call)


def admin_command(ctx: ServiceContext, call: RequestCall) -> Response:
    section = call.param("section") or ""
    command = call.param("command") or ""

    if (section, command) == ("index", "reset"):
        try:
            count = ctx.catalog.reindex()
        except (OSError, StorageError) as e:
            logger.error(f"Can't rebuild the index from {ctx.store.root}: {e}")
            return _admin_page(ctx, call, status_code=500, level="danger",
                               message="An error occurred while indexing the songs.")
        return _admin_page(ctx, call, level="success", message=f"{count} songs have been reindexed.")

    if (section, command) == ("keys", "reset"):
        if ctx.keys.rotate_administrator_key() is None:
            return _admin_page(ctx, call, status_code=500, level="danger",
                               message="The administrator key could not be written; the previous key is still active.")
        return _admin_page(ctx, call, level="warning",
                           message="A new administrator key has been generated.")

    error = CommandNotSupported(section, command)
    logger.warning(error.message)
    return _admin_page(ctx, call, status_code=error.status_code, level="danger", message=error.message)


# ---------------------------------------------------------------------------
# Route table
# ---------------------------------------------------------------------------

def build_router() -> Router:
    """The service's routes, in resolution order. ``*`` serves static files."""
    router = Router()

    router.get("/", search)

    router.get("/view/:id", get_song)
    router.get("/edit/:id", edit_song, admin_only=True)
    router.get("/delete/:id", delete_song, admin_only=True)
    router.get("/new", edit_song, admin_only=True)

    router.get("/search/:query", search)
    router.get("/search/", search)
    router.get("/search", search)

    router.post("/songs", create_song, admin_only=True)
    router.post("/songs/", create_song, admin_only=True)

    router.get("/songs/:id", get_song)
    router.put("/songs/:id", modify_song, admin_only=True)
    router.delete("/songs/:id", delete_song, admin_only=True)

    router.get("/consoleApi", console_api)
    router.get("/signin", signin)

    router.get("/admin/:section/:command", admin_command, admin_only=True)
    router.get("/admin", admin, admin_only=True)

    router.fallback(serve_file)
    return router
