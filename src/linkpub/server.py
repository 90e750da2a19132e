"""FastAPI application exposing extraction, EPUB building and the user library.

Sessions are signed cookies (Starlette ``SessionMiddleware``) holding the
``SessionUser`` of the signed-in account. Every error response is a JSON body of
the form ``{"error": message}``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from linkpub.builder import build_epub, epub_filename
from linkpub.config import EpubVariant, Settings, Theme
from linkpub.errors import EncodingError, PackagingError, ValidationError
from linkpub.extractor import ArticleExtractionError, fetch_article
from linkpub.karakeep import KarakeepClient, KarakeepError
from linkpub.library import EntryNotFoundError, InvalidFilenameError, LibraryError, LibraryStore, decode_data_uri
from linkpub.models import Article, Collection, LibraryContent, SessionUser
from linkpub.users import UserNotFoundError, UserStore

logger = logging.getLogger(__name__)

EPUB_MEDIA_TYPE = "application/epub+zip"


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class ThemeRequest(BaseModel):
    theme: str = ""


class ExtractRequest(BaseModel):
    url: str = ""


class BuildRequest(BaseModel):
    title: str | None = None
    author: str | None = None
    description: str | None = None
    variant: EpubVariant = EpubVariant.PLAIN
    articles: list[Article] = Field(default_factory=list)
    save: bool = False


class SaveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    description: str = ""
    contents: list[LibraryContent] = Field(default_factory=list)
    epub_data: str = Field(default="", alias="epubData")


def _error(status_code: int, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=message)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid value")
    return f"Invalid request: {location}: {message}" if location else f"Invalid request: {message}"


def current_user(request: Request) -> SessionUser:
    user = request.session.get("user")
    if not user:
        raise _error(401, "Authentication required")
    return SessionUser.model_validate(user)


def create_app(
    settings: Settings | None = None,
    *,
    fetch: Callable[[str], Article] = fetch_article,
    karakeep: KarakeepClient | None = None,
) -> FastAPI:
    """Build the application; collaborators are injectable for tests."""

    settings = settings or Settings.from_env()
    users = UserStore(settings.users_file)
    library = LibraryStore(settings.epubs_dir)
    if karakeep is None and settings.karakeep_enabled:
        karakeep = KarakeepClient(settings.karakeep_url, settings.karakeep_key)

    app = FastAPI(title="LinkPub", description="Convert web articles into EPUB books.")
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        max_age=settings.session_max_age_seconds,
        same_site="lax",
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def invalid_request(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.post("/api/auth/login")
    def login(payload: LoginRequest, request: Request) -> dict[str, Any]:
        if not payload.username or not payload.password:
            raise _error(400, "Username and password required")

        user = users.authenticate(payload.username, payload.password)
        if user is None:
            raise _error(401, "Invalid credentials")

        request.session["user"] = user.model_dump(mode="json")
        try:
            library.ensure_user_dir(user.id)
        except LibraryError as exc:
            logger.error("Could not prepare library for %s: %s", user.username, exc)
        logger.info("User logged in: %s", user.username)
        return {"success": True, "user": request.session["user"]}

    @app.post("/api/auth/logout")
    def logout(request: Request) -> dict[str, Any]:
        user = request.session.get("user")
        request.session.clear()
        if user:
            logger.info("User logged out: %s", user.get("username"))
        return {"success": True}

    @app.get("/api/auth/me")
    def me(request: Request) -> dict[str, Any]:
        user = request.session.get("user")
        if not user:
            raise _error(401, "Not authenticated")
        return {"user": user}

    @app.put("/api/user/theme")
    def update_theme(
        payload: ThemeRequest,
        request: Request,
        user: SessionUser = Depends(current_user),
    ) -> dict[str, Any]:
        try:
            theme = Theme(payload.theme)
        except ValueError as exc:
            raise _error(400, "Invalid theme. Must be: light, dark, or sepia") from exc

        try:
            users.update_theme(user.id, theme)
        except UserNotFoundError as exc:
            raise _error(404, "User not found") from exc
        except OSError as exc:
            logger.error("Theme update error: %s", exc)
            raise _error(500, "Failed to update theme") from exc

        request.session["user"] = {**request.session["user"], "theme": theme.value}
        logger.info("Theme updated to %s for user: %s", theme.value, user.username)
        return {"success": True, "theme": theme.value}

    @app.post("/api/extract")
    def extract(payload: ExtractRequest, user: SessionUser = Depends(current_user)) -> dict[str, Any]:
        if not payload.url:
            raise _error(400, "URL is required")
        try:
            article = fetch(payload.url)
        except ArticleExtractionError as exc:
            raise _error(500, str(exc)) from exc
        return article.model_dump(by_alias=True)

    @app.post("/api/epubs/build", response_model=None)
    def build(payload: BuildRequest, user: SessionUser = Depends(current_user)) -> Response | dict[str, Any]:
        collection = Collection(
            title=payload.title,
            author=payload.author,
            description=payload.description,
            articles=payload.articles,
        )
        try:
            data = build_epub(collection, payload.variant)
        except (ValidationError, EncodingError) as exc:
            raise _error(400, str(exc)) from exc
        except PackagingError as exc:
            logger.error("EPUB packaging failed: %s", exc)
            raise _error(500, str(exc)) from exc

        if payload.save:
            try:
                entry = library.save(
                    user.id,
                    title=collection.title,
                    data=data,
                    description=collection.resolved_description,
                    contents=collection.contents(),
                )
            except (LibraryError, PackagingError) as exc:
                logger.error("EPUB save error: %s", exc)
                raise _error(500, "Failed to save EPUB") from exc
            return {"success": True, "entry": entry.model_dump(mode="json", by_alias=True)}

        filename = epub_filename(collection.title, payload.variant)
        return Response(
            content=data,
            media_type=EPUB_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/api/epubs/save")
    def save(payload: SaveRequest, user: SessionUser = Depends(current_user)) -> dict[str, Any]:
        if not payload.title or not payload.epub_data:
            raise _error(400, "Title and EPUB data required")
        try:
            entry = library.save(
                user.id,
                title=payload.title,
                data=decode_data_uri(payload.epub_data),
                description=payload.description,
                contents=payload.contents,
            )
        except (LibraryError, PackagingError) as exc:
            logger.error("EPUB save error: %s", exc)
            raise _error(500, "Failed to save EPUB") from exc
        return {"success": True, "filename": entry.filename, "message": "EPUB saved successfully"}

    @app.get("/api/epubs")
    def list_epubs(user: SessionUser = Depends(current_user)) -> dict[str, Any]:
        try:
            entries = library.list(user.id)
        except (LibraryError, OSError) as exc:
            logger.error("Error fetching EPUBs: %s", exc)
            raise _error(500, "Failed to fetch EPUBs") from exc
        return {"epubs": [entry.model_dump(mode="json", by_alias=True) for entry in entries]}

    @app.get("/api/epubs/{filename}")
    def download_epub(filename: str, user: SessionUser = Depends(current_user)) -> FileResponse:
        try:
            path = library.path_for(user.id, filename)
        except InvalidFilenameError as exc:
            raise _error(400, "Invalid filename") from exc
        except EntryNotFoundError as exc:
            raise _error(404, "EPUB not found") from exc
        logger.info("EPUB downloaded: %s by user %s", filename, user.username)
        return FileResponse(path, media_type=EPUB_MEDIA_TYPE, filename=filename)

    @app.delete("/api/epubs/{filename}")
    def delete_epub(filename: str, user: SessionUser = Depends(current_user)) -> dict[str, Any]:
        try:
            library.delete(user.id, filename)
        except InvalidFilenameError as exc:
            raise _error(400, "Invalid filename") from exc
        except EntryNotFoundError as exc:
            raise _error(404, "EPUB not found") from exc
        except LibraryError as exc:
            logger.error("Error deleting EPUB: %s", exc)
            raise _error(500, "Failed to delete EPUB") from exc
        return {"success": True, "message": "EPUB deleted successfully"}

    @app.get("/api/karakeep/status")
    def karakeep_status() -> dict[str, Any]:
        return {"enabled": karakeep is not None}

    @app.get("/api/karakeep/bookmarks")
    def karakeep_bookmarks(user: SessionUser = Depends(current_user)) -> dict[str, Any]:
        if karakeep is None:
            raise _error(503, "Karakeep integration not configured")
        try:
            bookmarks = karakeep.fetch_bookmarks()
        except KarakeepError as exc:
            logger.error("Karakeep API error: %s", exc)
            raise _error(500, f"Failed to fetch bookmarks: {exc}") from exc
        return {"bookmarks": [bookmark.model_dump(mode="json", by_alias=True) for bookmark in bookmarks]}

    return app
