import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from locallibrary.config import configure_logging, settings
from locallibrary.controllers import CatalogController, Redirect
from locallibrary.errors import DataAccessError, NotFound
from locallibrary.store import CatalogStore

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

BOOK_FORM_FIELDS = ("title", "author", "summary", "isbn")


def get_controller(request: Request) -> CatalogController:
    return request.app.state.controller


def _respond(request: Request, outcome):
    """Turn a controller outcome into an HTTP response."""
    if isinstance(outcome, Redirect):
        # 303 so the browser follows a POST with a GET
        return RedirectResponse(outcome.url, status_code=303)
    return templates.TemplateResponse(request, outcome.template, outcome.context)


async def _book_form_fields(request: Request) -> Dict[str, Any]:
    form = await request.form()
    raw: Dict[str, Any] = {name: form.get(name) for name in BOOK_FORM_FIELDS}
    genre = form.getlist("genre")
    if genre:
        raw["genre"] = genre
    return raw


def create_app(db_file: Optional[str] = None) -> FastAPI:
    """Build the catalog web app backed by ``db_file`` (defaults to settings)."""
    configure_logging()
    db_file = db_file or settings.db_file

    app = FastAPI(title=settings.app_name, debug=settings.debug)
    app.state.store = CatalogStore(db_file)
    app.state.controller = CatalogController(app.state.store)
    logger.info("Catalog database: %s", db_file)

    # --- Error handlers ---
    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return templates.TemplateResponse(
            request, "error.html", {"title": "Not Found", "message": str(exc), "status": 404}, status_code=404
        )

    @app.exception_handler(DataAccessError)
    async def data_access_handler(request: Request, exc: DataAccessError):
        logger.error("Data access error on %s %s: %s", request.method, request.url.path, exc)
        return templates.TemplateResponse(
            request, "error.html", {"title": "Error", "message": str(exc), "status": 500}, status_code=500
        )

    # --- Health ---
    @app.get("/health")
    def health():
        db_ok = True
        try:
            app.state.store.count_books()
        except DataAccessError:
            db_ok = False
        return {
            "status": "healthy" if db_ok else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "db": db_ok,
        }

    @app.get("/")
    def root():
        return RedirectResponse("/catalog")

    # --- Catalog ---
    @app.get("/catalog")
    async def index(request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.index())

    @app.get("/catalog/books")
    async def book_list(request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.book_list())

    # Registered before /catalog/book/{book_id} so "create" is not taken as an id.
    @app.get("/catalog/book/create")
    async def book_create_get(request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.book_create_get())

    @app.post("/catalog/book/create")
    async def book_create_post(request: Request, controller: CatalogController = Depends(get_controller)):
        raw = await _book_form_fields(request)
        return _respond(request, await controller.book_create_post(raw))

    @app.get("/catalog/book/{book_id}")
    async def book_detail(book_id: str, request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.book_detail(book_id))

    @app.get("/catalog/book/{book_id}/delete")
    async def book_delete_get(book_id: str, request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.book_delete_get(book_id))

    @app.post("/catalog/book/{book_id}/delete")
    async def book_delete_post(book_id: str, request: Request, controller: CatalogController = Depends(get_controller)):
        form = await request.form()
        target = form.get("bookid") or book_id
        return _respond(request, await controller.book_delete_post(target))

    @app.get("/catalog/book/{book_id}/update")
    async def book_update_get(book_id: str, request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.book_update_get(book_id))

    @app.post("/catalog/book/{book_id}/update")
    async def book_update_post(book_id: str, request: Request, controller: CatalogController = Depends(get_controller)):
        raw = await _book_form_fields(request)
        return _respond(request, await controller.book_update_post(book_id, raw))

    @app.get("/catalog/authors")
    async def author_list(request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.author_list())

    @app.get("/catalog/author/{author_id}")
    async def author_detail(author_id: str, request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.author_detail(author_id))

    @app.get("/catalog/genres")
    async def genre_list(request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.genre_list())

    @app.get("/catalog/genre/{genre_id}")
    async def genre_detail(genre_id: str, request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.genre_detail(genre_id))

    @app.get("/catalog/bookinstances")
    async def bookinstance_list(request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.bookinstance_list())

    @app.get("/catalog/bookinstance/{instance_id}")
    async def bookinstance_detail(instance_id: str, request: Request, controller: CatalogController = Depends(get_controller)):
        return _respond(request, await controller.bookinstance_detail(instance_id))

    return app
