"""Catalog request handlers.

Each handler gathers what it needs from the store, runs form validation for
writes and returns either a ``Render`` (template name plus context) or a
``Redirect``. ``NotFound`` and ``DataAccessError`` propagate to the caller.
"""

import asyncio
import html
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from locallibrary.errors import FieldError, NotFound
from locallibrary.models import BookDraft, Genre, InstanceStatus
from locallibrary.store import CatalogStore
from locallibrary.tasks import parallel
from locallibrary.validators import validate_book

logger = logging.getLogger(__name__)

BOOK_LIST_URL = "/catalog/books"


@dataclass
class Render:
    template: str
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Redirect:
    url: str


def mark_checked(genres: Iterable[Genre], selected_ids: Iterable[str]) -> List[Genre]:
    """Return the genres with ``checked`` set on every genre whose id was selected."""
    selected = set(selected_ids)
    return [g.model_copy(update={"checked": True}) if g.id in selected else g for g in genres]


class CatalogController:
    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    # ------------------------- Dashboard ------------------------- #
    async def index(self) -> Render:
        """Home page counts. Any failing count replaces the whole result with an error."""
        store = self.store
        try:
            data = await parallel(
                book_count=store.count_books,
                book_instance_count=store.count_instances,
                book_instance_available_count=lambda: store.count_instances(InstanceStatus.AVAILABLE),
                author_count=store.count_authors,
                genre_count=store.count_genres,
            )
            error = None
        except Exception as e:
            logger.exception("Dashboard counts failed")
            data = None
            error = str(e) or e.__class__.__name__
        return Render("index.html", {"title": "Local Library Home", "error": error, "data": data})

    # ------------------------- Books ------------------------- #
    async def book_list(self) -> Render:
        book_list = await asyncio.to_thread(self.store.list_books)
        return Render("book_list.html", {"title": "Book List", "book_list": book_list})

    async def book_detail(self, book_id: str) -> Render:
        results = await parallel(
            book=lambda: self.store.get_book_detail(book_id),
            book_instances=lambda: self.store.instances_for_book(book_id),
        )
        book = results["book"]
        if book is None:
            raise NotFound("Book not found")
        return Render("book_detail.html", {
            "title": html.unescape(book.title),
            "book": book,
            "book_instances": results["book_instances"],
        })

    async def book_create_get(self) -> Render:
        results = await parallel(authors=self.store.list_authors, genres=self.store.list_genres)
        return Render("book_form.html", {
            "title": "Create Book",
            "authors": results["authors"],
            "genres": results["genres"],
        })

    async def book_create_post(self, raw: Mapping[str, Any]) -> Any:
        draft, errors = await self._validate(raw)
        if errors:
            return await self._render_invalid_form("Create Book", draft, errors)

        book = await asyncio.to_thread(self.store.insert_book, draft)
        logger.info("Created book %s (%s)", book.id, book.title)
        return Redirect(book.url)

    async def book_delete_get(self, book_id: str) -> Any:
        results = await parallel(
            book=lambda: self.store.get_book_detail(book_id),
            bookinstance_list=lambda: self.store.instances_for_book(book_id),
        )
        if results["book"] is None:
            return Redirect(BOOK_LIST_URL)
        return Render("book_delete.html", {
            "title": "Delete Book",
            "book": results["book"],
            "bookinstance_list": results["bookinstance_list"],
            "blocked": False,
        })

    async def book_delete_post(self, book_id: str) -> Any:
        results = await parallel(
            book=lambda: self.store.get_book_detail(book_id),
            bookinstance_list=lambda: self.store.instances_for_book(book_id),
        )
        instances = results["bookinstance_list"]
        if instances:
            logger.info("Refusing to delete book %s: %d copies remain", book_id, len(instances))
            return Render("book_delete.html", {
                "title": "Delete Book",
                "book": results["book"],
                "bookinstance_list": instances,
                "blocked": True,
            })

        deleted = await asyncio.to_thread(self.store.delete_book, book_id)
        if deleted:
            logger.info("Deleted book %s", book_id)
        else:
            logger.warning("Book %s was not deleted", book_id)
        return Redirect(BOOK_LIST_URL)

    async def book_update_get(self, book_id: str) -> Render:
        results = await parallel(
            book=lambda: self.store.get_book_detail(book_id),
            authors=self.store.list_authors,
            genres=self.store.list_genres,
        )
        book = results["book"]
        if book is None:
            raise NotFound("Book not found")
        return Render("book_form.html", {
            "title": "Update Book",
            "authors": results["authors"],
            "genres": mark_checked(results["genres"], book.genre_ids),
            "book": BookDraft(
                id=book.id,
                title=book.title,
                author=book.author.id if book.author else "",
                summary=book.summary,
                isbn=book.isbn,
                genre=book.genre_ids,
            ),
        })

    async def book_update_post(self, book_id: str, raw: Mapping[str, Any]) -> Any:
        draft, errors = await self._validate(raw, book_id=book_id)
        if errors:
            return await self._render_invalid_form("Update Book", draft, errors)

        book = await asyncio.to_thread(self.store.update_book, book_id, draft)
        if book is None:
            raise NotFound("Book not found")
        logger.info("Updated book %s", book.id)
        return Redirect(book.url)

    async def _validate(self, raw: Mapping[str, Any], book_id: Optional[str] = None) -> Tuple[BookDraft, List[FieldError]]:
        draft, errors = validate_book(raw, book_id=book_id)
        if errors:
            return draft, errors

        # Only look references up once the form itself is complete.
        refs = await parallel(
            author=lambda: self.store.get_author(draft.author),
            genre_ids=lambda: self.store.existing_genre_ids(draft.genre),
        )
        if refs["author"] is None:
            errors.append(FieldError("author", "Author must reference an existing author."))
        for genre_id in draft.genre:
            if genre_id not in refs["genre_ids"]:
                errors.append(FieldError("genre", f"Genre '{genre_id}' does not exist."))
        return draft, errors

    async def _render_invalid_form(self, title: str, draft: BookDraft, errors: List[FieldError]) -> Render:
        results = await parallel(authors=self.store.list_authors, genres=self.store.list_genres)
        return Render("book_form.html", {
            "title": title,
            "authors": results["authors"],
            "genres": mark_checked(results["genres"], draft.genre),
            "book": draft,
            "errors": errors,
        })

    # ------------------------- Authors ------------------------- #
    async def author_list(self) -> Render:
        author_list = await asyncio.to_thread(self.store.list_authors)
        return Render("author_list.html", {"title": "Author List", "author_list": author_list})

    async def author_detail(self, author_id: str) -> Render:
        results = await parallel(
            author=lambda: self.store.get_author(author_id),
            author_books=lambda: self.store.books_by_author(author_id),
        )
        if results["author"] is None:
            raise NotFound("Author not found")
        return Render("author_detail.html", {
            "title": "Author Detail",
            "author": results["author"],
            "author_books": results["author_books"],
        })

    # ------------------------- Genres ------------------------- #
    async def genre_list(self) -> Render:
        genre_list = await asyncio.to_thread(self.store.list_genres)
        return Render("genre_list.html", {"title": "Genre List", "genre_list": genre_list})

    async def genre_detail(self, genre_id: str) -> Render:
        results = await parallel(
            genre=lambda: self.store.get_genre(genre_id),
            genre_books=lambda: self.store.books_by_genre(genre_id),
        )
        if results["genre"] is None:
            raise NotFound("Genre not found")
        return Render("genre_detail.html", {
            "title": "Genre Detail",
            "genre": results["genre"],
            "genre_books": results["genre_books"],
        })

    # ------------------------- Book instances ------------------------- #
    async def bookinstance_list(self) -> Render:
        bookinstance_list = await asyncio.to_thread(self.store.list_instances)
        return Render("bookinstance_list.html", {
            "title": "Book Instance List",
            "bookinstance_list": bookinstance_list,
        })

    async def bookinstance_detail(self, instance_id: str) -> Render:
        instance = await asyncio.to_thread(self.store.get_instance, instance_id)
        if instance is None:
            raise NotFound("Book copy not found")
        return Render("bookinstance_detail.html", {
            "title": "Copy: " + html.unescape(instance.book_title or instance.book),
            "bookinstance": instance,
        })
