import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Set

from locallibrary.database import get_db_connection, initialize_database
from locallibrary.errors import DataAccessError
from locallibrary.models import (
    Author,
    Book,
    BookDetail,
    BookDraft,
    BookInstance,
    BookSummary,
    Genre,
    InstanceStatus,
)

logger = logging.getLogger(__name__)


INSERT_AUTHOR = "INSERT INTO authors (id, first_name, family_name, date_of_birth, date_of_death) VALUES (?, ?, ?, ?, ?)"
INSERT_GENRE = "INSERT INTO genres (id, name) VALUES (?, ?)"
INSERT_BOOK = "INSERT INTO books (id, title, author, summary, isbn, genre) VALUES (?, ?, ?, ?, ?, ?)"
INSERT_INSTANCE = "INSERT INTO book_instances (id, book, imprint, status, due_back) VALUES (?, ?, ?, ?, ?)"


def new_id() -> str:
    return uuid.uuid4().hex


def _author_row(author: Author) -> tuple:
    return (
        author.id,
        author.first_name,
        author.family_name,
        author.dateform_birth or None,
        author.dateform_death or None,
    )


def _book_row(book: Book) -> tuple:
    return (book.id, book.title, book.author, book.summary, book.isbn, json.dumps(book.genre))


def _instance_row(instance: BookInstance) -> tuple:
    return (
        instance.id,
        instance.book,
        instance.imprint,
        instance.status.value,
        instance.due_back.isoformat() if instance.due_back else None,
    )


class CatalogStore:
    """Reads and writes the catalog collections.

    Every method opens its own connection so calls can run on worker threads
    side by side. Driver failures surface as ``DataAccessError``.
    """

    def __init__(self, db_file: str, initialize: bool = True) -> None:
        self.db_file = db_file
        if initialize:
            try:
                initialize_database(db_file)
            except sqlite3.Error as e:
                raise DataAccessError(f"Could not initialize {db_file}: {e}") from e

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_db_connection(self.db_file)
        except sqlite3.Error as e:
            logger.error("Could not open %s: %s", self.db_file, e)
            raise DataAccessError(str(e)) from e
        try:
            yield conn
        except sqlite3.Error as e:
            logger.error("Catalog query failed: %s", e)
            raise DataAccessError(str(e)) from e
        finally:
            conn.close()

    # ------------------------- Authors ------------------------- #
    def list_authors(self) -> List[Author]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM authors ORDER BY family_name, first_name"
            ).fetchall()
        return [Author.from_row(dict(row)) for row in rows]

    def get_author(self, author_id: str) -> Optional[Author]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM authors WHERE id = ?", (author_id,)).fetchone()
        return Author.from_row(dict(row)) if row else None

    def insert_author(self, first_name: str, family_name: str, date_of_birth=None, date_of_death=None) -> Author:
        author = Author(
            id=new_id(),
            first_name=first_name,
            family_name=family_name,
            date_of_birth=date_of_birth,
            date_of_death=date_of_death,
        )
        with self._connect() as conn:
            conn.execute(INSERT_AUTHOR, _author_row(author))
            conn.commit()
        return author

    def count_authors(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM authors").fetchone()[0]

    # ------------------------- Genres ------------------------- #
    def list_genres(self) -> List[Genre]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id, name FROM genres ORDER BY name").fetchall()
        return [Genre.from_row(dict(row)) for row in rows]

    def get_genre(self, genre_id: str) -> Optional[Genre]:
        with self._connect() as conn:
            row = conn.execute("SELECT id, name FROM genres WHERE id = ?", (genre_id,)).fetchone()
        return Genre.from_row(dict(row)) if row else None

    def existing_genre_ids(self, genre_ids: Iterable[str]) -> Set[str]:
        wanted = list(dict.fromkeys(genre_ids))
        if not wanted:
            return set()
        placeholders = ", ".join("?" for _ in wanted)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id FROM genres WHERE id IN ({placeholders})", wanted
            ).fetchall()
        return {row["id"] for row in rows}

    def insert_genre(self, name: str) -> Genre:
        genre = Genre(id=new_id(), name=name)
        with self._connect() as conn:
            conn.execute(INSERT_GENRE, (genre.id, genre.name))
            conn.commit()
        return genre

    def count_genres(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM genres").fetchone()[0]

    # ------------------------- Books ------------------------- #
    def list_books(self) -> List[BookSummary]:
        """All books as title/author projections, ordered by title."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT b.id, b.title, a.first_name, a.family_name
                FROM books b LEFT JOIN authors a ON a.id = b.author
                ORDER BY b.title, b.id
                """
            ).fetchall()
        summaries = []
        for row in rows:
            author_name = f"{row['family_name']}, {row['first_name']}" if row["family_name"] is not None else ""
            summaries.append(BookSummary(id=row["id"], title=row["title"], author_name=author_name))
        return summaries

    def get_book(self, book_id: str) -> Optional[Book]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        return Book.from_row(dict(row)) if row else None

    def get_book_detail(self, book_id: str) -> Optional[BookDetail]:
        """Fetch a book with its author and genres resolved."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                return None
            book = Book.from_row(dict(row))
            author_row = conn.execute("SELECT * FROM authors WHERE id = ?", (book.author,)).fetchone()
            genres_by_id = {}
            if book.genre:
                placeholders = ", ".join("?" for _ in book.genre)
                for genre_row in conn.execute(
                    f"SELECT id, name FROM genres WHERE id IN ({placeholders})", book.genre
                ):
                    genres_by_id[genre_row["id"]] = Genre.from_row(dict(genre_row))

        return BookDetail(
            id=book.id,
            title=book.title,
            author=Author.from_row(dict(author_row)) if author_row else None,
            summary=book.summary,
            isbn=book.isbn,
            genre=[genres_by_id[gid] for gid in book.genre if gid in genres_by_id],
        )

    def books_by_author(self, author_id: str) -> List[Book]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM books WHERE author = ? ORDER BY title", (author_id,)
            ).fetchall()
        return [Book.from_row(dict(row)) for row in rows]

    def books_by_genre(self, genre_id: str) -> List[Book]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM books
                WHERE EXISTS (SELECT 1 FROM json_each(books.genre) WHERE json_each.value = ?)
                ORDER BY title
                """,
                (genre_id,),
            ).fetchall()
        return [Book.from_row(dict(row)) for row in rows]

    def insert_book(self, draft: BookDraft) -> Book:
        """Insert a draft as a new book. The store assigns the id."""
        book = Book(
            id=new_id(),
            title=draft.title,
            author=draft.author,
            summary=draft.summary,
            isbn=draft.isbn,
            genre=list(draft.genre),
        )
        with self._connect() as conn:
            conn.execute(INSERT_BOOK, _book_row(book))
            conn.commit()
        return book

    def update_book(self, book_id: str, draft: BookDraft) -> Optional[Book]:
        """Replace the fields of an existing book in place, keeping its id.

        Returns the updated book, or None when no book has that id.
        """
        book = Book(
            id=book_id,
            title=draft.title,
            author=draft.author,
            summary=draft.summary,
            isbn=draft.isbn,
            genre=list(draft.genre),
        )
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE books SET title = ?, author = ?, summary = ?, isbn = ?, genre = ? WHERE id = ?",
                (book.title, book.author, book.summary, book.isbn, json.dumps(book.genre), book_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
        return book

    def delete_book(self, book_id: str) -> bool:
        """Delete a book unless a copy still references it."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM books
                WHERE id = ? AND NOT EXISTS (SELECT 1 FROM book_instances WHERE book = ?)
                """,
                (book_id, book_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def count_books(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]

    # ------------------------- Book instances ------------------------- #
    def instances_for_book(self, book_id: str) -> List[BookInstance]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM book_instances WHERE book = ? ORDER BY imprint, id", (book_id,)
            ).fetchall()
        return [BookInstance.from_row(dict(row)) for row in rows]

    def list_instances(self) -> List[BookInstance]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT i.*, b.title AS book_title
                FROM book_instances i LEFT JOIN books b ON b.id = i.book
                ORDER BY b.title, i.id
                """
            ).fetchall()
        return [BookInstance.from_row(dict(row)) for row in rows]

    def get_instance(self, instance_id: str) -> Optional[BookInstance]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT i.*, b.title AS book_title
                FROM book_instances i LEFT JOIN books b ON b.id = i.book
                WHERE i.id = ?
                """,
                (instance_id,),
            ).fetchone()
        return BookInstance.from_row(dict(row)) if row else None

    def insert_instance(self, book_id: str, imprint: str, status=InstanceStatus.MAINTENANCE, due_back=None) -> BookInstance:
        instance = BookInstance(
            id=new_id(),
            book=book_id,
            imprint=imprint,
            status=InstanceStatus(status),
            due_back=due_back,
        )
        with self._connect() as conn:
            conn.execute(INSERT_INSTANCE, _instance_row(instance))
            conn.commit()
        return instance

    def count_instances(self, status: Optional[InstanceStatus] = None) -> int:
        with self._connect() as conn:
            if status is None:
                return conn.execute("SELECT COUNT(*) FROM book_instances").fetchone()[0]
            return conn.execute(
                "SELECT COUNT(*) FROM book_instances WHERE status = ?", (InstanceStatus(status).value,)
            ).fetchone()[0]

    # ------------------------- Bulk ------------------------- #
    def bulk_insert(
        self,
        authors: Iterable[Author] = (),
        genres: Iterable[Genre] = (),
        books: Iterable[Book] = (),
        instances: Iterable[BookInstance] = (),
    ) -> None:
        """Insert prepared records in one transaction; nothing is kept if any row fails."""
        with self._connect() as conn:
            conn.executemany(INSERT_AUTHOR, [_author_row(a) for a in authors])
            conn.executemany(INSERT_GENRE, [(g.id, g.name) for g in genres])
            conn.executemany(INSERT_BOOK, [_book_row(b) for b in books])
            conn.executemany(INSERT_INSTANCE, [_instance_row(i) for i in instances])
            conn.commit()
