"""Bulk loading of catalog data from a JSON file.

The file maps local handles to records so books can point at authors and
genres before any ids exist::

    {
      "authors": {"rothfuss": {"first_name": "Patrick", "family_name": "Rothfuss",
                               "date_of_birth": "1973-06-06"}},
      "genres": {"fantasy": {"name": "Fantasy"}},
      "books": {"wise": {"title": "The Wise Man's Fear", "author": "rothfuss",
                         "summary": "...", "isbn": "9788401352836", "genre": ["fantasy"]}},
      "bookinstances": [{"book": "wise", "imprint": "Gollancz, 2011", "status": "Available"}]
    }
"""

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

from pydantic import ValidationError

from locallibrary.models import Author, Book, BookInstance, Genre, InstanceStatus
from locallibrary.store import CatalogStore, new_id
from locallibrary.validators import validate_book

logger = logging.getLogger(__name__)


class FixtureError(ValueError):
    pass


@contextmanager
def _record(label: str) -> Iterator[None]:
    try:
        yield
    except FixtureError:
        raise
    except KeyError as e:
        raise FixtureError(f"{label} is missing field {e}") from e
    except (ValidationError, ValueError, TypeError, AttributeError) as e:
        raise FixtureError(f"{label}: {e}") from e


def load_fixture_file(store: CatalogStore, path: str) -> Dict[str, int]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise FixtureError(f"Could not read {path}: {e}") from e
    return load_fixture(store, data)


def load_fixture(store: CatalogStore, data: Dict[str, Any]) -> Dict[str, int]:
    """Insert every record in ``data`` and return how many of each were added.

    All records are checked before anything is written, and the write is a
    single transaction, so a bad file leaves the catalog as it was.
    """
    if not isinstance(data, dict):
        raise FixtureError("Fixture must be a JSON object")

    authors: Dict[str, Author] = {}
    for handle, item in (data.get("authors") or {}).items():
        with _record(f"Author '{handle}'"):
            authors[handle] = Author(
                id=new_id(),
                first_name=item["first_name"],
                family_name=item["family_name"],
                date_of_birth=item.get("date_of_birth"),
                date_of_death=item.get("date_of_death"),
            )

    genres: Dict[str, Genre] = {}
    for handle, item in (data.get("genres") or {}).items():
        with _record(f"Genre '{handle}'"):
            genres[handle] = Genre(id=new_id(), name=item["name"])

    books: Dict[str, Book] = {}
    for handle, item in (data.get("books") or {}).items():
        with _record(f"Book '{handle}'"):
            if item.get("author") not in authors:
                raise FixtureError(f"Book '{handle}' refers to unknown author '{item.get('author')}'")
            unknown = [g for g in item.get("genre") or [] if g not in genres]
            if unknown:
                raise FixtureError(f"Book '{handle}' refers to unknown genres {unknown}")

            raw = dict(item)
            raw["author"] = authors[item["author"]].id
            raw["genre"] = [genres[g].id for g in item.get("genre") or []]
            draft, errors = validate_book(raw)
            if errors:
                raise FixtureError(f"Book '{handle}': " + " ".join(e.message for e in errors))
            books[handle] = Book(
                id=new_id(),
                title=draft.title,
                author=draft.author,
                summary=draft.summary,
                isbn=draft.isbn,
                genre=list(draft.genre),
            )

    instances: List[BookInstance] = []
    for position, item in enumerate(data.get("bookinstances") or []):
        with _record(f"Copy #{position + 1}"):
            if item.get("book") not in books:
                raise FixtureError(f"Copy refers to unknown book '{item.get('book')}'")
            instances.append(
                BookInstance(
                    id=new_id(),
                    book=books[item["book"]].id,
                    imprint=item["imprint"],
                    status=InstanceStatus(item.get("status", "Maintenance")),
                    due_back=item.get("due_back"),
                )
            )

    store.bulk_insert(authors.values(), genres.values(), books.values(), instances)

    counts = {
        "authors": len(authors),
        "genres": len(genres),
        "books": len(books),
        "bookinstances": len(instances),
    }
    logger.info("Loaded fixture: %s", counts)
    return counts
