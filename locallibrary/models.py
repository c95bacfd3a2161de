from __future__ import annotations

import json
from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _date_med(value: Optional[date]) -> str:
    """Format like 'Oct 14, 1983'; empty string for a missing date."""
    if value is None:
        return ""
    return f"{value:%b} {value.day}, {value.year}"


class Author(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    first_name: str = Field(min_length=1, max_length=100)
    family_name: str = Field(min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    date_of_death: Optional[date] = None

    @property
    def name(self) -> str:
        return f"{self.family_name}, {self.first_name}"

    @property
    def lifespan(self) -> str:
        return f"{_date_med(self.date_of_birth)} - {_date_med(self.date_of_death)}"

    @property
    def dateform_birth(self) -> str:
        return self.date_of_birth.isoformat() if self.date_of_birth else ""

    @property
    def dateform_death(self) -> str:
        return self.date_of_death.isoformat() if self.date_of_death else ""

    @property
    def url(self) -> str:
        return f"/catalog/author/{self.id}"

    @staticmethod
    def from_row(row: dict) -> "Author":
        return Author(**row)


class Genre(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    # Form pre-selection marker, never written to the store.
    checked: bool = False

    @property
    def url(self) -> str:
        return f"/catalog/genre/{self.id}"

    @staticmethod
    def from_row(row: dict) -> "Genre":
        return Genre(id=row["id"], name=row["name"])


class Book(BaseModel):
    """A stored book. ``author`` and ``genre`` hold ids, not entities."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    author: str
    summary: str
    isbn: str
    genre: List[str] = Field(default_factory=list)

    @property
    def url(self) -> str:
        return f"/catalog/book/{self.id}"

    @staticmethod
    def from_row(row: dict) -> "Book":
        genre = row.get("genre")
        if isinstance(genre, str):
            genre = json.loads(genre) if genre else []
        return Book(
            id=row["id"],
            title=row["title"],
            author=row["author"],
            summary=row["summary"],
            isbn=row["isbn"],
            genre=genre or [],
        )


class BookDetail(BaseModel):
    """A book with its author and genre references resolved."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    author: Optional[Author] = None
    summary: str
    isbn: str
    genre: List[Genre] = Field(default_factory=list)

    @property
    def url(self) -> str:
        return f"/catalog/book/{self.id}"

    @property
    def genre_ids(self) -> List[str]:
        return [g.id for g in self.genre]


class BookSummary(BaseModel):
    """Projection used by the book list: title plus author display name."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    author_name: str = ""

    @property
    def url(self) -> str:
        return f"/catalog/book/{self.id}"


class BookDraft(BaseModel):
    """Sanitized form input. Carries ``id`` only when editing an existing book."""

    id: Optional[str] = None
    title: str = ""
    author: str = ""
    summary: str = ""
    isbn: str = ""
    genre: List[str] = Field(default_factory=list)


class InstanceStatus(str, Enum):
    AVAILABLE = "Available"
    MAINTENANCE = "Maintenance"
    LOANED = "Loaned"
    RESERVED = "Reserved"


class BookInstance(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    book: str
    imprint: str
    status: InstanceStatus = InstanceStatus.MAINTENANCE
    due_back: Optional[date] = None
    # Filled in by listings that join the book title.
    book_title: Optional[str] = None

    @property
    def url(self) -> str:
        return f"/catalog/bookinstance/{self.id}"

    @property
    def due_back_formatted(self) -> str:
        return _date_med(self.due_back)

    @staticmethod
    def from_row(row: dict) -> "BookInstance":
        return BookInstance(**row)
