from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from locallibrary.errors import FieldError
from locallibrary.models import BookDraft

# Characters escaped before values are stored or echoed back into a form.
_ESCAPES = str.maketrans({
    "&": "&amp;",
    '"': "&quot;",
    "'": "&#x27;",
    "<": "&lt;",
    ">": "&gt;",
    "/": "&#x2F;",
    "\\": "&#x5C;",
    "`": "&#96;",
})

REQUIRED_BOOK_FIELDS = (
    ("title", "Title must not be empty."),
    ("author", "Author must not be empty."),
    ("summary", "Summary must not be empty."),
    ("isbn", "ISBN must not be empty."),
)


class TextValidator:
    """Text sanitizers shared by the form pipelines."""

    @staticmethod
    def trim(text: Optional[Any]) -> str:
        if text is None:
            return ""
        return str(text).strip()

    @staticmethod
    def escape(text: Optional[Any]) -> str:
        if text is None:
            return ""
        return str(text).translate(_ESCAPES)

    @staticmethod
    def as_list(value: Any) -> List[Any]:
        """Absent -> [], scalar -> [value], list or tuple -> list in the same order."""
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        return [value]


# A step takes the working field dict and the error list and returns both.
Step = Callable[[Dict[str, Any], List[FieldError]], Tuple[Dict[str, Any], List[FieldError]]]


def normalize_genre(fields, errors):
    fields = dict(fields)
    fields["genre"] = TextValidator.as_list(fields.get("genre"))
    return fields, errors


def trim_required(fields, errors):
    fields = dict(fields)
    for name, _ in REQUIRED_BOOK_FIELDS:
        fields[name] = TextValidator.trim(fields.get(name))
    return fields, errors


def require_non_empty(fields, errors):
    errors = list(errors)
    for name, message in REQUIRED_BOOK_FIELDS:
        if len(fields[name]) < 1:
            errors.append(FieldError(name, message))
    return fields, errors


def escape_fields(fields, errors):
    fields = dict(fields)
    for name, _ in REQUIRED_BOOK_FIELDS:
        fields[name] = TextValidator.escape(fields[name])
    fields["genre"] = [TextValidator.escape(g) for g in fields["genre"]]
    return fields, errors


BOOK_PIPELINE: Tuple[Step, ...] = (
    normalize_genre,
    trim_required,
    require_non_empty,
    escape_fields,
)


def validate_book(raw: Mapping[str, Any], book_id: Optional[str] = None) -> Tuple[BookDraft, List[FieldError]]:
    """Run the book form pipeline over raw submitted fields.

    The draft always carries the sanitized values so a failed submission can be
    shown again as typed. ``book_id`` is kept on the draft when editing.
    """
    fields: Dict[str, Any] = dict(raw)
    errors: List[FieldError] = []
    for step in BOOK_PIPELINE:
        fields, errors = step(fields, errors)

    draft = BookDraft(
        id=book_id,
        title=fields["title"],
        author=fields["author"],
        summary=fields["summary"],
        isbn=fields["isbn"],
        genre=fields["genre"],
    )
    return draft, errors
