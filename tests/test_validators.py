from locallibrary.errors import FieldError
from locallibrary.validators import TextValidator, validate_book


def _raw(**overrides):
    raw = {"title": "Dune", "author": "a1", "summary": "desert planet", "isbn": "123"}
    raw.update(overrides)
    return raw


def test_valid_submission_has_no_errors():
    draft, errors = validate_book(_raw(genre=["g1"]))
    assert errors == []
    assert draft.title == "Dune"
    assert draft.author == "a1"
    assert draft.summary == "desert planet"
    assert draft.isbn == "123"
    assert draft.genre == ["g1"]
    assert draft.id is None


def test_fields_are_trimmed():
    draft, errors = validate_book(_raw(title="  Dune  ", isbn="\t123\n"))
    assert errors == []
    assert draft.title == "Dune"
    assert draft.isbn == "123"


def test_each_missing_field_has_its_own_message():
    draft, errors = validate_book({})
    assert errors == [
        FieldError("title", "Title must not be empty."),
        FieldError("author", "Author must not be empty."),
        FieldError("summary", "Summary must not be empty."),
        FieldError("isbn", "ISBN must not be empty."),
    ]
    assert draft.genre == []


def test_whitespace_only_counts_as_empty():
    _, errors = validate_book(_raw(summary="   "))
    assert errors == [FieldError("summary", "Summary must not be empty.")]


def test_failed_draft_keeps_the_other_values():
    draft, errors = validate_book(_raw(title="", genre=["g2", "g1"]))
    assert [e.field for e in errors] == ["title"]
    assert draft.title == ""
    assert draft.summary == "desert planet"
    assert draft.genre == ["g2", "g1"]


def test_genre_absent_becomes_empty_list():
    draft, _ = validate_book(_raw())
    assert draft.genre == []


def test_genre_scalar_becomes_singleton():
    draft, _ = validate_book(_raw(genre="g1"))
    assert draft.genre == ["g1"]


def test_genre_list_keeps_count_and_order():
    draft, _ = validate_book(_raw(genre=["g3", "g1", "g2"]))
    assert draft.genre == ["g3", "g1", "g2"]


def test_markup_is_escaped():
    draft, errors = validate_book(_raw(title="<b>Dune</b>", summary="Tom & Jerry's", genre=["<x>"]))
    assert errors == []
    assert draft.title == "&lt;b&gt;Dune&lt;&#x2F;b&gt;"
    assert draft.summary == "Tom &amp; Jerry&#x27;s"
    assert draft.genre == ["&lt;x&gt;"]


def test_update_draft_keeps_id():
    draft, _ = validate_book(_raw(), book_id="b42")
    assert draft.id == "b42"


def test_text_validator_as_list():
    assert TextValidator.as_list(None) == []
    assert TextValidator.as_list("x") == ["x"]
    assert TextValidator.as_list(("x", "y")) == ["x", "y"]
