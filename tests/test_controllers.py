import asyncio
from unittest.mock import MagicMock

import pytest

from locallibrary.controllers import Redirect, Render, mark_checked
from locallibrary.errors import DataAccessError, NotFound
from locallibrary.models import Genre, InstanceStatus


def run(coro):
    return asyncio.run(coro)


def _form(catalog, **overrides):
    raw = {"title": "Dune", "author": catalog.author.id, "summary": "desert planet", "isbn": "123"}
    raw.update(overrides)
    return raw


def _create(controller, catalog, **overrides):
    outcome = run(controller.book_create_post(_form(catalog, **overrides)))
    assert isinstance(outcome, Redirect)
    return outcome.url.rsplit("/", 1)[-1]


def _checked(genres):
    return {g.id: g.checked for g in genres}


# ------------------------- mark_checked ------------------------- #
def test_mark_checked_uses_membership_not_position():
    genres = [Genre(id=f"g{i}", name=f"Genre {i}") for i in range(5)]
    marked = mark_checked(genres, ["g4", "g1"])
    assert [g.checked for g in marked] == [False, True, False, False, True]
    # originals untouched
    assert not any(g.checked for g in genres)


# ------------------------- create ------------------------- #
def test_dune_example(controller, catalog):
    outcome = run(controller.book_create_post(_form(catalog, genre=[catalog.sf.id])))
    assert isinstance(outcome, Redirect)
    assert outcome.url.startswith("/catalog/book/")

    book_id = outcome.url.rsplit("/", 1)[-1]
    detail = run(controller.book_detail(book_id))
    assert detail.template == "book_detail.html"
    assert [g.id for g in detail.context["book"].genre] == [catalog.sf.id]
    assert detail.context["book"].genre[0].name == "Science Fiction"


def test_create_form_lists_authors_and_genres(controller, catalog):
    outcome = run(controller.book_create_get())
    assert outcome.template == "book_form.html"
    assert len(outcome.context["authors"]) == 2
    assert len(outcome.context["genres"]) == 4
    assert "book" not in outcome.context


@pytest.mark.parametrize("field,message", [
    ("title", "Title must not be empty."),
    ("author", "Author must not be empty."),
    ("summary", "Summary must not be empty."),
    ("isbn", "ISBN must not be empty."),
])
def test_create_missing_field_is_not_persisted(controller, catalog, monkeypatch, field, message):
    insert = MagicMock()
    monkeypatch.setattr(catalog.store, "insert_book", insert)

    outcome = run(controller.book_create_post(_form(catalog, **{field: "  "})))
    assert isinstance(outcome, Render)
    assert outcome.template == "book_form.html"
    assert message in [e.message for e in outcome.context["errors"]]
    insert.assert_not_called()


def test_create_rerender_marks_selected_genres(controller, catalog):
    # four genres in the catalog, two selected in an order unlike the list order
    selected = [catalog.horror.id, catalog.sf.id]
    outcome = run(controller.book_create_post(_form(catalog, title="", genre=selected)))

    checked = _checked(outcome.context["genres"])
    assert len(checked) == 4
    assert checked[catalog.horror.id] is True
    assert checked[catalog.sf.id] is True
    assert checked[catalog.fantasy.id] is False
    assert checked[catalog.poetry.id] is False
    assert outcome.context["book"].genre == selected
    assert outcome.context["book"].summary == "desert planet"


def test_create_genre_normalization_reaches_the_store(controller, catalog, store):
    none_id = _create(controller, catalog)
    one_id = _create(controller, catalog, genre=catalog.poetry.id)
    many_id = _create(controller, catalog, genre=[catalog.poetry.id, catalog.sf.id, catalog.fantasy.id])

    assert store.get_book(none_id).genre == []
    assert store.get_book(one_id).genre == [catalog.poetry.id]
    assert store.get_book(many_id).genre == [catalog.poetry.id, catalog.sf.id, catalog.fantasy.id]


def test_create_rejects_unknown_references(controller, catalog, store):
    outcome = run(controller.book_create_post(_form(catalog, author="nobody", genre=["nope"])))
    assert isinstance(outcome, Render)
    fields = [e.field for e in outcome.context["errors"]]
    assert fields == ["author", "genre"]
    assert store.count_books() == 0


# ------------------------- list / detail ------------------------- #
def test_book_list(controller, catalog):
    _create(controller, catalog)
    outcome = run(controller.book_list())
    assert [(b.title, b.author_name) for b in outcome.context["book_list"]] == [("Dune", "Herbert, Frank")]


def test_detail_of_missing_book_is_not_found(controller, catalog):
    with pytest.raises(NotFound):
        run(controller.book_detail("missing"))


def test_detail_lists_copies(controller, catalog, store):
    book_id = _create(controller, catalog)
    store.insert_instance(book_id, "Chilton, 1965", status=InstanceStatus.AVAILABLE)
    outcome = run(controller.book_detail(book_id))
    assert [i.imprint for i in outcome.context["book_instances"]] == ["Chilton, 1965"]


def test_data_access_error_propagates(controller, catalog, monkeypatch):
    monkeypatch.setattr(catalog.store, "instances_for_book", MagicMock(side_effect=DataAccessError("down")))
    with pytest.raises(DataAccessError):
        run(controller.book_detail("anything"))


# ------------------------- delete ------------------------- #
def test_delete_form_redirects_when_missing(controller, catalog):
    outcome = run(controller.book_delete_get("missing"))
    assert outcome == Redirect("/catalog/books")


def test_delete_form_shows_book_and_copies(controller, catalog, store):
    book_id = _create(controller, catalog)
    outcome = run(controller.book_delete_get(book_id))
    assert outcome.template == "book_delete.html"
    assert outcome.context["book"].id == book_id
    assert outcome.context["bookinstance_list"] == []


def test_delete_without_copies(controller, catalog, store):
    book_id = _create(controller, catalog)
    outcome = run(controller.book_delete_post(book_id))
    assert outcome == Redirect("/catalog/books")
    listed = run(controller.book_list()).context["book_list"]
    assert book_id not in [b.id for b in listed]


def test_delete_blocked_by_copies(controller, catalog, store):
    book_id = _create(controller, catalog)
    store.insert_instance(book_id, "Chilton, 1965", status=InstanceStatus.LOANED)

    outcome = run(controller.book_delete_post(book_id))
    assert isinstance(outcome, Render)
    assert outcome.template == "book_delete.html"
    assert outcome.context["blocked"] is True
    assert [i.imprint for i in outcome.context["bookinstance_list"]] == ["Chilton, 1965"]
    assert store.get_book(book_id).title == "Dune"


# ------------------------- update ------------------------- #
def test_update_form_missing_book_is_not_found(controller, catalog):
    with pytest.raises(NotFound):
        run(controller.book_update_get("missing"))


def test_update_form_marks_book_genres(controller, catalog):
    book_id = _create(controller, catalog, genre=[catalog.poetry.id, catalog.fantasy.id])
    outcome = run(controller.book_update_get(book_id))

    assert outcome.context["book"].id == book_id
    assert outcome.context["book"].author == catalog.author.id
    checked = _checked(outcome.context["genres"])
    assert checked == {
        catalog.sf.id: False,
        catalog.fantasy.id: True,
        catalog.poetry.id: True,
        catalog.horror.id: False,
    }


def test_update_keeps_id(controller, catalog, store):
    book_id = _create(controller, catalog)
    outcome = run(controller.book_update_post(book_id, _form(catalog, title="Dune Messiah", genre=[catalog.sf.id])))

    assert outcome == Redirect(f"/catalog/book/{book_id}")
    assert store.count_books() == 1
    book = store.get_book(book_id)
    assert book.title == "Dune Messiah"
    assert book.genre == [catalog.sf.id]


def test_update_with_errors_is_not_persisted(controller, catalog, store):
    book_id = _create(controller, catalog)
    outcome = run(controller.book_update_post(book_id, _form(catalog, isbn="", genre=catalog.fantasy.id)))

    assert outcome.template == "book_form.html"
    assert outcome.context["book"].id == book_id
    assert [e.message for e in outcome.context["errors"]] == ["ISBN must not be empty."]
    assert _checked(outcome.context["genres"])[catalog.fantasy.id] is True
    assert store.get_book(book_id).isbn == "123"


def test_update_of_vanished_book_is_not_found(controller, catalog):
    with pytest.raises(NotFound):
        run(controller.book_update_post("missing", _form(catalog)))


# ------------------------- dashboard ------------------------- #
def test_index_counts(controller, catalog, store):
    book_id = _create(controller, catalog)
    store.insert_instance(book_id, "Chilton, 1965", status=InstanceStatus.AVAILABLE)
    store.insert_instance(book_id, "Ace, 1990", status=InstanceStatus.LOANED)

    outcome = run(controller.index())
    assert outcome.context["error"] is None
    assert outcome.context["data"] == {
        "book_count": 1,
        "book_instance_count": 2,
        "book_instance_available_count": 1,
        "author_count": 2,
        "genre_count": 4,
    }


def test_index_single_failure_means_no_data(controller, catalog, monkeypatch):
    monkeypatch.setattr(catalog.store, "count_genres", MagicMock(side_effect=DataAccessError("genres offline")))
    outcome = run(controller.index())
    assert outcome.context["data"] is None
    assert outcome.context["error"] == "genres offline"


# ------------------------- other catalog pages ------------------------- #
def test_author_and_genre_pages(controller, catalog):
    book_id = _create(controller, catalog, genre=[catalog.sf.id])

    author = run(controller.author_detail(catalog.author.id))
    assert [b.id for b in author.context["author_books"]] == [book_id]
    genre = run(controller.genre_detail(catalog.sf.id))
    assert [b.id for b in genre.context["genre_books"]] == [book_id]
    assert [a.name for a in run(controller.author_list()).context["author_list"]] == ["Herbert, Frank", "Le Guin, Ursula"]
    assert len(run(controller.genre_list()).context["genre_list"]) == 4

    with pytest.raises(NotFound):
        run(controller.author_detail("missing"))
    with pytest.raises(NotFound):
        run(controller.genre_detail("missing"))


def test_bookinstance_pages(controller, catalog, store):
    book_id = _create(controller, catalog)
    instance = store.insert_instance(book_id, "Chilton, 1965")

    listed = run(controller.bookinstance_list()).context["bookinstance_list"]
    assert [i.id for i in listed] == [instance.id]
    detail = run(controller.bookinstance_detail(instance.id))
    assert detail.context["title"] == "Copy: Dune"
    with pytest.raises(NotFound):
        run(controller.bookinstance_detail("missing"))


def test_page_titles_are_decoded_once(controller, catalog, store):
    book_id = _create(controller, catalog, title="Tom & Jerry")
    assert store.get_book(book_id).title == "Tom &amp; Jerry"
    instance = store.insert_instance(book_id, "MGM, 1940")

    assert run(controller.book_detail(book_id)).context["title"] == "Tom & Jerry"
    assert run(controller.bookinstance_detail(instance.id)).context["title"] == "Copy: Tom & Jerry"
