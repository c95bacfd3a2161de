from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from locallibrary.api import create_app
from locallibrary.controllers import CatalogController
from locallibrary.store import CatalogStore


@pytest.fixture
def db_file(tmp_path, request):
    # A separate database file for every test
    return str(tmp_path / f"catalog_{request.node.name}.db")


@pytest.fixture
def store(db_file):
    return CatalogStore(db_file)


@pytest.fixture
def controller(store):
    return CatalogController(store)


@pytest.fixture
def catalog(store):
    """One author and four genres, enough to fill in a book form."""
    author = store.insert_author("Frank", "Herbert", date_of_birth="1920-10-08", date_of_death="1986-02-11")
    other_author = store.insert_author("Ursula", "Le Guin", date_of_birth="1929-10-21")
    sf = store.insert_genre("Science Fiction")
    fantasy = store.insert_genre("Fantasy")
    poetry = store.insert_genre("Poetry")
    horror = store.insert_genre("Horror")
    return SimpleNamespace(
        store=store,
        author=author,
        other_author=other_author,
        sf=sf,
        fantasy=fantasy,
        poetry=poetry,
        horror=horror,
        genres=[sf, fantasy, poetry, horror],
    )


@pytest.fixture
def client(db_file):
    app = create_app(db_file=db_file)
    with TestClient(app) as test_client:
        yield test_client
