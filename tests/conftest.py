import os
import re
import pytest

from apiframework.connection import connect, get_connection
from apiframework.entity import EntityFactory
from tests.helpers import Comment, Post, User, create_schema, seed_blog


@pytest.fixture(scope="function")
def setup_db(request):
    """Setup a temporary file SQLite database for each test; yields its connection."""
    os.makedirs("/tmp/apiframework-tests", exist_ok=True)
    name = re.sub(r"\W+", "-", request.node.nodeid)
    path = f"/tmp/apiframework-tests/test-{name}.sqlite3"
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    connect(f"sqlite:///{path}")
    yield get_connection()


@pytest.fixture
def db(setup_db):
    """Connection to a database holding the users/posts/tags/comments/notes schema."""
    create_schema(setup_db)
    return setup_db


@pytest.fixture
def factory(db):
    return EntityFactory(db).register(User, Post, Comment)


@pytest.fixture
def blog(db):
    """Database seeded with users, posts, tags, comments and notes."""
    seed_blog(db)
    return db
