"""Shared test helpers: schema, seed data and entity declarations."""

from apiframework.entity import Entity
from apiframework.query import QueryBuilder
from apiframework.relationships import BelongsToMany, HasMany, HasOne

SCHEMA = [
    "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, email TEXT)",
    "CREATE TABLE posts (id INTEGER PRIMARY KEY AUTOINCREMENT, user_id INTEGER, title TEXT, body TEXT)",
    "CREATE TABLE tags (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT)",
    "CREATE TABLE post_tags (post_id INTEGER NOT NULL, tag_id INTEGER NOT NULL)",
    "CREATE TABLE comments (id INTEGER PRIMARY KEY AUTOINCREMENT, post_id INTEGER, body TEXT)",
    "CREATE TABLE notes (id INTEGER PRIMARY KEY AUTOINCREMENT, post_id INTEGER, text TEXT)",
]


def create_schema(connection):
    for sql in SCHEMA:
        assert connection.prepare(sql).execute(), sql


def insert_rows(connection, table, *rows):
    """Insert rows through a fresh builder; returns the generated ids."""
    builder = QueryBuilder(connection)
    return [builder.use_table(table).insert_returning_id(row) for row in rows]


def pivot_rows(connection, post_id):
    rows = (
        QueryBuilder(connection)
        .use_table("post_tags")
        .select_columns(["tag_id"])
        .where("post_id", post_id)
        .order_by("tag_id")
        .limit(None)
        .fetch_all()
    )
    return [row["tag_id"] for row in rows]


class User(Entity, table="users"):
    fillable = ("name", "email")
    validate = {"name": ["required", "alphanumeric"], "email": ["email"]}
    filters = {"name": ("name",)}
    default_order = "users.id ASC"


class Comment(Entity, table="comments"):
    fillable = ("post_id", "body")
    validate = {"body": ["required"]}
    default_order = "comments.id ASC"


class Post(Entity, table="posts"):
    fillable = ("user_id", "title", "body")
    validate = {"title": ["required"]}
    filters = {
        "title": ("title", "contains"),
        "user": ("user_id",),
        "author": ("name", "=", "users"),
        "tags": ("tags",),
    }
    default_order = "posts.id ASC"
    relationships = (
        HasOne(alias="author", table="users", local_key="user_id", foreign_key="id", columns=("name", "email")),
        BelongsToMany(alias="tags", pivot="post_tags", local_key="post_id", foreign_key="tag_id", sync=True),
        HasMany(alias="comments", entity="Comment", foreign_key="post_id", sync={"insert", "update", "overwrite"}),
        HasMany(
            alias="notes",
            table="notes",
            foreign_key="post_id",
            columns=("id", "text"),
            order_by="notes.id DESC",
            limit=2,
            sync={"insert", "update"},
        ),
    )


def seed_blog(connection):
    """Two users, three posts, tags on the first two posts, comments and notes."""
    insert_rows(
        connection,
        "users",
        {"name": "alice", "email": "alice@example.com"},
        {"name": "bob", "email": "bob@example.com"},
    )
    insert_rows(
        connection,
        "posts",
        {"user_id": 1, "title": "cats and dogs"},
        {"user_id": 2, "title": "birds"},
        {"user_id": 99, "title": "more cats"},
    )
    insert_rows(connection, "tags", {"name": "pets"}, {"name": "animals"}, {"name": "funny"})
    insert_rows(
        connection,
        "post_tags",
        {"post_id": 1, "tag_id": 1},
        {"post_id": 1, "tag_id": 2},
        {"post_id": 1, "tag_id": 3},
        {"post_id": 2, "tag_id": 2},
    )
    insert_rows(
        connection,
        "comments",
        {"post_id": 1, "body": "first"},
        {"post_id": 1, "body": "second"},
        {"post_id": 2, "body": "other"},
    )
    insert_rows(
        connection,
        "notes",
        {"post_id": 1, "text": "n1"},
        {"post_id": 1, "text": "n2"},
        {"post_id": 1, "text": "n3"},
        {"post_id": 2, "text": "n4"},
    )
