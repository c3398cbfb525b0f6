"""Tests for relationship writes: BelongsToMany sync and HasMany upserts."""

import pytest

from apiframework.errors import ValidationError
from apiframework.query import QueryBuilder
from tests.helpers import pivot_rows


@pytest.fixture
def posts(blog, factory):
    return factory.make("Post")


def _comments(connection, post_id):
    return (
        QueryBuilder(connection)
        .use_table("comments")
        .select_columns(["id", "body"])
        .where("post_id", post_id)
        .order_by("id")
        .limit(None)
        .fetch_all()
    )


class TestBelongsToManySync:

    def test_round_trip(self, blog, posts):
        created = posts.create({"title": "tagged", "tags": [1, 2, 3]})
        assert pivot_rows(blog, created["id"]) == [1, 2, 3]
        assert sorted(created["tags"]) == [1, 2, 3]
        updated = posts.update(created["id"], {"title": "tagged", "tags": [2]})
        assert pivot_rows(blog, created["id"]) == [2]
        assert updated["tags"] == [2]

    def test_duplicates_are_written_once(self, blog, posts):
        created = posts.create({"title": "dup", "tags": [1, 1, 2]})
        assert pivot_rows(blog, created["id"]) == [1, 2]

    def test_empty_list_clears(self, blog, posts):
        posts.update(1, {"title": "cleared", "tags": []})
        assert pivot_rows(blog, 1) == []

    def test_absent_alias_keeps_pivot(self, blog, posts):
        posts.update(1, {"title": "renamed"})
        assert pivot_rows(blog, 1) == [1, 2, 3]
        assert pivot_rows(blog, 2) == [2]

    def test_alias_is_not_written_as_column(self, posts):
        assert posts.create({"title": "x", "tags": [1], "author": "me"})["author"] is None


class TestHasManyThroughEntity:

    def test_insert_forces_parent_id(self, blog, posts):
        created = posts.create({"title": "new", "comments": [{"body": "a", "post_id": 2}, {"body": "b"}]})
        assert [c["body"] for c in created["comments"]] == ["a", "b"]
        assert [c["body"] for c in _comments(blog, 2)] == ["other"]

    def test_update_and_overwrite(self, blog, posts):
        updated = posts.update(1, {
            "title": "cats and dogs",
            "comments": [{"id": 1, "body": "edited"}, {"body": "new"}],
        })
        assert updated["comments"] == [{"id": 1, "body": "edited"}, {"id": 4, "body": "new"}]
        assert _comments(blog, 1) == [{"id": 1, "body": "edited"}, {"id": 4, "body": "new"}]

    def test_child_of_another_parent_is_untouched(self, blog, posts):
        posts.update(1, {"title": "cats and dogs", "comments": [{"id": 3, "body": "hijacked"}]})
        assert _comments(blog, 2) == [{"id": 3, "body": "other"}]
        assert _comments(blog, 1) == []

    def test_missing_child_is_skipped(self, blog, posts):
        posts.update(2, {"title": "birds", "comments": [{"id": 3, "body": "kept"}, {"id": 9999, "body": "ghost"}]})
        assert _comments(blog, 2) == [{"id": 3, "body": "kept"}]

    def test_absent_alias_keeps_children(self, blog, posts):
        posts.update(1, {"title": "cats and dogs"})
        assert len(_comments(blog, 1)) == 2

    def test_invalid_child_after_parent_write(self, blog, posts):
        with pytest.raises(ValidationError) as info:
            posts.create({"title": "half written", "comments": [{"body": ""}]})
        assert info.value.errors == {"body": "required"}
        # writes are not transactional: the parent row stays
        assert posts.search({"title": "half written"}).count() == 1


class TestHasManyThroughTable:

    def _notes(self, connection, post_id):
        return (
            QueryBuilder(connection)
            .use_table("notes")
            .select_columns(["id", "text"])
            .where("post_id", post_id)
            .order_by("id")
            .limit(None)
            .fetch_all()
        )

    def test_insert_and_update(self, blog, posts):
        posts.update(2, {"title": "birds", "notes": [{"id": 4, "text": "edited"}, {"text": "n5"}]})
        assert self._notes(blog, 2) == [{"id": 4, "text": "edited"}, {"id": 5, "text": "n5"}]

    def test_without_overwrite_existing_rows_stay(self, blog, posts):
        posts.update(1, {"title": "cats and dogs", "notes": []})
        assert len(self._notes(blog, 1)) == 3

    def test_child_of_another_parent_is_untouched(self, blog, posts):
        posts.update(2, {"title": "birds", "notes": [{"id": 1, "text": "hijacked"}]})
        assert self._notes(blog, 1)[0] == {"id": 1, "text": "n1"}

    def test_unknown_columns_are_not_written(self, blog, posts):
        posts.update(2, {"title": "birds", "notes": [{"text": "n5", "color": "red"}]})
        assert self._notes(blog, 2)[-1] == {"id": 5, "text": "n5"}
