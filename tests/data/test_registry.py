# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Tests for EntityType and EntityRegistry."""

from __future__ import annotations

import threading

import pytest
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from querychain.config.store import QueryOptions
from querychain.data.changeset import Changeset
from querychain.data.registry import EntityRegistry, EntityType, camelize
from querychain.kernel.exceptions import SchemaNotFoundException, UnknownFieldException


class Model(DeclarativeBase):
    pass


class Author(Model):
    __tablename__ = "authors"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    posts: Mapped[list[BlogPost]] = relationship(back_populates="author")


class BlogPost(Model):
    __tablename__ = "blog_posts"

    id: Mapped[int] = mapped_column(primary_key=True)
    author_id: Mapped[int] = mapped_column(ForeignKey("authors.id"))
    title: Mapped[str] = mapped_column(String(200))
    author: Mapped[Author] = relationship(back_populates="posts")

    @classmethod
    def changeset(cls, record, params):
        return Changeset(record).cast(params, permitted=["title"]).validate_required(["title"])


class TestEntityType:
    def test_fields_and_primary_key(self):
        entity = EntityType(BlogPost, "BlogPost")
        assert entity.fields == ("id", "author_id", "title")
        assert entity.primary_key == ("id",)
        assert entity.relationships == ("author",)

    def test_related(self):
        assert EntityType(Author, "Author").related("posts") is BlogPost

    def test_unknown_association(self):
        with pytest.raises(UnknownFieldException) as exc_info:
            EntityType(Author, "Author").related("comments")
        assert exc_info.value.code == "COMPILE_UNKNOWN_ASSOCIATION"

    def test_new_builds_unsaved_instance(self):
        post = EntityType(BlogPost, "BlogPost").new({"title": "Hello"})
        assert isinstance(post, BlogPost)
        assert post.title == "Hello"
        assert post.id is None

    def test_new_rejects_unknown_fields(self):
        with pytest.raises(UnknownFieldException):
            EntityType(BlogPost, "BlogPost").new({"colour": "red"})

    def test_primary_key_values(self):
        post = BlogPost(id=3, title="x")
        assert EntityType(BlogPost, "BlogPost").primary_key_values(post) == {"id": 3}

    def test_custom_changeset_is_used(self):
        cs = EntityType(BlogPost, "BlogPost").changeset(BlogPost(), {"title": "t", "author_id": 9})
        assert cs.changes == {"title": "t"}

    def test_default_changeset_requires_non_nullable_columns(self):
        cs = EntityType(Author, "Author").changeset(Author(), {})
        assert not cs.valid
        assert [error.field for error in cs.errors] == ["name"]

    def test_qualified_name(self):
        assert EntityType(Author, "Author", namespace="blog").qualified_name == "blog.Author"
        assert EntityType(Author, "Author").qualified_name == "Author"


class TestEntityRegistry:
    @pytest.fixture
    def registry(self) -> EntityRegistry:
        registry = EntityRegistry()
        registry.scan(Model, namespace="blog")
        return registry

    def test_scan_registers_every_mapped_class(self, registry: EntityRegistry):
        assert registry.resolve("Author", QueryOptions(app="blog")).model is Author
        assert registry.resolve("BlogPost", QueryOptions(app="blog")).model is BlogPost

    def test_lowercase_names_are_camelized(self, registry: EntityRegistry):
        assert registry.resolve("blog_post", QueryOptions(app="blog")).model is BlogPost

    def test_app_namespace_wins_over_app(self, registry: EntityRegistry):
        entity = registry.resolve("Author", QueryOptions(app="other", app_namespace="blog"))
        assert entity.model is Author

    def test_fully_qualified_name(self, registry: EntityRegistry):
        assert registry.resolve("blog.Author").model is Author

    def test_bare_name_without_namespace(self):
        registry = EntityRegistry()
        registry.register(Author)
        assert registry.resolve("Author").model is Author
        assert registry.resolve("author").model is Author

    def test_schema_override_wins(self, registry: EntityRegistry):
        entity = registry.resolve("Author", QueryOptions(app="blog", schema=BlogPost))
        assert entity.model is BlogPost

    def test_mapped_class_resolves_directly(self):
        registry = EntityRegistry()
        entity = registry.resolve(Author)
        assert entity.model is Author
        assert registry.entity_for(Author) is entity

    def test_entity_type_resolves_to_itself(self, registry: EntityRegistry):
        entity = EntityType(Author, "Author")
        assert registry.resolve(entity) is entity

    def test_not_found(self, registry: EntityRegistry):
        with pytest.raises(SchemaNotFoundException) as exc_info:
            registry.resolve("Comment", QueryOptions(app="blog"))
        assert exc_info.value.code == "SCHEMA_NOT_FOUND"
        assert exc_info.value.context == {"name": "Comment", "namespace": "blog"}

    def test_repos(self, registry: EntityRegistry):
        repo = object()
        registry.register_repo("blog.Repo", repo)
        assert registry.repo("blog.Repo") is repo
        assert registry.repo("shop.Repo") is None

    def test_clear(self, registry: EntityRegistry):
        registry.clear()
        with pytest.raises(SchemaNotFoundException):
            registry.resolve("Author", QueryOptions(app="blog"))

    def test_concurrent_registration(self):
        registry = EntityRegistry()

        def worker(index: int) -> None:
            registry.register(Author, name=f"Author{index}")

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert all(registry.resolve(f"Author{i}").model is Author for i in range(20))


class TestCamelize:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [("user", "User"), ("user_message", "UserMessage"), ("User", "User"), ("blog_post", "BlogPost")],
    )
    def test_camelize(self, name: str, expected: str):
        assert camelize(name) == expected
