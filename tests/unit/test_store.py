"""Tests for the SQL record store and the filter language."""

import pytest

from dslkit.core.types import ModelSpec
from dslkit.data.filters import filter_fields, normalize_order_by, validate_filter
from dslkit.data.store import SqlStore
from dslkit.data.values import to_output, to_storage
from dslkit.exceptions import FieldNotFoundError, QueryError, ValidationError


@pytest.fixture
def articles(registry, store: SqlStore) -> ModelSpec:
    """Article model with five rows: three published, two drafts."""
    article = registry.get_model("Article")
    store.ensure_tables([article])
    for title, status, views in [
        ("Alpha", "published", 10),
        ("Beta", "draft", 3),
        ("Gamma", "published", 25),
        ("delta", "published", 0),
        ("Epsilon", "draft", 7),
    ]:
        store.insert(article, {"title": title, "status": status, "views": views})
    return article


class TestTables:
    """Tests for table creation."""

    def test_ensure_tables(self, registry, store):
        names = store.ensure_tables(registry.get_all_models())
        assert "widget" in names
        assert "post_tag" in names

    def test_ensure_tables_is_repeatable(self, registry, store):
        models = registry.get_all_models()
        store.ensure_tables(models)
        assert store.ensure_tables(models) == [m.table_name for m in models]

    def test_table_name_clash(self, store):
        store.table_for(ModelSpec(name="Widget"))
        with pytest.raises(QueryError) as exc_info:
            store.table_for(ModelSpec(name="Gadget", table_name="widget"))
        assert "already used" in str(exc_info.value)


class TestWrites:
    """Tests for insert, update and delete."""

    def test_insert_applies_defaults(self, articles, store):
        row = store.insert(articles, {"title": "Zeta"})
        assert row["id"] == 6
        assert row["status"] == "draft"
        assert row["views"] == 0

    def test_insert_converts_values(self, articles, store):
        row = store.insert(articles, {"title": 42, "views": "12"})
        assert row["title"] == "42"
        assert row["views"] == 12

    def test_insert_rejects_bad_value(self, articles, store):
        with pytest.raises(ValidationError):
            store.insert(articles, {"title": "x", "views": "many"})

    def test_insert_unknown_field(self, articles, store):
        with pytest.raises(FieldNotFoundError):
            store.insert(articles, {"title": "x", "colour": "red"})

    def test_unique_violation(self, registry, store):
        tag = registry.get_model("Tag")
        store.ensure_tables([tag])
        store.insert(tag, {"label": "python"})
        with pytest.raises(ValidationError) as exc_info:
            store.insert(tag, {"label": "python"})
        assert "Constraint violated" in str(exc_info.value)

    def test_timestamps(self, registry, store):
        note = registry.get_model("Note")
        store.ensure_tables([note])
        row = store.insert(note, {"body": "hello"})
        assert row["createdAt"] is not None
        assert row["createdAt"] == row["updatedAt"]
        assert row["createdAt"].endswith("+00:00")

    def test_update(self, articles, store):
        row = store.update(articles, 2, {"status": "published"})
        assert row["status"] == "published"
        assert row["title"] == "Beta"

    def test_update_missing(self, articles, store):
        assert store.update(articles, 99, {"status": "published"}) is None

    def test_update_where(self, articles, store):
        changed = store.update_where(articles, {"status": "draft"}, {"status": "archived"})
        assert changed == 2
        assert store.count(articles, {"status": "archived"}) == 2

    def test_delete_returns_row(self, articles, store):
        row = store.delete(articles, 1)
        assert row["title"] == "Alpha"
        assert store.get(articles, 1) is None
        assert store.delete(articles, 1) is None

    def test_delete_where(self, articles, store):
        assert store.delete_where(articles, {"status": "published"}) == 3
        assert store.count(articles) == 2


class TestReads:
    """Tests for get, find and count with filters."""

    def test_get(self, articles, store):
        assert store.get(articles, 3)["title"] == "Gamma"
        assert store.get(articles, "3")["title"] == "Gamma"
        assert store.get(articles, 42) is None

    def test_default_order_is_primary_key(self, articles, store):
        rows = store.find(articles)
        assert [r["id"] for r in rows] == [1, 2, 3, 4, 5]

    def test_order_by_desc(self, articles, store):
        rows = store.find(articles, order_by={"views": "desc"})
        assert [r["title"] for r in rows] == ["Gamma", "Alpha", "Epsilon", "Beta", "delta"]

    def test_limit_offset(self, articles, store):
        rows = store.find(articles, limit=2, offset=2)
        assert [r["id"] for r in rows] == [3, 4]

    def test_equality(self, articles, store):
        assert store.count(articles, {"status": "published"}) == 3

    def test_comparison_operators(self, articles, store):
        assert store.count(articles, {"views": {"gte": 10}}) == 2
        assert store.count(articles, {"views": {"gt": 0, "lt": 10}}) == 2

    def test_in_and_not_in(self, articles, store):
        assert store.count(articles, {"id": {"in": [1, 2, 9]}}) == 2
        assert store.count(articles, {"id": {"notIn": [1, 2]}}) == 3

    def test_string_operators(self, articles, store):
        assert store.count(articles, {"title": {"startsWith": "G"}}) == 1
        assert store.count(articles, {"title": {"endsWith": "a"}}) == 4
        assert store.count(articles, {"title": {"contains": "lph"}}) == 1

    def test_insensitive_mode(self, articles, store):
        assert store.count(articles, {"title": {"startsWith": "d", "mode": "insensitive"}}) == 1
        assert store.count(articles, {"title": {"equals": "DELTA", "mode": "insensitive"}}) == 1

    def test_contains_escapes_wildcards(self, articles, store):
        assert store.count(articles, {"title": {"contains": "%"}}) == 0

    def test_logical_operators(self, articles, store):
        where = {"OR": [{"title": "Alpha"}, {"views": {"gt": 20}}]}
        assert store.count(articles, where) == 2
        assert store.count(articles, {"NOT": {"status": "draft"}}) == 3
        assert store.count(articles, {"AND": [{"status": "draft"}, {"views": 7}]}) == 1

    def test_null_checks(self, articles, store):
        assert store.count(articles, {"slug": None}) == 5
        assert store.count(articles, {"slug": {"isNull": False}}) == 0
        assert store.count(articles, {"slug": {"not": None}}) == 0

    def test_not_operator(self, articles, store):
        assert store.count(articles, {"status": {"not": "draft"}}) == 3


class TestFilterValidation:
    """Tests for filter and ordering checks."""

    def test_unknown_field(self, registry):
        with pytest.raises(FieldNotFoundError) as exc_info:
            validate_filter(registry.get_model("Article"), {"colour": "red"})
        assert "colour" in str(exc_info.value)

    def test_unknown_field_nested(self, registry):
        with pytest.raises(FieldNotFoundError):
            validate_filter(registry.get_model("Article"), {"OR": [{"colour": "red"}]})

    def test_unknown_operator(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            validate_filter(registry.get_model("Article"), {"views": {"between": [1, 2]}})
        assert "between" in str(exc_info.value)

    def test_filter_fields(self):
        where = {"a": 1, "OR": [{"b": 2}, {"NOT": {"c": 3}}]}
        assert filter_fields(where) == {"a", "b", "c"}

    def test_order_by_forms(self):
        assert normalize_order_by({"title": "DESC"}) == [("title", "desc")]
        assert normalize_order_by([{"a": "asc"}, {"b": "desc"}]) == [("a", "asc"), ("b", "desc")]
        assert normalize_order_by(None) == []

    def test_order_by_bad_direction(self):
        with pytest.raises(ValidationError):
            normalize_order_by({"title": "up"})


class TestTransaction:
    """Several calls sharing one transaction."""

    def test_commit(self, store, articles):
        with store.transaction() as conn:
            row = store.insert(articles, {"title": "Zeta"}, conn)
            store.update(articles, row["id"], {"status": "published"}, conn)
        assert store.get(articles, row["id"])["status"] == "published"

    def test_rollback_on_error(self, store, articles):
        with pytest.raises(ValidationError):
            with store.transaction() as conn:
                store.insert(articles, {"title": "Zeta"}, conn)
                store.update(articles, 1, {"views": "many"}, conn)
        assert store.count(articles) == 5
        assert store.get(articles, 1)["views"] == 10

    def test_rollback_on_constraint(self, registry, store):
        tag = registry.get_model("Tag")
        store.ensure_tables([tag])
        with pytest.raises(ValidationError):
            with store.transaction() as conn:
                store.insert(tag, {"label": "python"}, conn)
                store.insert(tag, {"label": "python"}, conn)
        assert store.count(tag) == 0


class TestValues:
    """Tests for value conversion."""

    def test_bool_strings(self):
        assert to_storage("yes", "bool") is True
        assert to_storage("false", "bool") is False

    def test_int_rejects_fraction(self):
        with pytest.raises(ValidationError):
            to_storage(1.5, "int", "views")

    def test_datetime_parsing(self):
        parsed = to_storage("2024-01-02T03:04:05Z", "datetime")
        assert to_output(parsed) == "2024-01-02T03:04:05+00:00"

    def test_uuid_normalized(self):
        raw = "12345678123456781234567812345678"
        assert to_storage(raw, "uuid") == "12345678-1234-5678-1234-567812345678"

    def test_json_passthrough(self):
        assert to_storage({"a": [1]}, "json") == {"a": [1]}
