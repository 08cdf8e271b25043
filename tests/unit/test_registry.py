"""Tests for the model registry."""

import pytest

from dslkit.core.types import ModelSpec
from dslkit.exceptions import AmbiguousModelError, ModelCollisionError
from dslkit.schema.registry import ModelRegistry


def _model(name, targets=(), module=None):
    return {
        "name": name,
        "module": module,
        "relations": [{"name": t.lower(), "type": "belongsTo", "target": t} for t in targets],
    }


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry()


class TestRegistration:
    """Tests for registering models."""

    def test_register_dict(self, registry):
        spec = registry.register_model({"name": "Widget", "fields": [{"name": "name"}]})
        assert isinstance(spec, ModelSpec)
        assert "Widget" in registry
        assert len(registry) == 1

    def test_register_spec(self, registry):
        spec = ModelSpec(name="Widget")
        assert registry.register_model(spec) is spec

    def test_strict_collision(self, registry):
        """A second strict registration under the same key raises."""
        registry.register_model({"name": "Widget"})
        with pytest.raises(ModelCollisionError) as exc_info:
            registry.register_model({"name": "Widget"})
        assert exc_info.value.key == "Widget"
        assert exc_info.value.existing_origin == "core"

    def test_skip_if_exists_keeps_first(self, registry):
        """Idempotent registration is a no-op and keeps the first definition."""
        first = registry.register_model({"name": "Widget", "fields": [{"name": "name"}]})
        second = registry.register_model(
            {"name": "Widget", "fields": [{"name": "other"}]}, skip_if_exists=True
        )
        assert second is first
        assert len(registry) == 1
        assert registry.get_model("Widget").field_names == ["id", "name"]

    def test_repeated_idempotent_registration(self, registry):
        for _ in range(3):
            registry.register_model({"name": "Widget"}, skip_if_exists=True)
        assert len(registry) == 1

    def test_same_name_in_modules(self, registry):
        """Models in different modules do not collide."""
        registry.register_model({"name": "Widget"})
        registry.register_model({"name": "Widget", "module": "shop"})
        assert registry.get_model_names() == ["Widget", "shop.Widget"]

    def test_plugin_collision_origin(self, registry):
        registry.register_model({"name": "Widget", "module": "shop"})
        with pytest.raises(ModelCollisionError) as exc_info:
            registry.register_model({"name": "Widget", "module": "shop"})
        assert exc_info.value.new_origin == "plugin:shop"

    def test_register_many(self, registry):
        specs = registry.register_many([{"name": "A"}, {"name": "B"}])
        assert [s.name for s in specs] == ["A", "B"]


class TestLookup:
    """Tests for resolving model names."""

    def test_missing_model(self, registry):
        assert registry.get_model("Nope") is None
        assert registry.has_model("Nope") is False

    def test_dotted_key(self, registry):
        registry.register_model({"name": "Widget", "module": "shop"})
        assert registry.get_model("shop.Widget").module == "shop"

    def test_module_argument(self, registry):
        registry.register_model({"name": "Widget"})
        registry.register_model({"name": "Widget", "module": "shop"})
        assert registry.get_model("Widget", module="shop").module == "shop"

    def test_bare_name_single_match(self, registry):
        registry.register_model({"name": "Widget", "module": "shop"})
        assert registry.get_model("Widget").key == "shop.Widget"

    def test_ambiguous_bare_name(self, registry):
        """A bare name matching several modules raises by default."""
        registry.register_model({"name": "Widget", "module": "shop"})
        registry.register_model({"name": "Widget", "module": "blog"})
        with pytest.raises(AmbiguousModelError) as exc_info:
            registry.get_model("Widget")
        assert exc_info.value.candidates == ["shop.Widget", "blog.Widget"]
        assert registry.has_model("Widget") is True

    def test_first_policy(self):
        registry = ModelRegistry(ambiguity_policy="first")
        registry.register_model({"name": "Widget", "module": "shop"})
        registry.register_model({"name": "Widget", "module": "blog"})
        assert registry.get_model("Widget").key == "shop.Widget"

    def test_models_by_module(self, registry):
        registry.register_many(
            [{"name": "A"}, {"name": "B", "module": "shop"}, {"name": "C", "module": "shop"}]
        )
        assert [m.name for m in registry.get_models_by_module("shop")] == ["B", "C"]
        assert [m.name for m in registry.get_models_by_module(None)] == ["A"]

    def test_clear(self, registry):
        registry.register_model({"name": "Widget"})
        registry.clear()
        assert len(registry) == 0


class TestRelationTargets:
    """Tests for relation target resolution."""

    def test_same_module_preferred(self, registry):
        registry.register_model({"name": "Author"})
        registry.register_model({"name": "Author", "module": "blog"})
        post = registry.register_model(_model("Post", ["Author"], module="blog"))
        target = registry.resolve_relation_target(post, post.relations[0])
        assert target.key == "blog.Author"

    def test_explicit_module(self, registry):
        registry.register_model({"name": "Author"})
        registry.register_model({"name": "Author", "module": "blog"})
        post = registry.register_model(
            {
                "name": "Post",
                "relations": [{"name": "author", "target": "Author", "module": "blog"}],
            }
        )
        assert registry.resolve_relation_target(post, post.relations[0]).key == "blog.Author"

    def test_any_module_fallback(self, registry):
        registry.register_model({"name": "Author", "module": "people"})
        post = registry.register_model(_model("Post", ["Author"]))
        assert registry.resolve_relation_target(post, post.relations[0]).key == "people.Author"

    def test_literal_key_fallback(self, registry):
        registry.register_model({"name": "Author", "module": "people"})
        post = registry.register_model(
            {"name": "Post", "relations": [{"name": "author", "target": "people.Author"}]}
        )
        assert registry.resolve_relation_target(post, post.relations[0]).key == "people.Author"

    def test_unresolved(self, registry):
        post = registry.register_model(_model("Post", ["Ghost"]))
        assert registry.resolve_relation_target(post, post.relations[0]) is None


class TestCycleDetection:
    """Tests for cyclic dependency detection."""

    def test_cycle_found(self, registry):
        """A -> B -> C -> A is reported in traversal order."""
        registry.register_many(
            [_model("A", ["B"]), _model("B", ["C"]), _model("C", ["A"])]
        )
        report = registry.check_for_cyclic_dependencies()
        assert report.has_cycles is True
        assert report.cycles == [["A", "B", "C"]]

    def test_acyclic(self, registry):
        registry.register_many([_model("A", ["B"]), _model("B", ["C"]), _model("C")])
        report = registry.check_for_cyclic_dependencies()
        assert report.has_cycles is False
        assert report.cycles == []

    def test_self_reference(self, registry):
        registry.register_model(_model("Category", ["Category"]))
        report = registry.check_for_cyclic_dependencies()
        assert report.cycles == [["Category"]]

    def test_unresolved_target_skipped(self, registry):
        registry.register_many([_model("A", ["Ghost", "B"]), _model("B")])
        assert registry.check_for_cyclic_dependencies().has_cycles is False

    def test_empty_registry(self, registry):
        assert registry.check_for_cyclic_dependencies().has_cycles is False

    def test_report_serializes_camel_case(self, registry):
        registry.register_many([_model("A", ["B"]), _model("B", ["A"])])
        dumped = registry.check_for_cyclic_dependencies().model_dump(by_alias=True)
        assert dumped == {"hasCycles": True, "cycles": [["A", "B"]]}
