"""Model registry.

Holds every declared model under its key (``module.name`` or ``name``),
rejects collisions, resolves bare names and relation targets, and detects
cyclic relation graphs.

Example:
    from dslkit.schema.registry import ModelRegistry

    registry = ModelRegistry()
    registry.register_model({"name": "Author", "fields": [{"name": "name"}]})
    registry.register_model(
        {
            "name": "Post",
            "fields": [{"name": "title"}, {"name": "authorId", "type": "int"}],
            "relations": [{"name": "author", "type": "belongsTo", "target": "Author"}],
        }
    )
    registry.check_for_cyclic_dependencies().has_cycles  # False
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from dslkit.config import AmbiguityPolicy
from dslkit.core.types import CycleReport, ModelSpec, RelationSpec
from dslkit.exceptions import AmbiguousModelError, ModelCollisionError

logger = logging.getLogger(__name__)

ModelInput = ModelSpec | Mapping[str, Any]


class ModelRegistry:
    """Registry of model declarations keyed by ``module.name`` or ``name``.

    Written while declaration modules load, read-only afterwards.
    """

    def __init__(self, ambiguity_policy: AmbiguityPolicy = "error") -> None:
        """Initialize an empty registry.

        Args:
            ambiguity_policy: "error" raises AmbiguousModelError when a bare name
                matches models in several modules, "first" returns the model
                registered first
        """
        self.ambiguity_policy = ambiguity_policy
        self._models: dict[str, ModelSpec] = {}

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, key: object) -> bool:
        return key in self._models

    # === Registration ===

    def register_model(self, model: ModelInput, skip_if_exists: bool = False) -> ModelSpec:
        """Register a model.

        Args:
            model: Model declaration (ModelSpec or dict)
            skip_if_exists: Keep the existing definition silently on a key clash

        Returns:
            The authoritative definition stored under the key

        Raises:
            ModelCollisionError: If the key exists and skip_if_exists is False
        """
        spec = model if isinstance(model, ModelSpec) else ModelSpec.model_validate(model)
        key = spec.key
        existing = self._models.get(key)
        if existing is not None:
            if skip_if_exists:
                logger.debug(f"Model '{key}' already registered by {existing.origin}, skipping")
                return existing
            raise ModelCollisionError(key, existing.origin, spec.origin)

        self._models[key] = spec
        logger.debug(f"Registered model '{key}' from {spec.origin}")
        return spec

    def register_many(
        self, models: Iterable[ModelInput], skip_if_exists: bool = False
    ) -> list[ModelSpec]:
        """Register several models in order."""
        return [self.register_model(m, skip_if_exists=skip_if_exists) for m in models]

    # === Lookup ===

    def get_model(self, name: str, module: str | None = None) -> ModelSpec | None:
        """Resolve a model by name.

        A dotted name is looked up as a key. With ``module`` the key
        ``module.name`` is tried first; otherwise (or on miss) every model
        whose bare name matches is a candidate.

        Args:
            name: Model name or key
            module: Optional module to look in first

        Returns:
            The model, or None if nothing matches

        Raises:
            AmbiguousModelError: If several modules match and the policy is "error"
        """
        if module:
            found = self._models.get(f"{module}.{name}")
            if found is not None:
                return found
        elif "." in name and name in self._models:
            return self._models[name]

        bare = name.rsplit(".", 1)[-1] if "." in name and not module else name
        candidates = [m for m in self._models.values() if m.name == bare]
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        keys = [m.key for m in candidates]
        if self.ambiguity_policy == "first":
            logger.warning(
                f"Model name '{bare}' matches {', '.join(keys)}, using '{candidates[0].key}'"
            )
            return candidates[0]
        raise AmbiguousModelError(bare, keys)

    def has_model(self, name: str, module: str | None = None) -> bool:
        """Check whether a model resolves; an ambiguous name counts as present."""
        try:
            return self.get_model(name, module) is not None
        except AmbiguousModelError:
            return True

    def get_all_models(self) -> list[ModelSpec]:
        return list(self._models.values())

    def get_models_by_module(self, module: str | None) -> list[ModelSpec]:
        """Models declared in ``module`` (None for core models)."""
        return [m for m in self._models.values() if m.module == module]

    def get_model_names(self) -> list[str]:
        """Registered keys in registration order."""
        return list(self._models.keys())

    def resolve_relation_target(
        self, source: ModelSpec, relation: RelationSpec
    ) -> ModelSpec | None:
        """Resolve the model a relation points at.

        Order: explicit relation module, the source's module, any module
        (first registered), then the target string as a literal key.
        """
        target = relation.target
        if relation.module:
            found = self._models.get(f"{relation.module}.{target}")
            if found is not None:
                return found

        matches = [m for m in self._models.values() if m.name == target]
        same_module = [m for m in matches if m.module == source.module]
        if same_module:
            return same_module[0]
        if matches:
            return matches[0]
        return self._models.get(target)

    # === Graph checks ===

    def check_for_cyclic_dependencies(self) -> CycleReport:
        """Detect cycles in the relation graph.

        Each back edge records the path from the revisited model to the
        current one, in traversal order.
        """
        visited: set[str] = set()
        stack: list[str] = []
        on_stack: set[str] = set()
        cycles: list[list[str]] = []

        def visit(model: ModelSpec) -> None:
            visited.add(model.key)
            stack.append(model.key)
            on_stack.add(model.key)

            for relation in model.relations:
                target = self.resolve_relation_target(model, relation)
                if target is None:
                    logger.debug(
                        f"Skipping unresolved relation '{model.key}.{relation.name}' "
                        f"-> '{relation.target}'"
                    )
                    continue
                if target.key in on_stack:
                    start = stack.index(target.key)
                    cycles.append([self._models[k].name for k in stack[start:]])
                elif target.key not in visited:
                    visit(target)

            stack.pop()
            on_stack.discard(model.key)

        for model in list(self._models.values()):
            if model.key not in visited:
                visit(model)

        return CycleReport(has_cycles=bool(cycles), cycles=cycles)

    def clear(self) -> None:
        self._models.clear()


# Process-wide registry used by declaration modules
default_registry = ModelRegistry()


def get_registry() -> ModelRegistry:
    return default_registry


def register_model(model: ModelInput, skip_if_exists: bool = False) -> ModelSpec:
    """Register a model on the process-wide registry.

    Call at import time of a declaration module, before any lookup.
    """
    return default_registry.register_model(model, skip_if_exists=skip_if_exists)


def register_many(models: Iterable[ModelInput], skip_if_exists: bool = False) -> list[ModelSpec]:
    return default_registry.register_many(models, skip_if_exists=skip_if_exists)
