"""Structural checks over registered model declarations.

Catches declaration mistakes that the schema types cannot see on their own:
- Relations pointing at models that are not registered
- belongsTo relations whose foreign key is not a declared field
- manyToMany relations without a usable junction model
- Missing or dangling inverse sides
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from dslkit.core.types import ModelSpec, RelationSpec, RelationType
from dslkit.schema.registry import ModelRegistry

Severity = Literal["error", "warning"]


@dataclass
class ValidationIssue:
    """A problem found in a model declaration."""

    model: str
    message: str
    severity: Severity = "error"
    relation: str | None = None
    field: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "model": self.model,
            "relation": self.relation,
            "field": self.field,
            "message": self.message,
            "severity": self.severity,
        }


@dataclass
class ModelCheckResult:
    """Result of checking a single model's structure."""

    errors: list[str] = field(default_factory=list)
    """Problems that make the model unusable."""

    warnings: list[str] = field(default_factory=list)
    """Problems worth fixing that do not block operations."""

    @property
    def valid(self) -> bool:
        return not self.errors


def belongs_to_foreign_key(relation: RelationSpec) -> str:
    return relation.foreign_key or f"{relation.name}Id"


class ModelValidator:
    """Validates models against the registry they live in."""

    def __init__(self, registry: ModelRegistry) -> None:
        self._registry = registry

    def validate_models(self, models: list[ModelSpec] | None = None) -> list[ValidationIssue]:
        """Check fields and relations of ``models`` (default: all registered).

        Returns:
            Issues found, errors and warnings mixed, in model order
        """
        issues: list[ValidationIssue] = []
        for model in models if models is not None else self._registry.get_all_models():
            issues.extend(self._check_fields(model))
            for relation in model.relations:
                issues.extend(self._check_relation(model, relation))
        return issues

    def _check_fields(self, model: ModelSpec) -> list[ValidationIssue]:
        seen: set[str] = set()
        issues = []
        for f in model.fields:
            if f.name in seen:
                issues.append(
                    ValidationIssue(model.key, f"Duplicate field name '{f.name}'", field=f.name)
                )
            seen.add(f.name)
        return issues

    def _check_relation(self, model: ModelSpec, relation: RelationSpec) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []

        def issue(message: str, severity: Severity = "error") -> None:
            issues.append(ValidationIssue(model.key, message, severity, relation=relation.name))

        target = self._registry.resolve_relation_target(model, relation)
        if target is None:
            issue(f"Relation '{relation.name}' targets unknown model '{relation.target}'")
            return issues

        if relation.type == RelationType.BELONGS_TO:
            fk = belongs_to_foreign_key(relation)
            if model.get_field(fk) is None:
                issue(f"Foreign key '{fk}' for relation '{relation.name}' is not a declared field")

        if relation.type == RelationType.MANY_TO_MANY:
            if relation.through is None:
                issue(f"manyToMany relation '{relation.name}' needs a 'through' junction model")
            else:
                junction = self._registry.get_model(relation.through.model, model.module)
                if junction is None:
                    issue(
                        f"Junction model '{relation.through.model}' for relation "
                        f"'{relation.name}' is not registered"
                    )
                else:
                    for key in (relation.through.source_key, relation.through.target_key):
                        if junction.get_field(key) is None:
                            issue(f"Junction model '{junction.key}' has no field '{key}'")

        if relation.type == RelationType.HAS_MANY and not relation.inverse_side:
            issue(
                f"hasMany relation '{relation.name}' has no inverseSide, "
                f"foreign key is guessed by convention",
                "warning",
            )

        if relation.inverse_side and target.get_relation(relation.inverse_side) is None:
            issue(
                f"Inverse side '{relation.inverse_side}' not found on '{target.key}'",
                "warning",
            )
        return issues

    def validate_model_structure(self, name: str, module: str | None = None) -> ModelCheckResult:
        """Check registration and conventions of one model."""
        result = ModelCheckResult()
        model = self._registry.get_model(name, module)
        if model is None:
            result.errors.append(f"Model '{name}' is not registered")
            return result

        if model.module and "-" in model.module:
            result.errors.append(f"Module '{model.module}' must not contain dashes")
        if model.access is None:
            result.errors.append("Model declares no access rules")
        else:
            for op in ("create", "read", "update", "delete"):
                if getattr(model.access, op) is None:
                    result.warnings.append(f"No access rule for '{op}'")
        if model.table_name and model.table_name != model.table_name.lower():
            result.warnings.append(f"Table name '{model.table_name}' should be lowercase")
        if not model.config.timestamps:
            result.warnings.append("Timestamps are disabled")
        return result
