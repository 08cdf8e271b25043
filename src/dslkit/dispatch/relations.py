"""Relation navigation over the record store.

Every relation is turned into a filter on its target model (its scope), so
reads, counts and pagination of related rows reuse the plain store queries.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Connection

from dslkit.core.types import ModelSpec, RelationSpec, RelationType, ThroughSpec, lower_first
from dslkit.data.store import Row, SqlStore
from dslkit.data.values import to_storage
from dslkit.exceptions import (
    ModelNotFoundError,
    RecordNotFoundError,
    RelationNotFoundError,
    ValidationError,
)
from dslkit.schema.registry import ModelRegistry

logger = logging.getLogger(__name__)

IncludeTree = dict[str, "IncludeTree"]

_SINGLE = (RelationType.BELONGS_TO, RelationType.HAS_ONE)


def parse_include(paths: list[str] | None) -> IncludeTree:
    """Turn ``["author", "author.posts"]`` into ``{"author": {"posts": {}}}``."""
    tree: IncludeTree = {}
    for path in paths or []:
        node = tree
        for segment in path.split("."):
            node = node.setdefault(segment, {})
    return tree


def combine(*filters: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """AND together the non-empty filters."""
    present = [dict(f) for f in filters if f]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return {"AND": present}


class RelationNavigator:
    """Reads and writes records through declared relations."""

    def __init__(self, registry: ModelRegistry, store: SqlStore) -> None:
        self._registry = registry
        self._store = store

    # === Resolution ===

    def relation(self, model: ModelSpec, name: str) -> RelationSpec:
        relation = model.get_relation(name)
        if relation is None:
            raise RelationNotFoundError(name, model.name, model.relation_names)
        return relation

    def target(self, model: ModelSpec, relation: RelationSpec) -> ModelSpec:
        target = self._registry.resolve_relation_target(model, relation)
        if target is None:
            raise ModelNotFoundError(
                relation.target, relation.module, self._registry.get_model_names()
            )
        return target

    def foreign_key(self, model: ModelSpec, relation: RelationSpec) -> str:
        """Field holding the reference.

        belongsTo: on ``model``. hasOne/hasMany: on the target.
        """
        if relation.foreign_key:
            return relation.foreign_key
        if relation.type == RelationType.BELONGS_TO:
            return f"{relation.name}Id"
        if relation.inverse_side:
            inverse = self.target(model, relation).get_relation(relation.inverse_side)
            if inverse is not None and inverse.type == RelationType.BELONGS_TO:
                return inverse.foreign_key or f"{inverse.name}Id"
        return f"{lower_first(model.name)}Id"

    def junction(
        self, model: ModelSpec, relation: RelationSpec
    ) -> tuple[ModelSpec, ThroughSpec]:
        """Junction model of a manyToMany relation and its key mapping."""
        if relation.through is None:
            raise ValidationError(
                f"manyToMany relation '{relation.name}' on '{model.name}' has no junction model",
                {relation.name: "missing through"},
            )
        junction = self._registry.get_model(relation.through.model, model.module)
        if junction is None:
            raise ModelNotFoundError(
                relation.through.model, model.module, self._registry.get_model_names()
            )
        return junction, relation.through

    def scope(self, model: ModelSpec, parent: Row, relation: RelationSpec) -> dict[str, Any]:
        """Filter on the target model selecting rows related to ``parent``."""
        target = self.target(model, relation)
        target_pk = target.primary_key.name
        parent_id = parent[model.primary_key.name]

        if relation.type == RelationType.BELONGS_TO:
            return {target_pk: parent.get(self.foreign_key(model, relation))}
        if relation.type in (RelationType.HAS_ONE, RelationType.HAS_MANY):
            return {self.foreign_key(model, relation): parent_id}

        junction, through = self.junction(model, relation)
        links = self._store.find(junction, {through.source_key: parent_id})
        ids = [link[through.target_key] for link in links]
        return {target_pk: {"in": ids}}

    # === Reads ===

    def find_related(
        self,
        model: ModelSpec,
        parent: Row,
        relation: RelationSpec,
        where: Mapping[str, Any] | None = None,
        order_by: Any = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Row]:
        target = self.target(model, relation)
        scope = self.scope(model, parent, relation)
        if relation.type == RelationType.BELONGS_TO and scope[target.primary_key.name] is None:
            return []
        return self._store.find(target, combine(scope, where), order_by, limit, offset)

    def count_related(
        self,
        model: ModelSpec,
        parent: Row,
        relation: RelationSpec,
        where: Mapping[str, Any] | None = None,
    ) -> int:
        target = self.target(model, relation)
        scope = self.scope(model, parent, relation)
        if relation.type == RelationType.BELONGS_TO and scope[target.primary_key.name] is None:
            return 0
        return self._store.count(target, combine(scope, where))

    def load_includes(self, model: ModelSpec, rows: list[Row], tree: IncludeTree) -> list[Row]:
        """Attach related rows under each relation name, recursively."""
        if not tree:
            return rows
        for name, nested in tree.items():
            relation = self.relation(model, name)
            target = self.target(model, relation)
            for row in rows:
                related = self.find_related(model, row, relation)
                if nested:
                    self.load_includes(target, related, nested)
                if relation.type in _SINGLE:
                    row[name] = related[0] if related else None
                else:
                    row[name] = related
        return rows

    # === Writes ===

    def create_related(
        self, model: ModelSpec, parent: Row, relation: RelationSpec, data: Mapping[str, Any]
    ) -> Row:
        """Create a target record linked to ``parent`` in one transaction."""
        target = self.target(model, relation)
        parent_id = parent[model.primary_key.name]

        with self._store.transaction() as conn:
            if relation.type in (RelationType.HAS_ONE, RelationType.HAS_MANY):
                fk = self.foreign_key(model, relation)
                return self._store.insert(target, {**data, fk: parent_id}, conn)

            created = self._store.insert(target, data, conn)
            target_id = created[target.primary_key.name]
            if relation.type == RelationType.BELONGS_TO:
                fk = self.foreign_key(model, relation)
                self._store.update(model, parent_id, {fk: target_id}, conn)
            else:
                self._link(model, relation, parent_id, target_id, conn)
        return created

    def connect(
        self, model: ModelSpec, parent: Row, relation: RelationSpec, target_id: Any
    ) -> None:
        target = self.target(model, relation)
        parent_id = parent[model.primary_key.name]

        with self._store.transaction() as conn:
            if self._store.get(target, target_id, conn) is None:
                raise RecordNotFoundError(target_id, target.name)
            if relation.type == RelationType.BELONGS_TO:
                fk = self.foreign_key(model, relation)
                self._store.update(model, parent_id, {fk: target_id}, conn)
            elif relation.type in (RelationType.HAS_ONE, RelationType.HAS_MANY):
                fk = self.foreign_key(model, relation)
                if relation.type == RelationType.HAS_ONE:
                    self._store.update_where(target, {fk: parent_id}, {fk: None}, conn)
                self._store.update(target, target_id, {fk: parent_id}, conn)
            else:
                self._link(model, relation, parent_id, target_id, conn)
        logger.debug(f"Connected {model.key}:{parent_id} -{relation.name}-> {target_id}")

    def disconnect(
        self, model: ModelSpec, parent: Row, relation: RelationSpec, target_id: Any
    ) -> None:
        target = self.target(model, relation)
        parent_id = parent[model.primary_key.name]

        if relation.type == RelationType.BELONGS_TO:
            fk = self.foreign_key(model, relation)
            if parent.get(fk) == target_id:
                self._store.update(model, parent_id, {fk: None})
        elif relation.type in (RelationType.HAS_ONE, RelationType.HAS_MANY):
            fk = self.foreign_key(model, relation)
            self._store.update_where(
                target, {target.primary_key.name: target_id, fk: parent_id}, {fk: None}
            )
        else:
            junction, through = self.junction(model, relation)
            self._store.delete_where(
                junction, {through.source_key: parent_id, through.target_key: target_id}
            )
        logger.debug(f"Disconnected {model.key}:{parent_id} -{relation.name}-> {target_id}")

    def check_targets(
        self,
        model: ModelSpec,
        relation: RelationSpec,
        target_ids: list[Any],
        conn: Connection | None = None,
    ) -> list[Any]:
        """Convert ids to the target key type and require each to exist.

        Returns:
            The converted ids, duplicates removed, in request order

        Raises:
            ValidationError: An id cannot be converted
            RecordNotFoundError: An id matches no target record
        """
        target = self.target(model, relation)
        pk = target.primary_key
        ids = list(dict.fromkeys(to_storage(i, pk.type, relation.name) for i in target_ids))
        if not ids:
            return ids
        found = {
            row[pk.name] for row in self._store.find(target, {pk.name: {"in": ids}}, conn=conn)
        }
        for target_id in ids:
            if target_id not in found:
                raise RecordNotFoundError(target_id, target.name)
        return ids

    def set_links(
        self,
        model: ModelSpec,
        relation: RelationSpec,
        parent_id: Any,
        target_ids: list[Any],
        conn: Connection | None = None,
    ) -> None:
        """Replace every junction row of a manyToMany relation.

        ``target_ids`` must already have passed :meth:`check_targets`.
        """
        junction, through = self.junction(model, relation)
        self._store.delete_where(junction, {through.source_key: parent_id}, conn)
        for target_id in target_ids:
            values = {through.source_key: parent_id, through.target_key: target_id}
            self._store.insert(junction, values, conn)

    def _link(
        self,
        model: ModelSpec,
        relation: RelationSpec,
        parent_id: Any,
        target_id: Any,
        conn: Connection,
    ) -> None:
        junction, through = self.junction(model, relation)
        values = {through.source_key: parent_id, through.target_key: target_id}
        if not self._store.count(junction, values, conn):
            self._store.insert(junction, values, conn)
