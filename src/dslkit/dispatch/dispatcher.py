"""Operation dispatcher.

The single server-side entry point: resolves the model, checks access,
validates the request against the declared schema, runs hooks, executes
against the store and emits model events.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from pydantic import ValidationError as PydanticValidationError

from dslkit.config import DslSettings
from dslkit.core.types import (
    ModelMetadata,
    ModelSpec,
    OperationKind,
    OperationRequest,
    PaginatedResult,
    Pagination,
    PaginationMeta,
    RelationParams,
    RelationType,
)
from dslkit.data.filters import validate_filter, validate_order_by
from dslkit.data.store import Row, SqlStore
from dslkit.dispatch.access import ANONYMOUS, Caller, can_access, check_access, ownership_scope
from dslkit.dispatch.hooks import (
    EventBus,
    HookContext,
    HookHandler,
    HookRegistry,
    HookType,
    ModelEvent,
)
from dslkit.dispatch.relations import IncludeTree, RelationNavigator, combine, parse_include
from dslkit.exceptions import (
    FieldNotFoundError,
    ModelNotFoundError,
    RecordNotFoundError,
    RelationNotFoundError,
    ValidationError,
)
from dslkit.schema.registry import ModelRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

METADATA_FLAG = "_metadata"
AUDIT_CREATED_BY = "createdBy"
AUDIT_UPDATED_BY = "updatedBy"

_MUTATING = (OperationKind.CREATE, OperationKind.UPDATE, OperationKind.DELETE)
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class OperationDispatcher:
    """Executes generic operations against registered models.

    Example:
        dispatcher = OperationDispatcher(registry, SqlStore(DatabaseConnection(url)))
        dispatcher.ensure_storage()
        widget = await dispatcher.execute_operation("Widget", "create", data={"name": "A"})
        page = await dispatcher.execute_operation(
            "Widget", "read", pagination={"page": 2, "limit": 10}
        )
    """

    def __init__(
        self,
        registry: ModelRegistry,
        store: SqlStore,
        settings: DslSettings | None = None,
        hooks: HookRegistry | None = None,
        events: EventBus | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._settings = settings or DslSettings()
        self._relations = RelationNavigator(registry, store)
        self.hooks = hooks or HookRegistry()
        self.events = events or EventBus()

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def store(self) -> SqlStore:
        return self._store

    @property
    def settings(self) -> DslSettings:
        return self._settings

    def ensure_storage(self) -> list[str]:
        """Create tables for every registered model."""
        return self._store.ensure_tables(self._registry.get_all_models())

    def register_hook(
        self,
        model: str,
        hook_type: HookType | str,
        handler: HookHandler,
        module: str | None = None,
    ) -> None:
        self.hooks.register(self._resolve(model, module).key, hook_type, handler)

    # === Discovery ===

    def get_metadata(self, model: str, module: str | None = None) -> dict[str, Any]:
        """Return the JSON schema description of a model.

        Raises:
            ModelNotFoundError: If the model is not registered
        """
        spec = self._resolve(model, module)
        return ModelMetadata.from_model(spec).model_dump(by_alias=True, mode="json")

    def describe_registry(self, caller: Caller | None = None) -> dict[str, Any]:
        """List registered models.

        With a caller and access enforced, only models it may read are listed.
        """
        models = self._registry.get_all_models()
        if caller is not None and self._enforce:
            models = [m for m in models if can_access(m, OperationKind.READ, caller)]
        return {
            "modelNames": [m.key for m in models],
            "models": [
                ModelMetadata.from_model(m).model_dump(by_alias=True, mode="json") for m in models
            ],
        }

    # === Execution ===

    async def execute(self, request: OperationRequest, caller: Caller | None = None) -> Any:
        """Execute a parsed operation request."""
        return await self.execute_operation(
            request.model,
            request.operation,
            data=request.data,
            filter=request.filter,
            include=request.include,
            pagination=request.pagination,
            relation=request.relation,
            caller=caller,
            module=request.module,
        )

    async def execute_operation(
        self,
        model: str,
        operation: str,
        data: dict[str, Any] | None = None,
        filter: dict[str, Any] | None = None,
        include: list[str] | None = None,
        pagination: Pagination | Mapping[str, Any] | None = None,
        relation: RelationParams | Mapping[str, Any] | None = None,
        caller: Caller | None = None,
        module: str | None = None,
    ) -> Any:
        """Execute one operation.

        Args:
            model: Model name or key
            operation: create, read, update, delete or count
            data: Payload for create/update, or ``{id}`` for a single read/delete
            filter: Structured predicate; ``{"_metadata": true}`` on read returns the schema
            include: Relation paths to eager-load, dot-separated for nesting
            pagination: ``{page, limit, orderBy}``
            relation: ``{parentId, relationName}`` to operate through a relation
            caller: Identity for access checks (anonymous when omitted)
            module: Module to resolve the model in first

        Returns:
            Entity dict, list of entities, paginated envelope, metadata or count

        Raises:
            ModelNotFoundError: Unknown model
            ForbiddenOperationError: Access rules reject the caller
            ValidationError: Request references undeclared fields or relations
            RecordNotFoundError: Addressed record does not exist
        """
        caller = caller or ANONYMOUS
        spec = self._resolve(model, module)
        if operation not in OperationKind.values():
            raise ValidationError(
                f"Unknown operation '{operation}'. Valid: {', '.join(OperationKind.values())}",
                {"operation": "invalid"},
            )
        operation = OperationKind(operation)
        paging = _parse(Pagination, pagination, "pagination")
        relation_params = _parse(RelationParams, relation, "relation")

        if operation == OperationKind.READ and filter and filter.get(METADATA_FLAG) is True:
            self._check_access(spec, operation, caller, None)
            return self.get_metadata(spec.name, spec.module)

        self._check_access(spec, operation, caller, data)

        if relation_params is not None:
            return await self._execute_relation(
                spec, operation, data, filter, include, paging, relation_params, caller
            )

        context = HookContext(spec, operation, filter, caller)
        tree = self._validate_include(spec, include)
        if operation in (OperationKind.CREATE, OperationKind.UPDATE):
            if not isinstance(data, Mapping):
                raise ValidationError(
                    f"'{operation}' on '{spec.name}' requires a data object", {"data": "required"}
                )

        data = await self.hooks.run(HookType.before(operation), data, context)

        if operation == OperationKind.CREATE:
            result = await self._create(spec, dict(data or {}), tree, caller)
        elif operation == OperationKind.READ:
            result = await self._read(spec, data, filter, tree, paging, caller)
        elif operation == OperationKind.UPDATE:
            result = await self._update(spec, dict(data or {}), filter, tree, caller)
        elif operation == OperationKind.DELETE:
            result = await self._delete(spec, data, filter, caller)
        else:
            where = self._scoped(spec, operation, caller, filter)
            validate_filter(spec, where)
            result = await _in_thread(self._store.count, spec, where)

        result = await self.hooks.run(HookType.after(operation), result, context)
        await self._emit(spec, operation, result, caller)
        return result

    # === Operations ===

    async def _create(
        self, spec: ModelSpec, data: dict[str, Any], tree: IncludeTree, caller: Caller
    ) -> Row:
        links = self._extract_links(spec, data)
        for name in (spec.config.created_at_field, spec.config.updated_at_field):
            if name in data and data[name] is None:
                del data[name]
        if not caller.is_anonymous:
            for audit in (AUDIT_CREATED_BY, AUDIT_UPDATED_BY):
                if spec.get_field(audit) is not None:
                    data[audit] = caller.id
            if spec.ownership is not None and data.get(spec.ownership.field) is None:
                data[spec.ownership.field] = caller.id

        self._validate_data(spec, data, creating=True)
        row = await _in_thread(self._write, spec, None, data, links)
        return await self._finish_write(spec, row, links, tree)

    async def _read(
        self,
        spec: ModelSpec,
        data: Mapping[str, Any] | None,
        filter: dict[str, Any] | None,
        tree: IncludeTree,
        paging: Pagination | None,
        caller: Caller,
    ) -> Any:
        scope = ownership_scope(spec, OperationKind.READ, caller) if self._enforce else None
        record_id = _record_id(spec, data)
        if filter is None and record_id is not None:
            row = await self._get_scoped(spec, record_id, scope)
            if row is None:
                raise RecordNotFoundError(record_id, spec.name)
            return (await _in_thread(self._relations.load_includes, spec, [row], tree))[0]

        where = combine(filter, scope)
        validate_filter(spec, where)
        order_by = paging.order_by if paging else None
        validate_order_by(spec, order_by)

        if paging is not None and paging.is_paged:
            page, limit = self._page_window(paging)
            total = await _in_thread(self._store.count, spec, where)
            rows = await _in_thread(
                self._store.find, spec, where, order_by, limit, (page - 1) * limit
            )
            rows = await _in_thread(self._relations.load_includes, spec, rows, tree)
            return _envelope(rows, total, page, limit)

        rows = await _in_thread(self._store.find, spec, where, order_by)
        return await _in_thread(self._relations.load_includes, spec, rows, tree)

    async def _update(
        self,
        spec: ModelSpec,
        data: dict[str, Any],
        filter: dict[str, Any] | None,
        tree: IncludeTree,
        caller: Caller,
    ) -> Row:
        record_id, rest = _split_id(spec, filter)
        if record_id is None:
            record_id = _record_id(spec, data)
        if record_id is None:
            raise ValidationError(
                f"Missing identifier for update on {spec.name}", {"id": "required"}
            )

        where = combine(rest, self._scoped(spec, OperationKind.UPDATE, caller, None))
        validate_filter(spec, where)
        if await self._get_scoped(spec, record_id, where) is None:
            raise RecordNotFoundError(record_id, spec.name)

        data.pop(spec.primary_key.name, None)
        data.pop("id", None)
        if data.get(spec.config.updated_at_field, "") is None:
            del data[spec.config.updated_at_field]
        links = self._extract_links(spec, data)
        if not caller.is_anonymous and spec.get_field(AUDIT_UPDATED_BY) is not None:
            data[AUDIT_UPDATED_BY] = caller.id

        self._validate_data(spec, data, creating=False)
        row = await _in_thread(self._write, spec, record_id, data, links)
        return await self._finish_write(spec, row, links, tree)

    async def _delete(
        self,
        spec: ModelSpec,
        data: Mapping[str, Any] | None,
        filter: dict[str, Any] | None,
        caller: Caller,
    ) -> Row:
        record_id = _record_id(spec, data)
        rest: dict[str, Any] | None = None
        if record_id is None:
            record_id, rest = _split_id(spec, filter)
        if record_id is None:
            raise ValidationError(
                f"Missing identifier for delete on {spec.name}", {"id": "required"}
            )

        where = combine(rest, self._scoped(spec, OperationKind.DELETE, caller, None))
        validate_filter(spec, where)
        if await self._get_scoped(spec, record_id, where) is None:
            raise RecordNotFoundError(record_id, spec.name)

        row = await _in_thread(self._store.delete, spec, record_id)
        if row is None:
            raise RecordNotFoundError(record_id, spec.name)
        return row

    async def _execute_relation(
        self,
        spec: ModelSpec,
        operation: OperationKind,
        data: dict[str, Any] | None,
        filter: dict[str, Any] | None,
        include: list[str] | None,
        paging: Pagination | None,
        params: RelationParams,
        caller: Caller,
    ) -> Any:
        relation = self._relations.relation(spec, params.relation_name)
        target = self._relations.target(spec, relation)
        scope = self._scoped(spec, OperationKind.READ, caller, None)
        parent = await self._get_scoped(spec, params.parent_id, scope)
        if parent is None:
            raise RecordNotFoundError(params.parent_id, spec.name)

        if operation == OperationKind.READ:
            self._check_access(target, OperationKind.READ, caller, None)
            tree = self._validate_include(target, include)
            validate_filter(target, filter)
            order_by = paging.order_by if paging else None
            validate_order_by(target, order_by)
            if paging is not None and paging.is_paged:
                page, limit = self._page_window(paging)
                total = await _in_thread(
                    self._relations.count_related, spec, parent, relation, filter
                )
                rows = await _in_thread(
                    self._relations.find_related,
                    spec,
                    parent,
                    relation,
                    filter,
                    order_by,
                    limit,
                    (page - 1) * limit,
                )
                rows = await _in_thread(self._relations.load_includes, target, rows, tree)
                return _envelope(rows, total, page, limit)
            rows = await _in_thread(
                self._relations.find_related, spec, parent, relation, filter, order_by
            )
            return await _in_thread(self._relations.load_includes, target, rows, tree)

        if operation == OperationKind.COUNT:
            self._check_access(target, OperationKind.COUNT, caller, None)
            validate_filter(target, filter)
            return await _in_thread(self._relations.count_related, spec, parent, relation, filter)

        if operation == OperationKind.CREATE:
            if not isinstance(data, Mapping):
                raise ValidationError(
                    f"'create' through '{relation.name}' requires a data object",
                    {"data": "required"},
                )
            self._check_access(target, OperationKind.CREATE, caller, data)
            tree = self._validate_include(target, include)
            values = dict(data)
            checked = dict(values)
            if relation.type in _FK_ON_TARGET:
                checked[self._relations.foreign_key(spec, relation)] = parent[spec.primary_key.name]
            self._validate_data(target, checked, creating=True)
            row = await _in_thread(self._relations.create_related, spec, parent, relation, values)
            return (await _in_thread(self._relations.load_includes, target, [row], tree))[0]

        if operation == OperationKind.UPDATE and isinstance(data, Mapping):
            if "connect" in data:
                await _in_thread(self._relations.connect, spec, parent, relation, data["connect"])
            elif "disconnect" in data:
                await _in_thread(
                    self._relations.disconnect, spec, parent, relation, data["disconnect"]
                )
            else:
                raise ValidationError(
                    f"Relation update on '{relation.name}' expects 'connect' or 'disconnect'",
                    {"data": "expected connect or disconnect"},
                )
            row = await _in_thread(self._store.get, spec, params.parent_id)
            tree = self._validate_include(spec, include)
            return (await _in_thread(self._relations.load_includes, spec, [row], tree))[0]

        raise ValidationError(
            f"Operation '{operation}' is not supported through relation '{relation.name}'",
            {"operation": "unsupported for relations"},
        )

    # === Helpers ===

    @property
    def _enforce(self) -> bool:
        return self._settings.enforce_access

    def _resolve(self, name: str, module: str | None) -> ModelSpec:
        spec = self._registry.get_model(name, module)
        if spec is None:
            logger.debug(f"Model lookup failed for '{name}' (module: {module})")
            raise ModelNotFoundError(name, module, self._registry.get_model_names())
        return spec

    def _check_access(
        self, spec: ModelSpec, operation: str, caller: Caller, data: Mapping[str, Any] | None
    ) -> None:
        if self._enforce:
            check_access(spec, operation, caller, self._settings, data)

    def _scoped(
        self, spec: ModelSpec, operation: str, caller: Caller, filter: dict[str, Any] | None
    ) -> dict[str, Any] | None:
        scope = ownership_scope(spec, operation, caller) if self._enforce else None
        return combine(filter, scope)

    async def _get_scoped(
        self, spec: ModelSpec, record_id: Any, where: dict[str, Any] | None
    ) -> Row | None:
        if not where:
            return await _in_thread(self._store.get, spec, record_id)
        rows = await _in_thread(
            self._store.find, spec, combine({spec.primary_key.name: record_id}, where), None, 1
        )
        return rows[0] if rows else None

    def _page_window(self, paging: Pagination) -> tuple[int, int]:
        page = paging.page or 1
        limit = paging.limit or self._settings.default_page_limit
        return page, min(limit, self._settings.max_page_limit)

    def _validate_include(self, spec: ModelSpec, include: list[str] | None) -> IncludeTree:
        tree = parse_include(include)
        self._check_tree(spec, tree)
        return tree

    def _check_tree(self, spec: ModelSpec, tree: IncludeTree) -> None:
        for name, nested in tree.items():
            relation = spec.get_relation(name)
            if relation is None:
                raise RelationNotFoundError(name, spec.name, spec.relation_names)
            if nested:
                self._check_tree(self._relations.target(spec, relation), nested)

    def _extract_links(self, spec: ModelSpec, data: dict[str, Any]) -> dict[str, list[Any]]:
        """Pull manyToMany id lists out of a write payload."""
        links: dict[str, list[Any]] = {}
        for relation in spec.relations:
            if relation.type != RelationType.MANY_TO_MANY or relation.name not in data:
                continue
            if spec.get_field(relation.name) is not None:
                continue
            value = data.pop(relation.name)
            if value is None:
                continue
            if not isinstance(value, list):
                raise ValidationError(
                    f"Relation '{relation.name}' expects a list of ids",
                    {relation.name: "expected a list"},
                )
            links[relation.name] = [
                item.get("id") if isinstance(item, Mapping) else item for item in value
            ]
        return links

    def _write(
        self,
        spec: ModelSpec,
        record_id: Any,
        data: dict[str, Any],
        links: dict[str, list[Any]],
    ) -> Row:
        """Insert (no ``record_id``) or update a record and replace its links atomically.

        Link ids are converted and checked before anything is written.
        """
        relations = {name: self._relations.relation(spec, name) for name in links}
        with self._store.transaction() as conn:
            checked = {
                name: self._relations.check_targets(spec, relations[name], ids, conn)
                for name, ids in links.items()
            }
            if record_id is None:
                row = self._store.insert(spec, data, conn)
            else:
                updated = self._store.update(spec, record_id, data, conn)
                if updated is None:
                    raise RecordNotFoundError(record_id, spec.name)
                row = updated
            for name, ids in checked.items():
                self._relations.set_links(
                    spec, relations[name], row[spec.primary_key.name], ids, conn
                )
        return row

    async def _finish_write(
        self, spec: ModelSpec, row: Row, links: dict[str, list[Any]], tree: IncludeTree
    ) -> Row:
        if links:
            tree = {**{name: {} for name in links}, **tree}
        return (await _in_thread(self._relations.load_includes, spec, [row], tree))[0]

    def _validate_data(self, spec: ModelSpec, data: Mapping[str, Any], creating: bool) -> None:
        """Check payload keys and declared rules.

        Raises:
            FieldNotFoundError: A key is not a declared field
            ValidationError: Declared rules are violated
        """
        for key in data:
            if spec.get_field(key) is None:
                raise FieldNotFoundError(key, spec.name, spec.field_names)

        errors: dict[str, str] = {}
        for field in spec.fields:
            present = field.name in data
            value = data.get(field.name)

            if creating and field.required and value is None:
                if not field.primary_key and field.default is None:
                    errors[field.name] = "required"
                    continue

            if not present:
                continue
            for rule in field.validation:
                message = _check_rule(rule.type, rule.value, value)
                if message is not None:
                    errors[field.name] = rule.message or message
                    break

        if errors:
            raise ValidationError(f"Validation failed for '{spec.name}'", errors)

    async def _emit(self, spec: ModelSpec, operation: str, result: Any, caller: Caller) -> None:
        if spec.events is None or operation not in _MUTATING:
            return
        name = spec.events.event_for(operation)
        if not name:
            return
        event = ModelEvent(
            name=name, model=spec.name, module=spec.module, record=result, user_id=caller.id
        )
        await self.events.emit(event)


_FK_ON_TARGET = (RelationType.HAS_ONE, RelationType.HAS_MANY)


async def _in_thread(func: Callable[..., T], *args: Any) -> T:
    return await asyncio.to_thread(func, *args)


def _parse(model_cls: type[T], value: Any, label: str) -> T | None:
    if value is None or isinstance(value, model_cls):
        return value
    try:
        return model_cls.model_validate(value)  # type: ignore[attr-defined]
    except PydanticValidationError as e:
        errors = {".".join(str(p) for p in err["loc"]) or label: err["msg"] for err in e.errors()}
        raise ValidationError(f"Invalid {label}", errors) from e


def _record_id(spec: ModelSpec, data: Mapping[str, Any] | None) -> Any:
    if not isinstance(data, Mapping):
        return None
    pk = spec.primary_key.name
    if data.get(pk) is not None:
        return data[pk]
    return data.get("id")


def _split_id(spec: ModelSpec, filter: Mapping[str, Any] | None) -> tuple[Any, dict[str, Any]]:
    """Separate the record identifier from the rest of a filter."""
    if not filter:
        return None, {}
    rest = dict(filter)
    pk = spec.primary_key.name
    for key in (pk, "id"):
        value = rest.get(key)
        if value is not None and not isinstance(value, Mapping):
            del rest[key]
            return value, rest
    return None, rest


def _envelope(rows: list[Row], total: int, page: int, limit: int) -> dict[str, Any]:
    result = PaginatedResult(data=rows, pagination_meta=PaginationMeta.build(total, page, limit))
    return result.model_dump(by_alias=True)


def _check_rule(kind: str, expected: Any, value: Any) -> str | None:
    """Return an error message when ``value`` violates the rule."""
    if kind == "required":
        return "required" if value is None or value == "" else None
    if value is None:
        return None
    if kind == "minLength" and isinstance(value, str) and len(value) < int(expected):
        return f"must be at least {expected} characters"
    if kind == "maxLength" and isinstance(value, str) and len(value) > int(expected):
        return f"must be at most {expected} characters"
    if kind == "pattern" and isinstance(value, str) and not re.search(str(expected), value):
        return f"must match pattern {expected}"
    if kind == "enum" and value not in (expected or []):
        return f"must be one of: {', '.join(str(v) for v in expected or [])}"
    if kind == "min" and isinstance(value, (int, float)) and value < expected:
        return f"must be at least {expected}"
    if kind == "max" and isinstance(value, (int, float)) and value > expected:
        return f"must be at most {expected}"
    if kind == "email" and isinstance(value, str) and not _EMAIL.match(value):
        return "must be a valid email address"
    return None
