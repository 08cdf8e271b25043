"""Per-model and per-relation clients.

Each method is a one-line translation into an executor call with the
model name fixed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from dslkit.core.types import FieldSpec

if TYPE_CHECKING:
    from dslkit.client.executor import TypedClientExecutor

T = TypeVar("T")
R = TypeVar("R")

METADATA_FILTER = {"_metadata": True}


class ModelClient(Generic[T]):
    """Operations on one model."""

    def __init__(self, name: str, executor: TypedClientExecutor) -> None:
        self.name = name
        self._executor = executor

    def __repr__(self) -> str:
        return f"ModelClient({self.name!r})"

    async def find_by_id(self, id: Any, include: list[str] | None = None) -> T:
        return await self._executor.execute_operation(
            self.name, "read", data={"id": id}, include=include
        )

    async def find_many(
        self,
        filter: dict[str, Any] | None = None,
        include: list[str] | None = None,
        pagination: dict[str, Any] | None = None,
    ) -> Any:
        """List entities; with ``page`` or ``limit`` the result is a paginated envelope."""
        return await self._executor.execute_operation(
            self.name, "read", filter=filter, include=include, pagination=pagination
        )

    async def create(self, data: dict[str, Any], include: list[str] | None = None) -> T:
        return await self._executor.execute_operation(
            self.name, "create", data=data, include=include
        )

    async def update(self, id: Any, data: dict[str, Any], include: list[str] | None = None) -> T:
        return await self._executor.execute_operation(
            self.name, "update", data=data, filter={"id": id}, include=include
        )

    async def delete(self, id: Any) -> T:
        return await self._executor.execute_operation(self.name, "delete", data={"id": id})

    async def count(self, filter: dict[str, Any] | None = None) -> int:
        return await self._executor.execute_operation(self.name, "count", filter=filter)

    async def get_metadata(self) -> dict[str, Any]:
        return await self._executor.execute_operation(
            self.name, "read", filter=dict(METADATA_FILTER)
        )

    async def get_fields(self, visibility: list[str] | None = None) -> list[FieldSpec]:
        """Fields of the model, optionally only those shown on the given surfaces.

        Args:
            visibility: Surface tags such as "table", "form" or "detail". Fields
                without declared visibility are left out of a filtered result.
        """
        metadata = await self.get_metadata()
        fields = [FieldSpec.model_validate(f) for f in metadata.get("fields", [])]
        if visibility is None:
            return fields
        wanted = set(visibility)
        return [f for f in fields if f.ui and f.ui.visibility and wanted & set(f.ui.visibility)]

    async def get_field(self, name: str) -> FieldSpec | None:
        fields = await self.get_fields()
        return next((f for f in fields if f.name == name), None)

    def relation(self, id: Any, relation_name: str) -> RelationClient[Any]:
        return self._executor.relation_client(self.name, id, relation_name)


class RelationClient(Generic[R]):
    """Operations through one relation of one parent record."""

    def __init__(self, parent: ModelClient[Any], parent_id: Any, relation_name: str) -> None:
        self.parent = parent
        self.parent_id = parent_id
        self.relation_name = relation_name

    def __repr__(self) -> str:
        return f"RelationClient({self.parent.name!r}, {self.parent_id!r}, {self.relation_name!r})"

    @property
    def _params(self) -> dict[str, Any]:
        return {"parentId": self.parent_id, "relationName": self.relation_name}

    async def find_many(
        self,
        filter: dict[str, Any] | None = None,
        include: list[str] | None = None,
        pagination: dict[str, Any] | None = None,
    ) -> Any:
        return await self.parent._executor.execute_operation(
            self.parent.name,
            "read",
            filter=filter,
            include=include,
            pagination=pagination,
            relation=self._params,
        )

    async def count(self, filter: dict[str, Any] | None = None) -> int:
        return await self.parent._executor.execute_operation(
            self.parent.name, "count", filter=filter, relation=self._params
        )

    async def create(self, data: dict[str, Any], include: list[str] | None = None) -> R:
        return await self.parent._executor.execute_operation(
            self.parent.name, "create", data=data, include=include, relation=self._params
        )

    async def connect(self, target_id: Any) -> Any:
        """Link an existing record; returns the parent."""
        return await self.parent._executor.execute_operation(
            self.parent.name, "update", data={"connect": target_id}, relation=self._params
        )

    async def disconnect(self, target_id: Any) -> Any:
        """Unlink a record; returns the parent."""
        return await self.parent._executor.execute_operation(
            self.parent.name, "update", data={"disconnect": target_id}, relation=self._params
        )
