"""Entity models stored in the shared configuration store.

Records are stored as compact JSON with camelCase field names so they stay
readable by the other control-plane components that write them. Unknown
fields are kept on read and written back unchanged.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _StoredModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_json(self) -> str:
        """Encode for storage (no backslash-escaping of ``/`` or non-ASCII)."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class Operation(_StoredModel):
    """Backend target for one HTTP method of a resource."""

    backend_url: str | None = Field(default=None, alias="backendUrl")
    backend_method: str | None = Field(default=None, alias="backendMethod")
    # Stored opaquely; evaluated by the serving layer, never here.
    policies: Any | None = None
    security: Any | None = None


def _upper_methods(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(method).upper(): op for method, op in value.items()}
    return value


class Resource(_StoredModel):
    """Operations bound to one gateway path, keyed by upper-case HTTP method."""

    operations: dict[str, Operation] = Field(default_factory=dict)
    api_id: str | None = Field(default=None, alias="apiId")

    @field_validator("operations", mode="before")
    @classmethod
    def _normalize_methods(cls, value: Any) -> Any:
        return _upper_methods(value)


class Api(_StoredModel):
    """An API: a basePath under a tenant and its resources by sub-path."""

    id: str | None = None
    tenant_id: str = Field(alias="tenantId")
    base_path: str = Field(alias="basePath")
    resources: dict[str, dict[str, Operation]] = Field(default_factory=dict)

    def conflicts_with(self, other: Api) -> bool:
        """Whether both APIs claim the same basePath for the same tenant."""
        return self.tenant_id == other.tenant_id and self.base_path == other.base_path


class Tenant(_StoredModel):
    """A tenant, unique by its (namespace, instance) pair."""

    id: str | None = None
    namespace: str
    instance: str

    def same_identity(self, other: Tenant) -> bool:
        return self.namespace == other.namespace and self.instance == other.instance


__all__ = ["Api", "Operation", "Resource", "Tenant"]
