"""Typed CRUD over APIs, tenants, resources and subscriptions.

Uniqueness of API basePaths (per tenant) and of tenant (namespace, instance)
pairs is checked by scanning the whole collection before each write. The
check and the write are not atomic, so two concurrent writers can both pass
it. Resource writes never scan and stay O(1).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import redis.asyncio as redis
from pydantic import ValidationError

from gatesync.errors import ConflictError, NotFoundError, StoreOperationError
from gatesync.keys import (
    APIS_KEY,
    TENANTS_KEY,
    gateway_path,
    resource_key,
    resource_pattern,
)
from gatesync.models import Api, Operation, Resource, Tenant

logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_FIELD = "resources"
SCAN_COUNT = 100


def _decode_text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def generate_resource_obj(
    operations: Mapping[str, Any],
    api_id: str | None = None,
) -> str:
    """
    Build the stored payload for a resource.

    Method names are upper-cased. ``policies`` and ``security`` are copied
    only when present on the operation.

    Args:
        operations: HTTP method -> operation (an Operation or a mapping using
            the stored camelCase names).
        api_id: Owning API id, if any.
    """
    normalized: dict[str, Operation] = {}
    for method, op in operations.items():
        if not isinstance(op, Operation):
            op = Operation.model_validate(op)
        normalized[method.upper()] = Operation(
            backend_url=op.backend_url,
            backend_method=op.backend_method,
            policies=op.policies,
            security=op.security,
        )
    return Resource(operations=normalized, api_id=api_id).to_json()


class ConfigStore:
    """Entity operations bound to one store session."""

    def __init__(self, client: Any, *, resource_field: str = DEFAULT_RESOURCE_FIELD) -> None:
        self._client = client
        self.resource_field = resource_field

    async def _call(self, operation: str, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await getattr(self._client, method)(*args, **kwargs)
        except redis.RedisError as e:
            raise StoreOperationError(operation, e) from e

    # =========================================================================
    # APIS
    # =========================================================================

    async def add_api(self, api_id: str, api: Api, existing: Api | None = None) -> Api:
        """
        Add or replace an API.

        Without ``existing`` the basePath must be unique for the tenant. With
        ``existing`` every resource of the previous version is deleted before
        the new record is written (replace, not merge).

        Raises:
            ConflictError: If another API of the tenant has the same basePath.
        """
        if existing is None:
            for other_id, other in (await self.get_all_apis()).items():
                if other.conflicts_with(api):
                    logger.debug(
                        f"API {api_id} basePath {api.base_path} clashes with API {other_id}"
                    )
                    raise ConflictError("basePath not unique for given tenant.")
        else:
            await self._delete_api_resources(existing)

        await self._call("save the API", "hset", APIS_KEY, api_id, api.to_json())
        return api

    async def _delete_api_resources(self, api: Api) -> None:
        for path in api.resources:
            key = resource_key(api.tenant_id, gateway_path(api.base_path, path))
            try:
                await self.delete_resource(key, self.resource_field)
            except NotFoundError:
                logger.debug(f"Resource {key} already gone while replacing API")

    async def get_all_apis(self) -> dict[str, Api]:
        raw = await self._call("retrieve APIs", "hgetall", APIS_KEY)
        return self._decode_all(raw, Api, "retrieve APIs")

    async def get_api(self, api_id: str) -> Api | None:
        raw = await self._call("retrieve the API", "hget", APIS_KEY, api_id)
        if raw is None:
            return None
        return self._decode(raw, Api, "retrieve the API")

    async def delete_api(self, api_id: str) -> None:
        await self._call("delete the API", "hdel", APIS_KEY, api_id)

    # =========================================================================
    # RESOURCES
    # =========================================================================

    async def create_resource(self, key: str, field: str, payload: str) -> None:
        """Create or overwrite a resource."""
        await self._call("save the resource", "hset", key, field, payload)

    async def get_resource(self, key: str, field: str) -> str | None:
        """Return the encoded resource, or None if the key has no such field."""
        raw = await self._call("retrieve the resource", "hget", key, field)
        if raw is None:
            return None
        return _decode_text(raw)

    async def delete_resource(self, key: str, field: str) -> None:
        """
        Delete a resource key.

        Raises:
            NotFoundError: If the resource does not exist.
        """
        raw = await self._call("delete the resource", "hget", key, field)
        if raw is None:
            raise NotFoundError("Resource doesn't exist.")
        await self._call("delete the resource", "delete", key)

    async def get_all_resource_keys(self) -> list[str]:
        """Collect every resource key with a full cursor scan."""
        keys: list[str] = []
        cursor: int | str = 0
        while True:
            cursor, batch = await self._call(
                "retrieve resource keys",
                "scan",
                cursor=cursor,
                match=resource_pattern(),
                count=SCAN_COUNT,
            )
            keys.extend(_decode_text(key) for key in batch)
            if int(cursor) == 0:
                break
        return keys

    # =========================================================================
    # TENANTS
    # =========================================================================

    async def add_tenant(self, tenant_id: str, tenant: Tenant) -> Tenant:
        """Add a tenant, or return the stored one with the same namespace and instance."""
        for stored in (await self.get_all_tenants()).values():
            if stored.same_identity(tenant):
                return stored

        await self._call("add the tenant", "hset", TENANTS_KEY, tenant_id, tenant.to_json())
        return tenant

    async def get_all_tenants(self) -> dict[str, Tenant]:
        raw = await self._call("retrieve tenants", "hgetall", TENANTS_KEY)
        return self._decode_all(raw, Tenant, "retrieve tenants")

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        raw = await self._call("retrieve the tenant", "hget", TENANTS_KEY, tenant_id)
        if raw is None:
            return None
        return self._decode(raw, Tenant, "retrieve the tenant")

    async def delete_tenant(self, tenant_id: str) -> None:
        await self._call("delete the tenant", "hdel", TENANTS_KEY, tenant_id)

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    async def create_subscription(self, key: str) -> None:
        await self._call("add the subscription key", "set", key, "")

    async def subscription_exists(self, key: str) -> bool:
        raw = await self._call("retrieve the subscription key", "get", key)
        return raw is not None

    async def delete_subscription(self, key: str) -> None:
        """
        Delete a subscription key.

        Raises:
            NotFoundError: If the subscription does not exist.
        """
        raw = await self._call("delete the subscription key", "get", key)
        if raw is None:
            raise NotFoundError("Subscription doesn't exist.")
        await self._call("delete the subscription key", "delete", key)

    # =========================================================================
    # DECODING
    # =========================================================================

    def _decode(self, raw: Any, model: type[Any], operation: str) -> Any:
        try:
            return model.model_validate_json(_decode_text(raw))
        except ValidationError as e:
            raise StoreOperationError(operation, e) from e

    def _decode_all(self, raw: Mapping[Any, Any], model: type[Any], operation: str) -> dict[str, Any]:
        return {
            _decode_text(field): self._decode(value, model, operation)
            for field, value in raw.items()
        }


def decode_resource(payload: str) -> Resource:
    """Decode a stored resource payload."""
    return Resource.model_validate_json(payload)
