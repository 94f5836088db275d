"""Cache key schema.

Key formats:
- entity:            {resource_type}:{id}
- projected entity:  {resource_type}:{id}:{fields_csv}
- list page:         {resource_type}:list:{json_filter}:{fields_csv|all}
- tenant collection: {tenant_type}:{tenant_id}:{collection}
- relation:          {type_a}:{id_a}:{type_b}:{id_b}

json_filter is compact JSON with sorted keys, so two filters holding the
same values hash to the same key regardless of insertion order. fields_csv
is the sorted, de-duplicated projection joined by commas.

The backend adapter adds its own namespace prefix; these helpers never do.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import orjson

ALL_FIELDS = "all"


def canonical_json(value: Any) -> str:
    """Serialize a filter to deterministic compact JSON."""
    return orjson.dumps(
        value,
        option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
        default=str,
    ).decode("utf-8")


def fields_csv(fields: Iterable[str] | None) -> str:
    """Normalize a field selection for use in a key."""
    if not fields:
        return ALL_FIELDS
    return ",".join(sorted(set(fields)))


class CacheKeys:
    """Cache key generator following the shared naming convention."""

    LIST = "list"

    @staticmethod
    def entity(resource_type: str, entity_id: str) -> str:
        """Key for a whole entity."""
        return f"{resource_type}:{entity_id}"

    @staticmethod
    def projected(resource_type: str, entity_id: str, fields: Iterable[str] | None) -> str:
        """Key for an entity restricted to a field selection."""
        return f"{resource_type}:{entity_id}:{fields_csv(fields)}"

    @classmethod
    def list_page(
        cls,
        resource_type: str,
        filter: Mapping[str, Any] | None,
        fields: Iterable[str] | None = None,
    ) -> str:
        """Key for a list page."""
        json_filter = canonical_json(dict(filter or {}))
        return f"{resource_type}:{cls.LIST}:{json_filter}:{fields_csv(fields)}"

    @staticmethod
    def tenant_collection(tenant_type: str, tenant_id: str, collection: str) -> str:
        """Key for a collection owned by a tenant, e.g. organization:o1:clinics."""
        return f"{tenant_type}:{tenant_id}:{collection}"

    @staticmethod
    def relation(type_a: str, id_a: str, type_b: str, id_b: str) -> str:
        """Key for a join-like resource between two entities."""
        return f"{type_a}:{id_a}:{type_b}:{id_b}"

    @staticmethod
    def entity_pattern(resource_type: str, entity_id: str) -> str:
        """Pattern matching every variant stored under an entity."""
        return f"{resource_type}:{entity_id}:*"

    @classmethod
    def list_pattern(cls, resource_type: str) -> str:
        """Pattern matching the list-cache family of a resource type."""
        return f"{resource_type}:{cls.LIST}:*"

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Parse an entity or list key into its components.

        Returns None for keys outside the scheme.
        """
        resource_type, sep, rest = key.partition(":")
        if not sep or not resource_type or not rest:
            return None

        if rest.startswith(f"{cls.LIST}:"):
            body = rest[len(cls.LIST) + 1 :]
            json_filter, sep, fields = body.rpartition(":")
            if not sep or not json_filter.startswith("{"):
                return None
            return {
                "resource_type": resource_type,
                "kind": "list",
                "filter": json_filter,
                "fields": fields,
            }

        entity_id, _, fields = rest.partition(":")
        return {
            "resource_type": resource_type,
            "kind": "entity",
            "id": entity_id,
            "fields": fields,
        }
