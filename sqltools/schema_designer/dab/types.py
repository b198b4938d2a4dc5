"""
Data API builder (DAB) configuration model.

The DAB configuration describes which tables of the designer document are
exposed as API entities and how. Each entity is bound to its backing table
by the table id; names are refreshed from the table whenever the config is
synchronized with the document.

Invariants:
    - DabEntityConfig.id equals the id of its backing table
    - Cleared optional settings are absent from the wire form, never null
    - Set-valued fields (api types, enabled actions) carry no duplicates
    - sync_config_with_tables never changes advanced settings of surviving entities

How to change safely:
    - Add enum members at the end; their values are the wire format
    - New advanced settings must default to "absent"
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..schema.types import Table


class ApiType(Enum):
    """API surfaces DAB can expose."""

    REST = "rest"
    GRAPHQL = "graphql"
    MCP = "mcp"

    @classmethod
    def from_str(cls, value: str) -> ApiType:
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Unknown api type: {value}")


class EntityAction(Enum):
    """CRUD actions an entity can permit."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def from_str(cls, value: str) -> EntityAction:
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Unknown entity action: {value}")


class AuthorizationRole(Enum):
    """Role granted the enabled actions."""

    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"

    @classmethod
    def from_str(cls, value: str) -> AuthorizationRole:
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Unknown authorization role: {value}")


ALL_ACTIONS: tuple[EntityAction, ...] = tuple(EntityAction)


@dataclass(frozen=True)
class EntityAdvancedSettings:
    """Per-entity API naming and authorization.

    Attributes:
        entity_name: Entity name exposed by the API
        authorization_role: Role granted the enabled actions
        custom_rest_path: REST path override (None = default path)
        custom_graphql_type: GraphQL type override (None = default type)
    """

    entity_name: str
    authorization_role: AuthorizationRole = AuthorizationRole.ANONYMOUS
    custom_rest_path: str | None = None
    custom_graphql_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "entityName": self.entity_name,
            "authorizationRole": self.authorization_role.value,
        }
        if self.custom_rest_path is not None:
            data["customRestPath"] = self.custom_rest_path
        if self.custom_graphql_type is not None:
            data["customGraphQLType"] = self.custom_graphql_type
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityAdvancedSettings:
        return cls(
            entity_name=data.get("entityName", ""),
            authorization_role=AuthorizationRole.from_str(
                data.get("authorizationRole", AuthorizationRole.ANONYMOUS.value)
            ),
            custom_rest_path=data.get("customRestPath"),
            custom_graphql_type=data.get("customGraphQLType"),
        )


@dataclass(frozen=True)
class DabEntityConfig:
    """API exposure settings for one table."""

    id: str
    table_name: str
    schema_name: str
    is_enabled: bool
    enabled_actions: tuple[EntityAction, ...]
    advanced_settings: EntityAdvancedSettings

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tableName": self.table_name,
            "schemaName": self.schema_name,
            "isEnabled": self.is_enabled,
            "enabledActions": [a.value for a in self.enabled_actions],
            "advancedSettings": self.advanced_settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DabEntityConfig:
        return cls(
            id=data["id"],
            table_name=data.get("tableName", ""),
            schema_name=data.get("schemaName", ""),
            is_enabled=bool(data.get("isEnabled", True)),
            enabled_actions=tuple(
                EntityAction.from_str(a) for a in data.get("enabledActions") or ()
            ),
            advanced_settings=EntityAdvancedSettings.from_dict(data.get("advancedSettings") or {}),
        )


@dataclass(frozen=True)
class DabConfig:
    """Root DAB configuration document."""

    api_types: tuple[ApiType, ...] = (ApiType.REST,)
    entities: tuple[DabEntityConfig, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiTypes": [a.value for a in self.api_types],
            "entities": [e.to_dict() for e in self.entities],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DabConfig:
        return cls(
            api_types=tuple(ApiType.from_str(a) for a in data.get("apiTypes") or ()),
            entities=tuple(DabEntityConfig.from_dict(e) for e in data.get("entities") or ()),
        )


def create_default_entity_config(table: Table) -> DabEntityConfig:
    """Enabled entity with every action, named after its table."""
    return DabEntityConfig(
        id=table.id,
        table_name=table.name,
        schema_name=table.schema,
        is_enabled=True,
        enabled_actions=ALL_ACTIONS,
        advanced_settings=EntityAdvancedSettings(entity_name=table.name),
    )


def create_default_config(tables: Iterable[Table]) -> DabConfig:
    """REST-only config exposing every table."""
    return DabConfig(
        api_types=(ApiType.REST,),
        entities=tuple(create_default_entity_config(t) for t in tables),
    )


def sync_config_with_tables(
    config: DabConfig, tables: Iterable[Table]
) -> tuple[DabConfig, bool]:
    """Bring the entity list in line with the current tables.

    Entities whose table is gone are dropped, surviving entities pick up the
    table's current schema and name, and new tables get default entities.

    Args:
        config: Current configuration
        tables: Tables of the designer document

    Returns:
        (synchronized config, whether anything changed)
    """
    tables = list(tables)
    by_id = {t.id: t for t in tables}
    changed = False

    entities = []
    for entity in config.entities:
        table = by_id.get(entity.id)
        if table is None:
            changed = True
            continue
        if entity.table_name != table.name or entity.schema_name != table.schema:
            entity = replace(entity, table_name=table.name, schema_name=table.schema)
            changed = True
        entities.append(entity)

    known = {e.id for e in entities}
    for table in tables:
        if table.id not in known:
            entities.append(create_default_entity_config(table))
            changed = True

    if not changed:
        return config, False
    return replace(config, entities=tuple(entities)), True
