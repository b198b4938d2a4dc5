"""
DAB configuration change variants.

Mirrors apply/edits.py for the DAB protocol: a closed set of frozen
dataclasses discriminated by ``type`` and one parser per variant. Parsers
only check the JSON shape; enum values, duplicates and uniqueness are
validated by the applier against the live configuration.

Invariants:
    - CHANGE_TYPES is the complete, closed set of variants
    - patch_entity_settings carries only supported properties, and at least one
    - A null custom path or GraphQL type in a patch means "clear"
"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import get_close_matches
from typing import Any, Callable, ClassVar, Union

from ..errors import InvalidRequestError
from ..payload import require_list, require_mapping, required_bool
from ..schema.resolver import QualifiedRef

PATCHABLE_SETTINGS: tuple[str, ...] = (
    "entityName",
    "authorizationRole",
    "customRestPath",
    "customGraphQLType",
)
CLEARABLE_SETTINGS = frozenset({"customRestPath", "customGraphQLType"})


def _string_list(raw: Any, label: str) -> tuple[str, ...]:
    items = require_list(raw, label)
    for item in items:
        if not isinstance(item, str):
            raise InvalidRequestError(f"{label} must be an array of strings.")
    return tuple(items)


@dataclass(frozen=True)
class SetApiTypes:
    type: ClassVar[str] = "set_api_types"
    api_types: tuple[str, ...]


@dataclass(frozen=True)
class SetEntityEnabled:
    type: ClassVar[str] = "set_entity_enabled"
    entity: QualifiedRef
    is_enabled: bool


@dataclass(frozen=True)
class SetEntityActions:
    type: ClassVar[str] = "set_entity_actions"
    entity: QualifiedRef
    actions: tuple[str, ...]


@dataclass(frozen=True)
class PatchEntitySettings:
    type: ClassVar[str] = "patch_entity_settings"
    entity: QualifiedRef
    settings: dict[str, Any]


@dataclass(frozen=True)
class SetOnlyEnabledEntities:
    type: ClassVar[str] = "set_only_enabled_entities"
    entities: tuple[QualifiedRef, ...]


@dataclass(frozen=True)
class SetAllEntitiesEnabled:
    type: ClassVar[str] = "set_all_entities_enabled"
    is_enabled: bool


DabChange = Union[
    SetApiTypes,
    SetEntityEnabled,
    SetEntityActions,
    PatchEntitySettings,
    SetOnlyEnabledEntities,
    SetAllEntitiesEnabled,
]

CHANGE_TYPES: tuple[type, ...] = (
    SetApiTypes,
    SetEntityEnabled,
    SetEntityActions,
    PatchEntitySettings,
    SetOnlyEnabledEntities,
    SetAllEntitiesEnabled,
)


def _entity(raw: dict[str, Any]) -> QualifiedRef:
    return QualifiedRef.parse(raw.get("entity"), "entity")


def _parse_set_api_types(raw: dict[str, Any]) -> SetApiTypes:
    return SetApiTypes(api_types=_string_list(raw.get("apiTypes"), "apiTypes"))


def _parse_set_entity_enabled(raw: dict[str, Any]) -> SetEntityEnabled:
    return SetEntityEnabled(entity=_entity(raw), is_enabled=required_bool(raw, "isEnabled"))


def _parse_set_entity_actions(raw: dict[str, Any]) -> SetEntityActions:
    return SetEntityActions(
        entity=_entity(raw), actions=_string_list(raw.get("actions"), "actions")
    )


def _parse_patch_entity_settings(raw: dict[str, Any]) -> PatchEntitySettings:
    entity = _entity(raw)
    settings = require_mapping(raw.get("set"), "set")
    if not settings:
        raise InvalidRequestError(
            f"patch_entity_settings requires at least one property in set: {list(PATCHABLE_SETTINGS)}"
        )
    for key, value in settings.items():
        if key not in PATCHABLE_SETTINGS:
            suggestions = get_close_matches(key, PATCHABLE_SETTINGS, n=3)
            hint = f" Did you mean: {suggestions}?" if suggestions else ""
            raise InvalidRequestError(
                f"Unsupported property 'set.{key}'. "
                f"Supported properties: {list(PATCHABLE_SETTINGS)}.{hint}"
            )
        if key in CLEARABLE_SETTINGS:
            if value is None:
                continue
            if not isinstance(value, str) or not value.strip():
                raise InvalidRequestError(
                    f"set.{key} must be a non-empty string, or null to clear it."
                )
        elif not isinstance(value, str):
            raise InvalidRequestError(f"set.{key} must be a string.")
    return PatchEntitySettings(entity=entity, settings=dict(settings))


def _parse_set_only_enabled_entities(raw: dict[str, Any]) -> SetOnlyEnabledEntities:
    items = require_list(raw.get("entities"), "entities")
    return SetOnlyEnabledEntities(
        entities=tuple(QualifiedRef.parse(item, "entity") for item in items)
    )


def _parse_set_all_entities_enabled(raw: dict[str, Any]) -> SetAllEntitiesEnabled:
    return SetAllEntitiesEnabled(is_enabled=required_bool(raw, "isEnabled"))


_PARSERS: dict[str, Callable[[dict[str, Any]], DabChange]] = {
    SetApiTypes.type: _parse_set_api_types,
    SetEntityEnabled.type: _parse_set_entity_enabled,
    SetEntityActions.type: _parse_set_entity_actions,
    PatchEntitySettings.type: _parse_patch_entity_settings,
    SetOnlyEnabledEntities.type: _parse_set_only_enabled_entities,
    SetAllEntitiesEnabled.type: _parse_set_all_entities_enabled,
}

CHANGE_KINDS: tuple[str, ...] = tuple(_PARSERS)


def parse_change(raw: Any) -> DabChange:
    """Parse one raw JSON change into its variant.

    Raises:
        InvalidRequestError: Unknown type or malformed payload
    """
    if not isinstance(raw, dict):
        raise InvalidRequestError("Each change must be an object with a 'type' field.")
    kind = raw.get("type")
    parser = _PARSERS.get(kind) if isinstance(kind, str) else None
    if parser is None:
        raise InvalidRequestError(f"Unknown change type: {kind}")
    return parser(raw)


def count_change_types(raw_changes: list[Any]) -> dict[str, int]:
    """Count attempted changes per type (``<type>_count``)."""
    counts = {f"{kind}_count": 0 for kind in CHANGE_KINDS}
    for raw in raw_changes:
        kind = raw.get("type") if isinstance(raw, dict) else None
        key = f"{kind}_count"
        if key in counts:
            counts[key] += 1
    return counts


def counts_to_receipt(counts: dict[str, int]) -> dict[str, int]:
    """Render ``set_api_types_count`` style keys as ``setApiTypesCount``."""
    receipt = {}
    for key, value in counts.items():
        head, *rest = key.split("_")
        receipt[head + "".join(part.capitalize() for part in rest)] = value
    return receipt
