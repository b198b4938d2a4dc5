"""
Stepwise DAB change applier and state shaping.

Applies a batch of DAB configuration changes with the same prefix-commit
semantics as the schema edit applier, and shapes the configuration into
the bounded ``returnState`` views returned by the DAB tool.

Invariants:
    - Changes are applied in request order; the first failure stops the batch
    - A failing change leaves the configuration as the previous change left it
    - Entity names, custom REST paths and custom GraphQL types stay unique
      case-insensitively across entities
    - A shaped state never carries ``config`` when its entity count is over
      the ceiling, whatever the caller requested
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from ..cancellation import CancellationToken
from ..errors import DesignerToolError, ErrorKind, InvalidRequestError, ValidationError
from ..schema.resolver import resolve_entity
from .changes import (
    CHANGE_TYPES,
    PatchEntitySettings,
    SetAllEntitiesEnabled,
    SetApiTypes,
    SetEntityActions,
    SetEntityEnabled,
    SetOnlyEnabledEntities,
    parse_change,
)
from .types import ApiType, AuthorizationRole, DabConfig, DabEntityConfig, EntityAction

logger = logging.getLogger(__name__)

RETURN_STATES: tuple[str, ...] = ("full", "summary", "none")

_SETTING_FIELDS = {
    "entityName": "entity_name",
    "customRestPath": "custom_rest_path",
    "customGraphQLType": "custom_graphql_type",
}


def parse_return_state(value: Any, default: str = "full") -> str:
    """Validate a caller-supplied ``returnState``."""
    if value is None:
        return default
    if value not in RETURN_STATES:
        raise InvalidRequestError(
            f"Invalid returnState '{value}'. Valid values: {list(RETURN_STATES)}"
        )
    return value


def build_dab_summary(config: DabConfig) -> dict[str, Any]:
    """Counts-only view of a DAB configuration."""
    return {
        "apiTypes": [a.value for a in config.api_types],
        "entityCount": len(config.entities),
        "enabledEntityCount": sum(1 for e in config.entities if e.is_enabled),
    }


@dataclass
class DabStateView:
    """A DAB configuration shaped for a response.

    Attributes:
        return_state: Level actually returned (full, summary or none)
        summary: Counts-only view, always present
        config: Full configuration, only when ``return_state`` is full
        state_omitted_reason: Why ``config`` is missing, if it is
    """

    return_state: str
    summary: dict[str, Any]
    config: dict[str, Any] | None = None
    state_omitted_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"returnState": self.return_state, "summary": self.summary}
        if self.state_omitted_reason:
            data["stateOmittedReason"] = self.state_omitted_reason
        if self.config is not None:
            data["config"] = self.config
        return data


def shape_dab_state(config: DabConfig, requested: str, threshold: int) -> DabStateView:
    """Shape ``config`` per the requested level and the entity ceiling.

    Args:
        config: Configuration to render
        requested: full, summary or none
        threshold: Entity count above which full downgrades to summary

    Returns:
        DabStateView
    """
    summary = build_dab_summary(config)
    if requested == "none":
        return DabStateView("none", summary, state_omitted_reason="caller_requested_none")
    if requested == "summary":
        return DabStateView("summary", summary, state_omitted_reason="caller_requested_summary")
    if len(config.entities) > threshold:
        return DabStateView(
            "summary", summary, state_omitted_reason="entity_count_over_threshold"
        )
    return DabStateView("full", summary, config=config.to_dict())


@dataclass
class DabBatchResult:
    """Result of applying a batch of DAB changes."""

    success: bool
    config: DabConfig
    applied_changes: int = 0
    failed_change_index: int | None = None
    error: DesignerToolError | None = None


def _enum_values(raw: tuple[str, ...], enum_type: type, label: str) -> tuple[Any, ...]:
    if not raw:
        raise ValidationError(f"{label} must contain at least one value.")
    seen = set()
    values = []
    valid = [m.value for m in enum_type]
    for item in raw:
        if item in seen:
            raise ValidationError(f"{label} contains duplicate value '{item}'.")
        seen.add(item)
        try:
            values.append(enum_type.from_str(item))
        except ValueError:
            raise ValidationError(
                f"Invalid {label} value '{item}'. Valid values: {valid}"
            ) from None
    return tuple(values)


class DabChangeApplier:
    """Applies DAB change batches with prefix-commit semantics."""

    def __init__(self) -> None:
        self._handlers: dict[type, Callable[[DabConfig, Any], DabConfig]] = {
            SetApiTypes: self._apply_set_api_types,
            SetEntityEnabled: self._apply_set_entity_enabled,
            SetEntityActions: self._apply_set_entity_actions,
            PatchEntitySettings: self._apply_patch_entity_settings,
            SetOnlyEnabledEntities: self._apply_set_only_enabled_entities,
            SetAllEntitiesEnabled: self._apply_set_all_entities_enabled,
        }
        missing = [t.__name__ for t in CHANGE_TYPES if t not in self._handlers]
        if missing:
            raise RuntimeError(f"DAB change variants without a handler: {missing}")

    def apply(
        self,
        config: DabConfig,
        raw_changes: list[Any],
        cancellation: CancellationToken | None = None,
    ) -> DabBatchResult:
        """Apply ``raw_changes`` in order, stopping at the first failure.

        Args:
            config: Synchronized configuration to start from
            raw_changes: Raw JSON changes, parsed one at a time
            cancellation: Checked before each change

        Returns:
            DabBatchResult holding the committed prefix
        """
        result = DabBatchResult(success=True, config=config)
        for index, raw in enumerate(raw_changes):
            try:
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                change = parse_change(raw)
                result.config = self._handlers[type(change)](result.config, change)
            except DesignerToolError as e:
                result.success = False
                result.failed_change_index = index
                result.error = e
                break
            except Exception as e:
                logger.exception(f"Unexpected error applying DAB change {index}")
                result.success = False
                result.failed_change_index = index
                result.error = DesignerToolError(str(e), reason=ErrorKind.INTERNAL_ERROR)
                break
            result.applied_changes += 1
        return result

    def _replace_entity(self, config: DabConfig, entity: DabEntityConfig) -> DabConfig:
        return replace(
            config,
            entities=tuple(entity if e.id == entity.id else e for e in config.entities),
        )

    def _apply_set_api_types(self, config: DabConfig, change: SetApiTypes) -> DabConfig:
        return replace(config, api_types=_enum_values(change.api_types, ApiType, "apiTypes"))

    def _apply_set_entity_enabled(self, config: DabConfig, change: SetEntityEnabled) -> DabConfig:
        entity = resolve_entity(config.entities, change.entity)
        return self._replace_entity(config, replace(entity, is_enabled=change.is_enabled))

    def _apply_set_entity_actions(self, config: DabConfig, change: SetEntityActions) -> DabConfig:
        entity = resolve_entity(config.entities, change.entity)
        actions = _enum_values(change.actions, EntityAction, "actions")
        return self._replace_entity(config, replace(entity, enabled_actions=actions))

    def _apply_patch_entity_settings(
        self, config: DabConfig, change: PatchEntitySettings
    ) -> DabConfig:
        entity = resolve_entity(config.entities, change.entity)
        updates: dict[str, Any] = {}
        for key, value in change.settings.items():
            if key == "authorizationRole":
                try:
                    updates["authorization_role"] = AuthorizationRole.from_str(value)
                except ValueError:
                    valid = [r.value for r in AuthorizationRole]
                    raise ValidationError(
                        f"Invalid authorizationRole value '{value}'. Valid values: {valid}"
                    ) from None
                continue

            if key == "entityName":
                value = value.strip()
                if not value:
                    raise ValidationError("entityName must be a non-empty string.")
            elif value is not None:
                value = value.strip()
            if value is not None:
                self._check_unique(config, entity, key, value)
            updates[_SETTING_FIELDS[key]] = value

        settings = replace(entity.advanced_settings, **updates)
        return self._replace_entity(config, replace(entity, advanced_settings=settings))

    def _check_unique(
        self, config: DabConfig, entity: DabEntityConfig, key: str, value: str
    ) -> None:
        attr = _SETTING_FIELDS[key]
        for other in config.entities:
            if other.id == entity.id:
                continue
            existing = getattr(other.advanced_settings, attr)
            if existing is not None and existing.lower() == value.lower():
                raise ValidationError(
                    f"{key} '{value}' is already used by entity "
                    f"'{other.schema_name}.{other.table_name}'."
                )

    def _apply_set_only_enabled_entities(
        self, config: DabConfig, change: SetOnlyEnabledEntities
    ) -> DabConfig:
        if not change.entities:
            raise ValidationError("entities must contain at least one entity reference.")
        enabled: set[str] = set()
        for ref in change.entities:
            entity = resolve_entity(config.entities, ref)
            if entity.id in enabled:
                raise ValidationError(
                    f"Entity '{entity.schema_name}.{entity.table_name}' is listed more than once."
                )
            enabled.add(entity.id)
        return replace(
            config,
            entities=tuple(replace(e, is_enabled=e.id in enabled) for e in config.entities),
        )

    def _apply_set_all_entities_enabled(
        self, config: DabConfig, change: SetAllEntitiesEnabled
    ) -> DabConfig:
        return replace(
            config,
            entities=tuple(replace(e, is_enabled=change.is_enabled) for e in config.entities),
        )
