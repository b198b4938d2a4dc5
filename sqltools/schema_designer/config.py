"""
Configuration for the schema designer tools.

All configuration comes from environment variables (prefix SCHEMA_DESIGNER_)
via pydantic-settings. Defaults are the production ceilings.

Invariants:
    - Size ceilings are inclusive: a document exactly at the ceiling is
      returned in full, one over forces the cheaper projection
    - An empty data type list disables data type validation

How to change safely:
    - Add new settings with defaults that keep current behavior
    - Never lower a ceiling without checking callers that page by overview
"""

from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

SQL_SERVER_DATA_TYPES: tuple[str, ...] = (
    "bigint",
    "binary",
    "bit",
    "char",
    "date",
    "datetime",
    "datetime2",
    "datetimeoffset",
    "decimal",
    "float",
    "geography",
    "geometry",
    "hierarchyid",
    "image",
    "int",
    "money",
    "nchar",
    "ntext",
    "numeric",
    "nvarchar",
    "real",
    "smalldatetime",
    "smallint",
    "smallmoney",
    "sql_variant",
    "text",
    "time",
    "timestamp",
    "tinyint",
    "uniqueidentifier",
    "varbinary",
    "varchar",
    "vector",
    "xml",
)


class DesignerSettings(BaseSettings):
    """Schema designer tool configuration loaded from environment."""

    # Overview size guard
    overview_max_tables: int = Field(default=40, description="Tables before columns are omitted")
    overview_max_columns: int = Field(
        default=400, description="Total columns before columns are omitted"
    )

    # DAB state shaping
    dab_state_entity_threshold: int = Field(
        default=150, description="Entities before get_state downgrades to summary"
    )
    dab_response_entity_threshold: int = Field(
        default=100, description="Entities before apply_changes downgrades to summary"
    )

    # Column validation
    data_types: list[str] = Field(
        default_factory=lambda: list(SQL_SERVER_DATA_TYPES),
        description="Accepted column data types (empty = accept any)",
    )
    default_schema_names: list[str] = Field(
        default_factory=lambda: ["dbo"],
        description="Schemas offered by new sessions when the loader provides none",
    )

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="text", description="json or text")

    # HTTP transport
    host: str = Field(default="127.0.0.1", description="HTTP bind host")
    port: int = Field(default=8765, description="HTTP bind port")

    model_config = {"env_prefix": "SCHEMA_DESIGNER_"}

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.info(
            "Schema designer configuration loaded",
            extra={
                "overview_max_tables": self.overview_max_tables,
                "overview_max_columns": self.overview_max_columns,
                "dab_state_entity_threshold": self.dab_state_entity_threshold,
                "dab_response_entity_threshold": self.dab_response_entity_threshold,
                "data_type_count": len(self.data_types),
                "log_level": self.log_level,
            },
        )
