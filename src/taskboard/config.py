"""Load board configuration from `.taskboard/config.yaml`."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

SCHEMA_VERSION = 1


class LoggingSettings(BaseModel):
    level: str = "INFO"


class StorageSettings(BaseModel):
    lock_timeout: float = Field(default=30.0, gt=0)


class OrderingSettings(BaseModel):
    # When false, reorder only rejects ids that live in another column.
    require_exact_permutation: bool = True


class NotificationSettings(BaseModel):
    enabled: bool = True
    dispatch: Literal["inline", "deferred"] = "inline"


class BoardSettings(BaseModel):
    """Validated board configuration."""

    schema_version: int = SCHEMA_VERSION
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    ordering: OrderingSettings = Field(default_factory=OrderingSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


def load_board_settings(raw: dict[str, Any] | None) -> BoardSettings:
    """Build settings from a raw config mapping.

    Args:
        raw: Parsed YAML mapping, or None when the file is missing.

    Returns:
        Settings with defaults filled in for absent keys.

    Raises:
        pydantic.ValidationError: If a present value has the wrong type.
    """
    data = dict(raw or {})
    # Top-level bookkeeping keys written by older bootstraps are not settings.
    data.pop("version", None)
    return BoardSettings.model_validate(data)


def default_config() -> dict[str, Any]:
    return BoardSettings().model_dump()
