"""Unit manifest (package.json) parsing."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "package.json"


class UnitManifest(BaseModel):
    """The fields of package.json that matter for versioning and builds."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str | None = None
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict, alias="peerDependencies")
    build: dict[str, Any] = Field(default_factory=dict, alias="natstack")

    @field_validator("dependencies", "peer_dependencies", mode="before")
    @classmethod
    def _coerce_dependency_values(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: "" if v is None else str(v) for k, v in value.items()}
        return value

    @field_validator("build", mode="before")
    @classmethod
    def _coerce_missing_build(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def all_dependencies(self) -> dict[str, str]:
        # Regular dependencies win over peer declarations of the same name
        return {**self.peer_dependencies, **self.dependencies}


def parse_manifest(text: str) -> UnitManifest:
    """Parse manifest text. Raises ValueError on malformed JSON or schema."""
    try:
        return UnitManifest.model_validate_json(text)
    except ValidationError as e:
        raise ValueError(f"Invalid {MANIFEST_FILENAME}: {e}") from e


def read_manifest(unit_dir: Path) -> UnitManifest | None:
    """Read ``unit_dir/package.json``; None when absent or unreadable."""
    path = unit_dir / MANIFEST_FILENAME
    if not path.is_file():
        return None
    try:
        return parse_manifest(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Skipping %s: %s", path, e)
        return None


def sorted_json(data: dict[str, Any]) -> str:
    """Key-order-insensitive serialisation, nested maps included."""
    return json.dumps(data, sort_keys=True, default=str)
