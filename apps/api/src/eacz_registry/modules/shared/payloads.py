"""
Versioned JSON payload columns.

Semi-structured application data (personal details, qualifications,
company profile, directors, drafts) is stored in JSON columns as

    {"schema_version": 1, "data": {...}}

``PayloadJSON`` validates the data through pydantic on the way in and on
the way out, so the ORM attribute always holds typed models.
"""

import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1


class PayloadVersionError(ValueError):
    """Stored payload was written by a newer schema than this code understands."""


def wrap_payload(data: Any, version: int = CURRENT_SCHEMA_VERSION) -> dict[str, Any]:
    return {"schema_version": version, "data": data}


def unwrap_payload(value: Any) -> tuple[int, Any]:
    """
    Split a stored document into (schema_version, data).

    Documents written before versioning (bare objects) are treated as version 1.
    """
    if isinstance(value, dict) and "schema_version" in value and "data" in value:
        return int(value["schema_version"]), value["data"]
    return 1, value


class PayloadJSON(TypeDecorator):
    """JSONB column holding a pydantic-validated, version-tagged payload."""

    impl = JSONB
    cache_ok = True

    def __init__(self, payload_type: Any, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.payload_type = payload_type
        self._adapter = TypeAdapter(payload_type)

    @property
    def python_type(self) -> Any:
        return self.payload_type

    def process_bind_param(self, value: Any, dialect) -> dict[str, Any] | None:
        if value is None:
            return None
        validated = self._adapter.validate_python(value)
        return wrap_payload(self._adapter.dump_python(validated, mode="json"))

    def process_result_value(self, value: Any, dialect) -> Any:
        if value is None:
            return None

        version, data = unwrap_payload(value)
        if version > CURRENT_SCHEMA_VERSION:
            raise PayloadVersionError(
                f"Payload schema version {version} is newer than supported {CURRENT_SCHEMA_VERSION}"
            )

        try:
            return self._adapter.validate_python(data)
        except ValidationError:
            logger.error(f"Stored payload failed validation for {self.payload_type!r}")
            raise
