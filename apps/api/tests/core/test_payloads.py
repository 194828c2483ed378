"""
Tests for versioned JSON payload columns.
"""

import pytest
from pydantic import ValidationError

from eacz_registry.modules.applications.models import IndividualApplication
from eacz_registry.modules.eligibility.schemas import OLevelRecord
from eacz_registry.modules.shared.payloads import (
    CURRENT_SCHEMA_VERSION,
    PayloadJSON,
    PayloadVersionError,
    unwrap_payload,
)


@pytest.fixture
def column_type():
    return PayloadJSON(OLevelRecord)


class TestPayloadJSON:
    def test_bind_wraps_with_version(self, column_type):
        record = OLevelRecord(has_english=True, has_math=True, passes_count=6)

        stored = column_type.process_bind_param(record, dialect=None)

        assert stored["schema_version"] == CURRENT_SCHEMA_VERSION
        assert stored["data"]["passes_count"] == 6

    def test_result_returns_model(self, column_type):
        stored = {"schema_version": 1, "data": {"has_english": True, "has_math": False, "passes_count": 5}}

        record = column_type.process_result_value(stored, dialect=None)

        assert isinstance(record, OLevelRecord)
        assert record.has_math is False

    def test_unversioned_rows_read_as_version_one(self):
        assert unwrap_payload({"passes_count": 5}) == (1, {"passes_count": 5})

    def test_newer_version_is_refused(self, column_type):
        with pytest.raises(PayloadVersionError):
            column_type.process_result_value(
                {"schema_version": CURRENT_SCHEMA_VERSION + 1, "data": {}}, dialect=None
            )

    def test_invalid_data_is_refused(self, column_type):
        with pytest.raises(ValidationError):
            column_type.process_bind_param({"passes_count": -1}, dialect=None)

    def test_none_passes_through(self, column_type):
        assert column_type.process_bind_param(None, dialect=None) is None
        assert column_type.process_result_value(None, dialect=None) is None

    def test_python_type_reports_payload_type(self, column_type):
        assert column_type.payload_type is OLevelRecord
        assert column_type.python_type is OLevelRecord

    def test_model_columns_build(self):
        column = IndividualApplication.__table__.c.o_level

        assert isinstance(column.type, PayloadJSON)
        assert column.type.payload_type is OLevelRecord
