# tests/services/test_schemas.py
"""Tests for the public schema and database surface"""

import pytest

from crm_core import database, schemas


@pytest.mark.unit
class TestPublicSurface:

    def test_schema_exports_resolve(self):
        for name in schemas.__all__:
            assert hasattr(schemas, name), name

    def test_only_input_and_view_row_schemas(self):
        row_schemas = {"SalesFunnelRow", "RevenueForecastRow", "LeadConversionRow", "LineItemRow"}
        inputs = {name for name in schemas.__all__ if name not in row_schemas}

        assert row_schemas <= set(schemas.__all__)
        assert all(name.endswith(("Create", "Update", "Request")) for name in inputs)

    def test_database_entry_points(self):
        assert callable(database.init_db)
        assert callable(database.drop_db)
        assert not hasattr(database, "get_db")
