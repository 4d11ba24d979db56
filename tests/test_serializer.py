"""
Unit tests for the JSON serializer.
"""

import json
from datetime import datetime, timezone

import pytest

from arcgis_gateway.endpoint import ServerEndpoint
from arcgis_gateway.errors import SerializationError
from arcgis_gateway.models import QueryResponse
from arcgis_gateway.operations import Operation, query
from arcgis_gateway.serializer import JsonSerializer, to_parameter_value


class TestToParameterValue:
    """Test cases for parameter rendering."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, "true"),
            (False, "false"),
            ("1=1", "1=1"),
            (10, "10"),
            (1.5, "1.5"),
            ([1, 2], "[1,2]"),
            ({"x": 1, "y": 2}, '{"x":1,"y":2}'),
            (datetime(2020, 1, 1, tzinfo=timezone.utc), "1577836800000"),
        ],
    )
    def test_values(self, value, expected):
        """Test how each value type is written."""
        assert to_parameter_value(value) == expected


class TestJsonSerializer:
    """Test cases for JsonSerializer."""

    def test_flatten_drops_none_and_adds_format(self):
        """Test that None parameters are skipped and f=json is always present."""
        operation = Operation(ServerEndpoint("Foo"), {"where": "1=1", "outSR": None, "returnGeometry": False})

        assert JsonSerializer().flatten(operation) == {"f": "json", "where": "1=1", "returnGeometry": "false"}

    def test_flatten_includes_operation_token(self):
        """Test that a pre-populated token is flattened."""
        operation = Operation(ServerEndpoint("Foo"), token="abc")

        assert JsonSerializer().flatten(operation)["token"] == "abc"

    def test_flatten_query(self):
        """Test flattening a query built by the operation constructor."""
        parameters = JsonSerializer().flatten(
            query("Foo/FeatureServer/0", where="status = 1", out_fields=["name", "status"], object_ids=[1, 2])
        )

        assert parameters["where"] == "status = 1"
        assert parameters["outFields"] == "name,status"
        assert parameters["objectIds"] == "1,2"
        assert parameters["returnGeometry"] == "true"
        assert "resultOffset" not in parameters

    def test_parse(self):
        """Test parsing a query response."""
        body = json.dumps({"features": [{"attributes": {"OBJECTID": 1}}], "exceededTransferLimit": True})

        result = JsonSerializer().parse(QueryResponse, body)

        assert result.features[0].get_object_id("objectid") == 1
        assert result.exceeded_transfer_limit is True

    @pytest.mark.parametrize("body", ["", "   ", "<html>bad gateway</html>", '{"features": "nope"}'])
    def test_parse_failures(self, body):
        """Test that malformed bodies raise SerializationError."""
        with pytest.raises(SerializationError):
            JsonSerializer().parse(QueryResponse, body)
