"""
Unit tests for query, geocoding, domain, find and health check operations
dispatched through the gateway.
"""

import json

import pytest

from conftest import request_params

from arcgis_gateway import operations as ops
from arcgis_gateway.gateway import PortalGateway

ROOT = "http://server.example.com/arcgis"
LAYER = "Parcels/FeatureServer/0"
LAYER_PATH = "/arcgis/rest/services/Parcels/FeatureServer/0"
QUERY_PATH = LAYER_PATH + "/query"
GEOCODER = "World/GeocodeServer"
GEOCODER_PATH = "/arcgis/rest/services/World/GeocodeServer"
MAP = "Basemap/MapServer"
MAP_PATH = "/arcgis/rest/services/Basemap/MapServer"


@pytest.fixture
def gateway(gateway_kwargs):
    """Anonymous gateway against the fake site."""
    return PortalGateway(ROOT, **gateway_kwargs)


def last_params(fake_server, method, path):
    return request_params(fake_server.calls(method, path)[-1])


class TestQueryVariants:
    """Test cases for count, ID and extent queries."""

    @pytest.mark.asyncio
    async def test_query_for_count(self, gateway, fake_server):
        """Test that only the count is requested and parsed."""
        fake_server.add("GET", QUERY_PATH, {"count": 42})

        result = await gateway.query_for_count(ops.query_for_count(LAYER, where="status = 1"))

        assert result.count == 42
        params = last_params(fake_server, "GET", QUERY_PATH)
        assert params["returnCountOnly"] == "true"
        assert params["returnGeometry"] == "false"
        assert params["where"] == "status = 1"
        assert "returnIdsOnly" not in params

    @pytest.mark.asyncio
    async def test_query_for_ids(self, gateway, fake_server):
        """Test that object IDs and their field name are parsed."""
        fake_server.add("GET", QUERY_PATH, {"objectIdFieldName": "OBJECTID", "objectIds": [3, 1, 2]})

        result = await gateway.query_for_ids(ops.query_for_ids(LAYER))

        assert result.object_id_field_name == "OBJECTID"
        assert result.object_ids == [3, 1, 2]
        assert last_params(fake_server, "GET", QUERY_PATH)["returnIdsOnly"] == "true"

    @pytest.mark.asyncio
    async def test_query_for_ids_empty(self, gateway, fake_server):
        """Test that a null ID list reads as empty."""
        fake_server.add("GET", QUERY_PATH, {"objectIdFieldName": "OBJECTID", "objectIds": None})

        result = await gateway.query_for_ids(ops.query_for_ids(LAYER, where="1=0"))

        assert result.object_ids == []

    @pytest.mark.asyncio
    async def test_query_for_extent(self, gateway, fake_server):
        """Test that the extent and count come back together."""
        extent = {"xmin": 1.0, "ymin": 2.0, "xmax": 3.0, "ymax": 4.0, "spatialReference": {"wkid": 4326}}
        fake_server.add("GET", QUERY_PATH, {"count": 7, "extent": extent})

        result = await gateway.query_for_extent(ops.query_for_extent(LAYER))

        assert result.count == 7
        assert result.extent == extent
        params = last_params(fake_server, "GET", QUERY_PATH)
        assert params["returnExtentOnly"] == "true"
        assert params["returnCountOnly"] == "true"


class TestFeatures:
    """Test cases for single feature and domain lookups."""

    @pytest.mark.asyncio
    async def test_get_feature(self, gateway, fake_server):
        """Test that a feature is read from its object ID path."""
        fake_server.add(
            "GET",
            LAYER_PATH + "/12",
            {"feature": {"attributes": {"OBJECTID": 12, "NAME": "Lot 12"}, "geometry": {"x": 1, "y": 2}}},
        )

        result = await gateway.get_feature(ops.layer_feature(LAYER, 12))

        assert result.feature.get_object_id("OBJECTID") == 12
        assert result.feature.attributes["NAME"] == "Lot 12"
        assert result.feature.geometry == {"x": 1, "y": 2}

    @pytest.mark.asyncio
    async def test_query_domains(self, gateway, fake_server):
        """Test that layer IDs are sent as a JSON array and domains parsed."""
        fake_server.add(
            "GET",
            "/arcgis/rest/services/Parcels/FeatureServer/queryDomains",
            {
                "domains": [
                    {
                        "type": "codedValue",
                        "name": "Zoning",
                        "codedValues": [{"name": "Residential", "code": "R"}],
                    },
                    {"type": "range", "name": "Height", "range": [0, 120]},
                ]
            },
        )

        result = await gateway.query_domains(ops.query_domains("Parcels/FeatureServer", [0, 1]))

        params = last_params(fake_server, "GET", "/arcgis/rest/services/Parcels/FeatureServer/queryDomains")
        assert json.loads(params["layers"]) == [0, 1]
        assert params["layers"] == "[0,1]"
        assert [d.name for d in result.domains] == ["Zoning", "Height"]
        assert result.domains[0].coded_values[0]["code"] == "R"
        assert result.domains[1].range == [0, 120]


class TestFind:
    """Test cases for map service find."""

    @pytest.mark.asyncio
    async def test_find(self, gateway, fake_server):
        """Test the find parameters and result mapping."""
        fake_server.add(
            "GET",
            MAP_PATH + "/find",
            {
                "results": [
                    {
                        "layerId": 2,
                        "layerName": "Parcels",
                        "displayFieldName": "NAME",
                        "foundFieldName": "OWNER",
                        "value": "Smith",
                        "attributes": {"OBJECTID": 5, "OWNER": "Smith"},
                        "geometryType": "esriGeometryPolygon",
                        "geometry": {"rings": []},
                    }
                ]
            },
        )

        result = await gateway.find(
            ops.find(MAP, "Smith", search_fields=["OWNER", "NAME"], layer_ids=[2, 3], out_sr=4326, contains=False)
        )

        params = last_params(fake_server, "GET", MAP_PATH + "/find")
        assert params["searchText"] == "Smith"
        assert params["searchFields"] == "OWNER,NAME"
        assert params["layers"] == "2,3"
        assert params["contains"] == "false"
        assert params["returnGeometry"] == "true"
        assert params["returnZ"] == "true"
        assert params["sr"] == "4326"

        found = result.results[0]
        assert found.layer_id == 2
        assert found.found_field_name == "OWNER"
        assert found.value == "Smith"
        assert found.attributes["OBJECTID"] == 5
        assert found.geometry_type == "esriGeometryPolygon"

    def test_find_passes_extra_parameters(self):
        """Test that optional REST parameters pass through unchanged."""
        operation = ops.find(MAP, "Main", gdbVersion="SDE.DEFAULT", returnFieldName=True)

        assert operation.relative_url == "rest/services/Basemap/MapServer/find"
        assert operation.parameters["gdbVersion"] == "SDE.DEFAULT"
        assert operation.parameters["returnFieldName"] is True
        assert operation.parameters["layers"] is None


class TestGeocoding:
    """Test cases for the geocode service operations."""

    @pytest.mark.asyncio
    async def test_single_input_geocode(self, gateway, fake_server):
        """Test that ``find`` is called with the single line address."""
        fake_server.add(
            "GET",
            GEOCODER_PATH + "/find",
            {
                "spatialReference": {"wkid": 4326},
                "locations": [
                    {
                        "name": "380 New York St, Redlands",
                        "extent": {"xmin": -117.2, "ymin": 34.0, "xmax": -117.1, "ymax": 34.1},
                        "feature": {"geometry": {"x": -117.19, "y": 34.05}, "attributes": {"Score": 100}},
                    }
                ],
            },
        )

        result = await gateway.single_input_geocode(
            ops.single_input_geocode(GEOCODER, "380 New York St", source_country="USA", max_locations=1)
        )

        params = last_params(fake_server, "GET", GEOCODER_PATH + "/find")
        assert params["text"] == "380 New York St"
        assert params["sourceCountry"] == "USA"
        assert params["maxLocations"] == "1"
        assert "magicKey" not in params

        assert result.spatial_reference == {"wkid": 4326}
        location = result.locations[0]
        assert location.name == "380 New York St, Redlands"
        assert location.feature.attributes["Score"] == 100

    @pytest.mark.asyncio
    async def test_suggest_geocode(self, gateway, fake_server):
        """Test that suggestions carry their magic keys."""
        fake_server.add(
            "GET",
            GEOCODER_PATH + "/suggest",
            {"suggestions": [{"text": "Redlands, CA, USA", "magicKey": "abc123", "isCollection": False}]},
        )

        result = await gateway.suggest_geocode(ops.suggest_geocode(GEOCODER, "Redl"))

        assert last_params(fake_server, "GET", GEOCODER_PATH + "/suggest")["text"] == "Redl"
        suggestion = result.suggestions[0]
        assert suggestion.text == "Redlands, CA, USA"
        assert suggestion.magic_key == "abc123"
        assert suggestion.is_collection is False

    @pytest.mark.asyncio
    async def test_reverse_geocode(self, gateway, fake_server):
        """Test that the location point is sent as JSON."""
        fake_server.add(
            "GET",
            GEOCODER_PATH + "/reverseGeocode",
            {
                "address": {"Match_addr": "380 New York St", "City": "Redlands"},
                "location": {"x": -117.19, "y": 34.05, "spatialReference": {"wkid": 4326}},
            },
        )
        point = {"x": -117.19, "y": 34.05, "spatialReference": {"wkid": 4326}}

        result = await gateway.reverse_geocode(ops.reverse_geocode(GEOCODER, point, distance=100))

        params = last_params(fake_server, "GET", GEOCODER_PATH + "/reverseGeocode")
        assert json.loads(params["location"]) == point
        assert params["distance"] == "100"
        assert "outSR" not in params
        assert result.address["City"] == "Redlands"
        assert result.location["x"] == -117.19


class TestHealthCheck:
    """Test cases for the server health check."""

    @pytest.mark.asyncio
    async def test_healthy(self, gateway, fake_server):
        """Test that the health check is read from the server root."""
        fake_server.add("GET", "/arcgis/rest/info/healthCheck", {"success": True})

        result = await gateway.health_check()

        assert result.success is True
        request = fake_server.calls("GET", "/arcgis/rest/info/healthCheck")[0]
        assert request.url.params["f"] == "json"

    @pytest.mark.asyncio
    async def test_unhealthy(self, gateway, fake_server):
        """Test that a missing flag reads as unhealthy."""
        fake_server.add("GET", "/arcgis/rest/info/healthCheck", {})

        result = await gateway.health_check()

        assert result.success is False
