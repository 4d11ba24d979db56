"""
Operations.

An :class:`Operation` is one REST call: an endpoint, its parameters and
optional hooks run before dispatch and after a successful response. The
functions in this module build operations for the supported REST resources;
list and time arguments are projected to their wire form here, once.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Union

from .endpoint import (
    AdminEndpoint,
    Endpoint,
    OnlineEndpoint,
    RootServerEndpoint,
    ServerEndpoint,
)
from .models import ServiceDescription

QUERY = "query"
QUERY_DOMAINS = "queryDomains"
EXPORT_MAP = "export"
DELETE_FEATURES = "deleteFeatures"
APPLY_EDITS = "applyEdits"
QUERY_ATTACHMENTS = "queryAttachments"
DELETE_ATTACHMENTS = "deleteAttachments"
FIND = "find"
SINGLE_INPUT_GEOCODE = "find"
SUGGEST_GEOCODE = "suggest"
REVERSE_GEOCODE = "reverseGeocode"
SERVER_INFO = "rest/info"
HEALTH_CHECK = "rest/info/healthCheck"
PORTAL_SEARCH = "search"
PUBLIC_KEY = "publicKey"
SERVICE_STATUS = "services/{0}.{1}/status"
START_SERVICE = "services/{0}.{1}/start"
STOP_SERVICE = "services/{0}.{1}/stop"
SERVICE_STATISTICS = "services/{0}.{1}/statistics"
SERVICE_REPORT = "services/{0}/report"

GEOMETRY_ENVELOPE = "esriGeometryEnvelope"
SPATIAL_REL_INTERSECTS = "esriSpatialRelIntersects"

EndpointLike = Union[Endpoint, str]


@dataclass(frozen=True)
class Operation:
    """A single REST call."""

    endpoint: Endpoint
    parameters: Mapping[str, Any] = field(default_factory=dict)
    before_request: Optional[Callable[[], None]] = None
    after_request: Optional[Callable[[str], None]] = None
    token: Optional[str] = None

    @property
    def relative_url(self) -> str:
        return self.endpoint.relative_url

    def build_absolute_url(self, root_url: str) -> str:
        return self.endpoint.build_absolute_url(root_url)

    def with_parameters(self, **updates: Any) -> "Operation":
        """Copy of this operation with some parameters replaced."""
        parameters = dict(self.parameters)
        parameters.update(updates)
        return dataclasses.replace(self, parameters=parameters)


def _server_endpoint(endpoint: EndpointLike) -> Endpoint:
    return ServerEndpoint(endpoint) if isinstance(endpoint, str) else endpoint


def _child(endpoint: EndpointLike, *segments: Any) -> ServerEndpoint:
    base = _server_endpoint(endpoint).relative_url.strip("/")
    return ServerEndpoint("/".join([base] + [str(s) for s in segments]))


def _join(values: Optional[Iterable[Any]], default: Optional[str] = None) -> Optional[str]:
    values = [str(v) for v in values or ()]
    return ",".join(values) if values else default


def _time_extent(start: Optional[datetime], end: Optional[datetime]) -> Optional[str]:
    if start is None:
        return None
    end = end or start
    return f"{int(start.timestamp() * 1000)},{int(end.timestamp() * 1000)}"


def _geometry_parameters(geometry: Optional[Dict[str, Any]], geometry_type: Optional[str]) -> Dict[str, Any]:
    if geometry is None:
        return {"geometryType": geometry_type or GEOMETRY_ENVELOPE}
    return {
        "geometry": geometry,
        "geometryType": geometry_type or GEOMETRY_ENVELOPE,
        "inSR": geometry.get("spatialReference"),
    }


def _hooks(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "before_request": kwargs.pop("before_request", None),
        "after_request": kwargs.pop("after_request", None),
    }


# Service resources


def ping(endpoint: EndpointLike) -> Operation:
    return Operation(_server_endpoint(endpoint))


def server_info() -> Operation:
    return Operation(RootServerEndpoint(SERVER_INFO))


def health_check() -> Operation:
    return Operation(RootServerEndpoint(HEALTH_CHECK))


def describe_service(service_endpoint: EndpointLike) -> Operation:
    return Operation(_server_endpoint(service_endpoint))


def describe_layer(layer_endpoint: EndpointLike) -> Operation:
    return Operation(_server_endpoint(layer_endpoint))


def layer_feature(layer_endpoint: EndpointLike, object_id: int) -> Operation:
    return Operation(_child(layer_endpoint, object_id))


def query(
    layer_endpoint: EndpointLike,
    where: str = "1=1",
    out_fields: Optional[Sequence[str]] = None,
    return_geometry: bool = True,
    object_ids: Optional[Sequence[int]] = None,
    geometry: Optional[Dict[str, Any]] = None,
    geometry_type: Optional[str] = None,
    spatial_relationship: str = SPATIAL_REL_INTERSECTS,
    out_sr: Optional[Any] = None,
    order_by: Optional[Sequence[str]] = None,
    result_offset: Optional[int] = None,
    result_record_count: Optional[int] = None,
    time_from: Optional[datetime] = None,
    time_to: Optional[datetime] = None,
    max_allowable_offset: Optional[int] = None,
    geometry_precision: Optional[int] = None,
    return_z: bool = False,
    return_m: bool = False,
    gdb_version: Optional[str] = None,
    return_distinct_values: bool = False,
    group_by_fields: Optional[Sequence[str]] = None,
    out_statistics: Optional[Sequence[Dict[str, Any]]] = None,
    **kwargs: Any,
) -> Operation:
    """Build a ``query`` call against a layer.

    Extra keyword arguments are passed through as raw parameters.
    """
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {
        "where": where,
        **_geometry_parameters(geometry, geometry_type),
        "outFields": _join(out_fields, "*"),
        "objectIds": _join(object_ids),
        "outSR": out_sr,
        "spatialRel": spatial_relationship,
        "returnGeometry": return_geometry,
        "time": _time_extent(time_from, time_to),
        "maxAllowableOffset": max_allowable_offset,
        "geometryPrecision": geometry_precision,
        "returnZ": return_z,
        "returnM": return_m,
        "gdbVersion": gdb_version,
        "returnDistinctValues": return_distinct_values,
        "orderByFields": _join(order_by),
        "resultOffset": result_offset,
        "resultRecordCount": result_record_count,
        "groupByFieldsForStatistics": _join(group_by_fields),
        "outStatistics": list(out_statistics) if out_statistics else None,
    }
    parameters.update(kwargs)
    return Operation(_child(layer_endpoint, QUERY), parameters, **hooks)


def query_for_count(layer_endpoint: EndpointLike, where: str = "1=1", **kwargs: Any) -> Operation:
    return query(layer_endpoint, where=where, return_geometry=False, returnCountOnly=True, **kwargs)


def query_for_ids(layer_endpoint: EndpointLike, where: str = "1=1", **kwargs: Any) -> Operation:
    return query(layer_endpoint, where=where, return_geometry=False, returnIdsOnly=True, **kwargs)


def query_for_extent(layer_endpoint: EndpointLike, where: str = "1=1", **kwargs: Any) -> Operation:
    return query(
        layer_endpoint,
        where=where,
        return_geometry=False,
        returnExtentOnly=True,
        returnCountOnly=True,
        **kwargs,
    )


def delete_features(
    layer_endpoint: EndpointLike,
    where: Optional[str] = None,
    object_ids: Optional[Sequence[int]] = None,
    geometry: Optional[Dict[str, Any]] = None,
    geometry_type: Optional[str] = None,
    spatial_relationship: str = SPATIAL_REL_INTERSECTS,
    gdb_version: Optional[str] = None,
    rollback_on_failure: bool = True,
    **kwargs: Any,
) -> Operation:
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {
        "where": where,
        "objectIds": _join(object_ids),
        "spatialRel": spatial_relationship,
        "gdbVersion": gdb_version,
        "rollbackOnFailure": rollback_on_failure,
    }
    if geometry is not None:
        parameters.update(_geometry_parameters(geometry, geometry_type))
    parameters.update(kwargs)
    return Operation(_child(layer_endpoint, DELETE_FEATURES), parameters, **hooks)


def apply_edits(
    layer_endpoint: EndpointLike,
    adds: Optional[Sequence[Dict[str, Any]]] = None,
    updates: Optional[Sequence[Dict[str, Any]]] = None,
    deletes: Optional[Sequence[int]] = None,
    gdb_version: Optional[str] = None,
    rollback_on_failure: bool = True,
    use_global_ids: bool = False,
    **kwargs: Any,
) -> Operation:
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {
        "adds": list(adds) if adds else None,
        "updates": list(updates) if updates else None,
        "deletes": _join(deletes),
        "gdbVersion": gdb_version,
        "rollbackOnFailure": rollback_on_failure,
        "useGlobalIds": use_global_ids,
    }
    parameters.update(kwargs)
    return Operation(_child(layer_endpoint, APPLY_EDITS), parameters, **hooks)


def query_attachments(
    layer_endpoint: EndpointLike,
    object_ids: Optional[Sequence[int]] = None,
    definition_expression: Optional[str] = None,
    global_ids: Optional[Sequence[str]] = None,
    attachment_types: Optional[Sequence[str]] = None,
    **kwargs: Any,
) -> Operation:
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {
        "objectIds": _join(object_ids),
        "definitionExpression": definition_expression,
        "globalIds": _join(global_ids),
        "attachmentTypes": _join(attachment_types),
    }
    parameters.update(kwargs)
    return Operation(_child(layer_endpoint, QUERY_ATTACHMENTS), parameters, **hooks)


def delete_attachments(
    layer_endpoint: EndpointLike,
    object_id: int,
    attachment_ids: Sequence[int],
    **kwargs: Any,
) -> Operation:
    hooks = _hooks(kwargs)
    if not attachment_ids:
        raise ValueError("attachment_ids is empty.")
    parameters: Dict[str, Any] = {"attachmentIds": _join(attachment_ids)}
    parameters.update(kwargs)
    return Operation(_child(layer_endpoint, object_id, DELETE_ATTACHMENTS), parameters, **hooks)


def query_domains(service_endpoint: EndpointLike, layer_ids: Sequence[int], **kwargs: Any) -> Operation:
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {"layers": list(layer_ids)}
    parameters.update(kwargs)
    return Operation(_child(service_endpoint, QUERY_DOMAINS), parameters, **hooks)


def find(
    map_endpoint: EndpointLike,
    search_text: str,
    search_fields: Optional[Sequence[str]] = None,
    layer_ids: Optional[Sequence[int]] = None,
    contains: bool = True,
    return_geometry: bool = True,
    out_sr: Optional[Any] = None,
    return_z: bool = True,
    return_m: bool = False,
    **kwargs: Any,
) -> Operation:
    """Search map service layers for ``search_text``.

    Extra keyword arguments pass through as REST parameters, e.g.
    ``maxAllowableOffset``, ``geometryPrecision`` or ``gdbVersion``.
    """
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {
        "searchText": search_text,
        "contains": contains,
        "searchFields": _join(search_fields),
        "layers": _join(layer_ids),
        "returnGeometry": return_geometry,
        "sr": out_sr,
        "returnZ": return_z,
        "returnM": return_m,
    }
    parameters.update(kwargs)
    return Operation(_child(map_endpoint, FIND), parameters, **hooks)


def export_map(
    map_endpoint: EndpointLike,
    bbox: Optional[Sequence[float]] = None,
    bbox_sr: Optional[Any] = None,
    size: Sequence[int] = (400, 400),
    dpi: int = 96,
    image_sr: Optional[Any] = None,
    image_format: str = "png",
    transparent: bool = False,
    layer_definitions: Optional[Dict[str, str]] = None,
    time_from: Optional[datetime] = None,
    time_to: Optional[datetime] = None,
    map_scale: Optional[float] = None,
    rotation: Optional[float] = None,
    **kwargs: Any,
) -> Operation:
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {
        "bbox": _join(bbox),
        "bboxSR": bbox_sr,
        "size": _join(size),
        "dpi": dpi,
        "imageSR": image_sr,
        "format": image_format,
        "transparent": transparent,
        "layerDefs": layer_definitions,
        "time": _time_extent(time_from, time_to),
        "mapScale": map_scale,
        "rotation": rotation,
    }
    parameters.update(kwargs)
    return Operation(_child(map_endpoint, EXPORT_MAP), parameters, **hooks)


# Geocoding


def single_input_geocode(
    geocode_endpoint: EndpointLike,
    text: str,
    source_country: Optional[str] = None,
    max_locations: Optional[int] = None,
    magic_key: Optional[str] = None,
    out_fields: Optional[Sequence[str]] = None,
    out_sr: Optional[Any] = None,
    **kwargs: Any,
) -> Operation:
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {
        "text": text,
        "sourceCountry": source_country,
        "maxLocations": max_locations,
        "magicKey": magic_key,
        "outFields": _join(out_fields),
        "outSR": out_sr,
    }
    parameters.update(kwargs)
    return Operation(_child(geocode_endpoint, SINGLE_INPUT_GEOCODE), parameters, **hooks)


def suggest_geocode(geocode_endpoint: EndpointLike, text: str, **kwargs: Any) -> Operation:
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {"text": text}
    parameters.update(kwargs)
    return Operation(_child(geocode_endpoint, SUGGEST_GEOCODE), parameters, **hooks)


def reverse_geocode(
    geocode_endpoint: EndpointLike,
    location: Dict[str, Any],
    distance: Optional[float] = None,
    out_sr: Optional[Any] = None,
    **kwargs: Any,
) -> Operation:
    hooks = _hooks(kwargs)
    parameters: Dict[str, Any] = {"location": location, "distance": distance, "outSR": out_sr}
    parameters.update(kwargs)
    return Operation(_child(geocode_endpoint, REVERSE_GEOCODE), parameters, **hooks)


# Portal


def search_hosted_feature_services(
    username: Optional[str] = None,
    bbox: Optional[Sequence[float]] = None,
    sort_field: Optional[str] = None,
    sort_order: Optional[str] = None,
    num: int = 100,
    start: int = 1,
) -> Operation:
    search = 'type:"Feature Service"'
    if username:
        search = f'owner:{username} AND ({search})'
    parameters: Dict[str, Any] = {
        "q": search,
        "bbox": _join(bbox),
        "sortField": sort_field,
        "sortOrder": sort_order,
        "num": num,
        "start": start,
    }
    return Operation(OnlineEndpoint(PORTAL_SEARCH), parameters)


# Administration


def public_key() -> Operation:
    return Operation(AdminEndpoint(PUBLIC_KEY))


def service_status(service: ServiceDescription) -> Operation:
    return Operation(AdminEndpoint(SERVICE_STATUS.format(service.name, service.type)))


def start_service(service: ServiceDescription) -> Operation:
    return Operation(AdminEndpoint(START_SERVICE.format(service.name, service.type)))


def stop_service(service: ServiceDescription) -> Operation:
    return Operation(AdminEndpoint(STOP_SERVICE.format(service.name, service.type)))


def service_statistics(service: ServiceDescription) -> Operation:
    return Operation(AdminEndpoint(SERVICE_STATISTICS.format(service.name, service.type)))


def service_report(folder: str = "") -> Operation:
    path = SERVICE_REPORT.format(folder.replace("/", "")).replace("//", "/")
    return Operation(AdminEndpoint(path))
