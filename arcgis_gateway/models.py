"""
Response envelope and typed response models.

Every response carries an optional ``error`` object. A populated error means
the call failed even though the HTTP status was 200.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from .errors import OperationError

OBJECT_ID_NAME = "objectid"
GLOBAL_ID_NAME = "globalid"
ESRI_OID_FIELD_TYPE = "esriFieldTypeOID"


class ResponseModel(BaseModel):
    """Base for all wire models: unknown keys are kept, aliases are the wire names."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class PortalError(ResponseModel):
    """The ``error`` object of a failed call."""

    code: int = 0
    message: Optional[str] = None
    details: List[str] = Field(default_factory=list)
    description: Optional[str] = None

    @field_validator("details", mode="before")
    @classmethod
    def _coerce_details(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value]

    def to_exception(self) -> OperationError:
        return OperationError(self.code, self.message, self.details, self.description)

    def __str__(self) -> str:
        return "Code {0}: {1}.{2}\n{3}".format(
            self.code, self.message or "", self.description or "", " ".join(self.details)
        )


class Link(ResponseModel):
    """Hypermedia link describing how a response was obtained."""

    href: str
    rel: str = "self"
    method: str = "GET"
    data: Optional[Dict[str, str]] = None


class PortalResponse(ResponseModel):
    """Envelope shared by every response."""

    error: Optional[PortalError] = None
    links: Optional[List[Link]] = Field(default=None, alias="_links")

    def raise_for_error(self) -> None:
        """Raise :class:`OperationError` when the envelope carries an error."""
        if self.error is not None:
            raise self.error.to_exception()


# Server and layer descriptions


class AuthInfo(ResponseModel):
    is_token_based_security: bool = Field(default=False, alias="isTokenBasedSecurity")
    token_services_url: Optional[str] = Field(default=None, alias="tokenServicesUrl")
    short_lived_token_validity: Optional[int] = Field(default=None, alias="shortLivedTokenValidity")


class ServerInfoResponse(PortalResponse):
    current_version: Optional[float] = Field(default=None, alias="currentVersion")
    full_version: Optional[str] = Field(default=None, alias="fullVersion")
    soap_url: Optional[str] = Field(default=None, alias="soapUrl")
    secure_soap_url: Optional[str] = Field(default=None, alias="secureSoapUrl")
    owning_system_url: Optional[str] = Field(default=None, alias="owningSystemUrl")
    auth_info: Optional[AuthInfo] = Field(default=None, alias="authInfo")


class HealthCheckResponse(PortalResponse):
    success: bool = False


class FieldDescription(ResponseModel):
    name: str
    type: Optional[str] = None
    alias: Optional[str] = None
    length: Optional[int] = None
    domain: Optional[Dict[str, Any]] = None


class AdvancedQueryCapabilities(ResponseModel):
    supports_pagination: bool = Field(default=False, alias="supportsPagination")
    supports_statistics: bool = Field(default=False, alias="supportsStatistics")
    supports_order_by: bool = Field(default=False, alias="supportsOrderBy")
    supports_distinct: bool = Field(default=False, alias="supportsDistinct")


class ServiceLayerDescriptionResponse(PortalResponse):
    id: Optional[int] = None
    name: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    geometry_type: Optional[str] = Field(default=None, alias="geometryType")
    capabilities: Optional[str] = None
    max_record_count: Optional[int] = Field(default=None, alias="maxRecordCount")
    has_attachments: bool = Field(default=False, alias="hasAttachments")
    fields: List[FieldDescription] = Field(default_factory=list)
    advanced_query_capabilities: AdvancedQueryCapabilities = Field(
        default_factory=AdvancedQueryCapabilities, alias="advancedQueryCapabilities"
    )
    object_id_field: Optional[str] = Field(default=None, alias="objectIdField")
    global_id_field: Optional[str] = Field(default=None, alias="globalIdField")

    def resolve_object_id_field(self) -> Optional[str]:
        """Name of the object ID field, from ``objectIdField`` or the OID typed field."""
        if self.object_id_field:
            return self.object_id_field
        for field in self.fields:
            if field.type == ESRI_OID_FIELD_TYPE:
                return field.name
        return None


class ServiceDescription(ResponseModel):
    name: str
    type: str

    @property
    def path(self) -> str:
        return f"{self.name}/{self.type}"


class SiteFolderDescription(PortalResponse):
    path: Optional[str] = None
    current_version: Optional[float] = Field(default=None, alias="currentVersion")
    folders: List[str] = Field(default_factory=list)
    services: List[ServiceDescription] = Field(default_factory=list)


class SiteDescription(ResponseModel):
    resources: List[SiteFolderDescription] = Field(default_factory=list)

    @property
    def version(self) -> float:
        versions = [r.current_version for r in self.resources if r.current_version is not None]
        return max(versions) if versions else 0.0

    @property
    def services(self) -> List[ServiceDescription]:
        return [s for r in self.resources if r.error is None for s in r.services]


class ServiceLayerSummary(ResponseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    parent_layer_id: Optional[int] = Field(default=None, alias="parentLayerId")
    sub_layer_ids: Optional[List[int]] = Field(default=None, alias="subLayerIds")
    default_visibility: Optional[bool] = Field(default=None, alias="defaultVisibility")


class ServiceDescriptionDetailsResponse(PortalResponse):
    """Service level metadata; ``capabilities`` and query formats arrive comma separated."""

    current_version: Optional[float] = Field(default=None, alias="currentVersion")
    service_description: Optional[str] = Field(default=None, alias="serviceDescription")
    name: Optional[str] = None
    description: Optional[str] = None
    copyright_text: Optional[str] = Field(default=None, alias="copyrightText")
    capabilities: List[str] = Field(default_factory=list)
    supported_query_formats: List[str] = Field(default_factory=list, alias="supportedQueryFormats")
    min_scale: Optional[float] = Field(default=None, alias="minScale")
    max_scale: Optional[float] = Field(default=None, alias="maxScale")
    max_record_count: Optional[int] = Field(default=None, alias="maxRecordCount")
    spatial_reference: Optional[Dict[str, Any]] = Field(default=None, alias="spatialReference")
    single_fused_map_cache: Optional[bool] = Field(default=None, alias="singleFusedMapCache")
    tile_info: Optional[Dict[str, Any]] = Field(default=None, alias="tileInfo")
    initial_extent: Optional[Dict[str, Any]] = Field(default=None, alias="initialExtent")
    full_extent: Optional[Dict[str, Any]] = Field(default=None, alias="fullExtent")
    time_info: Optional[Dict[str, Any]] = Field(default=None, alias="timeInfo")
    document_info: Optional[Dict[str, Any]] = Field(default=None, alias="documentInfo")
    layers: List[ServiceLayerSummary] = Field(default_factory=list)
    tables: List[ServiceLayerSummary] = Field(default_factory=list)

    @field_validator("capabilities", "supported_query_formats", mode="before")
    @classmethod
    def _split_commas(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value


# Features and queries


class Feature(ResponseModel):
    """A feature: attribute map plus an opaque geometry object."""

    attributes: Dict[str, Any] = Field(default_factory=dict)
    geometry: Optional[Dict[str, Any]] = None

    _lower_attributes: Optional[Dict[str, Any]] = PrivateAttr(default=None)

    def _attribute(self, name: str) -> Any:
        if self._lower_attributes is None:
            self._lower_attributes = {k.lower(): v for k, v in self.attributes.items()}
        return self._lower_attributes.get(name.lower())

    def get_object_id(self, field_name: str = OBJECT_ID_NAME) -> int:
        """Object ID from a case-insensitive attribute lookup, 0 when absent."""
        value = self._attribute(field_name)
        try:
            return int(value) if value is not None else 0
        except (TypeError, ValueError):
            return 0

    @property
    def object_id(self) -> int:
        return self.get_object_id()

    @property
    def global_id(self) -> Optional[str]:
        value = self._attribute(GLOBAL_ID_NAME)
        return str(value).strip("{}") if value else None


class QueryResponse(PortalResponse):
    display_field_name: Optional[str] = Field(default=None, alias="displayFieldName")
    object_id_field_name: Optional[str] = Field(default=None, alias="objectIdFieldName")
    global_id_field_name: Optional[str] = Field(default=None, alias="globalIdFieldName")
    geometry_type: Optional[str] = Field(default=None, alias="geometryType")
    spatial_reference: Optional[Dict[str, Any]] = Field(default=None, alias="spatialReference")
    field_aliases: Dict[str, str] = Field(default_factory=dict, alias="fieldAliases")
    fields: List[FieldDescription] = Field(default_factory=list)
    features: List[Feature] = Field(default_factory=list)
    exceeded_transfer_limit: Optional[bool] = Field(default=None, alias="exceededTransferLimit")


class QueryForCountResponse(PortalResponse):
    count: int = 0


class QueryForIdsResponse(PortalResponse):
    object_id_field_name: Optional[str] = Field(default=None, alias="objectIdFieldName")
    object_ids: List[int] = Field(default_factory=list, alias="objectIds")

    @field_validator("object_ids", mode="before")
    @classmethod
    def _null_ids(cls, value: Any) -> Any:
        return [] if value is None else value


class QueryForExtentResponse(PortalResponse):
    count: int = 0
    extent: Optional[Dict[str, Any]] = None


class LayerFeatureResponse(PortalResponse):
    feature: Optional[Feature] = None


class EditResult(ResponseModel):
    object_id: Optional[int] = Field(default=None, alias="objectId")
    global_id: Optional[str] = Field(default=None, alias="globalId")
    success: bool = False
    error: Optional[PortalError] = None


class DeleteFeaturesResponse(PortalResponse):
    delete_results: List[EditResult] = Field(default_factory=list, alias="deleteResults")
    success: Optional[bool] = None


class ApplyEditsResponse(PortalResponse):
    add_results: List[EditResult] = Field(default_factory=list, alias="addResults")
    update_results: List[EditResult] = Field(default_factory=list, alias="updateResults")
    delete_results: List[EditResult] = Field(default_factory=list, alias="deleteResults")

    @property
    def failures(self) -> List[EditResult]:
        return [r for r in self.add_results + self.update_results + self.delete_results if not r.success]


class Domain(ResponseModel):
    type: Optional[str] = None
    name: Optional[str] = None
    coded_values: List[Dict[str, Any]] = Field(default_factory=list, alias="codedValues")
    range: Optional[List[Any]] = None


class QueryDomainsResponse(PortalResponse):
    domains: List[Domain] = Field(default_factory=list)


class FindResult(ResponseModel):
    layer_id: Optional[int] = Field(default=None, alias="layerId")
    layer_name: Optional[str] = Field(default=None, alias="layerName")
    display_field_name: Optional[str] = Field(default=None, alias="displayFieldName")
    found_field_name: Optional[str] = Field(default=None, alias="foundFieldName")
    value: Optional[Any] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    geometry_type: Optional[str] = Field(default=None, alias="geometryType")
    geometry: Optional[Dict[str, Any]] = None


class FindResponse(PortalResponse):
    results: List[FindResult] = Field(default_factory=list)


class ExportMapResponse(PortalResponse):
    image_url: Optional[str] = Field(default=None, alias="href")
    width: Optional[int] = None
    height: Optional[int] = None
    extent: Optional[Dict[str, Any]] = None
    scale: Optional[float] = None

    @property
    def image_format(self) -> str:
        if not self.image_url:
            return ""
        return self.image_url.rsplit(".", 1)[-1]


# Attachments


class Attachment(ResponseModel):
    id: int
    content_type: Optional[str] = Field(default=None, alias="contentType")
    size: Optional[int] = None
    name: Optional[str] = None
    url: Optional[str] = None

    @property
    def safe_file_name(self) -> str:
        name = self.name or f"attachment-{self.id}"
        return "".join("_" if c in '<>:"/\\|?*' else c for c in name)


class AttachmentGroup(ResponseModel):
    parent_object_id: Optional[int] = Field(default=None, alias="parentObjectId")
    parent_global_id: Optional[str] = Field(default=None, alias="parentGlobalId")
    attachment_infos: List[Attachment] = Field(default_factory=list, alias="attachmentInfos")


class QueryAttachmentsResponse(PortalResponse):
    attachment_groups: List[AttachmentGroup] = Field(default_factory=list, alias="attachmentGroups")


class DeleteAttachmentsResponse(PortalResponse):
    delete_attachment_results: List[EditResult] = Field(default_factory=list, alias="deleteAttachmentResults")


class AddAttachmentResponse(PortalResponse):
    result: Optional[EditResult] = Field(default=None, alias="addAttachmentResult")


class UpdateAttachmentResponse(PortalResponse):
    result: Optional[EditResult] = Field(default=None, alias="updateAttachmentResult")


# Geocoding


class GeocodeLocation(ResponseModel):
    name: Optional[str] = None
    extent: Optional[Dict[str, Any]] = None
    feature: Optional[Feature] = None


class SingleInputGeocodeResponse(PortalResponse):
    spatial_reference: Optional[Dict[str, Any]] = Field(default=None, alias="spatialReference")
    locations: List[GeocodeLocation] = Field(default_factory=list)


class Suggestion(ResponseModel):
    text: Optional[str] = None
    magic_key: Optional[str] = Field(default=None, alias="magicKey")
    is_collection: bool = Field(default=False, alias="isCollection")


class SuggestGeocodeResponse(PortalResponse):
    suggestions: List[Suggestion] = Field(default_factory=list)


class ReverseGeocodeResponse(PortalResponse):
    address: Dict[str, Any] = Field(default_factory=dict)
    location: Optional[Dict[str, Any]] = None


# Portal search


class HostedFeatureService(ResponseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    owner: Optional[str] = None
    url: Optional[str] = None


class SearchHostedFeatureServicesResponse(PortalResponse):
    total: int = 0
    start: int = 0
    num: int = 0
    next_start: int = Field(default=-1, alias="nextStart")
    results: List[HostedFeatureService] = Field(default_factory=list)


# Administration


class PublicKeyResponse(PortalResponse):
    public_key: Optional[str] = Field(default=None, alias="publicKey")
    modulus_hex: Optional[str] = Field(default=None, alias="modulus")

    @property
    def exponent(self) -> Optional[bytes]:
        return hex_to_bytes(self.public_key)

    @property
    def modulus(self) -> Optional[bytes]:
        return hex_to_bytes(self.modulus_hex)


class ServiceStatusResponse(PortalResponse):
    expected: Optional[str] = Field(default=None, alias="configuredState")
    actual: Optional[str] = Field(default=None, alias="realTimeState")


class StartStopServiceResponse(PortalResponse):
    status: Optional[str] = None


class StatisticsSummary(ResponseModel):
    folder_name: Optional[str] = Field(default=None, alias="folderName")
    service_name: Optional[str] = Field(default=None, alias="serviceName")
    type: Optional[str] = None
    start_time: Optional[int] = Field(default=None, alias="startTime")
    max: Optional[int] = None
    busy: Optional[int] = None
    free: Optional[int] = None
    initializing: Optional[int] = None
    not_created: Optional[int] = Field(default=None, alias="notCreated")
    transactions: Optional[int] = None
    total_busy_time: Optional[int] = Field(default=None, alias="totalBusyTime")
    is_statistics_available: Optional[bool] = Field(default=None, alias="isStatisticsAvailable")


class MachineStatistics(StatisticsSummary):
    machine_name: Optional[str] = Field(default=None, alias="machineName")


class ServiceStatisticsResponse(PortalResponse):
    summary: Optional[StatisticsSummary] = None
    per_machine: List[MachineStatistics] = Field(default_factory=list, alias="perMachine")


class ServiceReport(ResponseModel):
    folder_name: Optional[str] = Field(default=None, alias="folderName")
    service_name: Optional[str] = Field(default=None, alias="serviceName")
    type: Optional[str] = None
    description: Optional[str] = None
    status: Optional[Dict[str, Any]] = None


class ServiceReportResponse(PortalResponse):
    reports: List[ServiceReport] = Field(default_factory=list)


def hex_to_bytes(value: Optional[str]) -> Optional[bytes]:
    """Decode a hex string, left padding odd lengths with a zero."""
    if not value or not value.strip():
        return None
    value = value.strip()
    if len(value) % 2:
        value = "0" + value
    return bytes.fromhex(value)
