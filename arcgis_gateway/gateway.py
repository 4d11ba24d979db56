"""
Gateways: the transport core.

A gateway owns one HTTP client and, optionally, one token provider. Every
call goes through :meth:`GatewayBase.get` or :meth:`GatewayBase.post`:

- GET requests whose URL would exceed ``max_get_request_length`` are sent as
  POST instead.
- ``f=json`` and the token are attached once; a token flagged ``ssl`` forces
  ``https``.
- Non-2xx responses raise :class:`TransportError`; an ``error`` envelope in a
  200 response raises :class:`OperationError`.
- Cancellation (an ``asyncio.Event`` passed as ``cancel``) and timeouts are
  logged and return ``None``.
"""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar, Union
from urllib.parse import urlencode

import httpx

from . import operations as ops
from .config import GatewaySettings, get_settings
from .endpoint import AbsoluteEndpoint, Endpoint, ServerEndpoint, as_root_url
from .errors import GatewayException, TransportError
from .http import (
    HttpClientFactory,
    RequestCancelled,
    default_http_client,
    is_cancelled,
    raise_for_status,
    send_cancellable,
    set_referer,
    validate_url,
)
from .logging import get_logger
from .models import (
    OBJECT_ID_NAME,
    ApplyEditsResponse,
    Attachment,
    DeleteAttachmentsResponse,
    DeleteFeaturesResponse,
    ExportMapResponse,
    Feature,
    FindResponse,
    HealthCheckResponse,
    Link,
    PortalError,
    PortalResponse,
    PublicKeyResponse,
    QueryAttachmentsResponse,
    QueryDomainsResponse,
    QueryForCountResponse,
    QueryForExtentResponse,
    QueryForIdsResponse,
    QueryResponse,
    ReverseGeocodeResponse,
    SearchHostedFeatureServicesResponse,
    ServerInfoResponse,
    ServiceDescription,
    ServiceDescriptionDetailsResponse,
    ServiceLayerDescriptionResponse,
    ServiceReportResponse,
    ServiceStatisticsResponse,
    ServiceStatusResponse,
    SingleInputGeocodeResponse,
    SiteDescription,
    SiteFolderDescription,
    StartStopServiceResponse,
    SuggestGeocodeResponse,
    LayerFeatureResponse,
)
from .operations import Operation
from .serializer import JsonSerializer, Serializer
from .token import Token
from .token_providers import (
    BaseTokenProvider,
    FederatedTokenProvider,
    OnlineTokenProvider,
    ServerFederatedWithPortalTokenProvider,
    TokenProvider,
)

R = TypeVar("R", bound=PortalResponse)

AGO_HOSTS = ("http://www.arcgis.com", "https://www.arcgis.com")


class ClientBase:
    """Owned HTTP client, token resolution and response unwrapping."""

    logger_name = "arcgis_gateway.gateway"

    def __init__(
        self,
        root_url: str,
        *,
        token_provider: Optional[BaseTokenProvider] = None,
        serializer: Optional[Serializer] = None,
        http_client_factory: Optional[HttpClientFactory] = None,
        settings: Optional[GatewaySettings] = None,
    ) -> None:
        if not root_url or not root_url.strip():
            raise ValueError("root_url is null.")

        self.settings = settings or get_settings()
        self.root_url = as_root_url(root_url)
        self.token_provider = token_provider
        self.serializer: Serializer = serializer or JsonSerializer()
        self.logger = get_logger(self.logger_name)
        self.http_client_factory = http_client_factory or (
            lambda: default_http_client(self.settings.request_timeout)
        )
        self._client: Optional[httpx.AsyncClient] = self.http_client_factory()

        self.logger.debug(
            "Created gateway",
            gateway=type(self).__name__,
            root_url=self.root_url,
            token_provider=type(token_provider).__name__ if token_provider else None,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} is closed")
        return self._client

    @property
    def closed(self) -> bool:
        return self._client is None

    async def check_generate_token(self, cancel: Optional[asyncio.Event] = None) -> Optional[Token]:
        """Token from the provider, with its referer applied to the client."""
        if self.token_provider is None:
            return None

        token = await self.token_provider.check_generate_token(cancel)
        if token is not None:
            set_referer(self.client, token.referer)
        return token

    def _cancelled(self, method: str, url: str, exc: Optional[BaseException] = None) -> None:
        self.logger.warning(
            f"{method} cancelled (exception swallowed)",
            url=url,
            error_type=type(exc).__name__ if exc else None,
        )

    def _unwrap(self, model: Type[R], body: str, operation: Operation, link: Optional[Link]) -> R:
        result = self.serializer.parse(model, body)
        result.raise_for_error()

        if link is not None and self.settings.include_hypermedia:
            result.links = [link]

        if operation.after_request is not None:
            operation.after_request(body)
        return result

    async def aclose(self) -> None:
        """Release the HTTP client and the token provider; safe to call twice."""
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

        provider, self.token_provider = self.token_provider, None
        if provider is not None:
            await provider.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class GatewayBase(ClientBase):
    """Operations common to servers and portals."""

    # Transport

    async def get(self, operation: Operation, model: Type[R], cancel: Optional[asyncio.Event] = None) -> Optional[R]:
        if operation is None:
            raise ValueError("operation is null.")
        if operation.endpoint is None:
            raise ValueError("operation.endpoint is null.")

        base_url = operation.build_absolute_url(self.root_url)
        parameters = self.serializer.flatten(operation)
        url = _with_query(base_url, parameters)

        if len(url) > self.settings.max_get_request_length:
            self.logger.debug(
                "Url length is greater than maximum configured, switching to POST",
                url_length=len(url),
                max_length=self.settings.max_get_request_length,
            )
            return await self.post(operation, model, cancel)

        if operation.before_request is not None:
            operation.before_request()

        token = await self.check_generate_token(cancel)
        if is_cancelled(cancel):
            return None

        parameters.setdefault("f", "json")
        link = Link(href=_with_query(base_url, _public(parameters)), rel="self", method="GET")
        if token is not None and token.is_usable and "token" not in parameters:
            parameters["token"] = token.value
            if token.always_use_ssl:
                base_url = base_url.replace("http:", "https:", 1)
        url = _with_query(base_url, parameters)

        validate_url(url)
        self.logger.debug("GET", url=base_url)

        try:
            response = await send_cancellable(self.client.get(url), cancel)
        except (RequestCancelled, httpx.TimeoutException) as exc:
            self._cancelled("GET", base_url, exc)
            return None
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {base_url} failed: {exc}", details={"url": base_url}) from exc

        raise_for_status(response)
        return self._unwrap(model, response.text, operation, link)

    async def post(self, operation: Operation, model: Type[R], cancel: Optional[asyncio.Event] = None) -> Optional[R]:
        if operation is None:
            raise ValueError("operation is null.")
        if operation.endpoint is None:
            raise ValueError("operation.endpoint is null.")

        if operation.before_request is not None:
            operation.before_request()

        parameters = self.serializer.flatten(operation)
        url = operation.build_absolute_url(self.root_url).split("?")[0]

        token = await self.check_generate_token(cancel)
        if is_cancelled(cancel):
            return None

        parameters.setdefault("f", "json")
        if token is not None and token.is_usable and "token" not in parameters:
            parameters["token"] = token.value
            if token.always_use_ssl:
                url = url.replace("http:", "https:", 1)

        content = self._form_content(parameters)
        validate_url(url)
        self.logger.debug("POST", url=url)

        try:
            response = await send_cancellable(self.client.post(url, **content), cancel)
        except (RequestCancelled, httpx.TimeoutException) as exc:
            self._cancelled("POST", url, exc)
            return None
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {url} failed: {exc}", details={"url": url}) from exc

        raise_for_status(response)
        link = Link(href=url, rel="self", method="POST", data=_public(parameters))
        return self._unwrap(model, response.text, operation, link)

    def _form_content(self, parameters: Dict[str, str]) -> Dict[str, Any]:
        """``data=`` for form encoding, or ``files=`` when a value cannot be form encoded."""
        try:
            for key, value in parameters.items():
                if len(value) > self.settings.max_form_value_length:
                    raise ValueError(f"Value for {key} exceeds {self.settings.max_form_value_length} characters")
                value.encode("utf-8")
        except ValueError as exc:
            self.logger.warning("POST format exception, using multipart (exception swallowed)", error=str(exc))
            return {"files": {k: (None, v.encode("utf-8", "surrogatepass")) for k, v in parameters.items()}}
        return {"data": parameters}

    # Service resources

    async def ping(self, endpoint: ops.EndpointLike, cancel: Optional[asyncio.Event] = None) -> Optional[PortalResponse]:
        return await self.get(ops.ping(endpoint), PortalResponse, cancel)

    async def info(self, cancel: Optional[asyncio.Event] = None) -> Optional[ServerInfoResponse]:
        return await self.get(ops.server_info(), ServerInfoResponse, cancel)

    async def describe_service(
        self, service_endpoint: ops.EndpointLike, cancel: Optional[asyncio.Event] = None
    ) -> Optional[ServiceDescriptionDetailsResponse]:
        if service_endpoint is None:
            raise ValueError("service_endpoint is null.")
        return await self.get(ops.describe_service(service_endpoint), ServiceDescriptionDetailsResponse, cancel)

    async def describe_layer(
        self, layer_endpoint: ops.EndpointLike, cancel: Optional[asyncio.Event] = None
    ) -> Optional[ServiceLayerDescriptionResponse]:
        if layer_endpoint is None:
            raise ValueError("layer_endpoint is null.")
        return await self.get(ops.describe_layer(layer_endpoint), ServiceLayerDescriptionResponse, cancel)

    async def get_feature(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[LayerFeatureResponse]:
        return await self.get(operation, LayerFeatureResponse, cancel)

    async def query(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[QueryResponse]:
        return await self.get(operation, QueryResponse, cancel)

    async def batch_query(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[QueryResponse]:
        """Run a query and keep fetching while the server reports it truncated the result.

        Layers that support pagination are paged with ``resultOffset`` and
        ``resultRecordCount``; other layers exclude the object IDs already
        seen from the ``where`` clause. The object ID field is added to
        ``outFields`` when the query leaves it out. Features are de-duplicated
        by object ID and the loop stops when a batch is empty, carries no
        unseen object ID or no longer reports ``exceededTransferLimit``.
        """
        result = await self.query(operation, cancel)
        if result is None or not result.features or not result.exceeded_transfer_limit:
            return result

        layer_url = operation.relative_url.rsplit("/" + ops.QUERY, 1)[0]
        layer_endpoint: Endpoint = (
            AbsoluteEndpoint(layer_url) if isinstance(operation.endpoint, AbsoluteEndpoint) else ServerEndpoint(layer_url)
        )
        layer = await self.describe_layer(layer_endpoint, cancel)
        if layer is None:
            return result

        paginate = layer.advanced_query_capabilities.supports_pagination
        oid_field = layer.resolve_object_id_field() or result.object_id_field_name or OBJECT_ID_NAME

        out_fields = _with_field(operation.parameters.get("outFields"), oid_field)
        if out_fields is not None:
            self.logger.debug("Adding object ID field to batched query", field=oid_field, url=operation.relative_url)
            operation = operation.with_parameters(outFields=out_fields)
            first = await self.query(operation, cancel)
            if first is None:
                return result
            result = first
            if not result.features or not result.exceeded_transfer_limit:
                return result

        batch_size = len(result.features)
        original_where = operation.parameters.get("where") or "1=1"
        base_offset = operation.parameters.get("resultOffset") or 0

        features: List[Feature] = []
        seen_ids: List[int] = []
        seen = set()

        def merge(batch: List[Feature]) -> int:
            """Keep unseen features; returns the number of new object IDs."""
            new_ids = 0
            for feature in batch:
                object_id = feature.get_object_id(oid_field)
                if object_id:
                    if object_id in seen:
                        continue
                    seen.add(object_id)
                    seen_ids.append(object_id)
                    new_ids += 1
                features.append(feature)
            return new_ids

        merge(result.features)
        loop = 1
        exceeded = True

        while exceeded:
            self.logger.info(
                "Exceeded query transfer limit, batching query",
                batch_size=batch_size,
                url=operation.relative_url,
                loop=loop,
                pagination=paginate,
            )

            if paginate:
                batch_operation = operation.with_parameters(
                    resultOffset=base_offset + batch_size * loop,
                    resultRecordCount=batch_size,
                )
            else:
                if not seen_ids:
                    self.logger.warning(
                        "No object IDs to exclude, stopping", field=oid_field, url=operation.relative_url, loop=loop
                    )
                    result.features = features
                    return result
                excluded = ",".join(str(i) for i in seen_ids)
                batch_operation = operation.with_parameters(
                    where=f"({original_where}) AND ({oid_field} not in ({excluded}))"
                )

            batch = await self.query(batch_operation, cancel)
            if batch is None:
                # cancelled: hand back what was collected, still flagged as truncated
                result.features = features
                return result

            if not batch.features:
                break

            if not merge(batch.features):
                self.logger.warning("Batch returned no new object IDs, stopping", url=operation.relative_url, loop=loop)
                break

            exceeded = bool(batch.exceeded_transfer_limit)
            loop += 1

        result.features = features
        result.exceeded_transfer_limit = False
        return result

    async def query_for_count(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[QueryForCountResponse]:
        return await self.get(operation, QueryForCountResponse, cancel)

    async def query_for_ids(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[QueryForIdsResponse]:
        return await self.get(operation, QueryForIdsResponse, cancel)

    async def query_for_extent(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[QueryForExtentResponse]:
        return await self.get(operation, QueryForExtentResponse, cancel)

    async def delete_features(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[DeleteFeaturesResponse]:
        return await self.post(operation, DeleteFeaturesResponse, cancel)

    async def apply_edits(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[ApplyEditsResponse]:
        return await self.post(operation, ApplyEditsResponse, cancel)

    async def query_attachments(
        self, operation: Operation, cancel: Optional[asyncio.Event] = None
    ) -> Optional[QueryAttachmentsResponse]:
        return await self.post(operation, QueryAttachmentsResponse, cancel)

    async def delete_attachments(
        self, operation: Operation, cancel: Optional[asyncio.Event] = None
    ) -> Optional[DeleteAttachmentsResponse]:
        return await self.post(operation, DeleteAttachmentsResponse, cancel)

    async def query_domains(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[QueryDomainsResponse]:
        return await self.get(operation, QueryDomainsResponse, cancel)

    async def find(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[FindResponse]:
        return await self.get(operation, FindResponse, cancel)

    async def export_map(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[ExportMapResponse]:
        return await self.get(operation, ExportMapResponse, cancel)

    # Downloads

    async def download_attachment_to_local(self, attachment: Attachment, document_location: Union[str, Path]) -> Path:
        """Save an attachment into ``document_location``; existing files are never overwritten."""
        if attachment is None:
            raise ValueError("attachment is null.")
        if not attachment.url:
            raise ValueError("attachment.url is null.")
        if not attachment.name:
            raise ValueError("attachment.name is null.")
        if not document_location:
            raise ValueError("document_location is null.")

        content = await self._download(attachment.url)

        folder = Path(document_location)
        target = folder / attachment.safe_file_name
        revision = 1
        while target.exists():
            target = folder / f"rev-{revision}-{attachment.safe_file_name}"
            revision += 1

        target.write_bytes(content)
        self.logger.debug("Saved attachment", path=str(target))
        return target

    async def download_export_map_to_local(
        self,
        export_map_response: ExportMapResponse,
        folder_location: Union[str, Path],
        file_name: Optional[str] = None,
    ) -> Path:
        """Save an exported map image as ``<file_name>.<format>``."""
        if export_map_response is None:
            raise ValueError("export_map_response is null.")
        if not export_map_response.image_url:
            raise ValueError("export_map_response.image_url is null.")
        if not folder_location:
            raise ValueError("folder_location is null.")

        content = await self._download(export_map_response.image_url)

        target = Path(folder_location) / f"{file_name or uuid.uuid4()}.{export_map_response.image_format}"
        target.write_bytes(content)
        self.logger.debug("Saved export map response", path=str(target))
        return target

    async def _download(self, url: str) -> bytes:
        validate_url(url)
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {url} failed: {exc}", details={"url": url}) from exc
        raise_for_status(response)
        return response.content


class PortalGateway(GatewayBase):
    """Gateway for an ArcGIS Server site."""

    @classmethod
    async def create(
        cls,
        root_url: str,
        username: str,
        password: str,
        *,
        serializer: Optional[Serializer] = None,
        http_client_factory: Optional[HttpClientFactory] = None,
        settings: Optional[GatewaySettings] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> "PortalGateway":
        """Create a gateway whose token provider matches the server's token service.

        ArcGIS Online owned servers use :class:`OnlineTokenProvider`, servers
        federated with a portal exchange a portal token through
        :class:`FederatedTokenProvider`, and everything else gets a direct
        :class:`TokenProvider`. Servers without a token service are anonymous.
        """
        if not root_url or not root_url.strip():
            raise ValueError("root_url is null.")

        common = dict(serializer=serializer, http_client_factory=http_client_factory, settings=settings)

        async with cls(root_url, **common) as discovery:
            gateway_root = discovery.root_url
            info = await discovery.info(cancel)

        if info is None:
            raise TransportError(
                f"Unable to get ArcGIS Server information for {gateway_root}. "
                "Check the ArcGIS Server URL and try again.",
                details={"root_url": gateway_root},
            )

        token_provider: Optional[BaseTokenProvider] = None
        token_url = info.auth_info.token_services_url if info.auth_info else None

        if info.owning_system_url and info.owning_system_url.lower().startswith(AGO_HOSTS):
            token_provider = OnlineTokenProvider(username, password, **common)
        elif token_url:
            if not token_url.lower().startswith(gateway_root.lower()):
                portal_url = token_url.replace("/generateToken", "")
                token_provider = FederatedTokenProvider(
                    ServerFederatedWithPortalTokenProvider(portal_url, username, password, **common),
                    portal_url,
                    gateway_root,
                    referer=token_url.replace("/sharing/rest/generateToken", "/rest"),
                    **common,
                )
            else:
                token_provider = TokenProvider(token_url, username, password, **common)

        return cls(root_url, token_provider=token_provider, **common)

    @classmethod
    def with_credentials(cls, root_url: str, username: Optional[str], password: Optional[str], **kwargs) -> "PortalGateway":
        """Gateway with a direct token provider, or anonymous without credentials."""
        token_provider = None
        if username and username.strip() and password and password.strip():
            token_provider = TokenProvider(
                root_url,
                username,
                password,
                serializer=kwargs.get("serializer"),
                http_client_factory=kwargs.get("http_client_factory"),
                settings=kwargs.get("settings"),
            )
        return cls(root_url, token_provider=token_provider, **kwargs)

    async def health_check(self, cancel: Optional[asyncio.Event] = None) -> Optional[HealthCheckResponse]:
        return await self.get(ops.health_check(), HealthCheckResponse, cancel)

    async def describe_site(self, cancel: Optional[asyncio.Event] = None) -> SiteDescription:
        """Walk the services directory, one entry per folder.

        Folders that cannot be read are recorded as entries carrying an
        ``error`` instead of failing the walk.
        """
        resources = await self._describe_folder(ServerEndpoint("/"), cancel)
        return SiteDescription(resources=resources)

    async def _describe_folder(self, endpoint: ServerEndpoint, cancel: Optional[asyncio.Event]) -> List[SiteFolderDescription]:
        try:
            folder = await self.get(Operation(endpoint), SiteFolderDescription, cancel)
        except GatewayException as exc:
            self.logger.warning("Unable to describe folder", path=endpoint.relative_url, error=exc.message)
            return [
                SiteFolderDescription(
                    path=endpoint.relative_url,
                    error=PortalError(
                        message=f"{type(exc).__name__} for Get SiteFolderDescription at path {endpoint.relative_url}",
                        details=[exc.message],
                    ),
                )
            ]

        if folder is None:
            return []

        folder.path = endpoint.relative_url
        result = [folder]
        for name in folder.folders:
            if is_cancelled(cancel):
                break
            child = ServerEndpoint(f"{endpoint.relative_url.rstrip('/')}/{name.rsplit('/', 1)[-1]}")
            result.extend(await self._describe_folder(child, cancel))
        return result

    async def describe_services(
        self,
        services: Union[SiteDescription, Sequence[ServiceDescription]],
        cancel: Optional[asyncio.Event] = None,
    ) -> List[ServiceDescriptionDetailsResponse]:
        """Describe each service in turn; stops early when cancelled."""
        if isinstance(services, SiteDescription):
            services = services.services
        result: List[ServiceDescriptionDetailsResponse] = []
        for service in services:
            if is_cancelled(cancel):
                break
            details = await self.describe_service(ServerEndpoint(service.path), cancel)
            if details is None:
                break
            result.append(details)
        return result

    # Geocoding

    async def single_input_geocode(
        self, operation: Operation, cancel: Optional[asyncio.Event] = None
    ) -> Optional[SingleInputGeocodeResponse]:
        return await self.get(operation, SingleInputGeocodeResponse, cancel)

    async def suggest_geocode(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[SuggestGeocodeResponse]:
        return await self.get(operation, SuggestGeocodeResponse, cancel)

    async def reverse_geocode(self, operation: Operation, cancel: Optional[asyncio.Event] = None) -> Optional[ReverseGeocodeResponse]:
        return await self.get(operation, ReverseGeocodeResponse, cancel)

    # Administration

    async def public_key(self, cancel: Optional[asyncio.Event] = None) -> Optional[PublicKeyResponse]:
        return await self.get(ops.public_key(), PublicKeyResponse, cancel)

    async def service_status(
        self, service: ServiceDescription, cancel: Optional[asyncio.Event] = None
    ) -> Optional[ServiceStatusResponse]:
        return await self.get(ops.service_status(service), ServiceStatusResponse, cancel)

    async def start_service(
        self, service: ServiceDescription, cancel: Optional[asyncio.Event] = None
    ) -> Optional[StartStopServiceResponse]:
        return await self.post(ops.start_service(service), StartStopServiceResponse, cancel)

    async def stop_service(
        self, service: ServiceDescription, cancel: Optional[asyncio.Event] = None
    ) -> Optional[StartStopServiceResponse]:
        return await self.post(ops.stop_service(service), StartStopServiceResponse, cancel)

    async def service_statistics(
        self, service: ServiceDescription, cancel: Optional[asyncio.Event] = None
    ) -> Optional[ServiceStatisticsResponse]:
        return await self.get(ops.service_statistics(service), ServiceStatisticsResponse, cancel)

    async def service_report(self, folder: str = "", cancel: Optional[asyncio.Event] = None) -> Optional[ServiceReportResponse]:
        return await self.get(ops.service_report(folder), ServiceReportResponse, cancel)


class OnlineGateway(GatewayBase):
    """Gateway for ArcGIS Online (or another portal's ``sharing/rest`` API)."""

    def __init__(self, root_url: Optional[str] = None, **kwargs) -> None:
        settings = kwargs.get("settings") or get_settings()
        super().__init__(root_url or settings.portal_url, **kwargs)

    async def describe_site(
        self, username: Optional[str] = None, cancel: Optional[asyncio.Event] = None
    ) -> Optional[SearchHostedFeatureServicesResponse]:
        """Hosted feature services, owned by ``username`` (or the token provider's user) when known."""
        if not username and self.token_provider is not None:
            username = self.token_provider.user_name
        return await self.get(ops.search_hosted_feature_services(username), SearchHostedFeatureServicesResponse, cancel)


def _with_query(url: str, parameters: Dict[str, str]) -> str:
    if not parameters:
        return url
    return url + ("&" if "?" in url else "?") + urlencode(parameters)


def _public(parameters: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in parameters.items() if k != "token"}


def _with_field(out_fields: Any, field: str) -> Optional[str]:
    """``outFields`` with ``field`` appended, or None when it is already returned."""
    if out_fields is None or out_fields == "":
        return None
    fields = out_fields.split(",") if isinstance(out_fields, str) else [str(f) for f in out_fields]
    names = {f.strip().lower() for f in fields}
    if "*" in names or field.lower() in names:
        return None
    return ",".join([f.strip() for f in fields] + [field])

