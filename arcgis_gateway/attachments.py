"""
Attachment uploads.

Adding or updating an attachment sends the file as a multipart ``attachment``
part, so it cannot go through the form encoded POST of the gateways. Token,
referer, cancellation and error envelope handling are the same.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional, Type

import httpx

from .endpoint import Endpoint, ServerEndpoint
from .errors import TransportError
from .gateway import ClientBase, R
from .http import RequestCancelled, is_cancelled, raise_for_status, send_cancellable, validate_url
from .models import AddAttachmentResponse, Link, UpdateAttachmentResponse
from .operations import EndpointLike, Operation

ADD_ATTACHMENT = "addAttachment"
UPDATE_ATTACHMENT = "updateAttachment"


@dataclass(frozen=True)
class AttachmentUpload:
    """A file to attach to a feature."""

    layer_endpoint: EndpointLike
    object_id: int
    content: bytes
    file_name: str
    content_type: str = "application/octet-stream"
    attachment_id: Optional[int] = None
    token: Optional[str] = None

    def endpoint(self, operation_name: str) -> Endpoint:
        layer = self.layer_endpoint
        base = layer if isinstance(layer, str) else layer.relative_url
        return ServerEndpoint(f"{base.strip('/')}/{self.object_id}/{operation_name}")


class AttachmentWorker(ClientBase):
    """Uploads attachments with the caller's token provider."""

    logger_name = "arcgis_gateway.attachments"

    async def add_attachment(
        self, upload: AttachmentUpload, cancel: Optional[asyncio.Event] = None
    ) -> Optional[AddAttachmentResponse]:
        return await self._post_attachment(upload, ADD_ATTACHMENT, AddAttachmentResponse, cancel)

    async def update_attachment(
        self, upload: AttachmentUpload, cancel: Optional[asyncio.Event] = None
    ) -> Optional[UpdateAttachmentResponse]:
        if upload is not None and upload.attachment_id is None:
            raise ValueError("attachment_id is null.")
        return await self._post_attachment(upload, UPDATE_ATTACHMENT, UpdateAttachmentResponse, cancel)

    async def _post_attachment(
        self,
        upload: AttachmentUpload,
        operation_name: str,
        model: Type[R],
        cancel: Optional[asyncio.Event],
    ) -> Optional[R]:
        if upload is None:
            raise ValueError("upload is null.")
        if upload.content is None:
            raise ValueError("upload.content is null.")

        operation = Operation(upload.endpoint(operation_name), token=upload.token)
        url = operation.build_absolute_url(self.root_url).split("?")[0]

        token = await self.check_generate_token(cancel)
        if is_cancelled(cancel):
            return None

        token_value = upload.token
        if not token_value and token is not None and token.is_usable:
            token_value = token.value
            if token.always_use_ssl:
                url = url.replace("http:", "https:", 1)

        validate_url(url)
        self.logger.debug("Post attachment", url=url, file_name=upload.file_name, size=len(upload.content))

        data: Dict[str, str] = {"f": "json"}
        if upload.attachment_id is not None:
            data["attachmentId"] = str(upload.attachment_id)
        if token_value:
            data["token"] = token_value
        files = {"attachment": (upload.file_name, upload.content, upload.content_type)}

        try:
            response = await send_cancellable(self.client.post(url, data=data, files=files), cancel)
        except (RequestCancelled, httpx.TimeoutException) as exc:
            self._cancelled("POST attachment", url, exc)
            return None
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {url} failed: {exc}", details={"url": url}) from exc

        raise_for_status(response)
        link = Link(href=url, rel="self", method="POST", data={k: v for k, v in data.items() if k != "token"})
        return self._unwrap(model, response.text, operation, link)
