# blob_storage.py
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from azure.core.exceptions import ResourceExistsError
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient, ContainerClient

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=31536000"  # one year


@dataclass
class StoredBlob:
    url: str
    name: str


class StorageNotConfigured(RuntimeError):
    pass


class BlobStorage:
    """Photo files in an Azure Blob Storage container."""

    def __init__(self, connection_string: Optional[str], container_name: str):
        self.connection_string = connection_string
        self.container_name = container_name
        self._container_ready = False

    def get_blob_service_client(self) -> BlobServiceClient:
        if not self.connection_string:
            raise StorageNotConfigured("Azure Storage connection string not configured")
        return BlobServiceClient.from_connection_string(self.connection_string)

    async def _ensure_container(self, container_client: ContainerClient) -> None:
        if self._container_ready:
            return
        try:
            await container_client.create_container(public_access="blob")
            logger.info("Created blob container %s", self.container_name)
        except ResourceExistsError:
            pass
        self._container_ready = True

    async def upload_image(self, data: bytes, filename: str, mime_type: str, owner_id: str) -> StoredBlob:
        """Uploads image bytes under ``<owner>/<uuid>.<ext>`` and returns its URL and name."""
        extension = os.path.splitext(filename or "")[1].lstrip(".") or "bin"
        blob_name = f"{owner_id}/{uuid.uuid4()}.{extension}"

        async with self.get_blob_service_client() as service:
            container_client = service.get_container_client(self.container_name)
            await self._ensure_container(container_client)
            blob_client = container_client.get_blob_client(blob_name)
            await blob_client.upload_blob(
                data,
                overwrite=True,
                content_settings=ContentSettings(content_type=mime_type, cache_control=CACHE_CONTROL),
                metadata={
                    "originalName": filename or "",
                    "uploadedBy": owner_id,
                    "uploadedAt": datetime.now(timezone.utc).isoformat(),
                },
            )
            url = blob_client.url

        logger.info("Uploaded blob %s (%d bytes)", blob_name, len(data))
        return StoredBlob(url=url, name=blob_name)

    async def delete_image(self, blob_name: str) -> bool:
        async with self.get_blob_service_client() as service:
            blob_client = service.get_blob_client(self.container_name, blob_name)
            if not await blob_client.exists():
                return False
            await blob_client.delete_blob(delete_snapshots="include")
        logger.info("Deleted blob %s", blob_name)
        return True
