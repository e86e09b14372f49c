# src/partition_sync/store.py
"""
Thin async wrapper around an aiobotocore S3 client.

The sync engine only needs three operations from a store: paginated listing,
reading an object body and writing one. `S3ObjectStore` exposes exactly those
so the rest of the package never touches botocore request shapes directly.
"""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    BinaryIO,
    Dict,
    List,
    Optional,
    Union,
)

from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError

from partition_sync.config import AppConfig, S3Config
from partition_sync.exceptions import ClientInitError
from partition_sync.models import ListPage, ObjectRecord

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client
    from types_aiobotocore_s3.type_defs import (
        GetObjectOutputTypeDef,
        ListObjectsV2OutputTypeDef,
    )

logger: logging.Logger = logging.getLogger(__name__)


class S3ObjectStore:
    """List, read and write objects through an open aiobotocore S3 client."""

    def __init__(self, client: "S3Client", name: str = "store") -> None:
        """
        Args:
            client (S3Client): An open aiobotocore S3 client.
            name (str): Label used in log messages (`source`/`destination`).
        """
        self._client: "S3Client" = client
        self.name: str = name

    async def list_page(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        continuation_token: Optional[str] = None,
    ) -> ListPage:
        """
        Fetch one page of a `ListObjectsV2` listing.

        Args:
            bucket (str): The bucket to list.
            prefix (str, optional): Restrict the listing to keys with this prefix.
            continuation_token (str, optional): Token from the previous page.

        Returns:
            ListPage: The page records and the next continuation token, if any.
        """
        params: Dict[str, Any] = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        response: "ListObjectsV2OutputTypeDef" = await self._client.list_objects_v2(
            **params
        )
        records: List[ObjectRecord] = [
            ObjectRecord(
                key=content["Key"],
                last_modified=content["LastModified"],
                size=content["Size"],
            )
            for content in response.get("Contents", [])
        ]
        next_token: Optional[str] = (
            response.get("NextContinuationToken")
            if response.get("IsTruncated")
            else None
        )
        return ListPage(records=records, next_token=next_token)

    async def get_object(self, bucket: str, key: str) -> bytes:
        """Read a whole object body into memory."""
        response: "GetObjectOutputTypeDef" = await self._client.get_object(
            Bucket=bucket, Key=key
        )
        async with response["Body"] as stream:
            return await stream.read()

    async def iter_object(
        self, bucket: str, key: str, chunk_size: int
    ) -> AsyncIterator[bytes]:
        """
        Stream an object body in chunks.

        Args:
            bucket (str): The bucket holding the object.
            key (str): The object key.
            chunk_size (int): Maximum bytes per yielded chunk.

        Yields:
            bytes: Consecutive chunks of the body.
        """
        response: "GetObjectOutputTypeDef" = await self._client.get_object(
            Bucket=bucket, Key=key
        )
        async with response["Body"] as stream:
            async for chunk in stream.iter_chunks(chunk_size):
                yield chunk

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: Union[bytes, BinaryIO],
        content_length: int,
    ) -> None:
        """
        Write an object from bytes or an open binary file.

        Content-Length is always sent explicitly; several non-AWS providers
        reject chunked uploads without it.
        """
        await self._client.put_object(
            Bucket=bucket, Key=key, Body=body, ContentLength=content_length
        )


def build_boto_config(s3_config: S3Config, app_config: AppConfig) -> BotoConfig:
    """
    Build the botocore client configuration for one side.

    Args:
        s3_config (S3Config): The endpoint settings.
        app_config (AppConfig): The application settings.

    Returns:
        BotoConfig: The client configuration.
    """
    return BotoConfig(
        signature_version="s3v4",
        max_pool_connections=max(app_config.max_concurrency, app_config.list_concurrency)
        + 10,
        retries={"max_attempts": app_config.store_max_attempts, "mode": "standard"},
        connect_timeout=app_config.connect_timeout_s,
        read_timeout=app_config.read_timeout_s,
        s3={
            "addressing_style": s3_config.addressing_style,
            "payload_signing_enabled": False,
        },
    )


@asynccontextmanager
async def open_store(
    s3_config: S3Config,
    app_config: AppConfig,
    name: str,
    session: Optional[AioSession] = None,
) -> AsyncIterator[S3ObjectStore]:
    """
    Open an `S3ObjectStore` for the duration of the context.

    Args:
        s3_config (S3Config): The endpoint settings.
        app_config (AppConfig): The application settings.
        name (str): Label for log messages.
        session (AioSession, optional): Session to create the client from.

    Yields:
        S3ObjectStore: The ready-to-use store.

    Raises:
        ClientInitError: If the client cannot be created or no credentials
            can be resolved.
    """
    session = session or get_session()
    if not s3_config.has_static_credentials:
        credentials: Any = await session.get_credentials()
        if credentials is None:
            raise ClientInitError(
                f"No credentials configured for the {name} store and none "
                "could be resolved from the environment."
            )

    async with AsyncExitStack() as stack:
        try:
            client: "S3Client" = await stack.enter_async_context(
                session.create_client(
                    "s3",
                    **s3_config.as_boto_dict(),
                    config=build_boto_config(s3_config, app_config),
                )
            )
        except (BotoCoreError, ValueError) as e:
            raise ClientInitError(
                f"Could not create the {name} S3 client: {e}"
            ) from e

        logger.info(
            f"Opened {name} store at "
            f"'{s3_config.endpoint_url or 'default AWS endpoint'}'."
        )
        yield S3ObjectStore(client, name)
