# tests/e2e/conftest.py
"""
Fixtures for the MinIO-backed end-to-end tests.

This module sets up the testing environment, including:
- Spinning up Docker containers for source and destination S3 services (MinIO).
- Providing fixtures for S3 service endpoints and credentials.
- Creating and cleaning up isolated S3 buckets for each test function.

The suite only runs when `PSYNC_E2E=1` is set, since it needs Docker.
"""

import os
import uuid
from datetime import date
from pathlib import Path
from typing import Any, AsyncGenerator, Dict

import boto3
import pytest
import pytest_asyncio
import requests
from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError
from requests.exceptions import ConnectionError

from partition_sync.config import AppConfig, BucketPair, Config, S3Config

# --- Constants ---
S3_ACCESS_KEY: str = "minio-key"
S3_SECRET_KEY: str = "minio-secret"
S3_REGION: str = "us-east-1"


def pytest_collection_modifyitems(items: list) -> None:
    """Mark every e2e test and skip them unless explicitly enabled."""
    skip: pytest.MarkDecorator = pytest.mark.skip(
        reason="set PSYNC_E2E=1 to run the MinIO end-to-end tests"
    )
    for item in items:
        if "e2e" in item.nodeid.split("/"):
            item.add_marker(pytest.mark.e2e)
            if os.environ.get("PSYNC_E2E") != "1":
                item.add_marker(skip)


# --- Docker Fixtures ---
@pytest.fixture(scope="session")
def docker_compose_file(pytestconfig: pytest.Config) -> str:
    """
    Locate the docker-compose.yml file for the test suite.

    Args:
        pytestconfig (pytest.Config): The pytest configuration object.

    Returns:
        str: The absolute path to the docker-compose.yml file.
    """
    return str(Path(pytestconfig.rootdir) / "tests" / "docker-compose.yml")


@pytest.fixture(scope="session")
def docker_compose_project_name() -> str:
    return "partition-sync-tests"


def _is_s3_responsive(url: str) -> bool:
    """
    Check if the MinIO health endpoint is responsive.

    Args:
        url (str): The base URL of the MinIO API.

    Returns:
        bool: True if the service is responsive, False otherwise.
    """
    try:
        response: requests.Response = requests.get(f"{url}/minio/health/live")
        return response.status_code == 200
    except ConnectionError:
        return False


def _service(docker_ip: str, docker_services: Any, name: str) -> Dict[str, Any]:
    port: int = docker_services.port_for(name, 9000)
    api_url: str = f"http://{docker_ip}:{port}"
    docker_services.wait_until_responsive(
        timeout=30.0, pause=0.1, check=lambda: _is_s3_responsive(api_url)
    )
    return {
        "endpoint_url": api_url,
        "aws_access_key_id": S3_ACCESS_KEY,
        "aws_secret_access_key": S3_SECRET_KEY,
        "region_name": S3_REGION,
    }


@pytest.fixture(scope="session")
def source_s3_service(docker_ip: str, docker_services: Any) -> Dict[str, Any]:
    """Ensure the source MinIO is running and return its connection details."""
    return _service(docker_ip, docker_services, "minio-source")


@pytest.fixture(scope="session")
def dest_s3_service(docker_ip: str, docker_services: Any) -> Dict[str, Any]:
    """Ensure the destination MinIO is running and return its connection details."""
    return _service(docker_ip, docker_services, "minio-destination")


# --- Application Fixtures ---
@pytest_asyncio.fixture(scope="function")
async def s3_buckets(
    source_s3_service: Dict[str, Any],
    dest_s3_service: Dict[str, Any],
) -> AsyncGenerator[Dict[str, str], None]:
    """
    Create unique, isolated buckets for a single test function.

    Buckets are created through aiobotocore and removed with boto3, which
    makes the recursive delete simpler.

    Yields:
        Dict[str, str]: The names of the created source and destination buckets.
    """
    session: AioSession = get_session()
    suffix: str = uuid.uuid4().hex[:12]
    source_bucket: str = f"source-{suffix}"
    dest_bucket: str = f"dest-{suffix}"

    async with (
        session.create_client("s3", **source_s3_service) as s3_source,
        session.create_client("s3", **dest_s3_service) as s3_dest,
    ):
        await s3_source.create_bucket(Bucket=source_bucket)
        await s3_dest.create_bucket(Bucket=dest_bucket)

    yield {"source": source_bucket, "destination": dest_bucket}

    boto_config: BotoConfig = BotoConfig(
        retries={"max_attempts": 0, "mode": "standard"}
    )
    for service, bucket in [
        (source_s3_service, source_bucket),
        (dest_s3_service, dest_bucket),
    ]:
        resource: Any = boto3.resource("s3", **service, config=boto_config)
        try:
            bucket_obj: Any = resource.Bucket(bucket)
            bucket_obj.objects.all().delete()
            bucket_obj.delete()
        except ClientError as e:
            if e.response["Error"]["Code"] != "NoSuchBucket":
                raise


@pytest.fixture(scope="function")
def e2e_config(
    tmp_path: Path,
    s3_buckets: Dict[str, str],
    source_s3_service: Dict[str, Any],
    dest_s3_service: Dict[str, Any],
) -> Config:
    """
    Provide a Config pointing at the MinIO services, for 2024-01-01..02.

    Returns:
        Config: A Config instance for use in tests.
    """

    def _s3(service: Dict[str, Any]) -> S3Config:
        return S3Config(
            endpoint_url=service["endpoint_url"],
            access_key_id=S3_ACCESS_KEY,
            secret_access_key=S3_SECRET_KEY,
            region=S3_REGION,
            addressing_style="path",
        )

    return Config(
        source=_s3(source_s3_service),
        destination=_s3(dest_s3_service),
        bucket_pairs=(BucketPair(s3_buckets["source"], s3_buckets["destination"]),),
        app=AppConfig(
            data_dir=tmp_path / "data",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 2),
            max_concurrency=8,
        ),
    )
