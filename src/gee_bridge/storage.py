"""
Google Cloud Storage helpers.

Moving rasters and tables between the local machine, Cloud Storage and Earth
Engine, and toggling public read access on exported objects.
"""

from __future__ import annotations

import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import ee
import geopandas as gpd
import pandas as pd
from google.cloud import storage

from gee_bridge import config
from gee_bridge.tasks import wait_for_task

logger = logging.getLogger(__name__)

PUBLIC_URL_ROOT = "https://storage.googleapis.com"


def get_client(project: str | None = None) -> storage.Client:
    """Create a storage client for ``project`` (default: configured project)."""
    return storage.Client(project=project or config.GEE_PROJECT)


def parse_gcs_uri(uri: str) -> tuple[str, str]:
    """
    Split ``gs://bucket/path/to/object`` into (bucket, object name).

    Raises:
        ValueError: If ``uri`` is not a gs:// object URI.
    """
    if not isinstance(uri, str) or not uri.startswith("gs://"):
        raise ValueError(f"Expected a gs://bucket/object URI, got {uri!r}")
    bucket, _, name = uri[len("gs://"):].partition("/")
    if not bucket or not name:
        raise ValueError(f"Expected a gs://bucket/object URI, got {uri!r}")
    return bucket, name


def gcs_uri(bucket: str, name: str) -> str:
    return f"gs://{bucket}/{name}"


def public_url(uri: str) -> str:
    """HTTPS URL of a Cloud Storage object (readable once it is public)."""
    bucket, name = parse_gcs_uri(uri)
    return f"{PUBLIC_URL_ROOT}/{bucket}/{name}"


def upload_file(
    local_path: str | Path,
    bucket: str | None = None,
    object_name: str | None = None,
    client: storage.Client | None = None,
) -> str:
    """
    Upload a local file to Cloud Storage.

    Returns:
        The gs:// URI of the uploaded object.
    """
    local_path = Path(local_path)
    bucket = bucket or config.GCS_BUCKET
    if not bucket:
        raise ValueError("No bucket given and none configured (GEE_BRIDGE_BUCKET)")
    object_name = object_name or local_path.name
    client = client or get_client()

    blob = client.bucket(bucket).blob(object_name)
    blob.upload_from_filename(str(local_path))
    uri = gcs_uri(bucket, object_name)
    logger.info("Uploaded %s to %s", local_path, uri)
    return uri


def download_file(uri: str, out_path: str | Path, client: storage.Client | None = None) -> Path:
    """Download a Cloud Storage object to ``out_path``."""
    bucket, name = parse_gcs_uri(uri)
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    client = client or get_client()
    client.bucket(bucket).blob(name).download_to_filename(str(out_path))
    logger.info("Downloaded %s to %s", uri, out_path)
    return out_path


def list_objects(
    bucket: str,
    prefix: str | None = None,
    client: storage.Client | None = None,
) -> list[str]:
    """List object URIs in a bucket, optionally under ``prefix``."""
    client = client or get_client()
    return [gcs_uri(bucket, blob.name) for blob in client.list_blobs(bucket, prefix=prefix)]


def object_exists(uri: str, client: storage.Client | None = None) -> bool:
    bucket, name = parse_gcs_uri(uri)
    client = client or get_client()
    return client.bucket(bucket).blob(name).exists()


def delete_object(uri: str, client: storage.Client | None = None) -> None:
    bucket, name = parse_gcs_uri(uri)
    client = client or get_client()
    client.bucket(bucket).blob(name).delete()
    logger.info("Deleted %s", uri)


def make_public(uri: str, client: storage.Client | None = None) -> str:
    """
    Grant public read access to an object.

    Buckets with uniform bucket-level access reject object ACLs; the storage
    API error is raised as is.

    Returns:
        The public HTTPS URL of the object.
    """
    bucket, name = parse_gcs_uri(uri)
    client = client or get_client()
    client.bucket(bucket).blob(name).make_public()
    logger.info("%s is now public", uri)
    return public_url(uri)


def gcs_to_ee_image(
    uri: str,
    asset_id: str,
    properties: dict | None = None,
    start_time: datetime | None = None,
    wait: bool = False,
) -> str:
    """
    Ingest a GeoTIFF already in Cloud Storage as an Earth Engine image.

    Returns:
        The ingestion task id.
    """
    parse_gcs_uri(uri)
    manifest = {
        "name": asset_id,
        "tilesets": [{"sources": [{"uris": [uri]}]}],
    }
    if properties:
        manifest["properties"] = properties
    if start_time is not None:
        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=timezone.utc)
        manifest["start_time"] = {"seconds": int(start_time.timestamp())}

    request_id = ee.data.newTaskId()[0]
    response = ee.data.startIngestion(request_id, manifest)
    task_id = response.get("id", request_id)
    logger.info("Started image ingestion of %s into %s (task %s)", uri, asset_id, task_id)
    if wait:
        wait_for_task(task_id)
    return task_id


def gcs_to_ee_table(uri: str, asset_id: str, wait: bool = False) -> str:
    """
    Ingest a table (CSV with a WKT ``geometry`` column, zipped shapefile) from
    Cloud Storage as an Earth Engine FeatureCollection asset.

    Returns:
        The ingestion task id.
    """
    parse_gcs_uri(uri)
    source = {"uris": [uri]}
    if uri.lower().endswith(".csv"):
        source["primaryGeometryColumn"] = "geometry"
    manifest = {"name": asset_id, "sources": [source]}

    request_id = ee.data.newTaskId()[0]
    response = ee.data.startTableIngestion(request_id, manifest)
    task_id = response.get("id", request_id)
    logger.info("Started table ingestion of %s into %s (task %s)", uri, asset_id, task_id)
    if wait:
        wait_for_task(task_id)
    return task_id


def local_to_ee_image(
    path: str | Path,
    asset_id: str,
    bucket: str | None = None,
    properties: dict | None = None,
    start_time: datetime | None = None,
    wait: bool = False,
) -> str:
    """Upload a local GeoTIFF to Cloud Storage and ingest it. Returns the task id."""
    uri = upload_file(path, bucket)
    return gcs_to_ee_image(uri, asset_id, properties, start_time, wait)


def local_to_ee_table(
    data: gpd.GeoDataFrame | str | Path,
    asset_id: str,
    bucket: str | None = None,
    wait: bool = False,
) -> str:
    """
    Upload a table to Cloud Storage and ingest it. Returns the task id.

    Args:
        data: A GeoDataFrame (written as CSV with a WKT geometry column in
            EPSG:4326) or the path of a file EE can ingest.
    """
    if isinstance(data, gpd.GeoDataFrame):
        frame = pd.DataFrame(data.to_crs("EPSG:4326"))
        frame["geometry"] = data.to_crs("EPSG:4326").geometry.to_wkt()
        with tempfile.TemporaryDirectory() as tmp_dir:
            name = asset_id.rsplit("/", 1)[-1] + ".csv"
            csv_path = Path(tmp_dir) / name
            frame.to_csv(csv_path, index=False)
            uri = upload_file(csv_path, bucket)
    else:
        uri = upload_file(data, bucket)
    return gcs_to_ee_table(uri, asset_id, wait)
