"""
Earth Engine export helpers.

Each helper builds an ``ee.batch.Export`` task, fills in the parameters users
almost always want (region, maxPixels, a valid description), starts it and
optionally waits for it to finish.
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
import uuid
from pathlib import Path
from typing import Literal

import ee
import geopandas as gpd
import pandas as pd
from shapely.geometry import shape

from gee_bridge import config, storage
from gee_bridge.assets import asset_exists, create_assets_folder, delete_asset
from gee_bridge.convert import features_to_geodataframe, image_to_geotiff, to_ee_features, to_ee_geometry
from gee_bridge.tasks import wait_for_task

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 100


def make_description(name: str) -> str:
    """
    Turn a destination name into a valid task description.

    EE accepts up to 100 characters of letters, digits, ``_`` and ``-``.
    """
    description = re.sub(r"[^A-Za-z0-9_-]", "_", name.rsplit("/", 1)[-1])
    return description[:MAX_DESCRIPTION_LENGTH] or "export"


def _image_region(image: ee.Image, region) -> ee.Geometry:
    return image.geometry() if region is None else to_ee_geometry(region)


def _start(task: ee.batch.Task, wait: bool, poll_interval: float | None = None) -> ee.batch.Task:
    task.start()
    logger.info("Started task %s (%s)", task.id, task.config.get("description", ""))
    if wait:
        wait_for_task(task, poll_interval=poll_interval)
    return task


def _image_kwargs(image, region, scale, crs, max_pixels, kwargs) -> dict:
    params = {
        "image": image,
        "region": _image_region(image, region),
        "maxPixels": max_pixels if max_pixels is not None else config.MAX_PIXELS,
    }
    if scale is not None:
        params["scale"] = scale
    if crs is not None:
        params["crs"] = crs
    params.update(kwargs)
    return params


def image_to_asset(
    image: ee.Image,
    asset_id: str,
    region=None,
    scale: float | None = None,
    crs: str | None = None,
    description: str | None = None,
    max_pixels: float | None = None,
    overwrite: bool = False,
    wait: bool = False,
    **kwargs,
) -> ee.batch.Task:
    """
    Export an image to an Earth Engine asset.

    Missing parent folders are created. With ``overwrite`` an existing asset
    is deleted first, otherwise the remote export fails on it.
    """
    parent = asset_id.rsplit("/", 1)[0]
    create_assets_folder(parent)
    if overwrite and asset_exists(asset_id):
        delete_asset(asset_id)

    task = ee.batch.Export.image.toAsset(
        description=description or make_description(asset_id),
        assetId=asset_id,
        **_image_kwargs(image, region, scale, crs, max_pixels, kwargs),
    )
    return _start(task, wait)


def image_to_drive(
    image: ee.Image,
    folder: str,
    file_name: str,
    region=None,
    scale: float | None = None,
    crs: str | None = None,
    description: str | None = None,
    max_pixels: float | None = None,
    wait: bool = False,
    **kwargs,
) -> ee.batch.Task:
    """Export an image as GeoTIFF to a Google Drive folder."""
    task = ee.batch.Export.image.toDrive(
        description=description or make_description(file_name),
        folder=folder,
        fileNamePrefix=file_name,
        fileFormat="GeoTIFF",
        **_image_kwargs(image, region, scale, crs, max_pixels, kwargs),
    )
    return _start(task, wait)


def image_to_gcs(
    image: ee.Image,
    file_name: str,
    bucket: str | None = None,
    region=None,
    scale: float | None = None,
    crs: str | None = None,
    cloud_optimized: bool = True,
    description: str | None = None,
    max_pixels: float | None = None,
    wait: bool = False,
    **kwargs,
) -> ee.batch.Task:
    """
    Export an image as GeoTIFF to Cloud Storage.

    The object is written to ``gs://<bucket>/<file_name>.tif`` (large exports
    are split into several files sharing that prefix). ``cloud_optimized``
    writes a Cloud-Optimized GeoTIFF.
    """
    bucket = bucket or config.GCS_BUCKET
    if not bucket:
        raise ValueError("No bucket given and none configured (GEE_BRIDGE_BUCKET)")
    task = ee.batch.Export.image.toCloudStorage(
        description=description or make_description(file_name),
        bucket=bucket,
        fileNamePrefix=file_name,
        fileFormat="GeoTIFF",
        formatOptions={"cloudOptimized": cloud_optimized},
        **_image_kwargs(image, region, scale, crs, max_pixels, kwargs),
    )
    return _start(task, wait)


def table_to_asset(
    features,
    asset_id: str,
    description: str | None = None,
    overwrite: bool = False,
    wait: bool = False,
    **kwargs,
) -> ee.batch.Task:
    """Export a FeatureCollection (or anything ``to_ee_features`` accepts) to an asset."""
    parent = asset_id.rsplit("/", 1)[0]
    create_assets_folder(parent)
    if overwrite and asset_exists(asset_id):
        delete_asset(asset_id)

    task = ee.batch.Export.table.toAsset(
        collection=to_ee_features(features),
        description=description or make_description(asset_id),
        assetId=asset_id,
        **kwargs,
    )
    return _start(task, wait)


def table_to_drive(
    features,
    folder: str,
    file_name: str,
    file_format: str = "CSV",
    description: str | None = None,
    wait: bool = False,
    **kwargs,
) -> ee.batch.Task:
    """Export a table to a Google Drive folder (CSV, GeoJSON, KML, KMZ or SHP)."""
    task = ee.batch.Export.table.toDrive(
        collection=to_ee_features(features),
        description=description or make_description(file_name),
        folder=folder,
        fileNamePrefix=file_name,
        fileFormat=file_format,
        **kwargs,
    )
    return _start(task, wait)


def table_to_gcs(
    features,
    file_name: str,
    bucket: str | None = None,
    file_format: str = "CSV",
    description: str | None = None,
    wait: bool = False,
    **kwargs,
) -> ee.batch.Task:
    """Export a table to ``gs://<bucket>/<file_name>.<ext>``."""
    bucket = bucket or config.GCS_BUCKET
    if not bucket:
        raise ValueError("No bucket given and none configured (GEE_BRIDGE_BUCKET)")
    task = ee.batch.Export.table.toCloudStorage(
        collection=to_ee_features(features),
        description=description or make_description(file_name),
        bucket=bucket,
        fileNamePrefix=file_name,
        fileFormat=file_format,
        **kwargs,
    )
    return _start(task, wait)


def image_to_local(
    image: ee.Image,
    out_path: str | Path,
    region=None,
    scale: float | None = None,
    crs: str = "EPSG:4326",
    via: Literal["getDownloadURL", "gcs"] = "getDownloadURL",
    bucket: str | None = None,
) -> Path | list[Path]:
    """
    Bring an image to a local GeoTIFF.

    ``getDownloadURL`` suits small images (the service caps direct downloads
    around 50 MB). ``gcs`` exports to Cloud Storage, waits for the task and
    downloads every file it wrote; large exports yield several tiles.

    Returns:
        The local path, or a list of paths when the export was split.
    """
    out_path = Path(out_path)
    if via == "getDownloadURL":
        if scale is None:
            raise ValueError("scale is required for getDownloadURL downloads")
        return image_to_geotiff(image, _image_region(image, region), scale, out_path, crs)

    if via != "gcs":
        raise ValueError("via must be one of: 'getDownloadURL', 'gcs'")

    bucket = bucket or config.GCS_BUCKET
    task = image_to_gcs(
        image, out_path.stem, bucket=bucket, region=region, scale=scale, crs=crs,
        cloud_optimized=False, wait=True,
    )
    uris = exported_geotiffs(bucket, out_path.stem)
    if not uris:
        raise RuntimeError(f"Task {task.id} completed but no GeoTIFF was found in gs://{bucket}")
    if len(uris) == 1:
        return storage.download_file(uris[0], out_path)
    return [storage.download_file(uri, out_path.parent / uri.rsplit("/", 1)[-1]) for uri in uris]


def exported_geotiffs(bucket: str, file_name: str) -> list[str]:
    """
    URIs of the GeoTIFFs an image export to ``gs://<bucket>/<file_name>`` wrote.

    Either ``<file_name>.tif`` or, for exports EE splits into tiles,
    ``<file_name>-<row offset>-<column offset>.tif``. Other objects sharing
    the prefix (``dem_2019.tif`` next to ``dem``) are left out.
    """
    pattern = re.compile(rf"{re.escape(file_name)}(-\d{{10}}-\d{{10}})?\.tif")
    root = f"gs://{bucket}/"
    return [
        uri for uri in storage.list_objects(bucket, prefix=file_name)
        if pattern.fullmatch(uri[len(root):])
    ]


def _csv_to_geodataframe(path: Path) -> pd.DataFrame:
    frame = pd.read_csv(path)
    if ".geo" not in frame.columns:
        return frame
    geometry = [shape(json.loads(g)) if isinstance(g, str) else None for g in frame.pop(".geo")]
    return gpd.GeoDataFrame(frame, geometry=geometry, crs="EPSG:4326")


def table_to_local(
    features,
    out_path: str | Path | None = None,
    via: Literal["getInfo", "gcs"] = "getInfo",
    bucket: str | None = None,
    max_features: int = 5000,
) -> pd.DataFrame:
    """
    Bring a FeatureCollection back as a (Geo)DataFrame.

    ``getInfo`` is fast for small collections. ``gcs`` exports a CSV, waits
    for it, downloads it to ``out_path`` (a temporary file by default),
    removes the exported object from the bucket and parses the ``.geo``
    column into geometries.
    """
    features = to_ee_features(features)
    if via == "getInfo":
        gdf = features_to_geodataframe(features, max_features=max_features)
        if out_path is not None:
            gdf.to_file(out_path)
        return gdf

    if via != "gcs":
        raise ValueError("via must be one of: 'getInfo', 'gcs'")

    bucket = bucket or config.GCS_BUCKET
    with tempfile.TemporaryDirectory() as tmp_dir:
        local = Path(out_path) if out_path is not None else Path(tmp_dir) / "table.csv"
        # One object per call; concurrent exports never share a name.
        stem = make_description(local.stem)[:MAX_DESCRIPTION_LENGTH - 13]
        prefix = f"{stem}_{uuid.uuid4().hex[:12]}"
        table_to_gcs(features, prefix, bucket=bucket, file_format="CSV", wait=True)
        uri = storage.gcs_uri(bucket, f"{prefix}.csv")
        storage.download_file(uri, local)
        storage.delete_object(uri)
        return _csv_to_geodataframe(local)
