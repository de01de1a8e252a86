"""
Marshal local objects to Earth Engine handles and bring results back.

Local geometries (shapely, GeoPandas, bounding boxes) become ee.Geometry or
ee.FeatureCollection; FeatureCollections and small images come back as
GeoDataFrames, numpy arrays or GeoTIFF files.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any, cast

import ee
import geopandas as gpd
import numpy as np
import requests
from rasterio.io import MemoryFile

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 300


def _is_bbox(value: object) -> bool:
    if not isinstance(value, list | tuple) or len(value) != 4:
        return False
    return all(isinstance(v, int | float) for v in value)


def _has_geo_interface(value: object) -> bool:
    return hasattr(value, "__geo_interface__")


def _to_geo_interface(value: object) -> dict[Any, Any]:
    if hasattr(value, "to_crs") and getattr(value, "crs", None) is not None:
        value = value.to_crs("EPSG:4326")  # type: ignore[attr-defined]
    return cast(dict[Any, Any], value.__geo_interface__)  # type: ignore[attr-defined]


def _to_wgs84(geometry: ee.Geometry, max_error: float = 1) -> ee.Geometry:
    return geometry.transform("EPSG:4326", max_error)


def to_ee_geometry(value: object, max_error: float = 1) -> ee.Geometry:
    """
    Convert a geometry-like value to an ee.Geometry in EPSG:4326.

    Args:
        value: ee.Geometry, ee.Feature, ee.FeatureCollection, a bbox
            ``(xmin, ymin, xmax, ymax)``, or any object exposing
            ``__geo_interface__`` (shapely geometries, GeoPandas objects).
            GeoPandas objects with a CRS are reprojected to EPSG:4326
            first; shapely geometries are taken as lon/lat.
        max_error: Reprojection tolerance in meters.

    Raises:
        ValueError: If the value is of an unsupported type.
    """
    if isinstance(value, ee.Geometry):
        return _to_wgs84(value, max_error)
    if isinstance(value, ee.Feature | ee.FeatureCollection):
        return _to_wgs84(value.geometry(), max_error)
    if _is_bbox(value):
        return ee.Geometry.Rectangle(list(value))
    if _has_geo_interface(value):
        geo = _to_geo_interface(value)
        if geo.get("type") == "FeatureCollection":
            return ee.FeatureCollection(geo).geometry()
        if geo.get("type") == "Feature":
            return ee.Feature(geo).geometry()
        return ee.Geometry(geo)
    raise ValueError(
        "Unsupported geometry input. Provide ee.Geometry, ee.Feature, "
        "ee.FeatureCollection, a shapely geometry, a GeoPandas object, or a bbox."
    )


def to_ee_features(value: object) -> ee.FeatureCollection:
    """
    Convert a feature-like value to an ee.FeatureCollection.

    Accepts everything :func:`to_ee_geometry` does, plus iterables of
    ee.Feature, ee.Geometry or ``__geo_interface__`` objects. GeoDataFrame
    attributes are kept as feature properties.

    Raises:
        ValueError: If the value (or an item of an iterable) is unsupported.
    """
    if isinstance(value, ee.FeatureCollection):
        return value
    if isinstance(value, ee.Feature):
        return ee.FeatureCollection([value])
    if isinstance(value, ee.Geometry):
        return ee.FeatureCollection([ee.Feature(value)])
    if _is_bbox(value):
        return ee.FeatureCollection([ee.Feature(ee.Geometry.Rectangle(list(value)))])
    if _has_geo_interface(value):
        geo = _to_geo_interface(value)
        if geo.get("type") == "FeatureCollection":
            return ee.FeatureCollection(geo)
        if geo.get("type") == "Feature":
            return ee.FeatureCollection([ee.Feature(geo)])
        return ee.FeatureCollection([ee.Feature(ee.Geometry(geo))])
    if isinstance(value, Iterable) and not isinstance(value, str | bytes):
        features = []
        for item in value:
            if isinstance(item, ee.Feature):
                features.append(item)
            elif isinstance(item, ee.Geometry):
                features.append(ee.Feature(item))
            elif _has_geo_interface(item):
                geo = _to_geo_interface(item)
                if geo.get("type") == "Feature":
                    features.append(ee.Feature(geo))
                else:
                    features.append(ee.Feature(ee.Geometry(geo)))
            else:
                raise ValueError(f"Unsupported item in feature iterable: {type(item).__name__}")
        return ee.FeatureCollection(features)
    raise ValueError(
        "Unsupported features input. Provide ee.FeatureCollection, ee.Feature, "
        "ee.Geometry, a GeoPandas object, a shapely geometry, or a bbox."
    )


def features_to_geodataframe(
    features: ee.FeatureCollection,
    max_features: int = 5000,
) -> gpd.GeoDataFrame:
    """
    Fetch a FeatureCollection through getInfo as a GeoDataFrame (EPSG:4326).

    Args:
        features: Collection to fetch.
        max_features: Refuse collections larger than this; use
            ``export.table_to_local(..., via='gcs')`` for those.

    Raises:
        ValueError: If the collection has more than ``max_features`` features.
    """
    size = features.size().getInfo()
    if size > max_features:
        raise ValueError(
            f"FeatureCollection has {size} features (max_features={max_features}). "
            "Export it through Cloud Storage instead: table_to_local(..., via='gcs')."
        )
    info = features.getInfo()
    rows = info.get("features", [])
    if not rows:
        return gpd.GeoDataFrame(geometry=[], crs="EPSG:4326")
    return gpd.GeoDataFrame.from_features(rows, crs="EPSG:4326")


def _download_params(region: ee.Geometry, scale: float, crs: str) -> dict:
    return {
        "region": region,
        "scale": scale,
        "crs": crs,
        "format": "GEO_TIFF",
    }


def image_to_array(
    image: ee.Image,
    region: object,
    scale: float,
    crs: str = "EPSG:4326",
) -> tuple[np.ma.MaskedArray, tuple[float, float, float, float]]:
    """
    Download a small image as a masked numpy array.

    EE GeoTIFF downloads carry no nodata value, so the image mask is requested
    separately and applied locally.

    Returns:
        tuple: (array shaped (height, width, bands), bounds as
        (left, bottom, right, top) in ``crs`` units).
    """
    region = to_ee_geometry(region)
    params = _download_params(region, scale, crs)

    url = image.getDownloadURL(params)
    logger.info("Downloading Earth Engine image...")
    response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
    response.raise_for_status()
    logger.info("Downloaded image %.2f MB", len(response.content) / 1024 / 1024)

    url_mask = image.mask().getDownloadURL(params)
    response_mask = requests.get(url_mask, timeout=DOWNLOAD_TIMEOUT)
    response_mask.raise_for_status()

    with MemoryFile(response.content) as memfile:
        with memfile.open() as dataset:
            img_array = np.moveaxis(dataset.read(), 0, -1)
            b = dataset.bounds
            bounds = (b.left, b.bottom, b.right, b.top)

    with MemoryFile(response_mask.content) as memfile_mask:
        with memfile_mask.open() as dataset_mask:
            mask_array = np.moveaxis(dataset_mask.read().astype(np.uint8), 0, -1)

    return np.ma.masked_where(mask_array == 0, img_array), bounds


def image_to_geotiff(
    image: ee.Image,
    region: object,
    scale: float,
    out_path: str | Path,
    crs: str = "EPSG:4326",
) -> Path:
    """
    Download a small image to a local GeoTIFF.

    Returns:
        Path: The written file.
    """
    region = to_ee_geometry(region)
    params = _download_params(region, scale, crs)
    params["filePerBand"] = False
    url = image.getDownloadURL(params)

    out_path = Path(out_path)
    tmp_dir = Path(tempfile.mkdtemp())
    try:
        tmp_download = tmp_dir / "download"
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
        tmp_download.write_bytes(response.content)

        if zipfile.is_zipfile(tmp_download):
            with zipfile.ZipFile(tmp_download) as zf:
                zf.extractall(tmp_dir)
            tif_paths = list(tmp_dir.glob("*.tif"))
            if not tif_paths:
                raise RuntimeError("Download completed but no GeoTIFF was found.")
            source_path = tif_paths[0]
        else:
            source_path = tmp_download

        out_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source_path), out_path)
        logger.info("Saved %s", out_path)
        return out_path
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)
