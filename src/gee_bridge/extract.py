"""
Extract pixel values and time series from images and image collections.

Example:
    >>> from gee_bridge.extract import extract_time_series
    >>> ndvi = ee.ImageCollection('MODIS/061/MOD13Q1').select('NDVI')
    >>> point = ee.Geometry.Point([-62.5, -3.5])
    >>> series = extract_time_series(ndvi.filterDate('2020', '2021'), point, scale=250)
"""

from __future__ import annotations

import logging
from typing import Literal

import ee
import geopandas as gpd
import pandas as pd

from gee_bridge import export
from gee_bridge.convert import to_ee_features, to_ee_geometry
from gee_bridge.describe import ee_type

logger = logging.getLogger(__name__)

REDUCERS = {
    "mean": lambda: ee.Reducer.mean(),
    "median": lambda: ee.Reducer.median(),
    "min": lambda: ee.Reducer.min(),
    "max": lambda: ee.Reducer.max(),
    "sum": lambda: ee.Reducer.sum(),
    "first": lambda: ee.Reducer.first(),
    "count": lambda: ee.Reducer.count(),
    "stdDev": lambda: ee.Reducer.stdDev(),
}


def get_reducer(reducer: str | ee.Reducer) -> ee.Reducer:
    """
    Resolve a reducer name to an ``ee.Reducer``; reducers pass through.

    Raises:
        ValueError: If the name is not supported.
    """
    if isinstance(reducer, str):
        if reducer not in REDUCERS:
            raise ValueError(f"Invalid reducer: {reducer!r}. Supported: {sorted(REDUCERS)}")
        return REDUCERS[reducer]()
    return reducer


def _as_image(x) -> ee.Image:
    kind = ee_type(x)
    if kind == "ImageCollection":
        # Bands are named '<system:index>_<band>'
        return x.toBands()
    if kind == "Image":
        return x
    raise TypeError(f"Expected an Image or ImageCollection, got {kind}")


def extract_values(
    x,
    y,
    reducer: str | ee.Reducer = "mean",
    scale: float | None = None,
    via: Literal["getInfo", "gcs"] = "getInfo",
    bucket: str | None = None,
    as_geodataframe: bool = False,
    tile_scale: float = 1,
) -> pd.DataFrame:
    """
    Reduce an image (or every image of a collection) over a set of features.

    Args:
        x: ee.Image or ee.ImageCollection. Collections are flattened with
            ``toBands`` so every (image, band) pair becomes a column named
            ``<image index>_<band>``.
        y: Features: anything :func:`gee_bridge.convert.to_ee_features`
            accepts (ee objects, GeoDataFrames, shapely geometries, bboxes).
        reducer: Reducer name or ee.Reducer.
        scale: Nominal scale in meters. Defaults to the image's.
        via: "getInfo" for small requests, "gcs" to export the table and read
            it back.
        bucket: Cloud Storage bucket for ``via="gcs"``.
        as_geodataframe: Keep the feature geometries (GeoDataFrame).
        tile_scale: Passed to ``reduceRegions`` to trade speed for memory.

    Returns:
        One row per feature: the feature properties followed by the reduced
        band values.
    """
    image = _as_image(x)
    features = to_ee_features(y)
    ee_reducer = get_reducer(reducer)

    band_names = image.bandNames().getInfo()
    if len(band_names) == 1:
        # Single-band outputs would otherwise be named after the reducer
        ee_reducer = ee_reducer.setOutputs(band_names)
    if scale is None:
        scale = image.projection().nominalScale().getInfo()

    reduced = image.reduceRegions(
        collection=features,
        reducer=ee_reducer,
        scale=scale,
        tileScale=tile_scale,
    )
    logger.info("Extracting %d band(s) at %s m", len(band_names), scale)

    if via == "gcs":
        frame = export.table_to_local(reduced, via="gcs", bucket=bucket)
        frame = frame.drop(columns=["system:index"], errors="ignore")
        if not as_geodataframe and isinstance(frame, gpd.GeoDataFrame):
            frame = pd.DataFrame(frame.drop(columns="geometry"))
        return frame
    if via != "getInfo":
        raise ValueError("via must be one of: 'getInfo', 'gcs'")

    rows = reduced.getInfo().get("features", [])
    if as_geodataframe:
        return gpd.GeoDataFrame.from_features(rows, crs="EPSG:4326")
    return pd.DataFrame([row.get("properties", {}) for row in rows])


def extract_time_series(
    collection: ee.ImageCollection,
    geometry,
    bands: list[str] | None = None,
    reducer: str | ee.Reducer = "mean",
    scale: float | None = None,
) -> pd.DataFrame:
    """
    Reduce every image of a collection over one region.

    Args:
        collection: Image collection with ``system:time_start`` set.
        geometry: Region; anything :func:`gee_bridge.convert.to_ee_geometry`
            accepts.
        bands: Bands to keep. Defaults to all bands of the first image.
        reducer: Single-output reducer name or ee.Reducer.
        scale: Nominal scale in meters. Defaults to the first image's.

    Returns:
        DataFrame indexed by acquisition date (UTC), one column per band, one
        row per image, sorted by date. Images without valid pixels in the
        region give NaN.
    """
    if ee_type(collection) != "ImageCollection":
        raise TypeError(f"Expected an ImageCollection, got {ee_type(collection)}")
    region = to_ee_geometry(geometry)
    if bands:
        collection = collection.select(bands)
    ee_reducer = get_reducer(reducer)

    first = collection.first()
    band_names = first.bandNames().getInfo()
    if scale is None:
        scale = first.projection().nominalScale().getInfo()

    def _reduce(image):
        stats = image.reduceRegion(
            reducer=ee_reducer,
            geometry=region,
            scale=scale,
            maxPixels=1e12,
        )
        return ee.Feature(None, stats).set("system:time_start", image.get("system:time_start"))

    info = ee.FeatureCollection(collection.map(_reduce)).getInfo()
    rows = [feature.get("properties", {}) for feature in info.get("features", [])]
    if not rows:
        return pd.DataFrame(columns=band_names, index=pd.DatetimeIndex([], tz="UTC", name="date"))

    frame = pd.DataFrame(rows)
    frame["date"] = pd.to_datetime(frame.pop("system:time_start"), unit="ms", utc=True)
    return frame.set_index("date").sort_index().reindex(columns=band_names)


def to_long(
    frame: pd.DataFrame,
    id_vars: list[str],
    bands: list[str] | None = None,
) -> pd.DataFrame:
    """
    Melt a wide :func:`extract_values` frame of a collection into long form.

    Value columns named ``<image>_<band>`` become rows with ``image``,
    ``band`` and ``value`` columns. Give ``bands`` when band names contain
    underscores; otherwise the name is split at the last underscore.
    """
    value_columns = [c for c in frame.columns if c not in id_vars and c != "geometry"]
    long = frame.melt(id_vars=id_vars, value_vars=value_columns, var_name="column", value_name="value")

    def _split(column: str) -> tuple[str, str]:
        if bands:
            for band in sorted(bands, key=len, reverse=True):
                if column.endswith(f"_{band}"):
                    return column[: -len(band) - 1], band
        image, _, band = column.rpartition("_")
        return image, band

    parts = long.pop("column").map(_split)
    long.insert(len(id_vars), "image", parts.map(lambda p: p[0]))
    long.insert(len(id_vars) + 1, "band", parts.map(lambda p: p[1]))
    return long
