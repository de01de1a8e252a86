"""
Tile URLs for map display.

Two sources of tiles:

* Earth Engine itself, through ``getMapId``.
* A Cloud-Optimized GeoTIFF (COG) in Cloud Storage served by a TiTiler
  compatible tile server. :func:`image_to_cog_layer` chains the steps: export
  the image to Cloud Storage as a COG, wait for the task, make the object
  public, and build the tile URL template.
"""

from __future__ import annotations

import json
import logging
import re
from urllib.parse import urlencode

import ee
import numpy as np
import requests
from matplotlib.colors import LinearSegmentedColormap, to_hex

from gee_bridge import config, storage
from gee_bridge.export import exported_geotiffs, image_to_gcs
from gee_bridge.tasks import wait_for_task

logger = logging.getLogger(__name__)

HEX_COLOR = "^[0-9A-Fa-f]{6}$"
REQUEST_TIMEOUT = 60


def ee_tile_url(ee_object, vis_params: dict | None = None) -> str:
    """XYZ tile URL template of an Earth Engine image or feature collection."""
    map_id = ee_object.getMapId(vis_params or {})
    return map_id["tile_fetcher"].url_format


def _css_color(color: str) -> str:
    return f"#{color}" if re.match(HEX_COLOR, color) else color


def palette_to_colormap(palette: list[str], n: int = 256) -> dict[int, str]:
    """Interpolate an EE-style palette into an ``n``-entry value -> hex colormap."""
    if not palette:
        raise ValueError("palette must contain at least one color")
    colors = [_css_color(c) for c in palette]
    if len(colors) == 1:
        colors = colors * 2
    cmap = LinearSegmentedColormap.from_list("palette", colors, N=n)
    return {i: to_hex(cmap(v)) for i, v in enumerate(np.linspace(0, 1, n))}


def _as_list(value) -> list:
    return list(value) if isinstance(value, list | tuple) else [value]


def vis_to_tiler_params(vis_params: dict | None = None, band_names: list[str] | None = None) -> dict:
    """
    Translate EE visualization parameters to tile server query parameters.

    * ``bands`` -> ``bidx`` (1-based band indexes of the COG). Band names are
      resolved against ``band_names``; integers are taken as 1-based indexes.
    * ``min``/``max`` -> ``rescale`` (one range per band when lists are given).
    * ``palette`` -> ``colormap_name`` when it is a string (a named colormap
      of the tile server), else a 256-entry ``colormap``.
    """
    vis_params = dict(vis_params or {})
    params: dict = {}

    bands = vis_params.pop("bands", None)
    if bands is not None:
        bidx = []
        for band in _as_list(bands):
            if isinstance(band, int):
                bidx.append(band)
            elif band_names and band in band_names:
                bidx.append(band_names.index(band) + 1)
            else:
                raise ValueError(f"Cannot resolve band {band!r}; pass band_names or 1-based indexes")
        params["bidx"] = bidx

    vmin = vis_params.pop("min", None)
    vmax = vis_params.pop("max", None)
    if vmin is not None or vmax is not None:
        if vmin is None or vmax is None:
            raise ValueError("min and max must be given together")
        mins, maxs = _as_list(vmin), _as_list(vmax)
        if len(mins) == 1:
            mins = mins * len(maxs)
        if len(maxs) == 1:
            maxs = maxs * len(mins)
        params["rescale"] = [f"{lo},{hi}" for lo, hi in zip(mins, maxs)]

    palette = vis_params.pop("palette", None)
    if palette is not None:
        if isinstance(palette, str) and "," not in palette:
            params["colormap_name"] = palette.lower()
        else:
            if isinstance(palette, str):
                palette = palette.split(",")
            params["colormap"] = json.dumps(palette_to_colormap(palette))

    if vis_params:
        logger.debug("Ignoring visualization parameters: %s", sorted(vis_params))
    return params


def cog_tile_url(
    cog_url: str,
    vis_params: dict | None = None,
    band_names: list[str] | None = None,
    endpoint: str | None = None,
    tile_matrix_set: str | None = None,
) -> str:
    """
    XYZ tile URL template for a COG, served by the tile server.

    The ``{z}/{x}/{y}`` placeholders are left in place for the map widget.
    """
    endpoint = (endpoint or config.TILE_SERVER).rstrip("/")
    tms = tile_matrix_set or config.TILE_MATRIX_SET
    query = {"url": cog_url}
    query.update(vis_to_tiler_params(vis_params, band_names))
    return f"{endpoint}/cog/tiles/{tms}/{{z}}/{{x}}/{{y}}.png?{urlencode(query, doseq=True)}"


def cog_info(cog_url: str, endpoint: str | None = None) -> dict:
    """Ask the tile server for the COG metadata (bounds, bands, dtype, ...)."""
    endpoint = (endpoint or config.TILE_SERVER).rstrip("/")
    response = requests.get(f"{endpoint}/cog/info", params={"url": cog_url}, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()


def cog_bounds(cog_url: str, endpoint: str | None = None) -> tuple[float, float, float, float]:
    """(west, south, east, north) of a COG in geographic coordinates."""
    endpoint = (endpoint or config.TILE_SERVER).rstrip("/")
    response = requests.get(f"{endpoint}/cog/bounds", params={"url": cog_url}, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return tuple(response.json()["bounds"])


def image_to_cog_layer(
    image: ee.Image,
    file_name: str,
    bucket: str | None = None,
    region=None,
    scale: float | None = None,
    vis_params: dict | None = None,
    endpoint: str | None = None,
    poll_interval: float | None = None,
    **kwargs,
) -> dict:
    """
    Serve an EE image through the tile server instead of Earth Engine.

    Exports ``image`` to ``gs://<bucket>/<file_name>.tif`` as a COG, waits
    for the export, makes the object public and builds the tile URL. Extra
    keyword arguments go to ``Export.image.toCloudStorage`` (e.g.
    ``fileDimensions``, ``shardSize``).

    Returns:
        dict with ``tile_url``, ``cog_url``, ``gcs_uri`` and ``task_id``.

    Raises:
        RuntimeError: The export wrote no GeoTIFF, or Earth Engine split it
            into several files, which one tile layer cannot serve.
    """
    bucket = bucket or config.GCS_BUCKET
    band_names = image.bandNames().getInfo()

    task = image_to_gcs(
        image, file_name, bucket=bucket, region=region, scale=scale, cloud_optimized=True, **kwargs
    )
    wait_for_task(task, poll_interval=poll_interval)

    uris = exported_geotiffs(bucket, file_name)
    if not uris:
        raise RuntimeError(f"Task {task.id} completed but no GeoTIFF was found in gs://{bucket}")
    if len(uris) > 1:
        raise RuntimeError(
            f"Export of {file_name} was split into {len(uris)} files ({uris[0]}, ...). "
            "Use a coarser scale or a larger fileDimensions."
        )
    uri = uris[0]
    cog_url = storage.make_public(uri)
    tile_url = cog_tile_url(cog_url, vis_params, band_names=band_names, endpoint=endpoint)
    logger.info("COG layer ready: %s", cog_url)
    return {"tile_url": tile_url, "cog_url": cog_url, "gcs_uri": uri, "task_id": task.id}
