"""
Interactive map display of Earth Engine objects.

``EarthEngineMap`` wraps the folium map from geemap and adds Earth Engine
objects to it as XYZ tile layers, either served by Earth Engine (``getMapId``)
or, for Cloud-Optimized GeoTIFF exports, by the configured tile server.

Example:
    >>> m = create_map(center=(-62.5, -3.5), zoom=6)
    >>> m.add_layer(ee.Image('USGS/SRTMGL1_003'), {'min': 0, 'max': 3000}, 'DEM')
    >>> m.save('dem.html')
"""

from __future__ import annotations

import logging

import ee
from geemap import foliumap

from gee_bridge.describe import ee_type
from gee_bridge.tiles import cog_tile_url, ee_tile_url, image_to_cog_layer

logger = logging.getLogger(__name__)

EE_ATTRIBUTION = "Google Earth Engine"
DEFAULT_VECTOR_COLOR = "3388ff"
VECTOR_TYPES = ("Geometry", "Feature", "FeatureCollection")


def _vector_image(ee_object, vis_params: dict) -> ee.FeatureCollection:
    """Paint vector objects with ``FeatureCollection.style``."""
    if ee_type(ee_object) != "FeatureCollection":
        ee_object = ee.FeatureCollection([ee.Feature(ee_object)])
    color = vis_params.get("color", DEFAULT_VECTOR_COLOR).lstrip("#")
    return ee_object.style(
        color=color,
        fillColor=vis_params.get("fillColor", f"{color}33"),
        width=vis_params.get("width", 2),
        pointSize=vis_params.get("pointSize", 3),
    )


class EarthEngineMap:
    """An interactive map that accepts Earth Engine objects as layers."""

    def __init__(
        self,
        center: tuple[float, float] = (0, 0),
        zoom: int = 2,
        basemap: str | None = None,
        **kwargs,
    ):
        """
        Args:
            center: (lon, lat) of the initial view.
            zoom: Initial zoom level.
            basemap: Name of a geemap basemap (e.g. "HYBRID").
            **kwargs: Passed to ``geemap.foliumap.Map``.
        """
        lon, lat = center
        if basemap is not None:
            kwargs["basemap"] = basemap
        self.widget = foliumap.Map(center=[lat, lon], zoom=zoom, **kwargs)
        self.zoom = zoom
        self.layers: list[dict] = []

    def _next_name(self) -> str:
        return f"Layer {len(self.layers) + 1}"

    def _add_tiles(self, url: str, name: str, kind: str, shown: bool, opacity: float,
                   attribution: str = EE_ATTRIBUTION) -> dict:
        self.widget.add_tile_layer(
            url,
            name=name,
            attribution=attribution,
            opacity=opacity,
            shown=shown,
        )
        layer = {"name": name, "url": url, "kind": kind}
        self.layers.append(layer)
        logger.debug("Added %s layer %r", kind, name)
        return layer

    def add_layer(
        self,
        ee_object,
        vis_params: dict | None = None,
        name: str | None = None,
        shown: bool = True,
        opacity: float = 1.0,
    ) -> dict:
        """
        Add an Earth Engine object as a tile layer.

        Images are rendered with ``vis_params``; image collections are
        mosaicked first; geometries, features and feature collections are
        painted with ``color``/``fillColor``/``width`` from ``vis_params``.

        Returns:
            The layer record: ``{"name", "url", "kind"}``.
        """
        vis_params = dict(vis_params or {})
        name = name or self._next_name()
        kind = ee_type(ee_object)

        if kind == "ImageCollection":
            ee_object = ee_object.mosaic()
            url = ee_tile_url(ee_object, vis_params)
        elif kind == "Image":
            url = ee_tile_url(ee_object, vis_params)
        elif kind in VECTOR_TYPES:
            url = ee_tile_url(_vector_image(ee_object, vis_params))
        else:
            raise TypeError(f"Cannot display an Earth Engine {kind} on a map")

        return self._add_tiles(url, name, kind, shown, opacity)

    def add_layers(
        self,
        collection: ee.ImageCollection,
        vis_params: dict | None = None,
        names: list[str] | None = None,
        max_images: int = 10,
        shown: bool = True,
        opacity: float = 1.0,
    ) -> list[dict]:
        """
        Add the first ``max_images`` images of a collection, one layer each.

        Layer names default to the image ids (``system:index``).
        """
        ids = collection.limit(max_images).aggregate_array("system:index").getInfo()
        if names is not None and len(names) < len(ids):
            raise ValueError(f"Got {len(names)} names for {len(ids)} images")
        names = names or ids

        images = collection.toList(max_images)
        added = []
        for index, layer_name in enumerate(names[: len(ids)]):
            image = ee.Image(images.get(index))
            added.append(self.add_layer(image, vis_params, layer_name, shown, opacity))
        return added

    def add_cog_layer(
        self,
        cog_url: str,
        vis_params: dict | None = None,
        name: str | None = None,
        band_names: list[str] | None = None,
        shown: bool = True,
        opacity: float = 1.0,
    ) -> dict:
        """Add a public Cloud-Optimized GeoTIFF through the tile server."""
        url = cog_tile_url(cog_url, vis_params, band_names=band_names)
        return self._add_tiles(url, name or self._next_name(), "COG", shown, opacity,
                               attribution="TiTiler")

    def add_image_as_cog(
        self,
        image: ee.Image,
        file_name: str,
        vis_params: dict | None = None,
        name: str | None = None,
        bucket: str | None = None,
        region=None,
        scale: float | None = None,
        shown: bool = True,
        opacity: float = 1.0,
    ) -> dict:
        """
        Export ``image`` to Cloud Storage as a COG and display it.

        Blocks until the export task finishes. The exported object is made
        public so the tile server can read it.
        """
        result = image_to_cog_layer(
            image, file_name, bucket=bucket, region=region, scale=scale, vis_params=vis_params,
        )
        layer = self._add_tiles(result["tile_url"], name or file_name, "COG", shown, opacity,
                                attribution="TiTiler")
        layer["cog_url"] = result["cog_url"]
        return layer

    def set_center(self, lon: float, lat: float, zoom: int | None = None) -> None:
        """Move the view to (lon, lat), keeping the last zoom level unless ``zoom`` is given."""
        if zoom is None:
            zoom = self.zoom
        self.widget.set_center(lon, lat, zoom)
        self.zoom = zoom

    def center_object(self, ee_object, zoom: int | None = None) -> None:
        """
        Move the view to an Earth Engine object.

        Without ``zoom`` the map fits the object bounds; with it, the map is
        centered on the middle of the bounds at that zoom level.
        """
        if ee_type(ee_object) == "Geometry":
            geometry = ee_object
        else:
            geometry = ee_object.geometry()
        coords = geometry.bounds(1).getInfo()["coordinates"][0]
        lons = [c[0] for c in coords]
        lats = [c[1] for c in coords]
        west, east, south, north = min(lons), max(lons), min(lats), max(lats)

        if zoom is None:
            self.widget.fit_bounds([[south, west], [north, east]])
        else:
            self.set_center((west + east) / 2, (south + north) / 2, zoom)

    def add_layer_control(self) -> None:
        self.widget.add_layer_control()

    def to_html(self) -> str:
        """Render the map as a standalone HTML document."""
        return self.widget.get_root().render()

    def save(self, path: str) -> str:
        """Write the map to an HTML file and return its path."""
        self.widget.save(path)
        logger.info("Map saved to %s", path)
        return path


def create_map(**kwargs) -> EarthEngineMap:
    """Create an :class:`EarthEngineMap` (see its constructor for arguments)."""
    return EarthEngineMap(**kwargs)
