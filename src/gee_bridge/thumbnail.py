"""Static PNG previews of Earth Engine images, rendered with cartopy."""

import re

import matplotlib
matplotlib.use('Agg')

import ee
import matplotlib.pyplot as plt
import cartopy.crs as ccrs
import numpy as np
import pyproj
import shapely
from shapely.geometry import box, mapping, shape
from shapely.ops import transform as shapely_transform
import wkls

from gee_bridge.convert import image_to_array, to_ee_geometry


def get_utm_epsg(lon: float, lat: float) -> int:
    """
    Determine the EPSG code for the most appropriate UTM projection.

    UTM divides the world into 60 zones, each 6 degrees of longitude wide.
    Each zone has a northern (N) and southern (S) variant based on the equator.

    Parameters
    ----------
    lon : float
        Longitude in decimal degrees (-180 to 180)
    lat : float
        Latitude in decimal degrees (-90 to 90)

    Returns
    -------
    int
        EPSG code for the UTM zone. Format:
        - Northern hemisphere: 326xx (where xx is the zone number 01-60)
        - Southern hemisphere: 327xx (where xx is the zone number 01-60)

    Examples
    --------
    >>> get_utm_epsg(-122.4, 37.8)  # San Francisco
    32610
    >>> get_utm_epsg(151.2, -33.9)  # Sydney
    32756

    Notes
    -----
    Special zones for Norway and Svalbard are not handled.
    """
    # Zone 1 starts at -180°, each zone is 6° wide
    utm_zone = int((lon + 180) / 6) + 1
    utm_zone = max(1, min(60, utm_zone))

    if lat >= 0:
        return 32600 + utm_zone
    return 32700 + utm_zone


def get_utm_proj_without_limits(utm_zone: int, is_south: bool) -> ccrs.TransverseMercator:
    """Get a UTM projection without the hard-coded x_limits."""
    # Central meridian of zone N: (N-1)*6° - 180° + 3°
    central_longitude = (utm_zone - 1) * 6 - 180 + 3

    return ccrs.TransverseMercator(
        central_longitude=central_longitude,
        scale_factor=0.9996,
        false_easting=500000.0,
        false_northing=10000000.0 if is_south else 0.0,
    )


def _validate_country_code(country_code: str) -> None:
    """
    Validate that the country code is a valid ISO 3166-1 alpha-2 code.

    Raises
    ------
    TypeError
        If country_code is not a string
    ValueError
        If country_code is not exactly 2 letters
    """
    if not isinstance(country_code, str):
        raise TypeError(
            f"country_code must be a string, got {type(country_code).__name__}"
        )

    if not country_code or country_code.isspace():
        raise ValueError("country_code cannot be empty or whitespace")

    if not re.match(r'^[A-Za-z]{2}$', country_code):
        raise ValueError(
            f"country_code must be a 2-letter ISO 3166-1 alpha-2 code (e.g., 'US', 'FR', 'JP'). "
            f"Got: '{country_code}'"
        )


def country_geometry(country_code: str) -> shapely.Geometry:
    """
    Boundary of a country as a shapely geometry (EPSG:4326).

    Raises
    ------
    TypeError, ValueError
        If the code is malformed or unknown.
    """
    _validate_country_code(country_code)
    try:
        country_wkb = wkls[country_code.lower()].wkb()
    except ValueError as e:
        raise ValueError(
            f"Country code '{country_code}' not found in database. "
            f"Please use a valid ISO 3166-1 alpha-2 code (e.g., 'US', 'FR', 'JP')."
        ) from e
    return shapely.from_wkb(bytes(country_wkb))


def _region_geometry(region) -> shapely.Geometry:
    """Shapely geometry for a bbox, a __geo_interface__ object or an ee object."""
    if isinstance(region, (list, tuple)) and len(region) == 4:
        return box(*region)
    if isinstance(region, ee.ComputedObject):
        return shape(to_ee_geometry(region).getInfo())
    if hasattr(region, '__geo_interface__'):
        return shape(region.__geo_interface__)
    raise ValueError(
        "region must be a bbox, a shapely/GeoPandas geometry or an Earth Engine geometry"
    )


def create_thumbnail(
    ee_image: ee.Image = None,
    output_path: str = None,
    country_code: str = None,
    region=None,
    show_stock_img: bool = False,
    show_border: bool = True,
    title: str = None,
    geometry_kwargs: dict = None,
    clip_ee_image: bool = False,
    dpi: int = 150,
    image_cmap: str = None,
    image_vmin: float = 0,
    image_vmax: float = 1,
) -> str:
    """
    Render a PNG preview of an Earth Engine image over a country or region.

    The map is drawn in the UTM zone of the region centroid, with 15% padding
    around the region.

    Parameters
    ----------
    ee_image : ee.Image, optional
        Image to render under the outline. Without it only the outline is drawn.
    output_path : str, optional
        Where to save the PNG. Defaults to '{country_code}.png' or
        'thumbnail.png'.
    country_code : str, optional
        ISO 3166-1 alpha-2 code; the country boundary becomes the region.
    region : optional
        Used when no country_code is given: a bbox, a shapely or GeoPandas
        geometry, or an Earth Engine geometry/feature.
    show_stock_img : bool, optional
        Draw the cartopy stock image underneath.
    show_border : bool, optional
        Outline the region.
    title : str, optional
        Title of the map.
    geometry_kwargs : dict, optional
        Passed to ``add_geometries``, e.g. {'edgecolor': 'black', 'linewidth': 0.5}.
    clip_ee_image : bool, optional
        Clip the image to the region instead of filling the map extent.
    dpi : int, optional
        Output resolution; the image is requested at about 4 inches worth of
        pixels along the longer side.
    image_cmap, image_vmin, image_vmax : optional
        Colormap and value range of single-band images.

    Returns
    -------
    str
        Path to the saved PNG file
    """
    if country_code is not None:
        region_geometry = country_geometry(country_code)
        default_name = f"{country_code.lower()}.png"
    elif region is not None:
        region_geometry = _region_geometry(region)
        default_name = "thumbnail.png"
    else:
        raise ValueError("Provide either country_code or region")

    if output_path is None:
        output_path = default_name
    geometry_kwargs = dict(geometry_kwargs or {})

    centroid = region_geometry.centroid
    utm_epsg = get_utm_epsg(centroid.x, centroid.y)
    proj = get_utm_proj_without_limits(utm_epsg % 100, centroid.y < 0)

    fig = plt.figure(figsize=(12, 8))
    ax = fig.add_subplot(1, 1, 1, projection=proj)

    if show_stock_img:
        ax.stock_img(alpha=1.0)

    wgs84_to_utm = pyproj.Transformer.from_crs("EPSG:4326", f"EPSG:{utm_epsg}", always_xy=True)
    region_utm = shapely_transform(wgs84_to_utm.transform, region_geometry)

    bounds = region_utm.bounds
    x_range = bounds[2] - bounds[0]
    y_range = bounds[3] - bounds[1]
    padding_x = x_range * 0.15
    padding_y = y_range * 0.15

    extent = [
        bounds[0] - padding_x,  # minx
        bounds[2] + padding_x,  # maxx
        bounds[1] - padding_y,  # miny
        bounds[3] + padding_y  # maxy
    ]
    ax.set_extent(extent, crs=proj)

    if ee_image is not None:
        ee_region = ee.Geometry.Rectangle(
            [extent[0], extent[2], extent[1], extent[3]],
            proj=ee.Projection(f'EPSG:{utm_epsg}'),
            evenOdd=False
        )
        if clip_ee_image:
            # EE rejects MultiPolygons in projected CRS, so clip in WGS84
            ee_image = ee_image.clip(ee.Geometry(mapping(region_geometry)))

        scale = max(x_range, y_range) / (dpi * 4)
        img_array, img_bounds = image_to_array(ee_image, ee_region, scale, crs=f'EPSG:{utm_epsg}')

        if image_cmap is None:
            if np.all((img_array == 0) | (img_array == 1)):
                image_cmap = 'binary'
            else:
                image_cmap = 'grey'

        left, bottom, right, top = img_bounds
        ax.imshow(
            img_array,
            extent=[left, right, bottom, top],
            origin='upper',
            transform=proj,
            vmin=image_vmin,
            vmax=image_vmax,
            cmap=image_cmap
        )

    if show_border:
        geometry_kwargs.setdefault("facecolor", 'none')
        ax.add_geometries([region_utm], proj, **geometry_kwargs)

    for spine in ax.spines.values():
        spine.set_visible(False)

    if title:
        plt.title(title, fontsize=16, fontweight='bold')

    plt.tight_layout()
    plt.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)

    return output_path
