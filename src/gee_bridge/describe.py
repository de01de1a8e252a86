"""Inspect Earth Engine objects: types, dates and metadata summaries."""

from datetime import datetime, timezone

import ee
import pandas as pd


def ee_type(obj) -> str:
    """
    Return the Earth Engine class name of ``obj`` ("Image", "ImageCollection", ...).

    Raises:
        TypeError: If ``obj`` is not an Earth Engine object.
    """
    if not isinstance(obj, ee.ComputedObject):
        raise TypeError(f"Expected an Earth Engine object, got {type(obj).__name__}")
    return obj.name()


def _millis_to_datetime(millis) -> datetime | None:
    if millis is None:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def image_date(image: ee.Image) -> datetime | None:
    """Acquisition date (``system:time_start``) of an image, in UTC."""
    return _millis_to_datetime(image.get('system:time_start').getInfo())


def _date_row(image: ee.Image) -> ee.Feature:
    return ee.Feature(None, {
        'id': image.get('system:id'),
        'index': image.get('system:index'),
        'time_start': image.get('system:time_start'),
    })


def collection_dates(collection: ee.ImageCollection) -> pd.DataFrame:
    """
    List the images of a collection with their acquisition dates.

    Images without an asset id (computed collections) are listed under their
    ``system:index``; images without a date get ``None``.

    Returns:
        DataFrame with columns ``id`` and ``time_start`` (UTC), one row per
        image, in collection order.
    """
    info = ee.FeatureCollection(collection.map(_date_row)).getInfo()
    rows = [feature.get('properties') or {} for feature in info['features']]
    return pd.DataFrame({
        'id': [row.get('id') or row.get('index') for row in rows],
        'time_start': [_millis_to_datetime(row.get('time_start')) for row in rows],
    }, columns=['id', 'time_start'])


def _describe_image(image: ee.Image) -> dict:
    info = image.getInfo()
    bands = info.get('bands', [])
    properties = info.get('properties', {})
    first_band = bands[0] if bands else {}
    return {
        'type': 'Image',
        'id': info.get('id'),
        'bands': [b['id'] for b in bands],
        'crs': first_band.get('crs'),
        'nominal_scale': image.projection().nominalScale().getInfo() if bands else None,
        'dimensions': first_band.get('dimensions'),
        'n_properties': len(properties),
        'date': _millis_to_datetime(properties.get('system:time_start')),
    }


def describe(ee_object) -> dict:
    """
    Summarize an Earth Engine object.

    Images report band names, CRS, nominal scale and date; collections report
    their size and a summary of the first image; feature collections report
    size and column names; geometries report type and area (km²).
    """
    kind = ee_type(ee_object)

    if kind == 'Image':
        return _describe_image(ee_object)

    if kind == 'ImageCollection':
        size = ee_object.size().getInfo()
        return {
            'type': kind,
            'size': size,
            'first_image': _describe_image(ee_object.first()) if size else None,
        }

    if kind == 'FeatureCollection':
        size = ee_object.size().getInfo()
        first = ee_object.first().getInfo() if size else {}
        return {
            'type': kind,
            'size': size,
            'columns': sorted((first.get('properties') or {}).keys()),
            'geometry_type': (first.get('geometry') or {}).get('type'),
        }

    if kind == 'Feature':
        info = ee_object.getInfo()
        return {
            'type': kind,
            'columns': sorted((info.get('properties') or {}).keys()),
            'geometry_type': (info.get('geometry') or {}).get('type'),
        }

    if kind == 'Geometry':
        return {
            'type': kind,
            'geometry_type': ee_object.type().getInfo(),
            'area_km2': ee_object.area(1).divide(1e6).getInfo(),
        }

    return {'type': kind, 'value': ee_object.getInfo()}


def print_info(ee_object) -> None:
    """Print :func:`describe` output in a readable form."""
    summary = describe(ee_object)
    print(f"Earth Engine {summary.pop('type')}")
    for key, value in summary.items():
        if isinstance(value, dict):
            print(f"  {key}:")
            for sub_key, sub_value in value.items():
                print(f"    {sub_key}: {sub_value}")
        else:
            print(f"  {key}: {value}")
