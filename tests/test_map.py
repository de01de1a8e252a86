"""Tests for the interactive Earth Engine map."""

from unittest.mock import MagicMock, patch

import ee
import pytest

from gee_bridge.map import EarthEngineMap, create_map


@pytest.fixture
def mock_foliumap():
    with patch('gee_bridge.map.foliumap') as mock:
        yield mock


@pytest.fixture
def mock_tile_url():
    with patch('gee_bridge.map.ee_tile_url', return_value='https://ee/tiles/{z}/{x}/{y}') as mock:
        yield mock


@pytest.fixture
def ee_map(mock_foliumap):
    return create_map(center=(-62.5, -3.5), zoom=6)


def test_map_created_with_lat_lon(mock_foliumap):
    m = EarthEngineMap(center=(10.0, 45.0), zoom=4, basemap='HYBRID')

    mock_foliumap.Map.assert_called_once_with(center=[45.0, 10.0], zoom=4, basemap='HYBRID')
    assert m.widget is mock_foliumap.Map.return_value
    assert m.layers == []


def test_add_image_layer(ee_map, mock_tile_url, ee_mock):
    image = ee_mock(ee.Image)

    layer = ee_map.add_layer(image, {'min': 0, 'max': 3000}, 'DEM', opacity=0.5)

    assert layer == {'name': 'DEM', 'url': 'https://ee/tiles/{z}/{x}/{y}', 'kind': 'Image'}
    mock_tile_url.assert_called_once_with(image, {'min': 0, 'max': 3000})
    ee_map.widget.add_tile_layer.assert_called_once_with(
        'https://ee/tiles/{z}/{x}/{y}',
        name='DEM',
        attribution='Google Earth Engine',
        opacity=0.5,
        shown=True,
    )


def test_add_collection_is_mosaicked(ee_map, mock_tile_url, ee_mock):
    collection = ee_mock(ee.ImageCollection)

    layer = ee_map.add_layer(collection)

    mock_tile_url.assert_called_once_with(collection.mosaic.return_value, {})
    assert layer['name'] == 'Layer 1'
    assert layer['kind'] == 'ImageCollection'


def test_add_feature_collection_is_styled(ee_map, mock_tile_url, ee_mock):
    features = ee_mock(ee.FeatureCollection)

    ee_map.add_layer(features, {'color': '#ff0000', 'width': 1}, 'Sites')

    features.style.assert_called_once_with(color='ff0000', fillColor='ff000033', width=1, pointSize=3)
    mock_tile_url.assert_called_once_with(features.style.return_value)


def test_add_unsupported_type(ee_map, ee_mock):
    with pytest.raises(TypeError, match='Cannot display an Earth Engine Number'):
        ee_map.add_layer(ee_mock(ee.Number))


def test_default_names_count_layers(ee_map, mock_tile_url, ee_mock):
    ee_map.add_layer(ee_mock(ee.Image))
    layer = ee_map.add_layer(ee_mock(ee.Image))

    assert layer['name'] == 'Layer 2'


def test_add_layers(ee_map, mock_tile_url, ee_mock):
    collection = MagicMock()
    collection.limit.return_value.aggregate_array.return_value.getInfo.return_value = ['20240101', '20240111']
    images = [ee_mock(ee.Image), ee_mock(ee.Image)]

    with patch('gee_bridge.map.ee.Image', side_effect=images):
        layers = ee_map.add_layers(collection, {'bands': ['B4', 'B3', 'B2']}, max_images=2)

    assert [layer['name'] for layer in layers] == ['20240101', '20240111']
    collection.limit.assert_called_once_with(2)
    collection.toList.assert_called_once_with(2)
    assert mock_tile_url.call_count == 2


def test_add_layers_too_few_names(ee_map):
    collection = MagicMock()
    collection.limit.return_value.aggregate_array.return_value.getInfo.return_value = ['a', 'b']

    with pytest.raises(ValueError, match='Got 1 names for 2 images'):
        ee_map.add_layers(collection, names=['only one'])


def test_add_cog_layer(ee_map):
    layer = ee_map.add_cog_layer(
        'https://storage.googleapis.com/bucket/dem.tif', {'min': 0, 'max': 3000}, 'COG DEM'
    )

    assert layer['kind'] == 'COG'
    assert '/cog/tiles/' in layer['url']
    assert ee_map.widget.add_tile_layer.call_args.kwargs['attribution'] == 'TiTiler'


@patch('gee_bridge.map.image_to_cog_layer')
def test_add_image_as_cog(mock_cog_layer, ee_map, ee_mock):
    mock_cog_layer.return_value = {
        'tile_url': 'https://tiles/cog/tiles/WebMercatorQuad/{z}/{x}/{y}.png?url=x',
        'cog_url': 'https://storage.googleapis.com/bucket/dem.tif',
        'gcs_uri': 'gs://bucket/dem.tif',
        'task_id': 'TASK123',
    }
    image = ee_mock(ee.Image)

    layer = ee_map.add_image_as_cog(image, 'dem', {'min': 0, 'max': 3000}, bucket='bucket', scale=90)

    mock_cog_layer.assert_called_once_with(
        image, 'dem', bucket='bucket', region=None, scale=90, vis_params={'min': 0, 'max': 3000},
    )
    assert layer['name'] == 'dem'
    assert layer['cog_url'] == 'https://storage.googleapis.com/bucket/dem.tif'


def test_center_object_fits_bounds(ee_map, ee_mock):
    geometry = ee_mock(ee.Geometry)
    geometry.bounds.return_value.getInfo.return_value = {
        'type': 'Polygon',
        'coordinates': [[[-10, 35], [5, 35], [5, 45], [-10, 45], [-10, 35]]],
    }

    ee_map.center_object(geometry)

    geometry.bounds.assert_called_once_with(1)
    ee_map.widget.fit_bounds.assert_called_once_with([[35, -10], [45, 5]])


def test_center_object_with_zoom(ee_map, ee_mock):
    features = ee_mock(ee.FeatureCollection)
    features.geometry.return_value.bounds.return_value.getInfo.return_value = {
        'coordinates': [[[0, 0], [10, 0], [10, 20], [0, 20], [0, 0]]],
    }

    ee_map.center_object(features, zoom=8)

    ee_map.widget.set_center.assert_called_once_with(5.0, 10.0, 8)


def test_set_center_keeps_zoom(ee_map):
    ee_map.set_center(10.0, 45.0)
    ee_map.widget.set_center.assert_called_with(10.0, 45.0, 6)

    ee_map.set_center(11.0, 46.0, zoom=9)
    ee_map.set_center(12.0, 47.0)

    ee_map.widget.set_center.assert_called_with(12.0, 47.0, 9)


def test_save_and_html(ee_map, tmp_path):
    ee_map.widget.get_root.return_value.render.return_value = '<html></html>'
    path = str(tmp_path / 'map.html')

    assert ee_map.save(path) == path
    ee_map.widget.save.assert_called_once_with(path)
    assert ee_map.to_html() == '<html></html>'

    ee_map.add_layer_control()
    ee_map.widget.add_layer_control.assert_called_once()
