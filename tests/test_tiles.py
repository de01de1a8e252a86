"""Tests for tile URL building and the COG layer pipeline."""

import json
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import ee
import pytest

from gee_bridge.tiles import (
    cog_bounds,
    cog_info,
    cog_tile_url,
    ee_tile_url,
    image_to_cog_layer,
    palette_to_colormap,
    vis_to_tiler_params,
)

COG = "https://storage.googleapis.com/my-bucket/dem.tif"
ENDPOINT = "https://tiles.example.com"


def _query(url):
    return parse_qs(urlsplit(url).query)


class TestVisToTilerParams:

    def test_empty(self):
        assert vis_to_tiler_params() == {}
        assert vis_to_tiler_params({}) == {}

    def test_band_names_to_indexes(self):
        params = vis_to_tiler_params({'bands': ['B4', 'B3', 'B2']}, band_names=['B2', 'B3', 'B4'])
        assert params['bidx'] == [3, 2, 1]

    def test_integer_bands_are_kept(self):
        assert vis_to_tiler_params({'bands': [1, 2, 3]})['bidx'] == [1, 2, 3]

    def test_unknown_band(self):
        with pytest.raises(ValueError, match="Cannot resolve band 'B8'"):
            vis_to_tiler_params({'bands': 'B8'}, band_names=['B2'])

    def test_single_range(self):
        assert vis_to_tiler_params({'min': 0, 'max': 3000})['rescale'] == ['0,3000']

    def test_per_band_ranges_broadcast(self):
        params = vis_to_tiler_params({'min': 0, 'max': [100, 200, 300]})
        assert params['rescale'] == ['0,100', '0,200', '0,300']

    def test_min_without_max(self):
        with pytest.raises(ValueError, match="min and max"):
            vis_to_tiler_params({'min': 0})

    def test_named_colormap(self):
        assert vis_to_tiler_params({'palette': 'Viridis'}) == {'colormap_name': 'viridis'}

    def test_palette_list_to_colormap(self):
        params = vis_to_tiler_params({'palette': ['000000', 'ffffff']})
        colormap = json.loads(params['colormap'])
        assert len(colormap) == 256
        assert colormap['0'] == '#000000'
        assert colormap['255'] == '#ffffff'

    def test_comma_separated_palette(self):
        params = vis_to_tiler_params({'palette': 'red,blue'})
        assert 'colormap' in params
        assert 'colormap_name' not in params

    def test_unused_keys_are_ignored(self):
        assert vis_to_tiler_params({'gamma': 1.4, 'opacity': 0.5}) == {}


def test_palette_to_colormap_single_color():
    colormap = palette_to_colormap(['ff0000'], n=4)
    assert list(colormap) == [0, 1, 2, 3]
    assert set(colormap.values()) == {'#ff0000'}


def test_palette_to_colormap_empty():
    with pytest.raises(ValueError):
        palette_to_colormap([])


def test_cog_tile_url():
    url = cog_tile_url(COG, {'min': 0, 'max': 3000, 'palette': 'terrain'}, endpoint=ENDPOINT + "/")

    assert url.startswith(f"{ENDPOINT}/cog/tiles/WebMercatorQuad/{{z}}/{{x}}/{{y}}.png?")
    query = _query(url)
    assert query['url'] == [COG]
    assert query['rescale'] == ['0,3000']
    assert query['colormap_name'] == ['terrain']


def test_cog_tile_url_multiband():
    url = cog_tile_url(
        COG,
        {'bands': ['B4', 'B3', 'B2'], 'min': 0, 'max': 0.3},
        band_names=['B2', 'B3', 'B4'],
        endpoint=ENDPOINT,
        tile_matrix_set='WorldCRS84Quad',
    )

    assert '/cog/tiles/WorldCRS84Quad/' in url
    query = _query(url)
    assert query['bidx'] == ['3', '2', '1']
    assert query['rescale'] == ['0,0.3', '0,0.3', '0,0.3']


def test_ee_tile_url():
    image = MagicMock()
    image.getMapId.return_value = {
        'tile_fetcher': MagicMock(url_format='https://earthengine.googleapis.com/v1/x/tiles/{z}/{x}/{y}')
    }

    assert ee_tile_url(image, {'min': 0}).endswith('/tiles/{z}/{x}/{y}')
    image.getMapId.assert_called_once_with({'min': 0})


@patch('gee_bridge.tiles.requests.get')
def test_cog_info_and_bounds(mock_get):
    mock_get.return_value.json.return_value = {'bounds': [-10.0, 35.0, 5.0, 45.0], 'count': 1}

    assert cog_info(COG, endpoint=ENDPOINT)['count'] == 1
    mock_get.assert_called_with(f"{ENDPOINT}/cog/info", params={'url': COG}, timeout=60)

    assert cog_bounds(COG, endpoint=ENDPOINT) == (-10.0, 35.0, 5.0, 45.0)
    mock_get.assert_called_with(f"{ENDPOINT}/cog/bounds", params={'url': COG}, timeout=60)
    mock_get.return_value.raise_for_status.assert_called()


@patch('gee_bridge.tiles.exported_geotiffs', return_value=['gs://my-bucket/layers/dem.tif'])
@patch('gee_bridge.tiles.storage.make_public')
@patch('gee_bridge.tiles.wait_for_task')
@patch('gee_bridge.tiles.image_to_gcs')
def test_image_to_cog_layer(mock_export, mock_wait, mock_public, mock_written, ee_mock, mock_task):
    image = ee_mock(ee.Image)
    image.bandNames.return_value.getInfo.return_value = ['elevation']
    mock_export.return_value = mock_task
    mock_public.return_value = 'https://storage.googleapis.com/my-bucket/layers/dem.tif'

    layer = image_to_cog_layer(
        image, 'layers/dem', bucket='my-bucket', scale=90,
        vis_params={'min': 0, 'max': 4000}, endpoint=ENDPOINT, poll_interval=1,
    )

    mock_export.assert_called_once_with(
        image, 'layers/dem', bucket='my-bucket', region=None, scale=90, cloud_optimized=True
    )
    mock_wait.assert_called_once_with(mock_task, poll_interval=1)
    mock_written.assert_called_once_with('my-bucket', 'layers/dem')
    mock_public.assert_called_once_with('gs://my-bucket/layers/dem.tif')
    assert layer['gcs_uri'] == 'gs://my-bucket/layers/dem.tif'
    assert layer['cog_url'] == 'https://storage.googleapis.com/my-bucket/layers/dem.tif'
    assert layer['task_id'] == 'TASK123'
    assert _query(layer['tile_url'])['url'] == [layer['cog_url']]


@patch('gee_bridge.tiles.storage.make_public')
@patch('gee_bridge.tiles.wait_for_task')
@patch('gee_bridge.tiles.image_to_gcs')
class TestImageToCogLayerOutputs:

    @patch('gee_bridge.tiles.exported_geotiffs')
    def test_split_export_raises(self, mock_written, mock_export, mock_wait, mock_public, ee_mock, mock_task):
        mock_export.return_value = mock_task
        mock_written.return_value = [
            'gs://b/dem-0000000000-0000000000.tif',
            'gs://b/dem-0000000000-0000032768.tif',
        ]

        with pytest.raises(RuntimeError, match='split into 2 files'):
            image_to_cog_layer(ee_mock(ee.Image), 'dem', bucket='b')
        mock_public.assert_not_called()

    @patch('gee_bridge.tiles.exported_geotiffs', return_value=[])
    def test_nothing_written_raises(self, mock_written, mock_export, mock_wait, mock_public, ee_mock, mock_task):
        mock_export.return_value = mock_task

        with pytest.raises(RuntimeError, match='no GeoTIFF'):
            image_to_cog_layer(ee_mock(ee.Image), 'dem', bucket='b')
        mock_public.assert_not_called()

    @patch('gee_bridge.export.storage.list_objects')
    def test_export_options_and_listing(self, mock_list, mock_export, mock_wait, mock_public, ee_mock, mock_task):
        """Only the object the export wrote is published."""
        mock_export.return_value = mock_task
        mock_list.return_value = ['gs://b/dem.tif', 'gs://b/dem_2019.tif']
        mock_public.return_value = 'https://storage.googleapis.com/b/dem.tif'

        image = ee_mock(ee.Image)
        image.bandNames.return_value.getInfo.return_value = ['elevation']

        layer = image_to_cog_layer(image, 'dem', bucket='b', fileDimensions=65536)

        assert mock_export.call_args.kwargs['fileDimensions'] == 65536
        mock_list.assert_called_once_with('b', prefix='dem')
        mock_public.assert_called_once_with('gs://b/dem.tif')
        assert layer['gcs_uri'] == 'gs://b/dem.tif'
