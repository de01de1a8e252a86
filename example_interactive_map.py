"""Example: Earth Engine layers and a COG export on one interactive map."""

import ee

from gee_bridge import initialize_ee
from gee_bridge.describe import describe
from gee_bridge.map import create_map
from gee_bridge.thumbnail import create_thumbnail


def main():
    """Build an HTML map of elevation and Sentinel-2 imagery over Nepal."""

    print("Initializing Earth Engine...")
    session = initialize_ee()
    print(f"✓ Earth Engine initialized with project: {session['project']}")

    elevation = ee.Image('USGS/SRTMGL1_003')
    nepal = ee.FeatureCollection('USDOS/LSIB_SIMPLE/2017').filter(ee.Filter.eq('country_co', 'NP'))
    s2 = (
        ee.ImageCollection('COPERNICUS/S2_SR_HARMONIZED')
          .filterBounds(nepal)
          .filterDate('2024-01-01', '2024-02-01')
          .filter(ee.Filter.lt('CLOUDY_PIXEL_PERCENTAGE', 10))
    )
    print(f"Sentinel-2 images: {describe(s2)['size']}")

    # Example 1: layers rendered by Earth Engine
    m = create_map(center=(84.1, 28.4), zoom=7, basemap='HYBRID')
    m.add_layer(elevation, {'min': 0, 'max': 8000, 'palette': ['006633', 'E5FFCC', '662A00', 'D8D8D8', 'F5F5F5']},
                'Elevation')
    m.add_layer(s2, {'bands': ['B4', 'B3', 'B2'], 'min': 0, 'max': 3000}, 'Sentinel-2 mosaic', shown=False)
    m.add_layer(nepal, {'color': 'red', 'width': 1}, 'Border')
    m.center_object(nepal)

    # Example 2: the same DEM served from Cloud Storage by the tile server
    print("\nExporting elevation as a Cloud-Optimized GeoTIFF (this waits for the task)...")
    layer = m.add_image_as_cog(
        elevation.clip(nepal.geometry()),
        'examples/nepal_dem',
        vis_params={'min': 0, 'max': 8000, 'palette': 'terrain'},
        name='Elevation (COG)',
        region=nepal.geometry().bounds(),
        scale=250,
    )
    print(f"✓ COG available at: {layer['cog_url']}")

    m.add_layer_control()
    print(f"✓ Map saved to: {m.save('temp/nepal_map.html')}")

    # Example 3: static preview
    thumbnail_path = create_thumbnail(
        elevation,
        'temp/nepal_elevation.png',
        country_code='NP',
        image_vmin=0,
        image_vmax=8000,
        geometry_kwargs={'edgecolor': 'red', 'linewidth': 1.0},
        title='Nepal - Elevation',
    )
    print(f"✓ Thumbnail saved to: {thumbnail_path}")


if __name__ == "__main__":
    main()
