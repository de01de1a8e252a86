"""Example: NDVI values and time series from MODIS."""

import ee
import geopandas as gpd
from shapely.geometry import Point

from gee_bridge import extract_time_series, extract_values, initialize_ee
from gee_bridge.extract import to_long


def main():
    """Extract MODIS NDVI at a few sites and over one region."""

    print("Initializing Earth Engine...")
    initialize_ee()

    ndvi = (
        ee.ImageCollection('MODIS/061/MOD13Q1')
          .filterDate('2023-01-01', '2024-01-01')
          .select('NDVI')
          .map(lambda image: image.multiply(0.0001).copyProperties(image, ['system:time_start']))
    )

    sites = gpd.GeoDataFrame(
        {'site': ['Manaus', 'Santarem', 'Porto Velho']},
        geometry=[Point(-60.02, -3.12), Point(-54.71, -2.44), Point(-63.90, -8.76)],
        crs='EPSG:4326',
    )

    # Example 1: one column per (image, band), one row per site
    print("\nExtracting NDVI at sites...")
    values = extract_values(ndvi, sites, scale=250)
    print(to_long(values, id_vars=['site'], bands=['NDVI']).head())

    # Example 2: regional mean time series
    print("\nExtracting regional NDVI time series...")
    region = (-60.5, -3.5, -59.5, -2.5)
    series = extract_time_series(ndvi, region, reducer='median', scale=500)
    print(series.describe())
    series.to_csv('temp/ndvi_series.csv')
    print("✓ Time series saved to: temp/ndvi_series.csv")


if __name__ == "__main__":
    main()
