# tests/conftest.py
# ------------------------------------------------------------
# Purpose: Build tiny synthetic Sentinel-2 scenes (B1..B12 + SCL)
# and fire perimeters on disk so the local pipeline can be tested
# without real imagery.
# ------------------------------------------------------------

import numpy as np
import pytest
import rasterio
import geopandas as gpd
from rasterio.transform import from_origin
from shapely.geometry import box

import config as cfg

# 10 x 10 pixels of 10 m in UTM zone 33N
CRS = "EPSG:32633"
ORIGIN_X, ORIGIN_Y = 500000.0, 6000000.0
SIZE = 10
RES = 10.0
N_BANDS = 13


def write_scene(path, nir=3000, swir2=1000, scl=4, origin_x=ORIGIN_X):
    """Write a scene where every band is 1000 except NIR, SWIR2 and SCL."""
    data = np.full((N_BANDS, SIZE, SIZE), 1000, dtype=np.uint16)
    data[cfg.bands['NIR'] - 1] = nir
    data[cfg.bands['SWIR2'] - 1] = swir2
    data[cfg.bands['SCL'] - 1] = scl

    profile = {
        "driver": "GTiff",
        "height": SIZE,
        "width": SIZE,
        "count": N_BANDS,
        "dtype": "uint16",
        "crs": CRS,
        "transform": from_origin(origin_x, ORIGIN_Y, RES, RES),
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data)
    return path


def write_perimeter(path, geometry):
    gpd.GeoDataFrame({"name": ["fire"]}, geometry=[geometry], crs=CRS).to_file(path, driver="GeoJSON")
    return path


@pytest.fixture
def half_perimeter(tmp_path):
    # Left half of the scene: pixel centres of columns 0-4 are inside
    geometry = box(ORIGIN_X, ORIGIN_Y - SIZE * RES, ORIGIN_X + 5 * RES, ORIGIN_Y)
    return write_perimeter(tmp_path / "fire_boundary.geojson", geometry)


@pytest.fixture
def far_perimeter(tmp_path):
    # 10 km east of the scene, no overlap
    geometry = box(ORIGIN_X + 10000, ORIGIN_Y - 100, ORIGIN_X + 10100, ORIGIN_Y)
    return write_perimeter(tmp_path / "far_boundary.geojson", geometry)


@pytest.fixture
def make_scene():
    return write_scene


@pytest.fixture
def data_dir(tmp_path):
    d = tmp_path / "data_files"
    d.mkdir()
    return d
