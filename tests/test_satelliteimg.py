# tests/test_satelliteimg.py
# ------------------------------------------------------------
# Purpose: Tests for the local raster backend: loading and
#          cropping scenes, SCL masking, median composites and
#          GeoTIFF output.
# ------------------------------------------------------------

import datetime
import logging

import numpy as np
import pytest
import rasterio
import geopandas as gpd
from shapely.geometry import box
from rasterio.crs import CRS
from rasterio.transform import from_origin

import config as cfg
import satelliteimg
from satelliteimg import SatelliteImg, median_composite, filter_scenes, load_satellite_imgs, pixel_area


def load(path, boundary=None, date=datetime.date(2024, 4, 1)):
    img = SatelliteImg(str(path), date)
    img.load_band_data(None if boundary is None else str(boundary))
    return img


def test_load_band_data_without_boundary(tmp_path, make_scene):
    img = load(make_scene(tmp_path / "S2_20240401.tif"))

    assert img.bands_data.shape == (13, 10, 10)
    assert img.bands_data.dtype == np.float32
    assert not np.isnan(img.bands_data).any()
    assert img.extent == [500000.0, 500100.0, 5999900.0, 6000000.0]


def test_load_band_data_crops_to_boundary(tmp_path, make_scene, half_perimeter):
    img = load(make_scene(tmp_path / "S2_20240401.tif"), half_perimeter)

    nir = img.band('NIR')
    # Only pixels with their centre inside the perimeter keep data
    assert np.count_nonzero(~np.isnan(nir)) == 50
    assert np.nanmax(nir) == 3000


def test_load_band_data_no_overlap_raises(tmp_path, make_scene, far_perimeter):
    with pytest.raises(ValueError):
        load(make_scene(tmp_path / "S2_20240401.tif"), far_perimeter)


def test_scl_mask_and_cloud_percentage(tmp_path, make_scene):
    scl = np.full((10, 10), 4)
    scl[:5, :5] = 8   # 25 cloudy pixels
    scl[9, :] = 0     # 10 no data pixels
    img = load(make_scene(tmp_path / "S2_20240401.tif", scl=scl))

    valid = img.scl_mask()
    assert valid.sum() == 65
    assert img.cloud_percentage() == pytest.approx(25.0)

    masked = img.masked_bands()
    assert np.isnan(masked[:, 0, 0]).all()
    assert not np.isnan(masked[:, 5, 5]).any()
    # The original band data is left untouched
    assert not np.isnan(img.bands_data).any()


def test_cloud_percentage_only_counts_pixels_inside_boundary(tmp_path, make_scene, half_perimeter):
    scl = np.full((10, 10), 4)
    scl[:, 5:] = 9    # clouds over the right half, outside the perimeter
    img = load(make_scene(tmp_path / "S2_20240401.tif", scl=scl), half_perimeter)

    assert img.cloud_percentage() == 0.0


def test_median_composite_uses_valid_observations_only(tmp_path, make_scene):
    scl_cloudy_corner = np.full((10, 10), 4)
    scl_cloudy_corner[0, 0] = 9
    images = [
        load(make_scene(tmp_path / "a_20240401.tif", nir=1000)),
        load(make_scene(tmp_path / "b_20240402.tif", nir=2000)),
        load(make_scene(tmp_path / "c_20240403.tif", nir=6000, scl=scl_cloudy_corner)),
    ]

    composite = median_composite(images)
    nir = composite.band('NIR')

    assert composite.date is None
    assert composite.transform == images[0].transform
    assert nir[5, 5] == 2000
    # The cloudy observation is dropped: median of 1000 and 2000
    assert nir[0, 0] == 1500


def test_median_composite_all_masked_pixel_is_nan(tmp_path, make_scene):
    scl = np.full((10, 10), 4)
    scl[3, 3] = 3
    composite = median_composite([load(make_scene(tmp_path / "a_20240401.tif", scl=scl))])

    assert np.isnan(composite.band('NIR')[3, 3])
    assert np.isnan(composite.nbr()[3, 3])
    assert composite.nbr()[0, 0] == pytest.approx(0.5)


def test_median_composite_requires_images():
    with pytest.raises(ValueError):
        median_composite([])


def test_median_composite_requires_same_grid(tmp_path, make_scene):
    a = load(make_scene(tmp_path / "a_20240401.tif"))
    b = load(make_scene(tmp_path / "b_20240402.tif", origin_x=600000.0))
    with pytest.raises(ValueError):
        median_composite([a, b])


def test_filter_scenes_by_window_and_cloud(tmp_path, make_scene):
    cloudy = np.full((10, 10), 8)
    images = [
        load(make_scene(tmp_path / "a.tif"), date=datetime.date(2024, 3, 30)),
        load(make_scene(tmp_path / "b.tif"), date=datetime.date(2024, 4, 5)),
        load(make_scene(tmp_path / "c.tif"), date=datetime.date(2024, 3, 31)),
        load(make_scene(tmp_path / "d.tif", scl=cloudy), date=datetime.date(2024, 4, 6)),
        load(make_scene(tmp_path / "e.tif"), date=datetime.date(2024, 4, 20)),
    ]

    selected = filter_scenes(images, datetime.date(2024, 3, 31), datetime.date(2024, 4, 20), max_cloud=20)

    assert [img.date for img in selected] == [datetime.date(2024, 3, 31), datetime.date(2024, 4, 5)]


def test_load_satellite_imgs(data_dir, make_scene, half_perimeter):
    make_scene(data_dir / "S2_20240401.tif")
    make_scene(data_dir / "S2_20240515.tif")
    make_scene(data_dir / "no_date.tif")
    (data_dir / "notes.txt").write_text("not a raster")

    images = load_satellite_imgs(str(data_dir), str(half_perimeter))

    assert sorted(img.date for img in images) == [datetime.date(2024, 4, 1), datetime.date(2024, 5, 15)]
    assert all(np.count_nonzero(~np.isnan(img.band('NIR'))) == 50 for img in images)


def test_load_satellite_imgs_skips_scenes_outside_boundary(data_dir, make_scene, far_perimeter):
    make_scene(data_dir / "S2_20240401.tif")
    assert load_satellite_imgs(str(data_dir), str(far_perimeter)) == []


def test_load_satellite_imgs_missing_directory(tmp_path):
    with pytest.raises(SystemExit):
        load_satellite_imgs(str(tmp_path / "missing"))


def test_pixel_area():
    assert pixel_area(from_origin(0, 0, 10, 10), CRS.from_epsg(32633)) == 100.0
    with pytest.raises(ValueError):
        pixel_area(from_origin(0, 0, 0.0001, 0.0001), CRS.from_epsg(4326))


def test_write_raster_with_color_map(tmp_path, make_scene):
    template = load(make_scene(tmp_path / "S2_20240401.tif"))
    classified = np.full((10, 10), 7, dtype=np.uint8)
    classified[0, 0] = cfg.nodata
    out = tmp_path / "severity.tif"

    satelliteimg.write_raster(str(out), classified, template, nodata=cfg.nodata, colors=cfg.colors)

    with rasterio.open(out) as src:
        assert src.crs == template.crs
        assert src.transform == template.transform
        assert src.nodata == cfg.nodata
        assert src.read(1)[5, 5] == 7
        assert src.colormap(1)[7] == (75, 0, 0, 255)
        assert src.colormap(1)[0] == (0, 100, 0, 255)


def test_hex_to_rgba():
    assert satelliteimg.hex_to_rgba('#FEC965') == (254, 201, 101, 255)


def test_load_satellite_imgs_finds_boundary_in_data_dir(data_dir, make_scene, caplog):
    gpd.GeoDataFrame({"name": ["fire"]}, geometry=[box(500000, 5999900, 500050, 6000000)],
                     crs="EPSG:32633").to_file(data_dir / "fire_boundary.shp")
    make_scene(data_dir / "S2_20240401.tif")

    with caplog.at_level(logging.INFO, logger="satelliteimg"):
        images = load_satellite_imgs(str(data_dir))

    assert np.count_nonzero(~np.isnan(images[0].band('NIR'))) == 50
    assert "fire_boundary.shp" in caplog.text
