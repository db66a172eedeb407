import os
import sys
import re
import logging
import datetime
import warnings
import numpy as np
import rasterio as rio
import rasterio.mask as mask
from rasterio.transform import array_bounds
import geopandas as gpd
import config as cfg
import severity

logger = logging.getLogger(__name__)


class SatelliteImg:
    '''
    SatelliteImg holds the band data for a Sentinel-2 surface reflectance image (including the
    Scene Classification Layer) and has methods to mask it and calculate the NBR.

    Attributes:
        file_path: string holding the path to the satellite image, None for composites
        date: the date of the image, None for composites
        crs: the coordinate reference system for the image. Updated when load_band_data is called
        transform: the affine transform of the image. Updated when load_band_data is called
        bands_data: a 3D float32 array (bands, rows, cols). Pixels outside the fire boundary are NaN
        extent: a list holding the extent of the image [xmin, xmax, ymin, ymax]
    '''

    # Spectral band mapping depending on satellite
    bands = cfg.bands

    def __init__(self, file_path, date):
        self.file_path = file_path
        self.date = date
        self.crs = None
        self.transform = None
        self.bands_data = np.empty((0, 0, 0), dtype=np.float32)
        self.extent = []

    def load_band_data(self, fire_boundary=None):
        '''
        Loads all band data into a 3D array. If a fire boundary is provided the image is cropped
        to its extent and pixels outside of it are set to NaN.

        Args:
            fire_boundary: file path to a boundary vector file or a GeoDataFrame

        Raises:
            ValueError: if the boundary does not overlap the image
        '''
        logger.info("Loading band data for image: %s", self.file_path)

        with rio.open(self.file_path) as src:
            if fire_boundary is not None:
                if not isinstance(fire_boundary, gpd.GeoDataFrame):
                    fire_boundary = gpd.read_file(fire_boundary)
                boundary = fire_boundary.to_crs(src.crs)
                out_image, out_transform = mask.mask(src, boundary['geometry'], crop=True, filled=False)
            else:
                out_image, out_transform = src.read(masked=True), src.transform

            self.crs = src.crs
            self.transform = out_transform
            self.bands_data = np.ma.asarray(out_image).astype(np.float32).filled(np.nan)

        self._update_extent()
        logger.debug(self.description())

    def _update_extent(self):
        rows, cols = self.bands_data.shape[1:]
        xmin, ymin, xmax, ymax = array_bounds(rows, cols, self.transform)
        self.extent = [xmin, xmax, ymin, ymax]

    def band(self, name):
        return self.bands_data[self.bands[name] - 1]

    def scl_mask(self, valid=cfg.scl_valid):
        '''
        Returns: boolean array, True where the Scene Classification Layer holds a valid class
        '''
        return np.isin(self.band('SCL'), valid)

    def cloud_percentage(self, cloudy=cfg.scl_cloud):
        '''
        Calculates the share of pixels inside the fire boundary classified as cloud, cloud shadow
        or cirrus by the Scene Classification Layer.

        Returns:
            Percentage 0-100. An image without any pixel inside the boundary counts as 100
        '''
        scl = self.band('SCL')
        inside = ~np.isnan(scl)
        if not inside.any():
            return 100.0
        return float(np.isin(scl[inside], cloudy).sum()) / inside.sum() * 100

    def masked_bands(self):
        '''
        Returns: a copy of the band data with pixels of invalid SCL classes set to NaN
        '''
        masked = self.bands_data.copy()
        masked[:, ~self.scl_mask()] = np.nan
        return masked

    def nbr(self):
        '''
        Calculates the Normalized Burn Ratio (NBR) as
        NBR = (NIR - SWIR2)/(NIR + SWIR2)

        Returns:
            An array with NBR values for the satellite image
        '''
        logger.info("Calculating NBR for %s", self.date or "composite")
        return severity.nbr(self.band('NIR'), self.band('SWIR2'))

    def description(self):
        return '(bands, height, width): ' + str(self.bands_data.shape)


def median_composite(images):
    '''
    Builds a cloud masked median composite from a list of images. Each pixel is the median of
    its valid (SCL masked) observations, pixels without any valid observation are NaN.

    Args:
        images: list of loaded SatelliteImg objects sharing the same grid

    Returns:
        A SatelliteImg holding the composite

    Raises:
        ValueError: if images is empty or the images are not on the same grid
    '''
    if not images:
        raise ValueError("No images to composite")

    first = images[0]
    for img in images[1:]:
        if img.bands_data.shape != first.bands_data.shape or img.transform != first.transform:
            raise ValueError("Image {} is not on the same grid as {}".format(img.file_path, first.file_path))

    logger.info("Building median composite from %d images", len(images))
    stack = np.stack([img.masked_bands() for img in images])

    # All-NaN pixels are expected where every observation was masked
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', category=RuntimeWarning)
        median = np.nanmedian(stack, axis=0).astype(np.float32)

    composite = SatelliteImg(None, None)
    composite.crs = first.crs
    composite.transform = first.transform
    composite.bands_data = median
    composite._update_extent()
    return composite


def pixel_area(transform, crs):
    '''
    Returns: area of a single pixel in m2

    Raises:
        ValueError: if the crs is geographic
    '''
    if crs is None or crs.is_geographic:
        raise ValueError("Pixel area needs a projected CRS in metres, got {}".format(crs))
    return abs(transform.a * transform.e)


def hex_to_rgba(color):
    color = color.lstrip('#')
    return tuple(int(color[i:i + 2], 16) for i in (0, 2, 4)) + (255,)


def write_raster(path, array, template, nodata=None, colors=None):
    '''
    Writes a single band GeoTIFF on the grid of the template image.

    Args:
        path: output file path
        array: 2D array to write
        template: SatelliteImg providing crs and transform
        nodata: nodata value for the file
        colors: optional list of hex colors written as a color map (uint8 rasters only)
    '''
    profile = {"driver": "GTiff",
               "height": array.shape[0],
               "width": array.shape[1],
               "count": 1,
               "dtype": array.dtype.name,
               "crs": template.crs,
               "transform": template.transform,
               "nodata": nodata,
               "compress": "lzw"}

    with rio.open(path, "w", **profile) as dest:
        dest.write(array, 1)
        if colors is not None:
            dest.write_colormap(1, {i: hex_to_rgba(c) for i, c in enumerate(colors)})

    logger.info("Saved %s", path)


def filter_scenes(images, start, end, max_cloud=cfg.max_cloud):
    '''
    Selects the images inside a date window that are not too cloudy.

    Args:
        images: list of loaded SatelliteImg objects
        start: first date of the window
        end: end of the window (exclusive)
        max_cloud: highest accepted cloud percentage

    Returns:
        List of SatelliteImg objects sorted by date
    '''
    selected = []
    for img in sorted(images, key=lambda i: i.date):
        if not start <= img.date < end:
            continue
        cloud = img.cloud_percentage()
        if cloud > max_cloud:
            logger.info("Skipping %s, %.1f%% cloudy", img.file_path, cloud)
            continue
        selected.append(img)

    logger.info("%d images selected for %s to %s", len(selected), start, end)
    return selected


def load_satellite_imgs(data_dir=cfg.data_dir, fire_boundary=None):
    '''
    Takes all satellite images in the data directory and creates a list of SatelliteImg objects.
    Images will be cropped by the fire boundary. If no boundary is given, a file ending with
    boundary.shp in the data directory is used when one exists.

    Images need an 8 digit date (YYYYMMDD) in their file name. Images not overlapping the
    boundary are skipped.

    Returns:
        List of SatelliteImg objects
    '''
    images = []

    try:
        files = sorted(os.listdir(data_dir))
    except FileNotFoundError:
        sys.exit("No files found in the data directory: {}".format(data_dir))

    if fire_boundary is None:
        for f in files:
            if f.endswith('boundary.shp'):
                fire_boundary = os.path.join(data_dir, f)
        if fire_boundary is not None:
            logger.info("Using fire boundary %s", fire_boundary)

    if fire_boundary is not None and not isinstance(fire_boundary, gpd.GeoDataFrame):
        fire_boundary = gpd.read_file(fire_boundary)

    for f in files:
        if f.endswith('.img') or f.endswith('.tif'):
            match = re.search(r'\d{4}\d{2}\d{2}', f)
            if bool(match):
                date = datetime.datetime.strptime(match.group(), '%Y%m%d').date()
                img = SatelliteImg(os.path.join(data_dir, f), date)
                try:
                    img.load_band_data(fire_boundary)
                except ValueError:
                    logger.warning("No overlap found for %s", img.file_path)
                    continue
                images.append(img)

    return images
