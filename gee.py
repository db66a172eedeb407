import os
import json
import logging
import ee
import geopandas as gpd
import pandas as pd
import shapely
import config as cfg
import severity

logger = logging.getLogger(__name__)

VECTOR_EXTENSIONS = ('.shp', '.geojson', '.json', '.gpkg', '.kml')


def initialize(project=cfg.ee_project):
    '''
    Initializes the Earth Engine client with the credentials stored by `earthengine authenticate`
    or the service account in GOOGLE_APPLICATION_CREDENTIALS.

    Raises:
        ee.EEException: if Earth Engine could not be initialized
    '''
    try:
        ee.Initialize(project=project)
    except ee.EEException:
        logger.error("Earth Engine initialization failed. Run: earthengine authenticate")
        raise
    logger.info("Earth Engine initialized (project: %s)", project)


def fire_perimeter(source=cfg.perimeter):
    '''
    Loads the fire perimeter as a single Earth Engine geometry.

    Args:
        source: path to a local vector file, or the id of a FeatureCollection asset

    Returns:
        ee.Geometry for the union of all perimeter features
    '''
    if str(source).lower().endswith(VECTOR_EXTENSIONS) and os.path.exists(source):
        logger.info("Reading fire perimeter from %s", source)
        boundary = gpd.read_file(source).to_crs(epsg=4326)
        return ee.Geometry(json.loads(shapely.to_geojson(boundary.geometry.union_all())))

    logger.info("Using fire perimeter asset %s", source)
    return ee.FeatureCollection(source).union().geometry()


def sentinel_collection(perimeter, start, end, max_cloud=cfg.max_cloud):
    '''
    Filters the Sentinel-2 collection by perimeter, date window (end exclusive) and scene cloudiness.
    '''
    return (ee.ImageCollection(cfg.collection)
            .filterBounds(perimeter)
            .filterDate(str(start), str(end))
            .filter(ee.Filter.lte('CLOUDY_PIXEL_PERCENTAGE', max_cloud)))


def collection_size(collection):
    return collection.size().getInfo()


def mask_by_scl(image):
    '''
    Masks all pixels whose Scene Classification Layer class is not in the valid classes.
    '''
    scl = image.select(cfg.ee_bands['SCL'])
    valid = scl.eq(cfg.scl_valid[0])
    for value in cfg.scl_valid[1:]:
        valid = valid.Or(scl.eq(value))
    return image.updateMask(valid)


def median_composite(collection, perimeter):
    return collection.map(mask_by_scl).median().clip(perimeter).toFloat()


def calculate_nbr(image):
    '''
    NBR = (NIR - SWIR2)/(NIR + SWIR2)
    '''
    nir = image.select(cfg.ee_bands['NIR'])
    swir2 = image.select(cfg.ee_bands['SWIR2'])
    return nir.subtract(swir2).divide(nir.add(swir2)).rename('NBR')


def calculate_dnbr(pre_image, post_image, perimeter):
    return calculate_nbr(pre_image).subtract(calculate_nbr(post_image)).rename('dNBR').clip(perimeter)


def classify_severity(dnbr, perimeter, thresholds=cfg.thresholds):
    expression = severity.severity_expression(thresholds, 'd')
    return dnbr.expression(expression, {'d': dnbr}).rename('severity').clip(perimeter)


def compute_area_by_class(severity_image, perimeter, class_value, scale=cfg.scale):
    '''
    Sums the pixel area of a single severity class inside the perimeter.

    Returns:
        ee.Feature without geometry, with properties severity_class and area_m2
    '''
    class_value = ee.Number(class_value)
    area_image = severity_image.eq(class_value).multiply(ee.Image.pixelArea()).rename('area_m2')
    area_stats = area_image.reduceRegion(reducer=ee.Reducer.sum(),
                                         geometry=perimeter,
                                         scale=scale,
                                         maxPixels=cfg.max_pixels)
    return ee.Feature(None, {'severity_class': class_value,
                             'area_m2': ee.Number(area_stats.get('area_m2'))})


def area_by_severity(severity_image, perimeter, labels=cfg.labels, scale=cfg.scale):
    '''
    Builds the area statistics for all severity classes on the server.

    Returns:
        ee.FeatureCollection with one feature per class holding severity_class, severity_label,
        area_m2, area_km2 and percent_of_fire
    '''
    classes = ee.List.sequence(0, len(labels) - 1)
    by_class = ee.FeatureCollection(
        classes.map(lambda value: compute_area_by_class(severity_image, perimeter, value, scale)))

    total_km2 = by_class.aggregate_sum('area_m2').divide(1e6)
    label_list = ee.List(labels)

    def add_stats(feature):
        area_km2 = ee.Number(feature.get('area_m2')).divide(1e6)
        percent = ee.Algorithms.If(total_km2.gt(0), area_km2.divide(total_km2).multiply(100), 0)
        label = label_list.get(ee.Number(feature.get('severity_class')).int())
        return feature.set({'area_km2': area_km2,
                            'percent_of_fire': percent,
                            'severity_label': label})

    return by_class.map(add_stats)


def to_dataframe(features):
    '''
    Converts fetched area statistics into a table.

    Args:
        features: the FeatureCollection as returned by getInfo()

    Returns:
        pandas DataFrame with the same columns as severity.area_table
    '''
    rows = [f['properties'] for f in features['features']]
    table = pd.DataFrame(rows, columns=['severity_class', 'severity_label', 'area_m2', 'area_km2',
                                        'percent_of_fire'])
    table['severity_class'] = table['severity_class'].astype(int)
    return table.fillna({'area_m2': 0.0, 'area_km2': 0.0, 'percent_of_fire': 0.0})


def run(fire_date=cfg.fire_date, perimeter=cfg.perimeter, max_cloud=cfg.max_cloud):
    '''
    Runs the burn severity analysis on Earth Engine.

    Args:
        fire_date: the main burn date
        perimeter: local vector file or FeatureCollection asset id for the fire perimeter
        max_cloud: highest accepted CLOUDY_PIXEL_PERCENTAGE for a scene

    Returns:
        pandas DataFrame with area statistics per severity class

    Raises:
        ValueError: if there is no imagery for the pre or post fire window
    '''
    pre_start, pre_end, post_start, post_end = severity.fire_windows(fire_date)
    fire_geometry = fire_perimeter(perimeter)

    pre_collection = sentinel_collection(fire_geometry, pre_start, pre_end, max_cloud)
    post_collection = sentinel_collection(fire_geometry, post_start, post_end, max_cloud)

    for period, collection, start, end in (('pre fire', pre_collection, pre_start, pre_end),
                                           ('post fire', post_collection, post_start, post_end)):
        count = collection_size(collection)
        logger.info("Found %d %s images for %s to %s", count, period, start, end)
        if count == 0:
            raise ValueError("No {} images found for {} to {}".format(period, start, end))

    pre_composite = median_composite(pre_collection, fire_geometry)
    post_composite = median_composite(post_collection, fire_geometry)

    dnbr = calculate_dnbr(pre_composite, post_composite, fire_geometry)
    severity_image = classify_severity(dnbr, fire_geometry)

    logger.info("Calculating area per severity class")
    stats = area_by_severity(severity_image, fire_geometry)
    return to_dataframe(stats.getInfo())
