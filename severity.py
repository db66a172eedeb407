import datetime
import numpy as np
import pandas as pd
import config as cfg


def fire_windows(fire_date, pre_window=cfg.pre_window, post_window=cfg.post_window):
    '''
    Calculates the pre and post fire date windows around the fire date. End dates are exclusive.

    Args:
        fire_date: the main burn date, a datetime.date or an ISO formatted string
        pre_window: (start, end) offset in days for the pre fire window
        post_window: (start, end) offset in days for the post fire window

    Returns:
        pre_start, pre_end, post_start, post_end as datetime.date
    '''
    if isinstance(fire_date, str):
        fire_date = datetime.date.fromisoformat(fire_date)

    day = datetime.timedelta(days=1)
    return (fire_date + pre_window[0] * day, fire_date + pre_window[1] * day,
            fire_date + post_window[0] * day, fire_date + post_window[1] * day)


def nbr(nir, swir2):
    '''
    Calculates the Normalized Burn Ratio (NBR) as
    NBR = (NIR - SWIR2)/(NIR + SWIR2)

    Pixels where NIR + SWIR2 is zero are set to NaN.

    Returns:
        An array with NBR values
    '''
    nir = np.asarray(nir, dtype=np.float32)
    swir2 = np.asarray(swir2, dtype=np.float32)
    denominator = nir + swir2

    with np.errstate(divide='ignore', invalid='ignore'):
        ratio = (nir - swir2) / denominator
    ratio[denominator == 0] = np.nan
    return ratio


def dnbr(pre_nbr, post_nbr):
    '''
    Takes the pre and post fire NBR and calculates the NBR delta

    Returns:
        dNBR, positive where vegetation was lost
    '''
    return np.asarray(pre_nbr, dtype=np.float32) - np.asarray(post_nbr, dtype=np.float32)


def reclassify(img, thresholds=cfg.thresholds, nodata=cfg.nodata):
    '''
    Reclassifies the image to the categories defined by threshold. A pixel gets the index of
    the first threshold it is strictly below, or len(thresholds) if it is above all of them.

    Args:
        img: a 2D array to be reclassified
        thresholds: ascending delimiter values used for reclassification
        nodata: class value for NaN pixels

    Returns:
        The reclassified image as uint8
    '''
    if list(thresholds) != sorted(thresholds):
        raise ValueError("Thresholds must be in ascending order")

    img = np.asarray(img, dtype=np.float64)
    # a value equal to a threshold falls in the class above it
    reclassified = np.digitize(np.nan_to_num(img, nan=0.0), thresholds, right=False).astype(np.uint8)
    reclassified[np.isnan(img)] = nodata
    return reclassified


def severity_expression(thresholds=cfg.thresholds, variable='d'):
    '''
    Builds the nested conditional expression used to classify dNBR on Earth Engine, e.g.
    "d < -0.5 ? 0 : d < -0.251 ? 1 : ... : 7"
    '''
    parts = ["{} < {} ? {}".format(variable, threshold, i) for i, threshold in enumerate(thresholds)]
    return " : ".join(parts + [str(len(thresholds))])


def area_by_class(classified, pixel_area, n_classes=len(cfg.labels)):
    '''
    Sums the area of every severity class.

    Args:
        classified: the reclassified image
        pixel_area: area of a single pixel in m2
        n_classes: number of severity classes

    Returns:
        A dict mapping class value to area in m2. Classes without pixels have area 0
    '''
    counts = np.bincount(classified[classified < n_classes].ravel(), minlength=n_classes)
    return {i: float(counts[i]) * pixel_area for i in range(n_classes)}


def percent_of_total(area, total):
    return area / total * 100 if total > 0 else 0.0


def area_table(areas_m2, labels=cfg.labels):
    '''
    Builds the area statistics table from the area per severity class.

    Args:
        areas_m2: dict mapping severity class to area in m2
        labels: severity label for each class

    Returns:
        A pandas DataFrame with columns severity_class, severity_label, area_m2, area_km2
        and percent_of_fire, one row per class
    '''
    table = pd.DataFrame({'severity_class': list(range(len(labels))), 'severity_label': labels})
    table['area_m2'] = [float(areas_m2.get(i, 0.0)) for i in table['severity_class']]
    table['area_km2'] = table['area_m2'] / 1e6

    total_km2 = table['area_km2'].sum()
    table['percent_of_fire'] = [percent_of_total(a, total_km2) for a in table['area_km2']]
    return table
