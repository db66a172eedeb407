import os
import sys
import argparse
import logging
import ee
import config as cfg
import severity
import gee
from satelliteimg import load_satellite_imgs, filter_scenes, median_composite, pixel_area, write_raster
from logging_config import setup_logging

logger = logging.getLogger(__name__)


def run_local(fire_date=cfg.fire_date, perimeter=cfg.perimeter, data_dir=cfg.data_dir,
              max_cloud=cfg.max_cloud):
    '''
    Runs the burn severity analysis on local Sentinel-2 rasters.

    Args:
        fire_date: the main burn date
        perimeter: vector file with the fire perimeter. If None, a file ending with boundary.shp
            in the data directory is used instead
        data_dir: directory holding dated Sentinel-2 rasters with an SCL band
        max_cloud: highest accepted cloud percentage inside the perimeter

    Returns:
        table: pandas DataFrame with area statistics per severity class
        dnbr: the dNBR array
        classified: the severity class array
        composite: the post fire composite, used as grid template for outputs

    Raises:
        ValueError: if the perimeter file does not exist or there is no imagery for the pre or
            post fire window
    '''
    pre_start, pre_end, post_start, post_end = severity.fire_windows(fire_date)

    if perimeter is not None and not os.path.exists(perimeter):
        raise ValueError("Fire perimeter not found: {}".format(perimeter))
    images = load_satellite_imgs(data_dir, perimeter)

    pre_images = filter_scenes(images, pre_start, pre_end, max_cloud)
    post_images = filter_scenes(images, post_start, post_end, max_cloud)
    if not pre_images:
        raise ValueError("No pre fire images found for {} to {}".format(pre_start, pre_end))
    if not post_images:
        raise ValueError("No post fire images found for {} to {}".format(post_start, post_end))

    pre_composite = median_composite(pre_images)
    post_composite = median_composite(post_images)
    if pre_composite.transform != post_composite.transform:
        raise ValueError("Pre and post fire composites are not on the same grid")

    dnbr = severity.dnbr(pre_composite.nbr(), post_composite.nbr())
    classified = severity.reclassify(dnbr, cfg.thresholds, cfg.nodata)

    areas = severity.area_by_class(classified, pixel_area(post_composite.transform, post_composite.crs))
    return severity.area_table(areas), dnbr, classified, post_composite


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Burn severity (dNBR) analysis for a fire perimeter")
    parser.add_argument('--backend', choices=['gee', 'local'], default='gee',
                        help="compute on Earth Engine or on local rasters")
    parser.add_argument('--fire-date', default=cfg.fire_date, help="main burn date, YYYY-MM-DD")
    parser.add_argument('--perimeter', default=cfg.perimeter,
                        help="fire perimeter vector file or Earth Engine asset id")
    parser.add_argument('--data-dir', default=cfg.data_dir, help="directory with local rasters")
    parser.add_argument('--out-dir', default=cfg.result_dir, help="directory for results")
    parser.add_argument('--name', default=cfg.name, help="fire name used in output file names")
    parser.add_argument('--max-cloud', type=float, default=cfg.max_cloud,
                        help="highest accepted cloudy pixel percentage")
    parser.add_argument('--project', default=cfg.ee_project, help="Google Cloud project for Earth Engine")
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--log-file', default=None)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(getattr(logging, args.log_level), args.log_file)

    logger.info("Burn severity analysis for %s, fire date %s (%s backend)", args.name, args.fire_date,
                args.backend)
    os.makedirs(args.out_dir, exist_ok=True)
    suffix = args.name + '_' + str(args.fire_date)

    try:
        if args.backend == 'gee':
            gee.initialize(args.project)
            table = gee.run(args.fire_date, args.perimeter, args.max_cloud)
        else:
            table, dnbr, classified, template = run_local(args.fire_date, args.perimeter, args.data_dir,
                                                          args.max_cloud)
            write_raster(os.path.join(args.out_dir, 'dnbr_' + suffix + '.tif'), dnbr, template,
                         nodata=float('nan'))
            write_raster(os.path.join(args.out_dir, 'severity_' + suffix + '.tif'), classified, template,
                         nodata=cfg.nodata, colors=cfg.colors)
    except ValueError as e:
        logger.error(str(e))
        return 1
    except ee.EEException as e:
        logger.error("Earth Engine error: %s", e)
        return 1

    logger.info("Area per severity class:\n%s", table.to_string(index=False))

    out_csv = os.path.join(args.out_dir, 'burn_severity_' + suffix + '.csv')
    table.to_csv(out_csv, index=False)
    logger.info("Saved %s", out_csv)
    return 0


if __name__ == '__main__':
    sys.exit(main())
