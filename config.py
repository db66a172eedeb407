# Friendly name for the wildfire to be analyzed
name = "fire"

# Main burn date (YYYY-MM-DD)
fire_date = "2024-05-10"

# Pre fire window is 40-20 days before the fire (snow avoidance), post fire window
# runs from the fire date to ~2 months after. End days are exclusive
pre_window = (-40, -20)
post_window = (0, 61)

# Fire perimeter. Either a local vector file (shp, geojson, gpkg) or an Earth Engine asset id
perimeter = 'data_files/fire_boundary.shp'

# Path to directory of input data files (local backend) and to the result directory
data_dir = 'data_files/'
result_dir = 'result/'

# Earth Engine settings
ee_project = None
collection = 'COPERNICUS/S2_SR_HARMONIZED'
scale = 10  # metres, Sentinel-2 NIR/SWIR2 resolution
max_pixels = 1e13

# Scenes with a larger share of cloudy pixels are dropped
max_cloud = 20

# Spectral band mapping (depends on satellite program)
# Local rasters are 1-based band indices of a B1..B12 + SCL stack (B8A at 9, B10 left out)
bands = {'blue': 2, 'green': 3, 'red': 4, 'NIR': 8, 'SWIR': 11, 'SWIR2': 12, 'SCL': 13}
ee_bands = {'NIR': 'B8', 'SWIR2': 'B12', 'SCL': 'SCL'}

# Scene Classification Layer classes to retain
# 2 = Dark features, 4 = Vegetation, 5 = Bare soil, 6 = Water, 7 = Unclassified, 11 = Snow / Ice
scl_valid = [2, 4, 5, 6, 7, 11]
# Cloud shadow, cloud medium/high probability and thin cirrus
scl_cloud = [3, 8, 9, 10]

# dNBR upper bounds (exclusive) for severity classes 0-6, anything above is class 7
thresholds = [-0.5, -0.251, -0.101, 0.1, 0.27, 0.44, 0.66]
labels = ['High Regrowth', 'Low Regrowth', 'Unburned', 'Low Severity', 'Moderate-Low Severity',
          'Moderate-High Severity', 'High Severity', 'Extreme Severity']
colors = ['#006400', '#7FFF00', '#FFFFCC', '#FFFF00', '#FEC965', '#FD8D3C', '#B10026', '#4B0000']

# Severity raster value for pixels without a valid dNBR
nodata = 255
