"""
Raster Transforms Module.

Responsibilities:
- YCbCr 4:2:0 to RGB conversion
- Bilinear resampling between resolutions
"""

from .image_scaler import ImageScaler
from .color_converter import ColorConverter
