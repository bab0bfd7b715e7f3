"""
Guided-Filter Depth Upsampling for AR Camera Frames

Turns a stream of low-resolution depth + confidence frames and their
co-registered high-resolution color images into depth maps at a higher
resolution, aligned with the color image, for point-cloud reconstruction.

Processing order (per frame):
1. Select raw or smoothed depth/confidence
2. Convert YCbCr color planes to RGB
3. Downscale RGB to the regression and reconstruction guide sizes
4. Upscale confidence to the target size
5. Guided-filter regression on low-resolution depth
6. Guided-filter reconstruction at the target size
"""

__version__ = "0.1.0"
__author__ = "Depth Upsampler Team"
