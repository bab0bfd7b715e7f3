"""
Depth Processing Module.

Responsibilities:
- Guided-filter regression and reconstruction
- Depth probes at points and over regions
"""

from .guided_filter import GuidedFilter
from .depth_query import (
    depth_at_point,
    depth_at_normalized_point,
    depth_for_region,
    confidence_weighted_depth,
)
