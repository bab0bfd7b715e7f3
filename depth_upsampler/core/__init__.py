"""
Core data contracts, errors and parallel dispatch for the depth upsampler.
"""

from .contracts import (
    ConfidenceLevel,
    Resolution,
    FrameBundle,
    ProcessedOutput,
    PipelineState,
    scale_intrinsics,
)
from .errors import (
    UpsamplingError,
    ConversionError,
    InvalidDimensionsError,
    DimensionMismatchError,
    BackendInitializationError,
)
from .dispatch import ParallelDispatcher
