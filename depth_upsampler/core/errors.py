"""
Error taxonomy for the depth upsampling pipeline.

Every geometry error is raised by a precondition check before any
parallel work is dispatched, so no worker ever touches an invalid buffer.
None of these are retried.
"""


class UpsamplingError(Exception):
    """Base class for all pipeline errors."""


class ConversionError(UpsamplingError):
    """Color planes have malformed or mismatched geometry."""


class InvalidDimensionsError(UpsamplingError):
    """A raster size of zero or less was requested."""


class DimensionMismatchError(UpsamplingError):
    """Guide and target rasters used together do not have matching sizes."""


class BackendInitializationError(UpsamplingError):
    """The parallel compute backend could not be created (fatal at startup)."""
