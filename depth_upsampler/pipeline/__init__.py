"""
Main Pipeline Module.

Orchestrates color conversion, scaling and guided-filter upsampling per frame.
"""

from .orchestrator import PipelineOrchestrator
from .buffers import DoubleBuffer, WorkingBuffers
from .profiler import PipelineProfiler
