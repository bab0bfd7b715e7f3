"""
Reusable raster storage and double-buffered output.

Each output slot owns a set of numpy arrays that are reused from cycle to
cycle. The orchestrator only ever writes the back slot, and only once
every reader of that slot has let go of it; publishing swaps front and
back. Readers therefore never see a half-written cycle.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from depth_upsampler.core.contracts import ProcessedOutput, Resolution


class WorkingBuffers:
    """
    Named arrays reused across frames.

    A buffer is only reallocated when the requested shape or dtype
    changes.
    """

    def __init__(self, name: str = "buffers"):
        self.name = name
        self._buffers: Dict[str, NDArray] = {}

    def ensure(
        self,
        key: str,
        shape: Tuple[int, ...],
        dtype=np.float32,
    ) -> NDArray:
        """Get buffer ``key`` with the given shape and dtype, allocating if needed."""
        buffer = self._buffers.get(key)
        if buffer is None or buffer.shape != tuple(shape) or buffer.dtype != np.dtype(dtype):
            buffer = np.empty(shape, dtype=dtype)
            self._buffers[key] = buffer
            logger.debug(f"{self.name}: allocated {key} {shape} {np.dtype(dtype).name}")
        return buffer

    def ensure_color_buffers(self, color: Resolution) -> NDArray[np.float32]:
        """Full resolution RGB buffer."""
        return self.ensure("color_rgb", color.shape + (3,))

    def ensure_upsampling_buffers(
        self,
        depth: Resolution,
        target: Resolution,
    ) -> Tuple[NDArray[np.float32], NDArray[np.float32], NDArray[np.float32], NDArray[np.float32], NDArray[np.float32]]:
        """
        Buffers for one guided-filter cycle.

        Returns:
            (rgb at depth size, rgb at target size, confidence at target
            size, coefficients at depth size, depth at target size)
        """
        return (
            self.ensure("color_rgb_low", depth.shape + (3,)),
            self.ensure("color_rgb_target", target.shape + (3,)),
            self.ensure("confidence_upscaled", target.shape),
            self.ensure("coefficients", depth.shape + (2,)),
            self.ensure("depth_upsampled", target.shape),
        )

    def __contains__(self, key: str) -> bool:
        return key in self._buffers


class DoubleBuffer:
    """
    Single-writer, multi-reader output exchange (latest wins).

    Usage:
        buffers = double_buffer.acquire_back()
        try:
            ... write into buffers ...
            double_buffer.publish(output)
        except Exception:
            double_buffer.abandon()
            raise

        with double_buffer.read() as output:
            ... use output ...
    """

    def __init__(self):
        self._slots: List[WorkingBuffers] = [
            WorkingBuffers("output slot 0"),
            WorkingBuffers("output slot 1"),
        ]
        self._outputs: List[Optional[ProcessedOutput]] = [None, None]
        # Per slot: reading thread id -> nested read count
        self._readers: List[Dict[int, int]] = [{}, {}]
        self._front = 0
        self._writing = False
        self._condition = threading.Condition()

    @property
    def _back(self) -> int:
        return 1 - self._front

    def acquire_back(self, timeout: Optional[float] = None) -> WorkingBuffers:
        """
        Reserve the back slot for writing.

        Blocks until no reader holds the back slot.

        Raises:
            RuntimeError: If another write is in progress, or the calling
                thread itself still reads the back slot
            TimeoutError: If readers did not release the slot in time
        """
        with self._condition:
            if self._writing:
                raise RuntimeError("Output buffer is already being written")
            back = self._back
            if threading.get_ident() in self._readers[back]:
                raise RuntimeError(
                    "Calling thread still holds the back output buffer; release read() first"
                )
            if not self._condition.wait_for(lambda: not self._readers[back], timeout):
                raise TimeoutError("Readers still hold the back output buffer")
            self._writing = True
            self._outputs[back] = None
            return self._slots[back]

    def publish(self, output: ProcessedOutput):
        """Make the back slot the new front."""
        with self._condition:
            if not self._writing:
                raise RuntimeError("publish() without acquire_back()")
            back = self._back
            self._outputs[back] = output
            self._front = back
            self._writing = False
            self._condition.notify_all()

    def abandon(self):
        """Give up the back slot; the front output stays published."""
        with self._condition:
            self._writing = False
            self._condition.notify_all()

    @contextmanager
    def read(self) -> Iterator[Optional[ProcessedOutput]]:
        """Hold the current front output; it is not recycled until released."""
        reader = threading.get_ident()
        with self._condition:
            index = self._front
            output = self._outputs[index]
            readers = self._readers[index]
            readers[reader] = readers.get(reader, 0) + 1
        try:
            yield output
        finally:
            with self._condition:
                readers[reader] -= 1
                if readers[reader] == 0:
                    del readers[reader]
                self._condition.notify_all()

    @property
    def latest(self) -> Optional[ProcessedOutput]:
        """Current front output, unprotected (copy it or use read())."""
        with self._condition:
            return self._outputs[self._front]
