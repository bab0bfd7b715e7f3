"""
Frame Capture Module.

Responsibilities:
- Frame source interface (the sensor itself is external)
- Synthetic and recorded-replay sources
- Latest-wins frame queue feeding the orchestrator

To add a new source, implement FrameSource and register it in SOURCES.
"""

from .frame_source import FrameSource, SyntheticFrameSource, ReplayFrameSource
from .frame_queue import FrameQueue, FramePump

# Registry of available sources
SOURCES = {
    "synthetic": SyntheticFrameSource,
    "replay": ReplayFrameSource,
}


def get_source(name: str, config=None) -> FrameSource:
    """
    Get a source instance by name.

    Args:
        name: Source type name ("synthetic", "replay")
        config: Configuration object

    Raises:
        ValueError: If source name is not registered
    """
    if name not in SOURCES:
        available = ", ".join(SOURCES.keys())
        raise ValueError(f"Unknown source '{name}'. Available: {available}")

    if name == "replay":
        replay_dir = getattr(config, "replay_dir", None)
        if not replay_dir:
            raise ValueError("Replay source needs a replay directory")
        return ReplayFrameSource(replay_dir, loop=getattr(config, "loop", False))

    if config is None:
        return SyntheticFrameSource()
    return SyntheticFrameSource(
        depth_size=(config.depth_width, config.depth_height),
        color_size=(config.color_width, config.color_height),
        fps=config.source_fps,
        max_frames=config.max_frames,
    )


def list_sources() -> list:
    """List available source names."""
    return list(SOURCES.keys())


__all__ = [
    "FrameSource",
    "SyntheticFrameSource",
    "ReplayFrameSource",
    "FrameQueue",
    "FramePump",
    "get_source",
    "list_sources",
]
