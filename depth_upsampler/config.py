"""
Configuration module for the depth upsampler.

Settings are resolved in this order (later wins):
1. Dataclass defaults and the selected quality preset
2. YAML settings file (config/settings.yaml unless --config is given)
3. Command-line arguments

To add a new preset:
1. Add entry to PRESETS dict with your settings
2. Optionally set as ACTIVE_PRESET default
"""
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional
import argparse

import yaml
from loguru import logger

from depth_upsampler.core.contracts import Resolution


# === QUALITY PRESETS ===
# Each preset trades output resolution and window size for speed
PRESETS = {
    "QUALITY": {
        "upsampled_width": 960,    # Reconstruction target size
        "upsampled_height": 760,
        "kernel_diameter": 5,      # Regression window
    },
    "BALANCED": {
        "upsampled_width": 640,
        "upsampled_height": 480,
        "kernel_diameter": 5,
    },
    "FAST": {
        "upsampled_width": 512,
        "upsampled_height": 384,
        "kernel_diameter": 3,
    },
}

# Default preset
ACTIVE_PRESET = "QUALITY"

DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"


@dataclass
class Config:
    """Main configuration for the upsampling pipeline.

    Attributes:
        source: Frame source type ("synthetic", "replay")
        replay_dir: Directory of recorded .npz bundles for the replay source
        loop: Loop the replay source
        max_frames: Stop after N frames (None = run until interrupted)
        source_fps: Synthetic source pacing (0 = unpaced)
        preset: Quality preset name
        upsample_enabled: Run the guided filter
        use_smoothed_depth: Use the smoothed depth/confidence streams
        depth_width, depth_height: Sensor depth resolution
        color_width, color_height: Camera color resolution
        upsampled_width, upsampled_height: Reconstruction target (preset if None)
        kernel_diameter: Regression window width (preset if None)
        epsilon: Guided filter regularization
        aspect_tolerance: Allowed guide/coefficient aspect difference
        num_workers: Worker threads for per-pixel stages (None = CPU count)
        min_rows_per_band: Smallest row band handed to a worker
        queue_size: Pending frames before the oldest is dropped
        log_level: Console log level
        log_file: Optional rotating log file
        profile_interval: Seconds between profiling log lines
    """
    # Source
    source: str = "synthetic"
    replay_dir: Optional[str] = None
    loop: bool = False
    max_frames: Optional[int] = None
    source_fps: float = 30.0

    # Preset (fills unset filter settings)
    preset: str = ACTIVE_PRESET

    # Toggles
    upsample_enabled: bool = True
    use_smoothed_depth: bool = False

    # Dimensions
    depth_width: int = 256
    depth_height: int = 192
    color_width: int = 1920
    color_height: int = 1440
    upsampled_width: Optional[int] = None
    upsampled_height: Optional[int] = None

    # Guided filter
    kernel_diameter: Optional[int] = None
    epsilon: float = 0.004
    aspect_tolerance: float = 0.1

    # Parallelism
    num_workers: Optional[int] = None
    min_rows_per_band: int = 32
    queue_size: int = 2

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    profile_interval: float = 2.0

    def __post_init__(self):
        """Apply preset settings and validate."""
        if self.preset not in PRESETS:
            available = ", ".join(PRESETS.keys())
            raise ValueError(f"Unknown preset '{self.preset}'. Available: {available}")

        preset = PRESETS[self.preset]
        for key, value in preset.items():
            if getattr(self, key) is None:
                setattr(self, key, value)

        # Resolution raises InvalidDimensionsError on non-positive sizes
        depth = self.depth_resolution
        upsampled = self.upsampled_resolution
        color = self.color_resolution
        if color.width % 2 or color.height % 2:
            raise ValueError(f"Color size must be even for 4:2:0 chroma, got {color}")
        if abs(upsampled.aspect / depth.aspect - 1.0) > self.aspect_tolerance:
            raise ValueError(
                f"Upsampled size {upsampled} aspect is too far from depth size {depth}"
            )

        if self.kernel_diameter < 1 or self.kernel_diameter % 2 == 0:
            raise ValueError(f"kernel_diameter must be a positive odd number, got {self.kernel_diameter}")
        if self.epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")
        if self.queue_size < 1:
            raise ValueError(f"queue_size must be positive, got {self.queue_size}")

    @property
    def depth_resolution(self) -> Resolution:
        return Resolution(self.depth_width, self.depth_height)

    @property
    def color_resolution(self) -> Resolution:
        return Resolution(self.color_width, self.color_height)

    @property
    def upsampled_resolution(self) -> Resolution:
        return Resolution(self.upsampled_width, self.upsampled_height)


def load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load settings from YAML.

    Args:
        path: Settings file, or None for config/settings.yaml

    Returns:
        Dict of settings (empty if no file was found)
    """
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = DEFAULT_SETTINGS_PATH
        if not config_path.exists():
            return {}

    with open(config_path) as f:
        settings = yaml.safe_load(f) or {}

    if not isinstance(settings, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    known = {f.name for f in fields(Config)}
    unknown = sorted(set(settings) - known)
    if unknown:
        logger.warning(f"Ignoring unknown settings in {config_path}: {', '.join(unknown)}")

    logger.debug(f"Loaded settings from {config_path}")
    return {key: value for key, value in settings.items() if key in known}


def load_config(args: Optional[argparse.Namespace] = None) -> Config:
    """Load configuration from YAML settings and command-line args.

    Args:
        args: Parsed command-line arguments, or None for YAML/defaults only

    Returns:
        Config object with all settings
    """
    settings = load_yaml_config(getattr(args, "config", None))

    if args is not None:
        overrides = {
            "source": args.source,
            "replay_dir": args.replay_dir,
            "preset": args.preset,
            "upsample_enabled": args.upsample,
            "use_smoothed_depth": args.smoothed,
            "max_frames": args.frames,
            "num_workers": args.workers,
            "log_level": args.log_level,
            "log_file": args.log_file,
        }
        if getattr(args, "loop", False):
            overrides["loop"] = True
        settings.update({key: value for key, value in overrides.items() if value is not None})

    return Config(**settings)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Guided-filter depth upsampling for AR camera frames",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                              # Synthetic frames, QUALITY preset
  python main.py --preset FAST --frames 100   # Quick run
  python main.py --source replay --replay-dir recordings/
  python main.py --no-upsample --smoothed     # Pass smoothed depth through
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default=None,
        help='YAML settings file (default: config/settings.yaml)'
    )

    parser.add_argument(
        '--source', '-s',
        choices=['synthetic', 'replay'],
        default=None,
        help='Frame source (default: synthetic)'
    )

    parser.add_argument(
        '--replay-dir',
        type=str,
        default=None,
        help='Directory of recorded .npz bundles (with --source replay)'
    )

    parser.add_argument(
        '--loop',
        action='store_true',
        help='Loop replay playback'
    )

    parser.add_argument(
        '--preset',
        choices=list(PRESETS.keys()),
        default=None,
        help=f'Quality preset (default: {ACTIVE_PRESET})'
    )

    parser.add_argument(
        '--upsample',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Enable guided-filter upsampling (default: on)'
    )

    parser.add_argument(
        '--smoothed',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Use the smoothed depth stream (default: off)'
    )

    parser.add_argument(
        '--frames', '-n',
        type=int,
        default=None,
        help='Stop after N frames'
    )

    parser.add_argument(
        '--workers',
        type=int,
        default=None,
        help='Worker threads for per-pixel stages (default: CPU count)'
    )

    parser.add_argument(
        '--log-level',
        choices=['TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR'],
        default=None,
        help='Console log level (default: INFO)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Also write DEBUG logs to this file'
    )

    return parser.parse_args(argv)
