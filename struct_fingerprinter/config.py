"""Configuration management for Struct Fingerprinter."""

import json
import logging
import time
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / "Documents" / "Struct-Fingerprinter"

# 2000-01-01 00:00:00 UTC
UNIX_EPOCH_2000 = 946684800
# Roughly five years
TIMESTAMP_HORIZON_SECONDS = 157788000


@dataclass(frozen=True)
class ScanSettings:
    """Tunables the scan engine reads. Plain values only, no file I/O."""
    pointer_size: int = 8
    low_memory_guard: int = 0x10000
    progress_stride: int = 512
    max_string_length: int = 256
    timestamp_min: int = UNIX_EPOCH_2000
    timestamp_horizon: int = TIMESTAMP_HORIZON_SECONDS
    scan_time: Optional[float] = None  # None means "now" when the scan starts

    def __post_init__(self):
        if self.pointer_size not in (4, 8):
            raise ValueError(f"Pointer size must be 4 or 8, got {self.pointer_size}")
        if self.progress_stride <= 0:
            raise ValueError(f"Progress stride must be positive, got {self.progress_stride}")
        if self.max_string_length <= 3:
            raise ValueError(f"Max string length too small: {self.max_string_length}")

    def timestamp_max(self) -> float:
        now = self.scan_time if self.scan_time is not None else time.time()
        return now + self.timestamp_horizon


@dataclass
class FingerprinterConfig:
    """User-facing configuration settings."""

    # Scan settings
    pointer_size: int = 8
    low_memory_guard: int = 0x10000
    default_scan_length: int = 4096
    progress_stride: int = 512
    max_string_length: int = 256
    timestamp_horizon: int = TIMESTAMP_HORIZON_SECONDS

    # Results display
    show_padding: bool = False

    # Export settings
    export_dir: Path = field(default_factory=lambda: DEFAULT_CONFIG_DIR)
    structures_file: str = "structures.json"
    include_hex_dump: bool = True

    # UI settings
    window_width: int = 700
    window_height: int = 500

    def scan_settings(self, scan_time: Optional[float] = None) -> ScanSettings:
        return ScanSettings(
            pointer_size=self.pointer_size,
            low_memory_guard=self.low_memory_guard,
            progress_stride=self.progress_stride,
            max_string_length=self.max_string_length,
            timestamp_horizon=self.timestamp_horizon,
            scan_time=scan_time,
        )

    @property
    def structures_path(self) -> Path:
        return self.export_dir / self.structures_file


def load_config(config_path: Optional[Path] = None) -> FingerprinterConfig:
    """Load configuration from file or use defaults."""
    config = FingerprinterConfig()

    config_locations = [
        config_path,
        Path(__file__).parent.parent / "fingerprinter_config.json",
        DEFAULT_CONFIG_DIR / "config.json",
    ]

    known = {setting.name for setting in fields(FingerprinterConfig)}

    for path in config_locations:
        if path and path.exists():
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)

                for key, value in data.items():
                    if key not in known:
                        logger.debug(f"Ignoring unknown config key: {key}")
                        continue
                    if key == 'export_dir':
                        value = Path(value)
                    setattr(config, key, value)

                logger.info(f"Loaded config from: {path}")
                break
            except Exception as e:
                logger.warning(f"Could not load config from {path}: {e}")

    return config


def save_config(config: FingerprinterConfig, config_path: Optional[Path] = None) -> bool:
    """Save configuration to file."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_DIR / "config.json"

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {}
        for setting in fields(FingerprinterConfig):
            value = getattr(config, setting.name)
            data[setting.name] = str(value) if isinstance(value, Path) else value

        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

        logger.info(f"Saved config to: {config_path}")
        return True
    except Exception as e:
        logger.error(f"Failed to save config: {e}")
        return False
