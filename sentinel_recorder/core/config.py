"""Configuration management for Sentinel Recorder.

This module provides configuration constants and the :class:`AppConfig` class
which merges defaults with values from an optional YAML file
(``.sentinel-recorder.yml`` in the working directory).

Audio constants
---------------
- ``RATE``               – sample rate in Hz (default 44 100)
- ``CHANNEL``            – number of input channels (always 1 / mono)
- ``BITS_PER_SAMPLE``    – sample resolution (signed 16-bit PCM)
- ``CHUNK``              – buffer size override in frames; ``None`` asks the
  device for its minimum buffer
- ``MIN_BUFFER_FRAMES``  – floor applied to the device-derived buffer size

Detection constants
-------------------
- ``AMPLITUDE_THRESHOLD`` – RMS level above which a chunk counts as sound.
  The value is empirical; tune it per microphone via the config file.
- ``STOP_TIMEOUT``        – seconds ``stop()`` waits for the capture loop

Output
------
- ``OUTPUT_DIR``  – default directory for recordings (``'audio/'``)
- ``OUTPUT_FILE`` – default raw PCM file name (``'recording.pcm'``)
- ``LOG_FILE``    – JSONL session log name, placed next to the recordings

Configuration file (``recording:`` section)
-------------------------------------------
.. code-block:: yaml

    recording:
      rate: 44100
      chunk: 2048
      threshold: 250.0
      output_dir: audio/
      output_file: kitchen.pcm
      stop_timeout: 2.0
      device_id: 3
      datetime_format: "%y%m%d%H%M%S"
    log:
      file: sessions.jsonl
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Audio capture parameters
RATE = 44100
CHANNEL = 1
BITS_PER_SAMPLE = 16
CHUNK: Optional[int] = None  # None = minimum buffer supported by the device
MIN_BUFFER_FRAMES = 1024

# Sample width in bytes for signed 16-bit PCM
SAMPLE_WIDTH_INT16 = 2

# Detection parameters
AMPLITUDE_THRESHOLD = 100.0
STOP_TIMEOUT = 2.0

# Output
OUTPUT_DIR = 'audio/'
OUTPUT_FILE = 'recording.pcm'
PCM_EXTENSION = 'pcm'
LOG_FILE = 'sessions.jsonl'
DATETIME_FORMAT = '%y%m%d%H%M%S'
CONFIG_FILE = '.sentinel-recorder.yml'


class AppConfig:
    """Application configuration management."""

    def __init__(self) -> None:
        """Initialize configuration with defaults."""
        self._config: Dict[str, Any] = {
            'rate': RATE,
            'chunk': CHUNK,
            'threshold': AMPLITUDE_THRESHOLD,
            'stop_timeout': STOP_TIMEOUT,
            'output_dir': OUTPUT_DIR,
            'output_file': OUTPUT_FILE,
            'device_id': None,
            'datetime_format': DATETIME_FORMAT,
        }
        self._load_yaml_config()

    def _load_yaml_config(self) -> None:
        """Load optional YAML configuration from project root."""
        config_path = Path.cwd() / CONFIG_FILE
        if not config_path.exists():
            return

        content = yaml.safe_load(config_path.read_text(encoding='utf-8'))
        if not content:
            return

        if not isinstance(content, dict):
            raise ValueError(f"Configuration in {CONFIG_FILE} must be a mapping")

        recording_config = content.get('recording')
        if isinstance(recording_config, dict):
            for key in self._config.keys():
                if key in recording_config:
                    self._config[key] = recording_config[key]

        for key, value in content.items():
            if key == 'recording':
                continue
            self._config[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value.

        Args:
            key: Configuration key
            value: Configuration value
        """
        self._config[key] = value

    def get_output_dir(self) -> Path:
        """Get output directory as Path object, creating it if needed."""
        output_dir = self._config.get('output_dir', OUTPUT_DIR)
        path = Path(output_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_output_path(self) -> Path:
        """Return the default raw PCM output file path."""
        return self.get_output_dir() / str(self._config.get('output_file', OUTPUT_FILE))

    def get_threshold(self) -> float:
        """Return the detection threshold as a float."""
        return float(self._config.get('threshold', AMPLITUDE_THRESHOLD))

    def get_log_path(self, output_dir: Optional[Path] = None) -> Path:
        """Return the session log file path.

        The log file name is taken from the ``log.file`` key in
        ``.sentinel-recorder.yml`` when present, otherwise from the
        :data:`LOG_FILE` constant.  The file is placed inside *output_dir*
        (defaults to :meth:`get_output_dir`).
        """
        log_config = self._config.get('log')
        log_file = LOG_FILE
        if isinstance(log_config, dict):
            log_file = log_config.get('file', LOG_FILE)
        base = Path(output_dir) if output_dir is not None else self.get_output_dir()
        return base / log_file
