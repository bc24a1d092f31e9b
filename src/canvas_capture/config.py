"""
Configuration schema using Pydantic.

Configuration can be loaded from YAML files and overridden with
environment variables.
"""

import os
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required values."""

    def __init__(self, message: str, field: Optional[str] = None, suggestions: Optional[List[str]] = None):
        self.message = message
        self.field = field
        self.suggestions = suggestions or []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [self.message]
        if self.field:
            lines.append(f"  Field: {self.field}")
        if self.suggestions:
            lines.append("  Suggestions:")
            for s in self.suggestions:
                lines.append(f"    - {s}")
        return "\n".join(lines)


class TimingConfig(BaseModel):
    """Pacing of the capture process (seconds)."""

    settle_delay: float = Field(default=0.1, ge=0.0, le=10.0, description="Wait after each pan + redraw before reading pixels")
    scale_settle_delay: float = Field(default=0.25, ge=0.0, le=10.0, description="Wait after forcing the view scale to 1")
    min_tick_interval: float = Field(default=0.01, ge=0.0, le=1.0, description="Minimum time between two advancing steps")


class OutputConfig(BaseModel):
    """Where finished captures are written."""

    asset_root: str = Field(default="Assets", description="Project asset root")
    subdirectory: str = Field(default="CanvasCaptures", description="Capture folder under the asset root")
    directory: Optional[str] = Field(default=None, description="Explicit output directory (overrides asset_root/subdirectory)")

    @field_validator("subdirectory")
    @classmethod
    def strip_separators(cls, v: str) -> str:
        return v.strip("/\\")


class BehaviorConfig(BaseModel):
    """Capture behavior switches."""

    restore_on_cancel: bool = Field(default=True, description="Restore the original view when a capture is cancelled or fails")
    background: Tuple[int, int, int, int] = Field(default=(0, 0, 0, 0), description="RGBA fill for pixels no tile covers")

    @field_validator("background")
    @classmethod
    def check_channels(cls, v: Tuple[int, int, int, int]) -> Tuple[int, int, int, int]:
        for channel in v:
            if not 0 <= channel <= 255:
                raise ValueError(f"background channel out of range 0-255: {channel}")
        return v


class CaptureConfig(BaseModel):
    """Root configuration for Canvas Capture."""

    timing: TimingConfig = Field(default_factory=TimingConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    behavior: BehaviorConfig = Field(default_factory=BehaviorConfig)

    @property
    def output_path(self) -> Path:
        """Get resolved output directory."""
        if self.output.directory:
            return Path(self.output.directory).expanduser()
        return Path(self.output.asset_root).expanduser() / self.output.subdirectory

    @model_validator(mode='after')
    def validate_consistency(self) -> 'CaptureConfig':
        """Validate cross-field consistency."""
        # A tick interval longer than the settle delay silently stretches every tile
        if self.timing.min_tick_interval > self.timing.settle_delay > 0:
            raise ValueError(
                f"timing.min_tick_interval ({self.timing.min_tick_interval}) "
                f"must be <= timing.settle_delay ({self.timing.settle_delay})"
            )
        return self

    def validate_for_run(self) -> List[str]:
        """
        Validate configuration is ready for a capture.

        Returns list of warning messages (empty if all good).
        """
        warnings = []

        output = self.output_path
        try:
            output.mkdir(parents=True, exist_ok=True)
            test_file = output / ".write_test"
            test_file.touch()
            test_file.unlink()
        except OSError as e:
            warnings.append(f"Output directory not writable: {output} ({e})")

        if self.timing.settle_delay < 0.05:
            warnings.append(
                f"settle_delay of {self.timing.settle_delay}s may capture partially redrawn tiles"
            )

        return warnings


def get_default_config_path() -> Path:
    """Get default config file path."""
    return Path.home() / ".canvas-capture" / "config.yaml"


def load_config(config_path: Optional[str] = None) -> CaptureConfig:
    """
    Load configuration from YAML file.

    Falls back to defaults if file doesn't exist.
    Environment variables can override config file values.

    Args:
        config_path: Path to config file (optional)

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If config file is invalid
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(
                f"Config file not found: {path}",
                suggestions=[
                    f"Create the config file at {path}",
                    "Use 'canvas-capture config --init' to create a default config",
                    "Or run without --config to use defaults"
                ]
            )
    else:
        path = get_default_config_path()

    data = {}

    if path.exists():
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in config file: {path}",
                suggestions=[
                    f"Check syntax at line {e.problem_mark.line if hasattr(e, 'problem_mark') else 'unknown'}",
                    "Use a YAML validator to check your config",
                ]
            )

    env_overrides = _get_env_overrides()
    data = _deep_merge(data, env_overrides)

    try:
        config = CaptureConfig(**data)
    except Exception as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}",
            suggestions=[
                "Check field names and values in your config",
                "Run 'canvas-capture config' to see the defaults",
            ]
        )

    return config


def _get_env_overrides() -> Dict[str, Any]:
    """Get configuration overrides from environment variables."""
    overrides: Dict[str, Any] = {}

    env_mappings = {
        "CANVAS_CAPTURE_SETTLE_DELAY": ("timing", "settle_delay"),
        "CANVAS_CAPTURE_SCALE_SETTLE_DELAY": ("timing", "scale_settle_delay"),
        "CANVAS_CAPTURE_ASSET_ROOT": ("output", "asset_root"),
        "CANVAS_CAPTURE_OUTPUT_DIR": ("output", "directory"),
        "CANVAS_CAPTURE_RESTORE_ON_CANCEL": ("behavior", "restore_on_cancel"),
    }

    for env_key, (section, field) in env_mappings.items():
        value = os.environ.get(env_key)
        if value:
            if section not in overrides:
                overrides[section] = {}
            # Pydantic coerces "0.2", "false", etc. to the field type
            overrides[section][field] = value

    return overrides


def _deep_merge(base: Dict, overlay: Dict) -> Dict:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def save_config(config: CaptureConfig, config_path: Optional[str] = None) -> Path:
    """Save configuration to YAML file."""
    if config_path:
        path = Path(config_path)
    else:
        path = get_default_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump()
    data["behavior"]["background"] = list(data["behavior"]["background"])

    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False)

    return path
