# src/oxy_rate_pipeline/autorate/config.py
"""
Run configuration for auto_rate().
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from ..loader import load_yaml
from .core import Method
from .windows import WindowSpec


@dataclass(frozen=True)
class AutoRateConfig:
    method: str = "linear"
    width: float = 0.2
    by: str = "row"
    # presentation only; the core never plots
    plot: bool = False
    kde_grid_size: int = 512
    min_prominence: float = 0.001
    bandwidth_bins: int = 1000

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", Method.parse(self.method).value)
        spec = WindowSpec(width=self.width, by=self.by)
        object.__setattr__(self, "width", spec.width)
        object.__setattr__(self, "by", spec.by)
        object.__setattr__(self, "plot", _as_bool(self.plot, "plot"))
        if int(self.kde_grid_size) < 16:
            raise ValueError(f"kde_grid_size must be >= 16, got {self.kde_grid_size!r}")
        object.__setattr__(self, "kde_grid_size", int(self.kde_grid_size))
        if not (0.0 <= float(self.min_prominence) < 1.0):
            raise ValueError(f"min_prominence must be in [0, 1), got {self.min_prominence!r}")
        object.__setattr__(self, "min_prominence", float(self.min_prominence))
        if int(self.bandwidth_bins) < 2:
            raise ValueError(f"bandwidth_bins must be >= 2, got {self.bandwidth_bins!r}")
        object.__setattr__(self, "bandwidth_bins", int(self.bandwidth_bins))

    @property
    def window_spec(self) -> WindowSpec:
        return WindowSpec(width=self.width, by=self.by)

    @classmethod
    def from_mapping(cls, d: Mapping[str, Any]) -> "AutoRateConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValueError(f"Unknown auto_rate config key(s): {unknown}")
        return cls(**dict(d))

    def with_overrides(self, **kwargs: Any) -> "AutoRateConfig":
        """Copy with every non-None keyword applied."""
        updates = {k: v for k, v in kwargs.items() if v is not None}
        return replace(self, **updates) if updates else self

    def to_dict(self) -> dict:
        return asdict(self)


def _as_bool(v: Any, name: str) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)) and v in (0, 1):
        return bool(v)
    s = str(v).strip().lower()
    if s in {"true", "yes", "1", "on"}:
        return True
    if s in {"false", "no", "0", "off", ""}:
        return False
    raise ValueError(f"{name} must be a boolean, got {v!r}")


def load_auto_rate_config(path: Optional[Path]) -> AutoRateConfig:
    """
    Read AutoRateConfig from YAML. The mapping may sit at the root or under
    an 'auto_rate' key. None -> defaults.
    """
    if path is None:
        return AutoRateConfig()
    obj = load_yaml(Path(path))
    section = obj.get("auto_rate", obj)
    if not isinstance(section, dict):
        raise ValueError(f"'auto_rate' section must be a mapping: {path}")
    return AutoRateConfig.from_mapping(section)
