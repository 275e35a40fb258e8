# src/oxy_rate_pipeline/autorate/__init__.py
"""
Automatic rate detection subpackage.

Modules:
  - core: data structures, error taxonomy, OLS fit
  - preprocessing: series validation and subsetting
  - windows: width resolution and window enumeration
  - rolling: rolling regression over every window
  - density: plug-in bandwidth, KDE and density-mode grouping
  - resolver: per-method segment resolution
  - results: ranked result table
  - config: run configuration (YAML)
  - pipeline: main entry point (auto_rate)
  - plotting: diagnostic figure
  - report: CSV / YAML export
"""

# Core types and errors
from .core import (
    AutoRateError,
    DegenerateWindowError,
    DuplicateTimeWarning,
    FitResult,
    InvalidWidthError,
    IrregularSamplingWarning,
    MalformedInputError,
    Method,
    MixedRateSignError,
    NoLinearRegionError,
    RankOutOfRangeError,
    RegressionResult,
    Segment,
    Series,
    fit_segment,
)

# Validation
from .preprocessing import (
    subset_series,
    validate_series,
)

# Windows / rolling regression
from .windows import (
    WindowPlan,
    WindowSpec,
    enumerate_windows,
    resolve_width,
)
from .rolling import (
    RollingRegression,
    rolling_regression,
)

# Density ranking
from .density import (
    DensityGroup,
    DensityRanking,
    KDE,
    bandwidth_sj,
    gaussian_kde_grid,
    rank_density_groups,
)

# Resolution / results
from .resolver import (
    SegmentResolver,
    merge_contiguous,
    resolver_for,
)
from .results import (
    AutoRateResult,
    ResultSet,
)

# Config / pipeline / output
from .config import (
    AutoRateConfig,
    load_auto_rate_config,
)
from .pipeline import (
    auto_rate,
)
from .report import (
    write_auto_rate_outputs,
)

__all__ = [
    # Core
    "AutoRateError",
    "DegenerateWindowError",
    "DuplicateTimeWarning",
    "FitResult",
    "InvalidWidthError",
    "IrregularSamplingWarning",
    "MalformedInputError",
    "Method",
    "MixedRateSignError",
    "NoLinearRegionError",
    "RankOutOfRangeError",
    "RegressionResult",
    "Segment",
    "Series",
    "fit_segment",
    # Validation
    "subset_series",
    "validate_series",
    # Windows / rolling
    "WindowPlan",
    "WindowSpec",
    "enumerate_windows",
    "resolve_width",
    "RollingRegression",
    "rolling_regression",
    # Density
    "DensityGroup",
    "DensityRanking",
    "KDE",
    "bandwidth_sj",
    "gaussian_kde_grid",
    "rank_density_groups",
    # Resolution / results
    "SegmentResolver",
    "merge_contiguous",
    "resolver_for",
    "AutoRateResult",
    "ResultSet",
    # Config / pipeline / output
    "AutoRateConfig",
    "load_auto_rate_config",
    "auto_rate",
    "write_auto_rate_outputs",
]
