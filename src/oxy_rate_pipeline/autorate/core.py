# src/oxy_rate_pipeline/autorate/core.py
"""
Core data structures, error taxonomy and the OLS fit used by every stage.

Sign convention: oxygen uptake gives a negative slope, production a positive
one. Nothing in this package flips the sign of a slope.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np


# -------------------------
# errors / warnings
# -------------------------
class AutoRateError(Exception):
    """Base class for every error raised by the rate-detection core."""


class MalformedInputError(AutoRateError, ValueError):
    """Raised when the (time, oxygen) series cannot be validated."""


class InvalidWidthError(AutoRateError, ValueError):
    """Raised when the requested width does not resolve to 2 <= W <= T."""


class DegenerateWindowError(AutoRateError, ArithmeticError):
    """
    A single window whose time values have zero spread.

    Never raised out of a run: instances are recorded on the rolling table and
    the window is excluded from ranking.
    """

    def __init__(self, start_idx: int, end_idx: int, reason: str = "zero time variance") -> None:
        self.start_idx = int(start_idx)
        self.end_idx = int(end_idx)
        self.reason = str(reason)
        super().__init__(f"window [{self.start_idx}, {self.end_idx}]: {self.reason}")


class NoLinearRegionError(AutoRateError, RuntimeError):
    """Raised when the slope density has no detectable mode (method='linear')."""


class RankOutOfRangeError(AutoRateError, IndexError):
    """Raised when a ranked position outside 1..N is requested."""


class MixedRateSignError(AutoRateError, ValueError):
    """Raised by magnitude-ranked methods when rates have both signs."""


class IrregularSamplingWarning(UserWarning):
    """Time deltas are not all equal; row-count widths are approximate."""


class DuplicateTimeWarning(IrregularSamplingWarning):
    """The series contains tied timestamps."""


# -------------------------
# methods
# -------------------------
class Method(str, Enum):
    LINEAR = "linear"
    MAX = "max"
    MIN = "min"
    INTERVAL = "interval"
    HIGHEST = "highest"
    LOWEST = "lowest"
    ROLLING = "rolling"

    @classmethod
    def parse(cls, value: object) -> "Method":
        if isinstance(value, cls):
            return value
        s = str(value).strip().lower()
        # common spellings
        aliases = {"maximum": "max", "minimum": "min", "lin": "linear"}
        s = aliases.get(s, s)
        try:
            return cls(s)
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown method {value!r}; expected one of: {allowed}") from None

    @property
    def overlapping(self) -> bool:
        return self is not Method.INTERVAL


# -------------------------
# data structures
# -------------------------
@dataclass(frozen=True)
class Series:
    """
    Validated (time, oxygen) series. Arrays are read-only copies.

    irregular / n_duplicate_times are flags set by the validator; they never
    make a series invalid.
    """

    time: np.ndarray
    oxygen: np.ndarray
    irregular: bool = False
    n_duplicate_times: int = 0

    def __len__(self) -> int:
        return int(self.time.size)

    @property
    def duration(self) -> float:
        return float(self.time[-1] - self.time[0])


@dataclass(frozen=True)
class FitResult:
    slope: float
    intercept: float
    r2: float
    n: int
    t_start: float
    t_end: float


@dataclass(frozen=True)
class RegressionResult:
    """One rolling window fit. Indices are 0-based and inclusive."""

    start_idx: int
    end_idx: int
    slope: float
    intercept: float
    r2: float

    @property
    def n(self) -> int:
        return self.end_idx - self.start_idx + 1


@dataclass(frozen=True)
class Segment:
    """
    A ranked candidate rate.

    For method='linear', group_rank is the 1-based rank of the density group
    the segment came from, group_size that group's window count and
    n_windows the number of member windows merged into this span. Other
    methods use group_rank=0, group_size=1 and n_windows=1. density is the
    KDE height at the group's mode (NaN when the method does not use one).
    """

    rank: int
    start_idx: int
    end_idx: int
    slope: float
    intercept: float
    r2: float
    group_size: int = 1
    group_rank: int = 0
    n_windows: int = 1
    density: float = float("nan")
    t_start: float = float("nan")
    t_end: float = float("nan")
    oxy_start: float = float("nan")
    oxy_end: float = float("nan")

    @property
    def n(self) -> int:
        return self.end_idx - self.start_idx + 1

    @property
    def duration(self) -> float:
        return float(self.t_end - self.t_start)

    @property
    def rate(self) -> float:
        return float(self.slope)


def _fit_linear(x: np.ndarray, y: np.ndarray) -> FitResult:
    """
    Ordinary least squares linear fit: y = a*x + b, closed form.
    Returns slope/intercept and R^2 (0.0 when y has no variance).

    Raises DegenerateWindowError when x has no spread.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = int(x.size)
    if n < 2:
        raise DegenerateWindowError(0, max(n - 1, 0), reason="fewer than 2 points")
    x_mean = float(np.mean(x))
    y_mean = float(np.mean(y))
    dx = x - x_mean
    dy = y - y_mean
    sxx = float(np.sum(dx * dx))
    if not sxx > 0.0:
        raise DegenerateWindowError(0, n - 1)
    a = float(np.sum(dx * dy)) / sxx
    b = y_mean - a * x_mean
    yhat = a * x + b
    ss_res = float(np.sum((y - yhat) ** 2))
    ss_tot = float(np.sum(dy * dy))
    r2 = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0
    return FitResult(
        slope=float(a),
        intercept=float(b),
        r2=float(r2),
        n=n,
        t_start=float(np.min(x)),
        t_end=float(np.max(x)),
    )


def fit_segment(series: Series, start_idx: int, end_idx: int) -> FitResult:
    """OLS over rows start_idx..end_idx (inclusive) of a validated series."""
    i0 = int(start_idx)
    i1 = int(end_idx)
    try:
        return _fit_linear(series.time[i0 : i1 + 1], series.oxygen[i0 : i1 + 1])
    except DegenerateWindowError as e:
        raise DegenerateWindowError(i0, i1, reason=e.reason) from None
