# src/oxy_rate_pipeline/autorate/windows.py
"""
Width resolution and window enumeration.

Windows are index ranges [start, end] (inclusive endpoints) in data order,
returned as two int arrays so the regressor can work on all of them at once.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .core import InvalidWidthError, Method, Series


_BY_CHOICES = ("row", "time", "fraction")


@dataclass(frozen=True)
class WindowSpec:
    """
    Requested width.

      - 0 < width <= 1: fraction of the series length (rows), whatever `by` says
      - by="row":  width is a row count (integer >= 2)
      - by="time": width is a time span in the series' time units
    """

    width: float = 0.2
    by: str = "row"

    def __post_init__(self) -> None:
        by = str(self.by).strip().lower()
        if by == "rows":
            by = "row"
        if by not in _BY_CHOICES:
            raise InvalidWidthError(f"by must be one of {_BY_CHOICES}, got {self.by!r}")
        object.__setattr__(self, "by", by)
        try:
            w = float(self.width)
        except (TypeError, ValueError):
            raise InvalidWidthError(f"width must be numeric, got {self.width!r}") from None
        if not math.isfinite(w) or w <= 0.0:
            raise InvalidWidthError(f"width must be a positive number, got {self.width!r}")
        if by == "fraction" and w > 1.0:
            raise InvalidWidthError(f"by='fraction' requires 0 < width <= 1, got {w:g}")
        object.__setattr__(self, "width", w)

    @property
    def is_fraction(self) -> bool:
        return self.by == "fraction" or self.width <= 1.0

    @property
    def is_time(self) -> bool:
        return self.by == "time" and not self.is_fraction


@dataclass(frozen=True)
class WindowPlan:
    starts: np.ndarray
    ends: np.ndarray
    overlapping: bool
    width_rows: Optional[int] = None
    span: Optional[float] = None

    def __len__(self) -> int:
        return int(self.starts.size)

    @property
    def sizes(self) -> np.ndarray:
        return self.ends - self.starts + 1


def resolve_width(spec: WindowSpec, n_rows: int) -> int:
    """
    Resolve a row-based (or fractional) width to an absolute row count W.

    Fractions use round-half-up of width * n_rows. Raises InvalidWidthError
    unless 2 <= W <= n_rows.
    """
    if spec.is_time:
        raise InvalidWidthError("resolve_width() only handles row/fraction widths.")
    if spec.is_fraction:
        w_rows = int(math.floor(spec.width * n_rows + 0.5))
    else:
        if abs(spec.width - round(spec.width)) > 1e-9:
            raise InvalidWidthError(f"Row width must be an integer, got {spec.width:g}")
        w_rows = int(round(spec.width))
    if w_rows < 2:
        raise InvalidWidthError(f"Width resolves to {w_rows} row(s); at least 2 are required.")
    if w_rows > n_rows:
        raise InvalidWidthError(f"Width resolves to {w_rows} rows but the series has only {n_rows}.")
    return w_rows


def _row_windows(n_rows: int, w_rows: int, overlapping: bool) -> tuple[np.ndarray, np.ndarray]:
    if overlapping:
        starts = np.arange(0, n_rows - w_rows + 1, dtype=np.int64)
    else:
        starts = np.arange(n_rows // w_rows, dtype=np.int64) * w_rows
    return starts, starts + (w_rows - 1)


def _time_windows(t: np.ndarray, span: float, overlapping: bool) -> tuple[np.ndarray, np.ndarray]:
    tol = 1e-9 * max(abs(span), 1.0)
    if overlapping:
        # only starts whose full span fits inside the series
        valid = t + span <= t[-1] + tol
        starts = np.flatnonzero(valid).astype(np.int64)
        ends = np.searchsorted(t, t[starts] + span + tol, side="right").astype(np.int64) - 1
        return starts, ends

    n_blocks = int(math.floor((t[-1] - t[0]) / span + tol))
    edges = t[0] + span * np.arange(n_blocks + 1, dtype=float)
    starts = np.searchsorted(t, edges[:-1] - tol, side="left").astype(np.int64)
    ends = np.searchsorted(t, edges[1:] - tol, side="left").astype(np.int64) - 1
    if n_blocks > 0:
        # last block is closed on the right
        ends[-1] = int(np.searchsorted(t, edges[-1] + tol, side="right")) - 1
    return starts, ends


def enumerate_windows(series: Series, spec: WindowSpec, method: Method | str) -> WindowPlan:
    """
    Enumerate window placements for a validated series.

      - linear/max/min/highest/lowest/rolling: every placement, stride 1
        (T - W + 1 windows for row widths)
      - interval: floor(T / W) contiguous non-overlapping blocks, remainder dropped

    Time widths give one window per start row whose span fits; row counts may
    then vary between windows and are kept as they are.
    """
    method = Method.parse(method)
    overlapping = method.overlapping
    n_rows = len(series)

    if not spec.is_time:
        w_rows = resolve_width(spec, n_rows)
        starts, ends = _row_windows(n_rows, w_rows, overlapping)
        return WindowPlan(starts=starts, ends=ends, overlapping=overlapping, width_rows=w_rows)

    span = float(spec.width)
    duration = series.duration
    if span > duration * (1.0 + 1e-12):
        raise InvalidWidthError(f"Time width {span:g} exceeds the series duration {duration:g}.")
    starts, ends = _time_windows(series.time, span, overlapping)
    keep = ends >= starts
    starts, ends = starts[keep], ends[keep]
    if starts.size == 0 or int(np.max(ends - starts + 1)) < 2:
        raise InvalidWidthError(f"Time width {span:g} yields no window with at least 2 rows.")
    return WindowPlan(starts=starts, ends=ends, overlapping=overlapping, span=span)
