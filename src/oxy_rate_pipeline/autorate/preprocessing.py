# src/oxy_rate_pipeline/autorate/preprocessing.py
"""
Series validation and region-of-interest subsetting.
"""
from __future__ import annotations

import warnings
from typing import Any, Optional

import numpy as np
import pandas as pd

from .core import (
    DuplicateTimeWarning,
    IrregularSamplingWarning,
    MalformedInputError,
    Series,
)


def _frame_columns(
    df: pd.DataFrame,
    time_col: Optional[str],
    oxygen_col: Optional[str],
) -> tuple[pd.Series, pd.Series]:
    if df.shape[1] < 2 and (time_col is None or oxygen_col is None):
        raise MalformedInputError(f"Expected at least 2 columns (time, oxygen), got {df.shape[1]}.")
    missing = [c for c in (time_col, oxygen_col) if c is not None and c not in df.columns]
    if missing:
        raise MalformedInputError(f"Missing column(s): {missing}")
    t = df[time_col] if time_col is not None else df.iloc[:, 0]
    y = df[oxygen_col] if oxygen_col is not None else df.iloc[:, 1]
    return t, y


def _as_columns(data: Any, time_col: Optional[str], oxygen_col: Optional[str]) -> tuple[Any, Any]:
    if isinstance(data, pd.DataFrame):
        return _frame_columns(data, time_col, oxygen_col)
    if isinstance(data, tuple) and len(data) == 2:
        return data[0], data[1]
    arr = np.asarray(data, dtype=object)
    if arr.ndim != 2 or arr.shape[1] < 2:
        raise MalformedInputError(
            f"Expected a DataFrame, a (time, oxygen) tuple or an (n, 2) array; got shape {arr.shape}."
        )
    return arr[:, 0], arr[:, 1]


def _to_float(values: Any, name: str) -> np.ndarray:
    s = pd.Series(np.asarray(values, dtype=object).ravel())
    num = pd.to_numeric(s, errors="coerce").to_numpy(dtype=float)
    bad = ~np.isfinite(num)
    if bad.any():
        first = int(np.flatnonzero(bad)[0])
        raise MalformedInputError(
            f"{name} column has {int(bad.sum())} non-numeric or non-finite value(s) "
            f"(first at row {first}: {s.iloc[first]!r})."
        )
    return num


def _is_irregular(t: np.ndarray, rtol: float) -> bool:
    dt = np.diff(t)
    if dt.size <= 1:
        return False
    ref = float(np.median(dt))
    atol = 1e-9 * max(1.0, float(np.max(np.abs(t))))
    return not bool(np.allclose(dt, ref, rtol=float(rtol), atol=atol))


def validate_series(
    data: Any,
    *,
    time_col: Optional[str] = None,
    oxygen_col: Optional[str] = None,
    irregular_rtol: float = 1e-6,
    warn: bool = True,
) -> Series:
    """
    Validate a raw two-column (time, oxygen) input into a read-only Series.

    Accepts a DataFrame (first two columns, or time_col/oxygen_col), a
    (time, oxygen) tuple, an (n, 2) array, or an already-validated Series
    (returned as-is).

    Fails with MalformedInputError on:
      - non-numeric / non-finite values
      - fewer than 2 rows, or fewer than 2 distinct time values
      - decreasing time values (the series must be sorted)

    Tied timestamps and unequal time deltas are flagged, not rejected:
    DuplicateTimeWarning / IrregularSamplingWarning are emitted (warn=True)
    and the flags are kept on the returned Series.
    """
    if isinstance(data, Series):
        return data

    t_raw, y_raw = _as_columns(data, time_col, oxygen_col)
    t = _to_float(t_raw, "time")
    y = _to_float(y_raw, "oxygen")
    if t.size != y.size:
        raise MalformedInputError(f"time and oxygen lengths differ ({t.size} vs {y.size}).")
    if t.size < 2:
        raise MalformedInputError(f"Series needs at least 2 rows, got {t.size}.")
    if np.unique(t).size < 2:
        raise MalformedInputError("Series needs at least 2 distinct time values.")

    dt = np.diff(t)
    if (dt < 0).any():
        first = int(np.flatnonzero(dt < 0)[0])
        raise MalformedInputError(
            f"time must be non-decreasing; t[{first + 1}]={t[first + 1]:g} < t[{first}]={t[first]:g}."
        )

    n_dup = int(np.sum(dt == 0))
    irregular = _is_irregular(t, irregular_rtol)

    if warn and n_dup > 0:
        warnings.warn(
            f"Series has {n_dup} tied timestamp(s); windows spanning them may be degenerate.",
            DuplicateTimeWarning,
            stacklevel=2,
        )
    if warn and irregular:
        warnings.warn(
            "Time deltas are not uniform "
            f"(min={float(dt.min()):g}, max={float(dt.max()):g}); "
            "row-based widths are approximate, consider by='time'.",
            IrregularSamplingWarning,
            stacklevel=2,
        )

    t = t.copy()
    y = y.copy()
    t.setflags(write=False)
    y.setflags(write=False)
    return Series(time=t, oxygen=y, irregular=irregular, n_duplicate_times=n_dup)


def subset_series(
    series: Series,
    start: float,
    end: float,
    by: str = "time",
) -> Series:
    """
    Cut a validated series to [start, end] (inclusive).

    by:
      - "time": keep rows with start <= time <= end
      - "row":  keep rows start..end, 1-based like an exported table
    """
    by = str(by).strip().lower()
    if by == "time":
        mask = (series.time >= float(start)) & (series.time <= float(end))
        t = series.time[mask]
        y = series.oxygen[mask]
    elif by == "row":
        i0 = int(start) - 1
        i1 = int(end)
        if i0 < 0 or i1 > len(series) or i1 <= i0:
            raise MalformedInputError(f"Row range [{start}, {end}] is outside 1..{len(series)}.")
        t = series.time[i0:i1]
        y = series.oxygen[i0:i1]
    else:
        raise ValueError(f"by must be 'time' or 'row', got {by!r}")
    return validate_series((t, y), warn=False)
