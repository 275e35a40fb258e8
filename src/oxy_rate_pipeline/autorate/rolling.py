# src/oxy_rate_pipeline/autorate/rolling.py
"""
Rolling OLS over every enumerated window.

Per-window sums come from prefix sums of the (globally centred) series, so
each window costs O(1) regardless of its width. Windows whose centred sums
lose too much precision are refit directly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .core import DegenerateWindowError, RegressionResult, Series, _fit_linear
from .windows import WindowPlan

logger = logging.getLogger(__name__)

# sxx below this fraction of the raw second moment is refit directly
_CANCELLATION_FRAC = 1e-8


@dataclass(frozen=True)
class RollingRegression:
    """
    Valid window fits in enumeration order (ascending start index), plus the
    windows that were skipped as degenerate.
    """

    start_idx: np.ndarray
    end_idx: np.ndarray
    slope: np.ndarray
    intercept: np.ndarray
    r2: np.ndarray
    n_windows: int
    skipped: tuple[DegenerateWindowError, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return int(self.slope.size)

    @property
    def n(self) -> np.ndarray:
        return self.end_idx - self.start_idx + 1

    def result(self, i: int) -> RegressionResult:
        return RegressionResult(
            start_idx=int(self.start_idx[i]),
            end_idx=int(self.end_idx[i]),
            slope=float(self.slope[i]),
            intercept=float(self.intercept[i]),
            r2=float(self.r2[i]),
        )

    def results(self) -> list[RegressionResult]:
        return [self.result(i) for i in range(len(self))]

    def to_frame(self, series: Series | None = None) -> pd.DataFrame:
        """Rolling table for inspection / export (indices 0-based)."""
        out = pd.DataFrame(
            {
                "start_idx": self.start_idx.astype(int),
                "end_idx": self.end_idx.astype(int),
                "n": self.n.astype(int),
                "slope": self.slope,
                "intercept": self.intercept,
                "r2": self.r2,
            }
        )
        if series is not None and len(out):
            out["t_start"] = series.time[self.start_idx]
            out["t_end"] = series.time[self.end_idx]
            out["t_mid"] = 0.5 * (out["t_start"] + out["t_end"])
        return out


def _prefix(a: np.ndarray) -> np.ndarray:
    out = np.empty(a.size + 1, dtype=float)
    out[0] = 0.0
    np.cumsum(a, out=out[1:])
    return out


def rolling_regression(series: Series, plan: WindowPlan) -> RollingRegression:
    """
    Closed-form OLS for every window in `plan`.

    Windows with fewer than 2 rows or no time spread are recorded as
    DegenerateWindowError on `skipped` and excluded; the run continues.
    """
    t = series.time
    y = series.oxygen
    s = np.asarray(plan.starts, dtype=np.int64)
    e = np.asarray(plan.ends, dtype=np.int64)

    n = (e - s + 1).astype(float)
    too_short = n < 2
    flat_time = np.zeros_like(too_short)
    flat_time[~too_short] = t[e[~too_short]] == t[s[~too_short]]
    degenerate = too_short | flat_time

    skipped = tuple(
        DegenerateWindowError(
            int(s[i]),
            int(e[i]),
            reason="fewer than 2 points" if too_short[i] else "zero time variance",
        )
        for i in np.flatnonzero(degenerate)
    )
    for err in skipped:
        logger.debug("skipping degenerate %s", err)

    ok = ~degenerate
    s, e, n = s[ok], e[ok], n[ok]

    t_ref = float(np.mean(t))
    y_ref = float(np.mean(y))
    xc = t - t_ref
    yc = y - y_ref

    cx = _prefix(xc)
    cy = _prefix(yc)
    cxx = _prefix(xc * xc)
    cxy = _prefix(xc * yc)
    cyy = _prefix(yc * yc)

    sx = cx[e + 1] - cx[s]
    sy = cy[e + 1] - cy[s]
    sxx_raw = cxx[e + 1] - cxx[s]
    sxy_raw = cxy[e + 1] - cxy[s]
    syy_raw = cyy[e + 1] - cyy[s]

    sxx = sxx_raw - sx * sx / n
    sxy = sxy_raw - sx * sy / n
    syy = syy_raw - sy * sy / n

    slope = np.full(n.size, np.nan)
    good = sxx > 0.0
    slope[good] = sxy[good] / sxx[good]
    intercept = (sy / n + y_ref) - slope * (sx / n + t_ref)

    with np.errstate(divide="ignore", invalid="ignore"):
        r2 = np.where(syy > 0.0, (sxy * sxy) / (sxx * syy), 0.0)
    r2 = np.clip(np.nan_to_num(r2, nan=0.0), 0.0, 1.0)

    # windows far from the global centre with tiny spread lose precision
    suspect = np.flatnonzero(~(sxx > _CANCELLATION_FRAC * sxx_raw))
    for i in suspect:
        fr = _fit_linear(t[s[i] : e[i] + 1], y[s[i] : e[i] + 1])
        slope[i] = fr.slope
        intercept[i] = fr.intercept
        r2[i] = fr.r2
    if suspect.size:
        logger.debug("refit %d ill-conditioned window(s) directly", int(suspect.size))

    if skipped:
        logger.info("%d of %d window(s) skipped as degenerate", len(skipped), len(plan))

    return RollingRegression(
        start_idx=s,
        end_idx=e,
        slope=slope,
        intercept=intercept,
        r2=r2,
        n_windows=len(plan),
        skipped=skipped,
    )
