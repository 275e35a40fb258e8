# src/oxy_rate_pipeline/autorate/pipeline.py
"""
Main entry point: auto_rate().

validate -> enumerate windows -> rolling OLS -> (density groups) -> resolve -> rank
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from .config import AutoRateConfig
from .core import Method, NoLinearRegionError, Series
from .density import rank_density_groups
from .preprocessing import validate_series
from .resolver import resolver_for
from .results import AutoRateResult, ResultSet
from .rolling import rolling_regression
from .windows import enumerate_windows

logger = logging.getLogger(__name__)


def _series_notes(series: Series, by_time: bool) -> list[str]:
    notes: list[str] = []
    if series.n_duplicate_times:
        notes.append(f"{series.n_duplicate_times} tied timestamp(s) in series")
    if series.irregular:
        if by_time:
            notes.append("irregular sampling: time-based windows have variable row counts")
        else:
            notes.append("irregular sampling: row-based width is approximate in time")
    return notes


def auto_rate(
    data: Any,
    method: Optional[str] = None,
    width: Optional[float] = None,
    by: Optional[str] = None,
    *,
    config: Optional[AutoRateConfig] = None,
    time_col: Optional[str] = None,
    oxygen_col: Optional[str] = None,
) -> AutoRateResult:
    """
    Detect and rank candidate rates (slopes of oxygen vs time).

    data: DataFrame / (time, oxygen) tuple / (n, 2) array / validated Series.

    method:
      - linear:   density-ranked most linear regions (default)
      - max/min:  every window, most positive / most negative slope first
      - highest/lowest: every window by |slope|, largest / smallest first
      - interval: non-overlapping blocks, left to right
      - rolling:  every window, left to right

    width/by: see WindowSpec (default 0.2 of the series, by row).
    Explicit arguments override `config`.

    Input and width errors are raised before any regression is run. The
    ranking is advisory: inspect result.summary() / result.rolling_frame()
    and pick another position with result.at(pos) where needed.
    """
    cfg = (config or AutoRateConfig()).with_overrides(method=method, width=width, by=by)
    meth = Method.parse(cfg.method)
    spec = cfg.window_spec

    series = validate_series(data, time_col=time_col, oxygen_col=oxygen_col)
    plan = enumerate_windows(series, spec, meth)
    notes = _series_notes(series, spec.is_time)

    rolling = rolling_regression(series, plan)
    if rolling.skipped:
        notes.append(f"{len(rolling.skipped)} degenerate window(s) skipped")

    ranking = None
    if meth is Method.LINEAR:
        if len(rolling) == 0:
            raise NoLinearRegionError("Every rolling window was degenerate; nothing to rank.")
        ranking = rank_density_groups(
            rolling,
            n_grid=cfg.kde_grid_size,
            min_prominence=cfg.min_prominence,
            bandwidth_bins=cfg.bandwidth_bins,
        )

    segments = resolver_for(meth).resolve(series, rolling, ranking) if len(rolling) else []
    results = ResultSet(segments)

    logger.info(
        "auto_rate method=%s windows=%d valid=%d results=%d",
        meth.value,
        len(plan),
        len(rolling),
        len(results),
    )
    return AutoRateResult(
        method=meth,
        series=series,
        plan=plan,
        rolling=rolling,
        results=results,
        density=ranking,
        warnings=tuple(notes),
    )
