# src/oxy_rate_pipeline/autorate/results.py
"""
Ranked result table returned by auto_rate().
"""
from __future__ import annotations

import operator
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence

import numpy as np
import pandas as pd

from .core import Method, RankOutOfRangeError, Segment, Series
from .density import DensityRanking
from .rolling import RollingRegression
from .windows import WindowPlan

SUMMARY_COLUMNS = [
    "rank",
    "intercept_b0",
    "slope_b1",
    "rsq",
    "density",
    "group_size",
    "group_rank",
    "n_windows",
    "row",
    "endrow",
    "time",
    "endtime",
    "oxy",
    "endoxy",
    "n",
]


class ResultSet(Sequence[Segment]):
    """
    Immutable ranked sequence of Segments (rank 1..N).

    Positions are 1-based: top() is at(1). Iteration and [] indexing follow
    normal 0-based Python sequence rules.
    """

    def __init__(self, segments: Sequence[Segment]) -> None:
        self._segments: tuple[Segment, ...] = tuple(segments)
        ranks = [s.rank for s in self._segments]
        if ranks != list(range(1, len(ranks) + 1)):
            raise ValueError(f"Segments must be ranked 1..N in order, got ranks {ranks[:10]}...")

    def __len__(self) -> int:
        return len(self._segments)

    def __getitem__(self, i):  # type: ignore[override]
        return self._segments[i]

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments)

    def __repr__(self) -> str:
        return f"ResultSet(n={len(self)})"

    def at(self, pos: int) -> Segment:
        """Segment at 1-based rank `pos`."""
        n = len(self._segments)
        try:
            pos = operator.index(pos)
        except TypeError:
            raise RankOutOfRangeError(f"pos must be an integer rank, got {pos!r}") from None
        if pos < 1 or pos > n:
            raise RankOutOfRangeError(f"pos={pos} is outside 1..{n}")
        return self._segments[pos - 1]

    def top(self) -> Segment:
        return self.at(1)

    @property
    def rates(self) -> np.ndarray:
        return np.array([s.slope for s in self._segments], dtype=float)

    def summary(self) -> pd.DataFrame:
        """Full ranked table; row/endrow are 1-based."""
        rows = [
            {
                "rank": s.rank,
                "intercept_b0": s.intercept,
                "slope_b1": s.slope,
                "rsq": s.r2,
                "density": s.density,
                "group_size": s.group_size,
                "group_rank": s.group_rank,
                "n_windows": s.n_windows,
                "row": s.start_idx + 1,
                "endrow": s.end_idx + 1,
                "time": s.t_start,
                "endtime": s.t_end,
                "oxy": s.oxy_start,
                "endoxy": s.oxy_end,
                "n": s.n,
            }
            for s in self._segments
        ]
        return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


@dataclass(frozen=True)
class AutoRateResult:
    """
    Everything one auto_rate() run produced.

    results is the advisory ranking; rolling and density are kept so callers
    can inspect the evidence and pick a different segment.
    """

    method: Method
    series: Series
    plan: WindowPlan
    rolling: RollingRegression
    results: ResultSet
    density: Optional[DensityRanking] = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.results)

    def top(self) -> Segment:
        return self.results.top()

    def at(self, pos: int) -> Segment:
        return self.results.at(pos)

    @property
    def rate(self) -> float:
        return self.top().slope

    @property
    def width_rows(self) -> Optional[int]:
        return self.plan.width_rows

    @property
    def bandwidth(self) -> float:
        return float(self.density.bandwidth) if self.density is not None else float("nan")

    def summary(self) -> pd.DataFrame:
        return self.results.summary()

    def rolling_frame(self) -> pd.DataFrame:
        return self.rolling.to_frame(self.series)

    def metadata(self) -> dict:
        d = {
            "method": self.method.value,
            "n_rows": len(self.series),
            "width_rows": self.plan.width_rows,
            "width_time": self.plan.span,
            "n_windows": int(self.rolling.n_windows),
            "n_valid_windows": len(self.rolling),
            "n_degenerate_windows": len(self.rolling.skipped),
            "n_results": len(self.results),
            "irregular_sampling": bool(self.series.irregular),
            "n_duplicate_times": int(self.series.n_duplicate_times),
            "warnings": list(self.warnings),
        }
        if self.density is not None:
            d["bandwidth"] = float(self.density.bandwidth)
            d["bandwidth_method"] = self.density.bandwidth_method
            d["n_modes"] = int(len(self.density.modes))
            d["n_groups"] = int(len(self.density.groups))
        return d
