# src/oxy_rate_pipeline/autorate/resolver.py
"""
Turn rolling fits (and, for method='linear', density groups) into ranked Segments.

One resolver per Method; all share resolve(series, rolling, ranking) -> list[Segment].
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional

import numpy as np

from .core import (
    DegenerateWindowError,
    Method,
    MixedRateSignError,
    NoLinearRegionError,
    Segment,
    Series,
    fit_segment,
)
from .density import DensityGroup, DensityRanking
from .rolling import RollingRegression

logger = logging.getLogger(__name__)


def _segment_from_row(series: Series, rolling: RollingRegression, i: int, rank: int) -> Segment:
    s = int(rolling.start_idx[i])
    e = int(rolling.end_idx[i])
    return Segment(
        rank=int(rank),
        start_idx=s,
        end_idx=e,
        slope=float(rolling.slope[i]),
        intercept=float(rolling.intercept[i]),
        r2=float(rolling.r2[i]),
        group_size=1,
        t_start=float(series.time[s]),
        t_end=float(series.time[e]),
        oxy_start=float(series.oxygen[s]),
        oxy_end=float(series.oxygen[e]),
    )


def _segments_in_order(series: Series, rolling: RollingRegression, order: np.ndarray) -> list[Segment]:
    return [_segment_from_row(series, rolling, int(i), rank) for rank, i in enumerate(order, start=1)]


def merge_contiguous(starts: np.ndarray, ends: np.ndarray) -> list[tuple[int, int, int]]:
    """
    Merge windows that overlap or touch into runs.
    Returns [(start, end, n_windows), ...] left to right.
    """
    if len(starts) == 0:
        return []
    order = np.lexsort((ends, starts))
    runs: list[tuple[int, int, int]] = []
    cur_s = int(starts[order[0]])
    cur_e = int(ends[order[0]])
    count = 1
    for i in order[1:]:
        s = int(starts[i])
        e = int(ends[i])
        if s <= cur_e + 1:
            cur_e = max(cur_e, e)
            count += 1
        else:
            runs.append((cur_s, cur_e, count))
            cur_s, cur_e, count = s, e, 1
    runs.append((cur_s, cur_e, count))
    return runs


class SegmentResolver(ABC):
    method: Method

    @abstractmethod
    def resolve(
        self,
        series: Series,
        rolling: RollingRegression,
        ranking: Optional[DensityRanking] = None,
    ) -> list[Segment]:
        """Ranked Segments (rank 1..N) for one run."""


class LinearResolver(SegmentResolver):
    """
    Refit each density group over the full span its windows cover.

    Disjoint runs of member windows become separate segments; within a
    group, runs with more windows come first, then earlier runs.
    """

    method = Method.LINEAR

    def _group_segments(
        self, series: Series, rolling: RollingRegression, group: DensityGroup, group_rank: int
    ) -> list[Segment]:
        runs = merge_contiguous(rolling.start_idx[group.members], rolling.end_idx[group.members])
        runs.sort(key=lambda r: (-r[2], r[0]))
        out: list[Segment] = []
        for s, e, count in runs:
            try:
                fr = fit_segment(series, s, e)
            except DegenerateWindowError as err:
                logger.debug("dropping degenerate merged span %s", err)
                continue
            out.append(
                Segment(
                    rank=0,
                    start_idx=s,
                    end_idx=e,
                    slope=fr.slope,
                    intercept=fr.intercept,
                    r2=fr.r2,
                    group_size=int(group.group_size),
                    group_rank=int(group_rank),
                    n_windows=int(count),
                    density=float(group.density),
                    t_start=float(series.time[s]),
                    t_end=float(series.time[e]),
                    oxy_start=float(series.oxygen[s]),
                    oxy_end=float(series.oxygen[e]),
                )
            )
        return out

    def resolve(self, series, rolling, ranking=None):
        if ranking is None:
            raise ValueError("method='linear' needs a density ranking")
        segments: list[Segment] = []
        for group_rank, group in enumerate(ranking.groups, start=1):
            segments.extend(self._group_segments(series, rolling, group, group_rank))
        if not segments:
            raise NoLinearRegionError("Density groups produced no usable segment.")
        return [replace(seg, rank=rank) for rank, seg in enumerate(segments, start=1)]


class SlopeOrderResolver(SegmentResolver):
    """
    max: most positive slope first; min: most negative slope first.
    Ties keep temporal order.
    """

    def __init__(self, method: Method) -> None:
        if method not in (Method.MAX, Method.MIN):
            raise ValueError(f"SlopeOrderResolver handles max/min, got {method.value}")
        self.method = method

    def resolve(self, series, rolling, ranking=None):
        key = -rolling.slope if self.method is Method.MAX else rolling.slope
        order = np.lexsort((rolling.start_idx, key))
        return _segments_in_order(series, rolling, order)


class MagnitudeOrderResolver(SegmentResolver):
    """
    highest: largest |slope| first; lowest: smallest |slope| first.
    Rates must all share one sign.
    """

    def __init__(self, method: Method) -> None:
        if method not in (Method.HIGHEST, Method.LOWEST):
            raise ValueError(f"MagnitudeOrderResolver handles highest/lowest, got {method.value}")
        self.method = method

    def resolve(self, series, rolling, ranking=None):
        slopes = rolling.slope
        if bool(np.any(slopes > 0.0)) and bool(np.any(slopes < 0.0)):
            raise MixedRateSignError(
                f"method='{self.method.value}' ranks by magnitude and needs rates of one sign; "
                f"got {int(np.sum(slopes < 0))} negative and {int(np.sum(slopes > 0))} positive. "
                "Use 'max'/'min' or subset the data."
            )
        mag = np.abs(slopes)
        key = -mag if self.method is Method.HIGHEST else mag
        order = np.lexsort((rolling.start_idx, key))
        return _segments_in_order(series, rolling, order)


class TemporalResolver(SegmentResolver):
    """interval / rolling: windows in left-to-right order, no re-ranking."""

    def __init__(self, method: Method) -> None:
        if method not in (Method.INTERVAL, Method.ROLLING):
            raise ValueError(f"TemporalResolver handles interval/rolling, got {method.value}")
        self.method = method

    def resolve(self, series, rolling, ranking=None):
        order = np.argsort(rolling.start_idx, kind="stable")
        return _segments_in_order(series, rolling, order)


def resolver_for(method: Method | str) -> SegmentResolver:
    method = Method.parse(method)
    if method is Method.LINEAR:
        return LinearResolver()
    if method in (Method.MAX, Method.MIN):
        return SlopeOrderResolver(method)
    if method in (Method.HIGHEST, Method.LOWEST):
        return MagnitudeOrderResolver(method)
    return TemporalResolver(method)
