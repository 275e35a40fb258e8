# src/oxy_rate_pipeline/autorate/density.py
"""
Slope density and mode grouping for method='linear'.

Steps:
  1) bandwidth h by Sheather-Jones solve-the-equation on binned pair counts
  2) Gaussian KDE of the rolling slopes on a regular grid (linear binning + convolution)
  3) modes = local maxima of the KDE with enough prominence
  4) each mode owns the basin between its neighbouring density minima;
     group size = number of windows whose slope falls in that basin
  5) group members (refit later) = windows within [mode - h, mode + h]
  6) groups ranked by size; a member window is kept only in its best group
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import optimize
from scipy.signal import find_peaks

from .core import NoLinearRegionError
from .rolling import RollingRegression

logger = logging.getLogger(__name__)

_SQRT_2PI = math.sqrt(2.0 * math.pi)
# Gaussian terms beyond exp(-DELMAX/2) are dropped
_DELMAX = 1000.0
_MAX_BRACKET_TRIES = 99


class BandwidthError(ArithmeticError):
    """The plug-in equation could not be solved for this sample."""


@dataclass(frozen=True)
class KDE:
    grid: np.ndarray
    density: np.ndarray
    bandwidth: float


@dataclass(frozen=True)
class DensityGroup:
    """
    One density mode and the windows assigned to it.

    group_size counts every window whose slope lies in the mode's basin
    (lower, upper] and is what groups are ranked by. members holds the
    window positions (into the rolling table) within one bandwidth of the
    mode, after de-duplication into the best-ranked group.
    """

    mode: float
    bandwidth: float
    density: float
    group_size: int
    mean_r2: float
    mean_width: float
    members: np.ndarray
    lower: float = -math.inf
    upper: float = math.inf


@dataclass(frozen=True)
class DensityRanking:
    kde: KDE
    modes: np.ndarray
    groups: tuple[DensityGroup, ...]
    bandwidth_method: str

    @property
    def bandwidth(self) -> float:
        return self.kde.bandwidth


# -------------------------
# bandwidth
# -------------------------
def _scale(x: np.ndarray) -> float:
    sd = float(np.std(x, ddof=1)) if x.size > 1 else 0.0
    q75, q25 = np.percentile(x, [75.0, 25.0])
    iqr = float(q75 - q25) / 1.349
    if iqr > 0.0:
        return min(sd, iqr)
    return sd


def _pair_counts(x: np.ndarray, nb: int) -> tuple[float, np.ndarray]:
    """
    Bin x into nb bins over 1.01 x range and count pairs by bin distance.
    Returns (bin width, counts[k] = #pairs k bins apart).
    """
    xmin = float(np.min(x))
    rang = (float(np.max(x)) - xmin) * 1.01
    dd = rang / nb
    idx = np.floor((x - xmin) / dd).astype(np.int64)
    idx = np.clip(idx, 0, nb - 1)
    hist = np.bincount(idx, minlength=nb).astype(float)
    # full autocorrelation; index nb-1 is lag 0
    ac = np.correlate(hist, hist, mode="full")[nb - 1 :]
    cnt = ac.copy()
    cnt[0] = float(np.sum(hist * (hist - 1.0))) / 2.0
    return dd, cnt


def _phi4(n: int, d: float, cnt: np.ndarray, h: float) -> float:
    delta = (np.arange(cnt.size, dtype=float) * d / h) ** 2
    keep = delta < _DELMAX
    delta = delta[keep]
    term = np.exp(-delta / 2.0) * (delta * delta - 6.0 * delta + 3.0)
    total = 2.0 * float(np.sum(term * cnt[keep])) + n * 3.0
    return total / (n * (n - 1) * h**5 * _SQRT_2PI)


def _phi6(n: int, d: float, cnt: np.ndarray, h: float) -> float:
    delta = (np.arange(cnt.size, dtype=float) * d / h) ** 2
    keep = delta < _DELMAX
    delta = delta[keep]
    term = np.exp(-delta / 2.0) * (delta**3 - 15.0 * delta**2 + 45.0 * delta - 15.0)
    total = 2.0 * float(np.sum(term * cnt[keep])) - 15.0 * n
    return total / (n * (n - 1) * h**7 * _SQRT_2PI)


def bandwidth_sj(x: np.ndarray, nb: int = 1000) -> float:
    """
    Sheather-Jones 'solve-the-equation' plug-in bandwidth.

    Solves h = (R(K) / (n * S(alpha2(h))))^(1/5) with S estimated from binned
    pair counts. The root is bracketed in [0.1 * hmax, hmax] (widened up to 99
    times, upper *= 1.2 / lower /= 1.2 alternately) and found by brentq with
    xtol = 0.1 * lower.

    Raises BandwidthError when the sample is too sparse or no root exists.
    """
    x = np.asarray(x, dtype=float)
    n = int(x.size)
    if n < 2:
        raise BandwidthError("need at least 2 values")
    scale = _scale(x)
    if not scale > 0.0:
        raise BandwidthError("sample has zero spread")

    d, cnt = _pair_counts(x, int(nb))
    a = 1.24 * scale * n ** (-1.0 / 7.0)
    b = 1.23 * scale * n ** (-1.0 / 9.0)
    c1 = 1.0 / (2.0 * math.sqrt(math.pi) * n)

    td = -_phi6(n, d, cnt, b)
    if not (math.isfinite(td) and td > 0.0):
        raise BandwidthError("sample is too sparse to estimate phi6")
    alph2 = 1.357 * (_phi4(n, d, cnt, a) / td) ** (1.0 / 7.0)
    if not math.isfinite(alph2):
        raise BandwidthError("sample is too sparse to estimate alpha2")

    def f(h: float) -> float:
        sd = _phi4(n, d, cnt, alph2 * h ** (5.0 / 7.0))
        return (c1 / sd) ** 0.2 - h if sd > 0.0 else -h

    hmax = 1.144 * scale * n ** (-0.2)
    lower, upper = 0.1 * hmax, hmax
    tol = 0.1 * lower
    tries = 1
    while f(lower) * f(upper) > 0.0:
        if tries > _MAX_BRACKET_TRIES:
            raise BandwidthError("no solution in the bandwidth search range")
        if tries % 2:
            upper *= 1.2
        else:
            lower /= 1.2
        tries += 1
    return float(optimize.brentq(f, lower, upper, xtol=tol))


def bandwidth_silverman(x: np.ndarray) -> float:
    x = np.asarray(x, dtype=float)
    scale = _scale(x)
    if not scale > 0.0:
        scale = abs(float(x[0])) or 1.0
    return float(0.9 * scale * x.size ** (-0.2))


def select_bandwidth(x: np.ndarray, nb: int = 1000) -> tuple[float, str]:
    """Return (h, method). Falls back to Silverman's rule when SJ fails."""
    try:
        return bandwidth_sj(x, nb=nb), "sj-ste"
    except BandwidthError as e:
        h = bandwidth_silverman(x)
        logger.warning("SJ bandwidth failed (%s); using Silverman's rule h=%.6g", e, h)
        return h, "silverman"


# -------------------------
# KDE
# -------------------------
def gaussian_kde_grid(x: np.ndarray, bandwidth: float, n_grid: int = 512, cut: float = 3.0) -> KDE:
    """
    Gaussian KDE evaluated on n_grid points over [min - cut*h, max + cut*h].
    Samples are linearly binned onto the grid, then convolved with the kernel.
    """
    x = np.asarray(x, dtype=float)
    h = float(bandwidth)
    n_grid = int(n_grid)
    lo = float(np.min(x)) - cut * h
    hi = float(np.max(x)) + cut * h
    grid = np.linspace(lo, hi, n_grid)
    dx = (hi - lo) / (n_grid - 1)

    pos = (x - lo) / dx
    left = np.clip(np.floor(pos).astype(np.int64), 0, n_grid - 2)
    frac = pos - left
    weights = np.bincount(left, weights=1.0 - frac, minlength=n_grid)
    weights += np.bincount(left + 1, weights=frac, minlength=n_grid)

    offsets = np.arange(-(n_grid - 1), n_grid, dtype=float) * dx / h
    kernel = np.exp(-0.5 * offsets * offsets) / (_SQRT_2PI * h)
    dens = np.convolve(weights, kernel, mode="full")[n_grid - 1 : 2 * n_grid - 1]
    dens /= float(x.size)
    return KDE(grid=grid, density=dens, bandwidth=h)


def find_modes(kde: KDE, min_prominence: float = 0.001) -> np.ndarray:
    """
    Grid indices of KDE local maxima whose prominence is at least
    min_prominence * max(density). Ordered left to right.
    """
    dens = kde.density
    top = float(np.max(dens)) if dens.size else 0.0
    if not (math.isfinite(top) and top > 0.0):
        return np.array([], dtype=np.int64)
    # pad so a maximum on the grid edge still counts as a peak
    padded = np.concatenate([[0.0], dens, [0.0]])
    peaks, _ = find_peaks(padded, prominence=float(min_prominence) * top)
    return (peaks - 1).astype(np.int64)


def refine_mode(x_sorted: np.ndarray, kde: KDE, gi: int, n_fine: int = 65) -> tuple[float, float]:
    """
    Locate a mode between the grid neighbours of peak `gi` by evaluating the
    exact KDE on a finer grid. x_sorted must be the sorted samples.
    Returns (location, density).
    """
    h = kde.bandwidth
    grid = kde.grid
    lo = float(grid[max(int(gi) - 1, 0)])
    hi = float(grid[min(int(gi) + 1, grid.size - 1)])
    pts = np.linspace(lo, hi, int(n_fine))
    # samples further than 8h contribute nothing measurable
    i0 = int(np.searchsorted(x_sorted, lo - 8.0 * h, side="left"))
    i1 = int(np.searchsorted(x_sorted, hi + 8.0 * h, side="right"))
    near = x_sorted[i0:i1]
    if near.size == 0:
        return float(grid[gi]), float(kde.density[gi])
    # for very small h the maximum sits on a sample, so samples are candidates too
    inside = np.unique(near[(near >= lo) & (near <= hi)])
    if inside.size > 512:
        inside = inside[np.linspace(0, inside.size - 1, 512).astype(np.int64)]
    pts = np.concatenate([pts, inside])
    dens = np.empty(pts.size)
    for k, p in enumerate(pts):
        z = (near - p) / h
        dens[k] = float(np.sum(np.exp(-0.5 * z * z)))
    dens /= x_sorted.size * h * _SQRT_2PI
    j = int(np.argmax(dens))
    return float(pts[j]), float(dens[j])


def basin_edges(kde: KDE, peak_idx: np.ndarray) -> np.ndarray:
    """
    Slope values splitting neighbouring modes: the lowest KDE point between
    each pair of adjacent peaks (middle of the run when the minimum is flat).
    Returns len(peak_idx) - 1 ascending edges.
    """
    dens = kde.density
    edges = np.empty(max(peak_idx.size - 1, 0), dtype=float)
    for k in range(edges.size):
        a, b = int(peak_idx[k]), int(peak_idx[k + 1])
        seg = dens[a : b + 1]
        low = np.flatnonzero(seg == seg.min())
        edges[k] = float(kde.grid[a + int(low[low.size // 2])])
    return edges


# -------------------------
# ranking
# -------------------------
def _single_group(rolling: RollingRegression) -> DensityRanking:
    slopes = rolling.slope
    mode = float(np.median(slopes))
    members = np.arange(slopes.size, dtype=np.int64)
    kde = KDE(grid=np.array([mode]), density=np.array([np.nan]), bandwidth=0.0)
    group = DensityGroup(
        mode=mode,
        bandwidth=0.0,
        density=float("nan"),
        group_size=int(members.size),
        mean_r2=float(np.mean(rolling.r2)),
        mean_width=float(np.mean(rolling.n)),
        members=members,
    )
    return DensityRanking(kde=kde, modes=np.array([mode]), groups=(group,), bandwidth_method="zero-spread")


def rank_density_groups(
    rolling: RollingRegression,
    *,
    n_grid: int = 512,
    min_prominence: float = 0.001,
    bandwidth_bins: int = 1000,
    bandwidth: Optional[float] = None,
) -> DensityRanking:
    """
    Group rolling windows around the modes of their slope density.

    Every window falls in exactly one mode's basin. Groups are ranked by
    basin count (desc), then mean R² (desc), then mean window width (asc),
    then earliest start index, all taken over the basin. The windows within
    ±h of a mode are that group's members; where two modes' members overlap
    each window is kept only in its best-ranked group, and groups left
    without members are dropped.

    Raises NoLinearRegionError when there are no slopes or no mode.
    """
    slopes = np.asarray(rolling.slope, dtype=float)
    if slopes.size == 0:
        raise NoLinearRegionError("No valid rolling regressions to build a density from.")

    spread = float(np.max(slopes) - np.min(slopes))
    magnitude = max(float(np.max(np.abs(slopes))), 1e-300)
    if spread <= 1e-9 * magnitude:
        return _single_group(rolling)

    if bandwidth is None:
        h, bw_method = select_bandwidth(slopes, nb=bandwidth_bins)
    else:
        h, bw_method = float(bandwidth), "user"
    if not (math.isfinite(h) and h > 0.0):
        raise NoLinearRegionError(f"Invalid density bandwidth h={h!r}.")

    kde = gaussian_kde_grid(slopes, h, n_grid=n_grid)
    peak_idx = find_modes(kde, min_prominence=min_prominence)
    if peak_idx.size == 0:
        raise NoLinearRegionError("Slope density is flat: no mode above the prominence threshold.")

    r2 = rolling.r2
    widths = rolling.n.astype(float)
    starts = rolling.start_idx

    # grid too coarse for h: refine each mode against the exact KDE
    dx = float(kde.grid[1] - kde.grid[0])
    refine = h < 2.0 * dx
    x_sorted = np.sort(slopes) if refine else slopes

    edges = basin_edges(kde, peak_idx)
    bounds = np.concatenate([[-math.inf], edges, [math.inf]])
    # (lower, upper] per basin
    basin_of = np.searchsorted(edges, slopes, side="left")

    raw: list[tuple[float, float, np.ndarray, np.ndarray, int]] = []
    modes: list[float] = []
    for k, gi in enumerate(peak_idx):
        if refine:
            theta, dens_at_mode = refine_mode(x_sorted, kde, int(gi))
        else:
            theta, dens_at_mode = float(kde.grid[gi]), float(kde.density[gi])
        modes.append(theta)
        basin = np.flatnonzero(basin_of == k)
        members = np.flatnonzero(np.abs(slopes - theta) <= h)
        if basin.size == 0 or members.size == 0:
            continue
        raw.append((theta, dens_at_mode, members, basin, k))
    if not raw:
        raise NoLinearRegionError("No rolling window lies within one bandwidth of any density mode.")

    def _key(item: tuple) -> tuple:
        basin = item[3]
        return (
            -int(basin.size),
            -float(np.mean(r2[basin])),
            float(np.mean(widths[basin])),
            int(np.min(starts[basin])),
        )

    raw.sort(key=_key)

    taken = np.zeros(slopes.size, dtype=bool)
    groups: list[DensityGroup] = []
    for theta, dens_at_mode, members, basin, k in raw:
        own = members[~taken[members]]
        taken[members] = True
        if own.size == 0:
            continue
        groups.append(
            DensityGroup(
                mode=theta,
                bandwidth=h,
                density=dens_at_mode,
                group_size=int(basin.size),
                mean_r2=float(np.mean(r2[basin])),
                mean_width=float(np.mean(widths[basin])),
                members=own,
                lower=float(bounds[k]),
                upper=float(bounds[k + 1]),
            )
        )

    return DensityRanking(
        kde=kde,
        modes=np.asarray(modes, dtype=float),
        groups=tuple(groups),
        bandwidth_method=bw_method,
    )
