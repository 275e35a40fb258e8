# src/oxy_rate_pipeline/autorate/plotting.py
"""
Diagnostic figure for an auto_rate() run (presentation layer only).
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np
import matplotlib.pyplot as plt
from matplotlib import font_manager as fm

from .core import Method
from .results import AutoRateResult


# Standard figure sizes (1-column width ≈ 90mm ≈ 3.5 in)
PAPER_FIGSIZE_SINGLE = (3.5, 2.6)
PAPER_FIGSIZE_TALL = (3.5, 6.2)


def apply_paper_style() -> dict:
    """
    Return matplotlib rcParams dict for paper-grade figures.

    Usage:
        with plt.rc_context(apply_paper_style()):
            fig, ax = plt.subplots(figsize=PAPER_FIGSIZE_SINGLE)
    """
    available = {f.name for f in fm.fontManager.ttflist}
    font_priority = ["Arial", "Helvetica", "Liberation Sans", "DejaVu Sans"]
    chosen = next((f for f in font_priority if f in available), "DejaVu Sans")
    return {
        "font.family": "sans-serif",
        "font.sans-serif": [chosen] + [f for f in font_priority if f != chosen],
        "font.size": 7,
        "axes.titlesize": 8,
        "axes.labelsize": 7,
        "xtick.labelsize": 6,
        "ytick.labelsize": 6,
        "legend.fontsize": 6,
        "lines.linewidth": 0.7,
        "lines.markersize": 2,
        "axes.linewidth": 0.6,
        "axes.edgecolor": "0.3",
        "axes.labelcolor": "0.15",
        "xtick.major.width": 0.5,
        "ytick.major.width": 0.5,
        "xtick.color": "0.3",
        "ytick.color": "0.3",
        "legend.frameon": True,
        "legend.framealpha": 0.9,
        "legend.edgecolor": "0.7",
        "figure.facecolor": "white",
        "savefig.dpi": 600,
        "savefig.bbox": "tight",
        "savefig.pad_inches": 0.02,
    }


def paper_savefig(fig, path, **kwargs):
    """Save figure as PNG at 600 dpi with a tight bbox."""
    defaults = {
        "dpi": 600,
        "bbox_inches": "tight",
        "pad_inches": 0.02,
        "facecolor": "white",
        "edgecolor": "white",
    }
    defaults.update(kwargs)
    fig.savefig(path, **defaults)


def plot_auto_rate(
    result: AutoRateResult,
    pos: int = 1,
    out_path: Optional[Path] = None,
):
    """
    Three panels:
      (a) oxygen vs time, segment at rank `pos` highlighted with its fit line
      (b) rolling slope vs window midpoint time
      (c) slope density with modes and ±bandwidth (method='linear' only)

    Returns the Figure; writes a PNG when out_path is given.
    """
    seg = result.at(pos)
    t = result.series.time
    y = result.series.oxygen
    roll = result.rolling_frame()
    has_density = result.method is Method.LINEAR and result.density is not None and result.bandwidth > 0

    c_point = "#0072B2"
    c_sel = "#E07020"
    c_roll = "0.35"

    with plt.rc_context(apply_paper_style()):
        n_panels = 3 if has_density else 2
        fig, axes = plt.subplots(n_panels, 1, figsize=PAPER_FIGSIZE_TALL if has_density else (3.5, 4.4))

        ax = axes[0]
        ax.plot(t, y, ".", color=c_point, alpha=0.5, label="data")
        sl = slice(seg.start_idx, seg.end_idx + 1)
        ax.plot(t[sl], y[sl], ".", color=c_sel, label=f"rank {seg.rank}")
        xf = np.array([seg.t_start, seg.t_end])
        ax.plot(xf, seg.slope * xf + seg.intercept, "-", color="black", linewidth=0.8)
        ax.set_xlabel("Time")
        ax.set_ylabel("Oxygen")
        ax.set_title(f"{result.method.value}: rate={seg.slope:.4g}, R²={seg.r2:.3f}")
        ax.legend(loc="best")

        ax = axes[1]
        if len(roll):
            ax.plot(roll["t_mid"], roll["slope"], "-", color=c_roll)
            ax.axhline(seg.slope, color=c_sel, linewidth=0.6, linestyle="--")
        ax.set_xlabel("Window midpoint time")
        ax.set_ylabel("Rolling slope")

        if has_density:
            ax = axes[2]
            kde = result.density.kde
            h = result.density.bandwidth
            ax.plot(kde.grid, kde.density, "-", color=c_point)
            for m in result.density.modes:
                ax.axvline(float(m), color="0.6", linewidth=0.4)
            top_mode = result.density.groups[0].mode
            ax.axvspan(top_mode - h, top_mode + h, color=c_sel, alpha=0.2, linewidth=0)
            ax.set_xlabel("Rolling slope")
            ax.set_ylabel("Density")

        fig.tight_layout()
        if out_path is not None:
            out_path = Path(out_path)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            paper_savefig(fig, out_path)
    return fig
