# src/oxy_rate_pipeline/autorate/report.py
"""
Export of auto_rate() results for manual inspection.
"""
from __future__ import annotations

from pathlib import Path

import yaml

from .results import AutoRateResult


def write_auto_rate_outputs(
    result: AutoRateResult,
    out_dir: Path,
    stem: str = "auto_rate",
) -> dict[str, Path]:
    """
    Write the ranked table, the rolling table and run metadata.

    Outputs (in out_dir):
      - {stem}__summary.csv   ranked segments (row/endrow 1-based)
      - {stem}__rolling.csv   every valid rolling window (indices 0-based)
      - {stem}__run.yml       method, resolved width, bandwidth, counts, warnings

    Returns {"summary": path, "rolling": path, "run": path}.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    summary_path = out_dir / f"{stem}__summary.csv"
    rolling_path = out_dir / f"{stem}__rolling.csv"
    run_path = out_dir / f"{stem}__run.yml"

    result.summary().to_csv(summary_path, index=False)
    result.rolling_frame().to_csv(rolling_path, index=False)

    meta = result.metadata()
    if len(result):
        top = result.top()
        meta["top"] = {
            "rate": float(top.slope),
            "intercept": float(top.intercept),
            "r2": float(top.r2),
            "row": int(top.start_idx + 1),
            "endrow": int(top.end_idx + 1),
            "time": float(top.t_start),
            "endtime": float(top.t_end),
        }
    with run_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(meta, f, sort_keys=True, allow_unicode=True)

    return {"summary": summary_path, "rolling": rolling_path, "run": run_path}
