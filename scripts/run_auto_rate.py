from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure local src/ is used (avoid importing an older installed package)
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# Use non-interactive backend so script does not block on display (headless / IDE / SSH)
import matplotlib
matplotlib.use("Agg")

from oxy_rate_pipeline.loader import read_series_csv  # noqa: E402
from oxy_rate_pipeline.autorate import (  # noqa: E402
    AutoRateError,
    auto_rate,
    load_auto_rate_config,
    write_auto_rate_outputs,
)
from oxy_rate_pipeline.autorate.plotting import plot_auto_rate  # noqa: E402


def main() -> int:
    p = argparse.ArgumentParser(description="Detect linear / max / min / interval oxygen rates.")
    p.add_argument("--csv", required=True, help="Path to a CSV with time and oxygen columns.")
    p.add_argument("--config", default=None, help="Optional YAML with an auto_rate section.")
    p.add_argument("--out_dir", default="data/processed", help="Directory to write output files.")
    p.add_argument("--stem", default=None, help="Output file stem (default: CSV stem).")
    p.add_argument("--time_col", default=None, help="Time column (default: first column).")
    p.add_argument("--oxygen_col", default=None, help="Oxygen column (default: second column).")

    # Overrides for the config file
    p.add_argument(
        "--method",
        default=None,
        choices=["linear", "max", "min", "interval", "highest", "lowest", "rolling"],
    )
    p.add_argument(
        "--width",
        type=float,
        default=None,
        help="0-1: fraction of rows; otherwise rows (--by row) or time units (--by time).",
    )
    p.add_argument("--by", default=None, choices=["row", "time", "fraction"])
    p.add_argument(
        "--plot",
        type=int,
        default=None,
        choices=[0, 1],
        help="Write a diagnostic PNG for the top result. 1=on, 0=off.",
    )
    p.add_argument("--pos", type=int, default=1, help="Rank to print and plot (1 = top).")
    p.add_argument("--debug", action="store_true", help="Verbose logging.")
    args = p.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    csv_path = Path(args.csv)
    cfg = load_auto_rate_config(Path(args.config) if args.config else None)
    cfg = cfg.with_overrides(
        method=args.method,
        width=args.width,
        by=args.by,
        plot=None if args.plot is None else bool(args.plot),
    )

    data = read_series_csv(csv_path, time_col=args.time_col, oxygen_col=args.oxygen_col)
    try:
        result = auto_rate(data, config=cfg)
    except AutoRateError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    stem = args.stem or csv_path.stem
    out_dir = Path(args.out_dir)
    paths = write_auto_rate_outputs(result, out_dir, stem=stem)

    for note in result.warnings:
        print(f"WARNING: {note}")
    if len(result) == 0:
        print("No rate could be estimated.")
    else:
        try:
            seg = result.at(args.pos)
        except AutoRateError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        print(
            f"rank {seg.rank}/{len(result)} ({result.method.value}): rate={seg.slope:.6g} "
            f"R²={seg.r2:.4f} rows {seg.start_idx + 1}-{seg.end_idx + 1} "
            f"time {seg.t_start:g}-{seg.t_end:g}"
        )
        if cfg.plot:
            png = out_dir / f"{stem}__auto_rate_pos{seg.rank}.png"
            plot_auto_rate(result, pos=seg.rank, out_path=png)
            paths["plot"] = png

    print("Saved:")
    for p_out in paths.values():
        print(f"  {p_out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
