from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import yaml  # noqa: E402


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from oxy_rate_pipeline.autorate import (  # noqa: E402
    AutoRateConfig,
    InvalidWidthError,
    auto_rate,
    load_auto_rate_config,
    write_auto_rate_outputs,
)
from oxy_rate_pipeline.autorate.plotting import plot_auto_rate  # noqa: E402
from oxy_rate_pipeline.autorate.results import SUMMARY_COLUMNS  # noqa: E402
from oxy_rate_pipeline.loader import read_series_csv, time_to_seconds  # noqa: E402


def _series(n: int = 150) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(4)
    t = np.arange(n, dtype=float) * 10.0
    y = 7.5 - 0.0015 * t + rng.normal(0.0, 0.005, n)
    return t, y


class AutoRateConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = AutoRateConfig()
        self.assertEqual(cfg.method, "linear")
        self.assertEqual(cfg.width, 0.2)
        self.assertEqual(cfg.by, "row")
        self.assertFalse(cfg.plot)
        self.assertEqual(cfg.kde_grid_size, 512)

    def test_values_are_normalised(self) -> None:
        cfg = AutoRateConfig(method="Minimum", width="25", by="Rows", plot="yes")
        self.assertEqual(cfg.method, "min")
        self.assertEqual(cfg.width, 25.0)
        self.assertEqual(cfg.by, "row")
        self.assertTrue(cfg.plot)

    def test_invalid_values_fail(self) -> None:
        with self.assertRaises(ValueError):
            AutoRateConfig(method="steepest")
        with self.assertRaises(InvalidWidthError):
            AutoRateConfig(width=0)
        with self.assertRaises(ValueError):
            AutoRateConfig(min_prominence=1.5)
        with self.assertRaises(ValueError):
            AutoRateConfig(plot="maybe")

    def test_unknown_keys_fail(self) -> None:
        with self.assertRaises(ValueError):
            AutoRateConfig.from_mapping({"method": "max", "widht": 10})

    def test_overrides_skip_none(self) -> None:
        cfg = AutoRateConfig(method="max", width=30).with_overrides(method=None, width=40)
        self.assertEqual((cfg.method, cfg.width), ("max", 40.0))

    def test_yaml_section_and_root_mapping(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            nested = Path(d) / "nested.yml"
            nested.write_text("auto_rate:\n  method: interval\n  width: 20\n", encoding="utf-8")
            flat = Path(d) / "flat.yml"
            flat.write_text("method: max\nwidth: 0.5\nby: fraction\n", encoding="utf-8")
            empty = Path(d) / "empty.yml"
            empty.write_text("", encoding="utf-8")

            a = load_auto_rate_config(nested)
            b = load_auto_rate_config(flat)
            c = load_auto_rate_config(empty)
        self.assertEqual((a.method, a.width), ("interval", 20.0))
        self.assertEqual((b.method, b.width, b.by), ("max", 0.5, "fraction"))
        self.assertEqual(c, AutoRateConfig())
        self.assertEqual(load_auto_rate_config(None), AutoRateConfig())

    def test_explicit_arguments_override_config(self) -> None:
        t, y = _series()
        cfg = AutoRateConfig(method="interval", width=50)
        res = auto_rate((t, y), method="max", config=cfg)
        self.assertEqual(res.method.value, "max")
        self.assertEqual(len(res), 101)


class OutputTests(unittest.TestCase):
    def test_write_outputs(self) -> None:
        t, y = _series()
        res = auto_rate((t, y), method="linear", width=0.2)
        with tempfile.TemporaryDirectory() as d:
            paths = write_auto_rate_outputs(res, Path(d) / "out", stem="run1")
            self.assertEqual(set(paths), {"summary", "rolling", "run"})
            for p in paths.values():
                self.assertTrue(p.is_file())
            summary = pd.read_csv(paths["summary"])
            rolling = pd.read_csv(paths["rolling"])
            meta = yaml.safe_load(paths["run"].read_text(encoding="utf-8"))
        self.assertEqual(list(summary.columns), SUMMARY_COLUMNS)
        self.assertEqual(len(summary), len(res))
        self.assertEqual(len(rolling), len(res.rolling))
        self.assertEqual(meta["method"], "linear")
        self.assertEqual(meta["width_rows"], 30)
        self.assertEqual(meta["top"]["row"], res.top().start_idx + 1)
        self.assertAlmostEqual(meta["top"]["rate"], res.rate)

    def test_plot_writes_png(self) -> None:
        t, y = _series()
        for method in ("linear", "min"):
            res = auto_rate((t, y), method=method, width=0.2)
            with tempfile.TemporaryDirectory() as d:
                png = Path(d) / f"{method}.png"
                fig = plot_auto_rate(res, pos=1, out_path=png)
                self.assertTrue(png.is_file())
            self.assertEqual(len(fig.axes), 3 if method == "linear" else 2)
            plt.close(fig)


class LoaderTests(unittest.TestCase):
    def test_clock_times_are_converted(self) -> None:
        self.assertEqual(time_to_seconds("1:02:03"), 3723.0)
        self.assertEqual(time_to_seconds("02:30"), 150.0)
        self.assertEqual(time_to_seconds("12.5"), 12.5)
        self.assertIsNone(time_to_seconds("abc"))

    def test_read_series_csv(self) -> None:
        text = "Time,Note,Oxygen\n0:00:00,a,8.00\n0:00:30,b,7.95\n0:01:00,c,7.90\n0:01:30,d,7.85\n"
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "probe.csv"
            p.write_text(text, encoding="utf-8")
            df = read_series_csv(p, time_col="Time", oxygen_col="Oxygen", sep=",")
            with self.assertRaises(ValueError):
                read_series_csv(p, time_col="Clock", sep=",")
        self.assertEqual(list(df.columns), ["time", "oxygen"])
        self.assertEqual(df["time"].tolist(), [0.0, 30.0, 60.0, 90.0])
        res = auto_rate(df, method="max", width=2)
        self.assertAlmostEqual(res.rate, -0.05 / 30.0, places=9)

    def test_missing_file_fails(self) -> None:
        with self.assertRaises(FileNotFoundError):
            read_series_csv(Path("does/not/exist.csv"))


if __name__ == "__main__":
    unittest.main()
