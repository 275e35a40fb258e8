from __future__ import annotations

import sys
import unittest
from pathlib import Path

import numpy as np
from scipy.integrate import trapezoid


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from oxy_rate_pipeline.autorate.core import NoLinearRegionError  # noqa: E402
from oxy_rate_pipeline.autorate.density import (  # noqa: E402
    KDE,
    bandwidth_sj,
    find_modes,
    gaussian_kde_grid,
    rank_density_groups,
)
from oxy_rate_pipeline.autorate.preprocessing import validate_series  # noqa: E402
from oxy_rate_pipeline.autorate.rolling import RollingRegression, rolling_regression  # noqa: E402
from oxy_rate_pipeline.autorate.windows import WindowSpec, enumerate_windows  # noqa: E402


def _synthetic_rolling(slopes: np.ndarray, width: int = 10, r2=None) -> RollingRegression:
    n = slopes.size
    starts = np.arange(n, dtype=np.int64)
    return RollingRegression(
        start_idx=starts,
        end_idx=starts + (width - 1),
        slope=np.asarray(slopes, dtype=float),
        intercept=np.zeros(n),
        r2=np.full(n, 0.99) if r2 is None else np.asarray(r2, dtype=float),
        n_windows=n,
    )


def _linear_after_lead_in(n: int = 1000, lead: int = 50) -> tuple[np.ndarray, np.ndarray]:
    """Noise-free decline with a curved lead-in over the first `lead` rows."""
    t = np.arange(n, dtype=float)
    y = 10.0 - 0.01 * t
    early = t < lead
    y[early] -= 0.5 * (1.0 - t[early] / lead) ** 2
    return t, y


class BandwidthTests(unittest.TestCase):
    def test_sj_bandwidth_on_standard_normal_is_plausible(self) -> None:
        x = np.random.default_rng(0).normal(0.0, 1.0, 1000)
        h = bandwidth_sj(x)
        self.assertGreater(h, 0.1)
        self.assertLess(h, 0.5)

    def test_sj_bandwidth_scales_with_data(self) -> None:
        x = np.random.default_rng(3).normal(0.0, 1.0, 800)
        h1 = bandwidth_sj(x)
        h2 = bandwidth_sj(x * 1e-3)
        self.assertAlmostEqual(h2 / h1, 1e-3, delta=1e-4)

    def test_kde_integrates_to_one(self) -> None:
        x = np.random.default_rng(1).normal(2.0, 0.5, 500)
        kde = gaussian_kde_grid(x, 0.1, n_grid=512)
        area = float(trapezoid(kde.density, kde.grid))
        self.assertAlmostEqual(area, 1.0, delta=0.01)


class DensityRankingTests(unittest.TestCase):
    def test_single_mode_cluster_gives_one_dominant_group(self) -> None:
        slopes = np.random.default_rng(0).normal(-0.5, 0.001, 1000)
        ranking = rank_density_groups(_synthetic_rolling(slopes))
        top = ranking.groups[0]
        self.assertGreaterEqual(top.group_size / slopes.size, 0.9)
        self.assertAlmostEqual(top.mode, -0.5, delta=0.001)
        self.assertLessEqual(top.lower, -0.5)
        self.assertGreaterEqual(top.upper, -0.5)
        for g in ranking.groups[1:]:
            self.assertLess(g.group_size, 0.1 * slopes.size)

    def test_basins_split_windows_between_modes(self) -> None:
        rng = np.random.default_rng(2)
        slopes = np.concatenate([rng.normal(-1.0, 0.05, 600), rng.normal(1.0, 0.05, 400)])
        ranking = rank_density_groups(_synthetic_rolling(slopes))
        top = ranking.groups[0]
        self.assertAlmostEqual(top.mode, -1.0, delta=0.05)
        self.assertGreaterEqual(top.group_size, 590)
        self.assertLess(top.upper, 0.9)
        right = [g for g in ranking.groups if abs(g.mode - 1.0) < 0.05]
        self.assertEqual(len(right), 1)
        self.assertGreaterEqual(right[0].group_size, 390)
        self.assertLessEqual(top.group_size + right[0].group_size, slopes.size)

    def test_single_linear_region_gives_one_dominant_group(self) -> None:
        t, y = _linear_after_lead_in()
        s = validate_series((t, y))
        plan = enumerate_windows(s, WindowSpec(width=0.2), "linear")
        roll = rolling_regression(s, plan)
        ranking = rank_density_groups(roll)
        top = ranking.groups[0]
        self.assertGreaterEqual(top.group_size / len(roll), 0.9)
        self.assertAlmostEqual(top.mode, -0.01, delta=5e-4)
        for g in ranking.groups[1:]:
            self.assertLess(g.group_size, top.group_size)

    def test_bimodal_slopes_rank_larger_cluster_first(self) -> None:
        rng = np.random.default_rng(7)
        slopes = np.concatenate(
            [rng.normal(-0.5, 0.02, 700), rng.normal(0.5, 0.02, 300)]
        )
        ranking = rank_density_groups(_synthetic_rolling(slopes))
        self.assertGreaterEqual(len(ranking.modes), 2)
        modes = [g.mode for g in ranking.groups]
        self.assertAlmostEqual(modes[0], -0.5, delta=0.05)
        pos_groups = [i for i, m in enumerate(modes) if abs(m - 0.5) < 0.05]
        self.assertTrue(pos_groups)
        self.assertGreater(ranking.groups[0].group_size, ranking.groups[pos_groups[0]].group_size)

    def test_members_lie_within_one_bandwidth_and_are_not_shared(self) -> None:
        rng = np.random.default_rng(11)
        slopes = np.concatenate([rng.normal(-1.0, 0.05, 400), rng.normal(-0.7, 0.05, 250)])
        roll = _synthetic_rolling(slopes)
        ranking = rank_density_groups(roll)
        seen: set[int] = set()
        for g in ranking.groups:
            self.assertTrue(np.all(np.abs(roll.slope[g.members] - g.mode) <= g.bandwidth))
            ids = set(g.members.tolist())
            self.assertFalse(ids & seen)
            seen |= ids
        self.assertLessEqual(sum(g.group_size for g in ranking.groups), len(roll))

    def test_equal_size_groups_break_tie_on_r2(self) -> None:
        slopes = np.concatenate([np.full(50, -2.0), np.full(50, 2.0)])
        slopes = slopes + np.tile(np.linspace(-0.01, 0.01, 50), 2)
        r2 = np.concatenate([np.full(50, 0.90), np.full(50, 0.99)])
        ranking = rank_density_groups(_synthetic_rolling(slopes, r2=r2), bandwidth=0.05)
        self.assertEqual(len(ranking.groups), 2)
        self.assertEqual(ranking.groups[0].group_size, ranking.groups[1].group_size)
        self.assertGreater(ranking.groups[0].mode, 0.0)

    def test_identical_slopes_form_one_group(self) -> None:
        roll = _synthetic_rolling(np.full(30, -0.25))
        ranking = rank_density_groups(roll)
        self.assertEqual(len(ranking.groups), 1)
        self.assertEqual(ranking.groups[0].group_size, 30)
        self.assertEqual(ranking.bandwidth, 0.0)

    def test_ranking_is_deterministic(self) -> None:
        slopes = np.random.default_rng(5).normal(0.0, 1.0, 600)
        a = rank_density_groups(_synthetic_rolling(slopes))
        b = rank_density_groups(_synthetic_rolling(slopes.copy()))
        self.assertEqual(a.bandwidth, b.bandwidth)
        self.assertEqual([g.mode for g in a.groups], [g.mode for g in b.groups])
        for ga, gb in zip(a.groups, b.groups):
            self.assertEqual(ga.members.tolist(), gb.members.tolist())

    def test_no_slopes_raises(self) -> None:
        with self.assertRaises(NoLinearRegionError):
            rank_density_groups(_synthetic_rolling(np.array([], dtype=float)))

    def test_flat_density_has_no_modes(self) -> None:
        kde = KDE(grid=np.linspace(0.0, 1.0, 50), density=np.zeros(50), bandwidth=0.1)
        self.assertEqual(find_modes(kde).size, 0)


if __name__ == "__main__":
    unittest.main()
