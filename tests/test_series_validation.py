from __future__ import annotations

import sys
import unittest
import warnings
from pathlib import Path

import numpy as np
import pandas as pd


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from oxy_rate_pipeline.autorate.core import (  # noqa: E402
    DuplicateTimeWarning,
    IrregularSamplingWarning,
    MalformedInputError,
)
from oxy_rate_pipeline.autorate.preprocessing import subset_series, validate_series  # noqa: E402


def _frame(t, y) -> pd.DataFrame:
    return pd.DataFrame({"time": t, "oxygen": y})


class SeriesValidationTests(unittest.TestCase):
    def test_regular_series_validates_without_warnings(self) -> None:
        t = np.arange(100, dtype=float) * 0.1
        y = 8.0 - 0.01 * t
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            s = validate_series(_frame(t, y))
        self.assertEqual(caught, [])
        self.assertEqual(len(s), 100)
        self.assertFalse(s.irregular)
        self.assertEqual(s.n_duplicate_times, 0)
        self.assertAlmostEqual(s.duration, 9.9)

    def test_validated_arrays_are_read_only(self) -> None:
        s = validate_series((np.arange(5.0), np.arange(5.0)))
        with self.assertRaises(ValueError):
            s.time[0] = 10.0

    def test_named_columns_are_used(self) -> None:
        df = pd.DataFrame({"note": ["a", "b", "c"], "t": [0, 1, 2], "o2": [9.0, 8.5, 8.0]})
        s = validate_series(df, time_col="t", oxygen_col="o2")
        self.assertEqual(s.oxygen.tolist(), [9.0, 8.5, 8.0])

    def test_non_numeric_value_is_rejected(self) -> None:
        df = _frame([0, 1, 2, 3], [8.0, "abc", 7.9, 7.8])
        with self.assertRaises(MalformedInputError):
            validate_series(df)

    def test_nan_value_is_rejected(self) -> None:
        with self.assertRaises(MalformedInputError):
            validate_series(_frame([0.0, 1.0, 2.0], [8.0, np.nan, 7.9]))

    def test_single_row_is_rejected(self) -> None:
        with self.assertRaises(MalformedInputError):
            validate_series(_frame([0.0], [8.0]))

    def test_single_distinct_time_is_rejected(self) -> None:
        with self.assertRaises(MalformedInputError):
            validate_series(_frame([5.0, 5.0, 5.0], [8.0, 7.9, 7.8]))

    def test_unsorted_time_is_rejected(self) -> None:
        with self.assertRaises(MalformedInputError):
            validate_series(_frame([0.0, 2.0, 1.0, 3.0], [8.0, 7.9, 7.8, 7.7]))

    def test_wrong_shape_is_rejected(self) -> None:
        with self.assertRaises(MalformedInputError):
            validate_series(np.arange(10.0))

    def test_malformed_input_is_a_value_error(self) -> None:
        with self.assertRaises(ValueError):
            validate_series(_frame([0.0], [1.0]))

    def test_uneven_spacing_warns_but_validates(self) -> None:
        t = np.array([0.0, 1.0, 2.0, 4.0, 5.0, 6.0])
        with self.assertWarns(IrregularSamplingWarning):
            s = validate_series(_frame(t, 10.0 - t))
        self.assertTrue(s.irregular)
        self.assertEqual(len(s), 6)

    def test_tied_timestamps_are_flagged(self) -> None:
        t = np.array([0.0, 1.0, 2.0, 2.0, 3.0, 4.0])
        with self.assertWarns(DuplicateTimeWarning):
            s = validate_series(_frame(t, 10.0 - t))
        self.assertEqual(s.n_duplicate_times, 1)

    def test_validated_series_passes_through(self) -> None:
        s = validate_series((np.arange(5.0), np.arange(5.0)))
        self.assertIs(validate_series(s), s)


class SubsetSeriesTests(unittest.TestCase):
    def setUp(self) -> None:
        t = np.arange(20, dtype=float) * 10.0
        self.series = validate_series((t, 100.0 - 0.5 * t))

    def test_subset_by_time_is_inclusive(self) -> None:
        sub = subset_series(self.series, 50.0, 100.0, by="time")
        self.assertEqual(sub.time.tolist(), [50.0, 60.0, 70.0, 80.0, 90.0, 100.0])

    def test_subset_by_row_is_one_based(self) -> None:
        sub = subset_series(self.series, 1, 3, by="row")
        self.assertEqual(sub.time.tolist(), [0.0, 10.0, 20.0])

    def test_subset_row_range_outside_series_fails(self) -> None:
        with self.assertRaises(MalformedInputError):
            subset_series(self.series, 15, 25, by="row")

    def test_subset_to_one_row_fails(self) -> None:
        with self.assertRaises(MalformedInputError):
            subset_series(self.series, 50.0, 55.0, by="time")


if __name__ == "__main__":
    unittest.main()
