from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd
import yaml


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        obj = yaml.safe_load(f)
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ValueError(f"YAML root must be a mapping: {path}")
    return obj


def time_to_seconds(t: Any) -> Optional[float]:
    """'hh:mm:ss', 'mm:ss' or a plain number -> seconds (None if unparseable)."""
    if t is None or (isinstance(t, float) and pd.isna(t)):
        return None
    s = str(t).strip()
    parts = s.split(":")
    if len(parts) == 3:
        hh, mm, ss = parts
        try:
            return int(hh) * 3600 + int(mm) * 60 + float(ss)
        except ValueError:
            return None
    if len(parts) == 2:
        mm, ss = parts
        try:
            return int(mm) * 60 + float(ss)
        except ValueError:
            return None
    try:
        return float(s)
    except ValueError:
        return None


def read_series_csv(
    path: Path,
    time_col: Optional[str] = None,
    oxygen_col: Optional[str] = None,
    sep: Optional[str] = None,
) -> pd.DataFrame:
    """
    Read a delimited file into a two-column frame [time, oxygen].

    Columns default to the first two. Clock-style time values ('0:01:30')
    are converted to seconds; anything unparseable is left as NaN so the
    validator reports it.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Data file not found: {path}")
    df = pd.read_csv(path, sep=sep, engine="python" if sep is None else "c")
    df.columns = [str(c).strip() for c in df.columns]

    for c in (time_col, oxygen_col):
        if c is not None and c not in df.columns:
            raise ValueError(f"Column {c!r} not found in {path} (columns: {list(df.columns)})")
    if df.shape[1] < 2:
        raise ValueError(f"Expected at least 2 columns in {path}, got {df.shape[1]}")

    t = df[time_col] if time_col is not None else df.iloc[:, 0]
    y = df[oxygen_col] if oxygen_col is not None else df.iloc[:, 1]

    if t.dtype == object:
        t = t.map(time_to_seconds)
    return pd.DataFrame(
        {
            "time": pd.to_numeric(t, errors="coerce"),
            "oxygen": pd.to_numeric(y, errors="coerce"),
        }
    )
