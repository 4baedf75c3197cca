"""
HAR feature construction from daily jump records

Builds the one-day-ahead realized variance target and weekly (5 day) and
monthly (21 day) moving averages of the continuous variation (RCV) and jump
magnitude (J) series, joins them on date and log-transforms the result.
"""

from typing import Dict, List, Sequence, Tuple
import datetime as dt

import numpy as np
import pandas as pd

from jump_detector import JumpRecord

FEATURE_COLUMNS = ['RCV', 'RCV_5', 'RCV_21', 'J', 'J_5', 'J_21']
CONTINUOUS_COLUMNS = ['RV_ahead', 'RCV', 'RCV_5', 'RCV_21']
JUMP_COLUMNS = ['J', 'J_5', 'J_21']
COLUMNS = ['date', 'RV_ahead'] + FEATURE_COLUMNS + ['jump']


def moving_average(x: Sequence[float], n: int) -> np.ndarray:
    """
    Moving average over windows of n days

    Element i is mean(x[i:i+n+1]), the n + 1 days ending at day i + n
    inclusive, and belongs to day i + n, so the result is n elements shorter
    than x.
    """

    x = np.asarray(x, dtype=float)
    if n <= 0:
        raise ValueError(f"Window must be positive, got {n}")

    return np.array([np.mean(x[i:i + n + 1]) for i in range(len(x) - n)], dtype=float)


def _keyed(dates: Sequence[dt.date], values: Sequence) -> Dict[dt.date, object]:
    return dict(zip(dates, values))


def inner_join(columns: Dict[str, Dict[dt.date, object]]) -> List[Dict]:
    """
    Join date-keyed columns, keeping only dates present in all of them

    Params:
    - columns: dict
        - column name -> {date: value}

    Returns:
    - List[Dict]
        - rows in ascending date order, each with a 'date' key
    """

    key_sets = [set(col) for col in columns.values()]
    common = set.intersection(*key_sets) if key_sets else set()

    rows = []
    for date in sorted(common):
        row = {'date': date}
        for name, col in columns.items():
            row[name] = col[date]
        rows.append(row)
    return rows


def log_transform(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Log variance columns; jump columns are logged only where strictly positive
    """

    out = frame.copy()
    for col in CONTINUOUS_COLUMNS:
        out[col] = np.log(out[col].to_numpy(dtype=float))
    for col in JUMP_COLUMNS:
        values = out[col].to_numpy(dtype=float)
        positive = values > 0
        logged = np.zeros_like(values)
        logged[positive] = np.log(values[positive])
        out[col] = logged
    return out


class HARFeatureBuilder:
    """
    Builds the HAR-Jumps feature table from daily jump records
    """

    def __init__(self, short_window: int = 5, long_window: int = 21, train_fraction: float = 0.70):
        """
        Params:
        - short_window: int
            - weekly moving-average window in trading days
        - long_window: int
            - monthly moving-average window in trading days
        - train_fraction: float
            - share of rows (chronological) used for training
        """

        if not 0 < short_window < long_window:
            raise ValueError("Need 0 < short_window < long_window")
        if not 0 < train_fraction < 1:
            raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")

        self.short_window = short_window
        self.long_window = long_window
        self.train_fraction = train_fraction

    def build(self, records: Sequence[JumpRecord]) -> pd.DataFrame:
        """
        Construct the log-transformed feature table

        Params:
        - records: sequence of JumpRecord
            - one per day, ascending dates

        Returns:
        - pd.DataFrame
            - columns: date, RV_ahead, RCV, RCV_5, RCV_21, J, J_5, J_21, jump
        """

        print("Building HAR-Jumps features")

        records = sorted(records, key=lambda r: r.date)
        dates = [r.date for r in records]
        rv = [r.RV for r in records]
        rcv = [r.continuous_variation for r in records]
        mag = [r.jump_magnitude for r in records]
        s, l = self.short_window, self.long_window

        columns = {
            'RV_ahead': _keyed(dates[:-1], rv[1:]),
            'RCV': _keyed(dates, rcv),
            'RCV_5': _keyed(dates[s:], moving_average(rcv, s)),
            'RCV_21': _keyed(dates[l:], moving_average(rcv, l)),
            'J': _keyed(dates, mag),
            'J_5': _keyed(dates[s:], moving_average(mag, s)),
            'J_21': _keyed(dates[l:], moving_average(mag, l)),
            'jump': _keyed(dates, [r.is_jump for r in records])
        }

        rows = inner_join(columns)
        frame = pd.DataFrame(rows, columns=COLUMNS)
        frame['jump'] = frame['jump'].astype(bool)
        frame = log_transform(frame)

        print(f" {len(frame)} feature rows from {len(records)} days")
        return frame

    def train_test_split(self, frame: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Chronological split; the first round(N * train_fraction) - 1 rows train
        """

        split = self.split_index(len(frame))
        train = frame.iloc[:split].reset_index(drop=True)
        test = frame.iloc[split:].reset_index(drop=True)
        return train, test

    def split_index(self, n_rows: int) -> int:
        return max(round(n_rows * self.train_fraction) - 1, 0)


def save_features(frame: pd.DataFrame, path: str):
    """Write a feature table to CSV without losing float precision"""
    frame.to_csv(path, index=False, float_format='%.17g')


def load_features(path: str) -> pd.DataFrame:
    """Read a feature table written by save_features"""
    frame = pd.read_csv(path)
    frame['date'] = pd.to_datetime(frame['date']).dt.date
    frame['jump'] = frame['jump'].astype(bool)
    for col in ['RV_ahead'] + FEATURE_COLUMNS:
        frame[col] = frame[col].astype(float)
    return frame[COLUMNS]
