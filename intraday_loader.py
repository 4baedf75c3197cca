"""
Data pipeline for intraday OHLCV bars (e.g. one-minute SPX)
"""

from typing import Dict, Optional
import datetime as dt

import numpy as np
import pandas as pd

OHLCV_COLUMNS = ['date', 'open', 'high', 'low', 'close', 'volume']


class IntradayDataLoader:
    """
    Loads intraday bars and groups closing prices by calendar day
    """

    def __init__(self, csv_path: Optional[str] = None, date_format: str = '%Y-%m-%d %H:%M:%S'):
        """
        Params:
        - csv_path: str
            - path to a header-less CSV with columns date, open, high, low, close, volume
        - date_format: str
            - strftime format of the date-time column
        """
        self.csv_path = csv_path
        self.date_format = date_format
        self.data = None

    def load_csv(self, csv_path: Optional[str] = None, header: bool = False) -> pd.DataFrame:
        """
        Read bars, keeping the timestamp, calendar date and close

        Params:
        - csv_path: str, optional
            - overrides the path given at construction
        - header: bool
            - whether the file's first line is a header row

        Returns:
        - pd.DataFrame
            - columns: timestamp, date, close (sorted by timestamp)
        """

        csv_path = csv_path or self.csv_path
        if csv_path is None:
            raise ValueError("csv_path must be provided")

        print(f"Loading intraday data from {csv_path}")

        try:
            raw = pd.read_csv(
                csv_path,
                header=0 if header else None,
                names=OHLCV_COLUMNS
            )
        except FileNotFoundError as e:
            print(f"Error: CSV file not found - {str(e)}")
            raise

        self.data = self.prepare(raw)

        print(f" Loaded {len(self.data)} bars over {self.data['date'].nunique()} days")
        if len(self.data) > 0:
            print(f" Date range: {self.data['date'].iloc[0]} to {self.data['date'].iloc[-1]}")

        return self.data

    def prepare(self, raw: pd.DataFrame) -> pd.DataFrame:
        """Parse timestamps and drop rows with an unparseable time or missing close"""

        timestamps = pd.to_datetime(raw['date'], format=self.date_format, errors='coerce')
        close = pd.to_numeric(raw['close'], errors='coerce')

        frame = pd.DataFrame({
            'timestamp': timestamps,
            'close': close
        }).dropna()

        dropped = len(raw) - len(frame)
        if dropped > 0:
            print(f"Warning: dropped {dropped} rows with unparseable dates or prices")

        frame = frame.sort_values('timestamp', kind='mergesort').reset_index(drop=True)
        frame.insert(1, 'date', frame['timestamp'].dt.date)
        return frame

    def group_by_day(self, data: Optional[pd.DataFrame] = None) -> Dict[dt.date, np.ndarray]:
        """
        Closing prices per calendar day

        Returns:
        - Dict[date, np.ndarray]
            - ascending dates, each with its prices in time order
        """

        data = data if data is not None else self.data
        if data is None:
            raise ValueError("No data loaded. Run load_csv() first.")

        prices_by_day = {}
        for date, group in data.groupby('date', sort=True):
            prices_by_day[date] = group['close'].to_numpy(dtype=float)

        return prices_by_day
