"""
Tests for HAR feature construction, chronological split and persistence
"""

import numpy as np
import pandas as pd
import pytest

from feature_builder import (
    COLUMNS,
    FEATURE_COLUMNS,
    HARFeatureBuilder,
    inner_join,
    load_features,
    log_transform,
    moving_average,
    save_features,
)


class TestMovingAverage:

    def test_length_and_values(self):
        x = np.arange(30, dtype=float) ** 1.5
        for n in (5, 21):
            ma = moving_average(x, n)
            assert len(ma) == len(x) - n
            for i in range(len(ma)):
                assert ma[i] == np.mean(x[i:i + n + 1])

    def test_window_includes_last_day(self):
        ma = moving_average([1.0, 2.0, 3.0, 4.0, 11.0], 2)
        assert list(ma) == [2.0, 3.0, 6.0]

    def test_short_input(self):
        assert len(moving_average([1.0, 2.0, 3.0], 5)) == 0
        assert len(moving_average([1.0, 2.0, 3.0], 3)) == 0

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            moving_average([1.0, 2.0], 0)


class TestJoinAndTransform:

    def test_inner_join_keeps_common_sorted_dates(self):
        rows = inner_join({
            'a': {3: 'a3', 1: 'a1', 2: 'a2'},
            'b': {2: 'b2', 3: 'b3', 4: 'b4'}
        })
        assert [r['date'] for r in rows] == [2, 3]
        assert rows[0] == {'date': 2, 'a': 'a2', 'b': 'b2'}

    def test_log_transform(self):
        frame = pd.DataFrame({
            'RV_ahead': [np.e], 'RCV': [1.0], 'RCV_5': [np.e ** 2], 'RCV_21': [0.5],
            'J': [0.0], 'J_5': [np.e], 'J_21': [0.25], 'jump': [False]
        })
        out = log_transform(frame)

        assert out.loc[0, 'RV_ahead'] == pytest.approx(1.0)
        assert out.loc[0, 'RCV'] == pytest.approx(0.0)
        assert out.loc[0, 'RCV_5'] == pytest.approx(2.0)
        assert out.loc[0, 'RCV_21'] == pytest.approx(np.log(0.5))
        assert out.loc[0, 'J'] == 0.0
        assert out.loc[0, 'J_5'] == pytest.approx(1.0)
        assert out.loc[0, 'J_21'] == pytest.approx(np.log(0.25))
        # input untouched
        assert frame.loc[0, 'RV_ahead'] == np.e


class TestHARFeatureBuilder:

    def test_row_count(self, daily_jump_records):
        frame = HARFeatureBuilder().build(daily_jump_records)

        assert len(frame) == 100 - 22
        assert list(frame.columns) == COLUMNS
        assert frame['date'].iloc[0] == daily_jump_records[21].date
        assert frame['date'].iloc[-1] == daily_jump_records[-2].date

    def test_columns_match_inputs(self, daily_jump_records):
        frame = HARFeatureBuilder().build(daily_jump_records)
        rcv = np.array([r.continuous_variation for r in daily_jump_records])
        mag = np.array([r.jump_magnitude for r in daily_jump_records])

        for _, row in frame.iterrows():
            i = next(k for k, r in enumerate(daily_jump_records) if r.date == row['date'])
            rec = daily_jump_records[i]

            assert row['RV_ahead'] == pytest.approx(np.log(daily_jump_records[i + 1].RV))
            assert row['RCV'] == pytest.approx(np.log(rec.continuous_variation))
            assert row['RCV_5'] == pytest.approx(np.log(np.mean(rcv[i - 5:i + 1])))
            assert row['RCV_21'] == pytest.approx(np.log(np.mean(rcv[i - 21:i + 1])))
            expected_j = np.log(rec.jump_magnitude) if rec.jump_magnitude > 0 else 0.0
            assert row['J'] == pytest.approx(expected_j)
            j21 = np.mean(mag[i - 21:i + 1])
            assert row['J_21'] == pytest.approx(np.log(j21) if j21 > 0 else 0.0)
            assert row['jump'] == rec.is_jump

    def test_first_row_averages_include_its_own_day(self, daily_jump_records):
        frame = HARFeatureBuilder().build(daily_jump_records)
        rcv = np.array([r.continuous_variation for r in daily_jump_records])
        first = frame.iloc[0]

        assert first['date'] == daily_jump_records[21].date
        assert first['RCV_5'] == pytest.approx(np.log(np.mean(rcv[16:22])))
        assert first['RCV_21'] == pytest.approx(np.log(np.mean(rcv[0:22])))
        assert first['RCV_5'] != pytest.approx(np.log(np.mean(rcv[16:21])))

    def test_input_order_does_not_matter(self, daily_jump_records):
        builder = HARFeatureBuilder()
        forward = builder.build(daily_jump_records)
        shuffled = builder.build(list(reversed(daily_jump_records)))
        pd.testing.assert_frame_equal(forward, shuffled)

    def test_too_little_history(self, daily_jump_records):
        frame = HARFeatureBuilder().build(daily_jump_records[:22])
        assert len(frame) == 0
        assert list(frame.columns) == COLUMNS

    def test_invalid_windows(self):
        with pytest.raises(ValueError):
            HARFeatureBuilder(short_window=21, long_window=5)
        with pytest.raises(ValueError):
            HARFeatureBuilder(train_fraction=1.0)


class TestTrainTestSplit:

    def test_split_sizes_for_78_rows(self, daily_jump_records):
        builder = HARFeatureBuilder()
        frame = builder.build(daily_jump_records)
        train, test = builder.train_test_split(frame)

        assert len(frame) == 78
        assert len(train) == 54
        assert len(test) == 24

    def test_split_is_chronological_and_exhaustive(self, daily_jump_records):
        builder = HARFeatureBuilder()
        frame = builder.build(daily_jump_records)
        train, test = builder.train_test_split(frame)

        assert list(train['date']) + list(test['date']) == list(frame['date'])
        assert train['date'].max() < test['date'].min()

    def test_split_index(self):
        builder = HARFeatureBuilder()
        assert builder.split_index(78) == 54
        assert builder.split_index(10) == 6
        assert builder.split_index(0) == 0


class TestPersistence:

    def test_round_trip(self, daily_jump_records, tmp_path):
        frame = HARFeatureBuilder().build(daily_jump_records)
        path = tmp_path / 'features.csv'

        save_features(frame, str(path))
        loaded = load_features(str(path))

        assert list(loaded['date']) == list(frame['date'])
        assert list(loaded['jump']) == list(frame['jump'])
        for col in ['RV_ahead'] + FEATURE_COLUMNS:
            np.testing.assert_allclose(loaded[col].to_numpy(), frame[col].to_numpy(), rtol=0, atol=1e-9)
