"""
Daily jump detection with the bipower variation ratio test

Compares bipower variation (robust to jumps) with realized variance (not
robust). Under the no-jump null the standardized ratio statistic is
asymptotically N(0, 1); large negative values indicate a jump day.

See equation 14 in: Barndorff-Nielsen, O. E. & Shephard, N. (2006).
Econometrics of testing for jumps in financial economics using bipower
variation. Journal of Financial Econometrics, 4(1), 1-30.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from exceptions import DomainError
from variation_estimators import DailyVariationRecord

THETA = np.pi ** 2 / 4 + np.pi - 5
MU_1 = np.sqrt(2 / np.pi)  # E|Z| for Z ~ N(0, 1)


@dataclass(frozen=True)
class JumpRecord(DailyVariationRecord):
    """Daily variation record with the jump test outcome and decomposition"""
    jump_statistic: float = 0.0
    is_jump: bool = False
    jump_magnitude: float = 0.0
    continuous_variation: float = 0.0


def jump_statistic(delta: int, RV: float, BV: float, QV: float) -> float:
    """
    Ratio jump test statistic

    J = sqrt(delta) / sqrt(theta * max(1, QV / BV^2)) * (mu^-2 * BV / RV - 1)

    Params:
    - delta: int
        - observations per day
    - RV, BV, QV: float
        - realized, bipower and quadpower variation for the day

    Returns:
    - float
    """

    if delta <= 0:
        raise DomainError(f"delta must be positive, got {delta}")
    if BV <= 0:
        raise DomainError(f"Bipower variation must be positive, got {BV}")
    if RV <= 0:
        raise DomainError(f"Realized variance must be positive, got {RV}")

    scale = np.sqrt(delta) / np.sqrt(THETA * max(1.0, QV / BV ** 2))
    return float(scale * (MU_1 ** -2 * BV / RV - 1))


class JumpDetector:
    """
    Classifies days as jump / no-jump and splits variance into components
    """

    def __init__(self, significance_level: float = 0.01, observations_per_day: int = 390):
        """
        Initializing the jump detector

        Params:
        - significance_level: float
            - one-sided level of the test; a day is a jump day when
              J <= norm.ppf(significance_level)
        - observations_per_day: int
            - delta, the nominal number of intraday prices per day
        """

        if not 0 < significance_level < 1:
            raise ValueError(f"significance_level must be in (0, 1), got {significance_level}")

        self.significance_level = significance_level
        self.observations_per_day = observations_per_day
        self.critical_value = stats.norm.ppf(significance_level)
        self.jump_stats = {}

    def classify(self, record: DailyVariationRecord) -> JumpRecord:
        """Run the jump test on a single day"""

        J = jump_statistic(self.observations_per_day, record.RV, record.BV, record.QV)
        is_jump = bool(J <= self.critical_value)

        #RV - BV can dip below zero from estimation noise; magnitude stays >= 0
        magnitude = max(record.RV - record.BV, 0.0) if is_jump else 0.0
        continuous = record.BV if is_jump else record.RV

        return JumpRecord(
            date=record.date,
            RV=record.RV,
            BV=record.BV,
            QV=record.QV,
            jump_statistic=J,
            is_jump=is_jump,
            jump_magnitude=magnitude,
            continuous_variation=continuous
        )

    def detect(self, records: Sequence[DailyVariationRecord], on_error: str = 'raise') -> List[JumpRecord]:
        """
        Run the jump test on every day

        Params:
        - records: sequence of DailyVariationRecord
            - daily variation in date order
        - on_error: str
            - 'raise' propagates DomainError for degenerate days (zero BV or RV),
              'exclude' drops them

        Returns:
        - List[JumpRecord]
        """

        if on_error not in ('exclude', 'raise'):
            raise ValueError(f"on_error must be 'exclude' or 'raise', got {on_error!r}")

        print("Detecting jumps using the bipower variation ratio test")

        jump_records = []
        excluded = 0
        for record in records:
            try:
                jump_records.append(self.classify(record))
            except DomainError as e:
                if on_error == 'raise':
                    raise DomainError(f"{record.date}: {e}") from e
                excluded += 1

        if excluded:
            print(f"Warning: excluded {excluded} degenerate day(s) from the jump test")

        n_jumps = sum(r.is_jump for r in jump_records)
        n = len(jump_records)
        if n > 0:
            print(f" Detected {n_jumps} jumps ({100 * n_jumps / n:.2f}% of days)")

        return jump_records

    @staticmethod
    def to_frame(records: Sequence[JumpRecord]) -> pd.DataFrame:
        """Jump records as a DataFrame indexed by date"""
        frame = pd.DataFrame([asdict(r) for r in records])
        if frame.empty:
            return frame
        return frame.set_index('date')

    def calculate_jump_statistics(self, records: Sequence[JumpRecord]) -> Dict:
        """
        Calculating summary statistics for detected jump days

        Params:
        - records: sequence of JumpRecord

        Returns:
        - Dict
            - Dictionary of jump statistics
        """

        indicator = np.array([r.is_jump for r in records], dtype=int)
        n_obs = len(indicator)
        n_jumps = int(indicator.sum())

        jump_freq = n_jumps / n_obs if n_obs > 0 else np.nan

        #Trading days between consecutive jumps
        jump_positions = np.flatnonzero(indicator)
        if len(jump_positions) > 1:
            gaps = np.diff(jump_positions)
            mean_inter_jump = gaps.mean()
            std_inter_jump = gaps.std()
        else:
            mean_inter_jump = np.nan
            std_inter_jump = np.nan

        magnitudes = np.array([r.jump_magnitude for r in records if r.is_jump], dtype=float)
        if len(magnitudes) > 0:
            mean_magnitude = magnitudes.mean()
            max_magnitude = magnitudes.max()
        else:
            mean_magnitude = np.nan
            max_magnitude = np.nan

        #Share of RV attributable to jumps
        total_rv = sum(r.RV for r in records)
        jump_share = magnitudes.sum() / total_rv if total_rv > 0 else np.nan

        #Clustering coefficient (proportion of jumps followed by another jump within 5 days)
        clustering_window = 5
        clustering_count = 0
        for idx in jump_positions:
            if indicator[idx + 1: idx + clustering_window + 1].sum() > 0:
                clustering_count += 1

        clustering_coef = clustering_count / n_jumps if n_jumps > 0 else 0

        jump_stats = {
            'n_jumps': n_jumps,
            'n_observations': n_obs,
            'jump_frequency': jump_freq,
            'mean_inter_jump_days': mean_inter_jump,
            'std_inter_jump_days': std_inter_jump,
            'mean_jump_magnitude': mean_magnitude,
            'max_jump_magnitude': max_magnitude,
            'jump_variance_share': jump_share,
            'clustering_coefficient': clustering_coef
        }

        self.jump_stats = jump_stats
        return jump_stats

    def plot_jumps(self, records: Sequence[JumpRecord], save_path: Optional[str] = None):
        """
        Visualizing daily variation with detected jump days

        Params:
        - records: sequence of JumpRecord
        - save_path: str, optional
            - path to save the plot (if None, just show it)
        """

        import matplotlib.pyplot as plt

        frame = self.to_frame(records)
        jump_days = frame[frame['is_jump']]

        fig, axes = plt.subplots(2, 1, figsize=(14, 8), sharex=True)

        #Plot 1: RV and BV with jump markers
        axes[0].plot(frame.index, frame['RV'], label='RV', color='blue', alpha=0.7, linewidth=0.8)
        axes[0].plot(frame.index, frame['BV'], label='BV', color='green', alpha=0.7, linewidth=0.8)
        axes[0].scatter(jump_days.index, jump_days['RV'],
                        color='red', s=40, marker='x',
                        label=f"Jump days (n = {len(jump_days)})", zorder=5)
        axes[0].set_yscale('log')
        axes[0].set_ylabel('Daily variation')
        axes[0].set_title('Realized and Bipower Variation')
        axes[0].legend()
        axes[0].grid(True, alpha=0.3)

        #Plot 2: test statistic against critical value
        axes[1].plot(frame.index, frame['jump_statistic'],
                     label='J statistic', color='purple', alpha=0.7, linewidth=0.8)
        axes[1].axhline(y=self.critical_value, color='red', linestyle='--', label='Critical Value')
        axes[1].set_ylabel('J')
        axes[1].set_xlabel('Date')
        axes[1].set_title('Jump Test Statistic')
        axes[1].legend()
        axes[1].grid(True, alpha=0.3)

        plt.tight_layout()

        if save_path:
            plt.savefig(save_path, dpi=300, bbox_inches='tight')
            print(f" Plot saved to {save_path}")
            plt.close(fig)
        else:
            plt.show()

        return fig
