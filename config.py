"""
Configuration for the HAR-Jumps volatility pipeline

Defaults reproduce the reference study: one-minute SPX bars (390 per day),
a one-sided 1% jump test, 5/21-day HAR windows, a 70/30 chronological split
and 4 NUTS chains of 250 draws after 1000 warmup iterations.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Optional
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent


@dataclass
class DataConfig:
    """Intraday data params"""
    csv_path: str = str(PROJECT_ROOT / "data" / "SPX_1min.csv")
    date_format: str = "%Y-%m-%d %H:%M:%S"
    has_header: bool = False
    observations_per_day: int = 390
    on_short_day: str = 'exclude'  # or 'raise'

    def __post_init__(self):
        if self.observations_per_day <= 0:
            raise ValueError("observations_per_day must be positive")
        if self.on_short_day not in ('exclude', 'raise'):
            raise ValueError("on_short_day must be 'exclude' or 'raise'")


@dataclass
class JumpDetectionConfig:
    """Jump test params"""
    significance_level: float = 0.01

    def __post_init__(self):
        if not 0 < self.significance_level < 1:
            raise ValueError("significance_level must be in (0, 1)")


@dataclass
class FeatureConfig:
    """HAR feature params"""
    short_window: int = 5   # ~1 trading week
    long_window: int = 21   # ~1 trading month
    train_fraction: float = 0.70

    def __post_init__(self):
        if not 0 < self.short_window < self.long_window:
            raise ValueError("Need 0 < short_window < long_window")
        if not 0 < self.train_fraction < 1:
            raise ValueError("train_fraction must be in (0, 1)")


@dataclass
class SamplerConfig:
    """NUTS sampling params"""
    chains: int = 4
    warmup: int = 1000
    draws: int = 250
    target_accept: float = 0.65
    cores: Optional[int] = None
    random_seed: Optional[int] = 42
    deadline_seconds: Optional[float] = None
    progressbar: bool = True
    r_hat_threshold: float = 1.01

    def __post_init__(self):
        if self.chains < 1 or self.draws < 1 or self.warmup < 0:
            raise ValueError("Need chains >= 1, draws >= 1 and warmup >= 0")
        if not 0 < self.target_accept < 1:
            raise ValueError("target_accept must be in (0, 1)")
        if self.deadline_seconds is not None and self.deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")
        if self.r_hat_threshold < 1:
            raise ValueError("r_hat_threshold must be at least 1")


@dataclass
class OutputConfig:
    """Result output params"""
    output_dir: str = str(PROJECT_ROOT / "outputs")
    save_plots: bool = True
    hdi_prob: float = 0.94

    def __post_init__(self):
        if not 0 < self.hdi_prob < 1:
            raise ValueError("hdi_prob must be in (0, 1)")


class HARJumpsConfig:
    """Master configuration"""
    def __init__(self):
        self.data = DataConfig()
        self.jump_detection = JumpDetectionConfig()
        self.features = FeatureConfig()
        self.sampler = SamplerConfig()
        self.output = OutputConfig()

    def validate(self):
        """Re-run field checks, e.g. after attributes were overridden"""
        for block in (self.data, self.jump_detection, self.features, self.sampler, self.output):
            block.__post_init__()

    def to_dict(self) -> Dict:
        return {
            'data': asdict(self.data),
            'jump_detection': asdict(self.jump_detection),
            'features': asdict(self.features),
            'sampler': asdict(self.sampler),
            'output': asdict(self.output)
        }
