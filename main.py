"""
HAR-Jumps volatility forecasting pipeline

Steps:
1. Load intraday bars and group closes by day
2. Daily realized / bipower / quadpower variation
3. Jump detection and variance decomposition
4. HAR feature construction and chronological split
5. Bayesian HAR-Jumps fit (NUTS)
6. Out-of-sample evaluation and posterior summary
"""

import argparse
import os
import sys
from typing import Dict, Optional

import pandas as pd

project_root = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, project_root)

from config import HARJumpsConfig
from intraday_loader import IntradayDataLoader
from variation_estimators import compute_daily_variation
from jump_detector import JumpDetector
from feature_builder import HARFeatureBuilder, save_features
from mcmc_sampler import NUTSSampler
from har_jumps_model import HARJumpsModel


class HARJumpsPipeline:
    """End-to-end jump-robust volatility forecasting"""

    def __init__(self, config: Optional[HARJumpsConfig] = None, verbose: bool = True):
        self.config = config if config is not None else HARJumpsConfig()
        self.verbose = verbose

        # Components
        self.loader = None
        self.jump_detector = None
        self.feature_builder = None
        self.model = None

        # Data
        self.prices_by_day = None
        self.variation = None
        self.jump_records = None
        self.features = None
        self.train = None
        self.test = None
        self.posterior = None

        # Results
        self.results = {}

    def _banner(self, text: str):
        if self.verbose:
            print("\n " + text)
            print("-" * 70)

    def run_complete_pipeline(self, prices_by_day: Optional[Dict] = None) -> Dict:
        """
        Execute every step; prices_by_day skips CSV loading when given
        """

        if self.verbose:
            print("\n" + "=" * 70)
            print("HAR-Jumps Volatility Forecasting")
            print("=" * 70)

        self._banner("[Step 1/6] Data Acquisition")
        if prices_by_day is None:
            self._acquire_data()
        else:
            self.prices_by_day = prices_by_day

        self._banner("[Step 2/6] Daily Variation")
        self._compute_variation()

        self._banner("[Step 3/6] Jump Detection")
        self._detect_jumps()

        self._banner("[Step 4/6] Feature Construction")
        self._build_features()

        self._banner("[Step 5/6] HAR-Jumps Estimation")
        self._fit_model()

        self._banner("[Step 6/6] Evaluation")
        self._evaluate()

        self._print_summary()
        return self.results

    def _acquire_data(self):
        """Step 1: Load bars"""
        cfg = self.config.data

        self.loader = IntradayDataLoader(cfg.csv_path, date_format=cfg.date_format)
        self.loader.load_csv(header=cfg.has_header)
        self.prices_by_day = self.loader.group_by_day()

    def _compute_variation(self):
        """Step 2: RV, BV, QV per day"""
        cfg = self.config.data

        if self.prices_by_day is None:
            raise ValueError("Variation estimation requires prices_by_day")

        self.variation = compute_daily_variation(
            self.prices_by_day,
            delta=cfg.observations_per_day,
            on_short_day=cfg.on_short_day
        )
        print(f" Computed variation for {len(self.variation)} days")

    def _detect_jumps(self):
        """Step 3: Jump test"""
        cfg = self.config.jump_detection

        if self.variation is None:
            raise ValueError("Jump detection requires daily variation")

        self.jump_detector = JumpDetector(
            significance_level=cfg.significance_level,
            observations_per_day=self.config.data.observations_per_day
        )
        self.jump_records = self.jump_detector.detect(
            self.variation, on_error=self.config.data.on_short_day
        )

        jump_stats = self.jump_detector.calculate_jump_statistics(self.jump_records)

        print(f"\n Jump Statistics")
        print(f"    Total Jumps: {jump_stats['n_jumps']}")
        print(f"    Jump Frequency: {jump_stats['jump_frequency']:.4f}")
        print(f"    Jump Share of RV: {jump_stats['jump_variance_share']:.4f}")
        print(f"    Clustering coefficient: {jump_stats['clustering_coefficient']:.4f}")

        self.results['jump_stats'] = jump_stats

    def _build_features(self):
        """Step 4: HAR features and split"""
        cfg = self.config.features

        if self.jump_records is None:
            raise ValueError("Feature construction requires jump records")

        self.feature_builder = HARFeatureBuilder(
            short_window=cfg.short_window,
            long_window=cfg.long_window,
            train_fraction=cfg.train_fraction
        )
        self.features = self.feature_builder.build(self.jump_records)
        self.train, self.test = self.feature_builder.train_test_split(self.features)

        print(f" Train rows: {len(self.train)}  Test rows: {len(self.test)}")

    def _fit_model(self):
        """Step 5: NUTS fit"""
        cfg = self.config.sampler

        if self.train is None:
            raise ValueError("Model fitting requires training features")

        sampler = NUTSSampler(
            target_accept=cfg.target_accept,
            cores=cfg.cores,
            random_seed=cfg.random_seed,
            deadline_seconds=cfg.deadline_seconds,
            progressbar=cfg.progressbar
        )
        self.model = HARJumpsModel(
            sampler,
            chains=cfg.chains,
            warmup=cfg.warmup,
            draws=cfg.draws,
            r_hat_threshold=cfg.r_hat_threshold
        )
        self.posterior = self.model.fit(self.train)

        summary = self.posterior.summary(hdi_prob=self.config.output.hdi_prob)
        self.results['posterior_summary'] = summary
        self.results['divergences'] = self.posterior.divergences()
        self.results['diagnostics'] = self.model.diagnostics

    def _evaluate(self):
        """Step 6: Test-set accuracy"""

        if self.model is None or self.features is None or self.test is None:
            raise ValueError("Evaluation requires a fitted model and features")

        if len(self.test) == 0:
            print("Warning: No test rows to evaluate")
            return

        start = len(self.features) - len(self.test)
        metrics = self.model.evaluate(self.features, self.posterior, start=start)

        print(f"\n Out-of-sample log RV forecast")
        print(f"    RMSE: {metrics['rmse']:.4f}")
        print(f"    MAE: {metrics['mae']:.4f}")
        print(f"    R^2: {metrics['r2']:.4f}")

        self.results['forecast_metrics'] = metrics

    def _print_summary(self):
        """Print posterior summary"""

        print("\n" + "=" * 70)
        print("Posterior Summary")
        print("=" * 70)

        with pd.option_context('display.max_rows', None, 'display.width', 120):
            print(self.results['posterior_summary'])

        divergences = self.results['divergences']
        print(f"\n Divergences per chain: {list(divergences)}")

        if self.results['diagnostics']:
            print("\n ⚠ CONVERGENCE WARNING:")
            for issue in self.results['diagnostics']:
                print(f"    {issue}")

    def save_results(self, output_dir: Optional[str] = None):
        """Save results"""
        if output_dir is None:
            output_dir = self.config.output.output_dir

        if self.posterior is None:
            raise ValueError("No posterior available. Run the pipeline before saving.")

        print(f"\nSaving results to {output_dir}...")
        os.makedirs(output_dir, exist_ok=True)

        self.results['posterior_summary'].to_csv(os.path.join(output_dir, 'posterior_summary.csv'))
        self.jump_detector.to_frame(self.jump_records).to_csv(os.path.join(output_dir, 'daily_jumps.csv'))
        save_features(self.features, os.path.join(output_dir, 'har_features.csv'))

        if 'forecast_metrics' in self.results:
            pd.DataFrame([self.results['forecast_metrics']]).to_csv(
                os.path.join(output_dir, 'forecast_metrics.csv'), index=False
            )

        if self.config.output.save_plots:
            self.jump_detector.plot_jumps(
                self.jump_records, save_path=os.path.join(output_dir, 'jump_detection.png')
            )

        print("✓ Results saved successfully")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="HAR-Jumps volatility forecasting")
    parser.add_argument('--data', help="header-less intraday OHLCV CSV")
    parser.add_argument('--observations-per-day', type=int, help="nominal prices per trading day")
    parser.add_argument('--output-dir', help="directory for result files")
    parser.add_argument('--chains', type=int)
    parser.add_argument('--warmup', type=int)
    parser.add_argument('--draws', type=int)
    parser.add_argument('--seed', type=int)
    parser.add_argument('--deadline', type=float, help="sampling deadline in seconds")
    parser.add_argument('--r-hat-threshold', type=float)
    parser.add_argument('--no-plots', action='store_true')
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> HARJumpsConfig:
    config = HARJumpsConfig()

    if args.data:
        config.data.csv_path = args.data
    if args.observations_per_day is not None:
        config.data.observations_per_day = args.observations_per_day
    if args.output_dir:
        config.output.output_dir = args.output_dir
    if args.chains is not None:
        config.sampler.chains = args.chains
    if args.warmup is not None:
        config.sampler.warmup = args.warmup
    if args.draws is not None:
        config.sampler.draws = args.draws
    if args.seed is not None:
        config.sampler.random_seed = args.seed
    if args.deadline is not None:
        config.sampler.deadline_seconds = args.deadline
    if args.r_hat_threshold is not None:
        config.sampler.r_hat_threshold = args.r_hat_threshold
    if args.no_plots:
        config.output.save_plots = False

    config.validate()
    return config


def main(argv=None):
    """Main execution"""

    config = build_config(parse_args(argv))

    pipeline = HARJumpsPipeline(config)
    results = pipeline.run_complete_pipeline()
    pipeline.save_results()

    print("\n" + "=" * 70)
    print("✓ PIPELINE EXECUTION COMPLETE")
    print("=" * 70)

    return pipeline, results


if __name__ == "__main__":
    pipeline, results = main()
