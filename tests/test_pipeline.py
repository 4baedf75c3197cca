"""
Sampler and end-to-end pipeline tests

These run real NUTS chains on small synthetic data and are marked slow.
"""

import warnings

import numpy as np
import pandas as pd
import pytest

from config import HARJumpsConfig, SamplerConfig, DataConfig
from exceptions import SamplerDivergenceWarning, SamplingDeadlineExceeded
from main import HARJumpsPipeline, build_config, parse_args
from mcmc_sampler import NUTSSampler


def normal_log_joint(params):
    import pymc as pm
    return (
        pm.logp(pm.Normal.dist(mu=1.0, sigma=0.5), params['loc'])
        + pm.logp(pm.Normal.dist(mu=0.0, sigma=1.0), params['vec']).sum()
        + pm.logp(pm.Exponential.dist(lam=1.0), params['scale'])
    )


class TestConfig:

    def test_defaults(self):
        config = HARJumpsConfig()
        d = config.to_dict()

        assert d['data']['observations_per_day'] == 390
        assert d['jump_detection']['significance_level'] == 0.01
        assert d['features']['long_window'] == 21
        assert d['sampler']['chains'] == 4
        assert d['sampler']['warmup'] == 1000
        assert d['sampler']['draws'] == 250
        assert d['sampler']['target_accept'] == 0.65

    def test_validation(self):
        with pytest.raises(ValueError):
            SamplerConfig(chains=0)
        with pytest.raises(ValueError):
            DataConfig(on_short_day='ignore')

    def test_cli_overrides(self):
        config = build_config(parse_args(['--data', 'x.csv', '--chains', '2', '--draws', '10',
                                          '--deadline', '30', '--no-plots']))
        assert config.data.csv_path == 'x.csv'
        assert config.sampler.chains == 2
        assert config.sampler.draws == 10
        assert config.sampler.deadline_seconds == 30.0
        assert config.output.save_plots is False

    def test_cli_rejects_bad_override(self):
        with pytest.raises(ValueError):
            build_config(parse_args(['--chains', '0']))

    def test_cli_data_and_threshold_overrides(self):
        config = build_config(parse_args(['--observations-per-day', '78', '--r-hat-threshold', '1.05']))
        assert config.data.observations_per_day == 78
        assert config.sampler.r_hat_threshold == 1.05

    def test_cli_rejects_bad_data_override(self):
        with pytest.raises(ValueError, match="observations_per_day"):
            build_config(parse_args(['--observations-per-day', '0']))
        with pytest.raises(ValueError, match="r_hat_threshold"):
            build_config(parse_args(['--r-hat-threshold', '0.5']))

    def test_validate_checks_every_block(self):
        config = HARJumpsConfig()
        config.validate()

        config.output.hdi_prob = 1.5
        with pytest.raises(ValueError, match="hdi_prob"):
            config.validate()

        config = HARJumpsConfig()
        config.jump_detection.significance_level = 0.0
        with pytest.raises(ValueError, match="significance_level"):
            config.validate()


class TestNUTSSampler:

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            NUTSSampler(target_accept=1.5)
        with pytest.raises(ValueError):
            NUTSSampler().fit(normal_log_joint, {'loc': 0.0}, chains=0)
        with pytest.raises(ValueError):
            NUTSSampler().fit(normal_log_joint, {'loc': 0.0}, positive=('scale',))

    @pytest.mark.slow
    def test_samples_known_density(self):
        sampler = NUTSSampler(target_accept=0.8, cores=1, random_seed=1)
        initial = {'loc': np.array(0.0), 'vec': np.zeros(2), 'scale': np.array(1.0)}

        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            posterior = sampler.fit(normal_log_joint, initial, chains=2, warmup=300, draws=300,
                                    positive=('scale',))

        assert posterior.n_chains == 2
        assert posterior.n_draws == 300
        assert posterior['vec'].shape == (600, 2)
        assert np.all(posterior['scale'] > 0)
        assert posterior.mean('loc') == pytest.approx(1.0, abs=0.2)
        assert len(posterior.divergences()) == 2

    @pytest.mark.slow
    def test_deadline_exceeded(self):
        sampler = NUTSSampler(cores=1, random_seed=1, deadline_seconds=1e-9)
        initial = {'loc': np.array(0.0), 'vec': np.zeros(2), 'scale': np.array(1.0)}

        with pytest.raises(SamplingDeadlineExceeded):
            sampler.fit(normal_log_joint, initial, chains=1, warmup=50, draws=50, positive=('scale',))


@pytest.mark.slow
class TestPipeline:

    def test_complete_pipeline(self, synthetic_prices, tmp_path):
        config = HARJumpsConfig()
        config.data.observations_per_day = 80
        config.sampler.chains = 2
        config.sampler.cores = 1
        config.sampler.warmup = 200
        config.sampler.draws = 100
        config.sampler.progressbar = False
        config.output.output_dir = str(tmp_path)
        config.output.save_plots = False

        pipeline = HARJumpsPipeline(config, verbose=False)

        with warnings.catch_warnings():
            warnings.simplefilter('ignore', SamplerDivergenceWarning)
            results = pipeline.run_complete_pipeline(prices_by_day=synthetic_prices)

        assert len(pipeline.variation) == 60
        assert len(pipeline.features) == 60 - 22
        assert len(pipeline.train) + len(pipeline.test) == len(pipeline.features)

        summary = results['posterior_summary']
        assert isinstance(summary, pd.DataFrame)
        for name in ['mu_1', 'beta_1', 'alpha_1', 'alpha', 'theta', 'sigma', 'gamma[0]', 'beta[5]']:
            assert name in summary.index

        assert results['forecast_metrics']['n_rows'] == len(pipeline.test)
        assert np.isfinite(results['forecast_metrics']['rmse'])

        pipeline.save_results()
        assert (tmp_path / 'posterior_summary.csv').exists()
        assert (tmp_path / 'har_features.csv').exists()
        assert (tmp_path / 'daily_jumps.csv').exists()
        assert (tmp_path / 'forecast_metrics.csv').exists()
