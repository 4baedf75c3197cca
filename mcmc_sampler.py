"""
NUTS sampling behind a narrow interface

The sampler only sees a log joint density written in pytensor and a dict of
initial parameter values; the model itself never touches PyMC's model
context. Posterior draws come back as a ModelPosterior wrapping ArviZ
InferenceData with per-chain diagnostics.
"""

from typing import Callable, Dict, Iterable, List, Optional
import time
import warnings

import numpy as np
import pandas as pd
import pymc as pm
import arviz as az

from exceptions import SamplerDivergenceWarning, SamplingDeadlineExceeded


class ModelPosterior:
    """
    Read-only posterior samples with convergence diagnostics
    """

    def __init__(self, idata: az.InferenceData, parameter_names: List[str], elapsed: float = np.nan):
        self.idata = idata
        self.parameter_names = list(parameter_names)
        self.elapsed = elapsed

    @property
    def n_chains(self) -> int:
        return int(self.idata.posterior.sizes['chain'])

    @property
    def n_draws(self) -> int:
        return int(self.idata.posterior.sizes['draw'])

    def __getitem__(self, name: str) -> np.ndarray:
        """Draws for one parameter, chains concatenated: shape (chains * draws, ...)"""
        values = self.idata.posterior[name].values
        return values.reshape((-1,) + values.shape[2:])

    def __contains__(self, name: str) -> bool:
        return name in self.parameter_names

    def samples(self) -> Dict[str, np.ndarray]:
        return {name: self[name] for name in self.parameter_names}

    def mean(self, name: str) -> np.ndarray:
        return self[name].mean(axis=0)

    def means(self) -> Dict[str, np.ndarray]:
        return {name: self.mean(name) for name in self.parameter_names}

    def summary(self, hdi_prob: float = 0.94) -> pd.DataFrame:
        """
        Per-parameter mean, sd, HDI, MCSE, bulk/tail ESS and R-hat
        """
        return az.summary(self.idata, var_names=self.parameter_names, hdi_prob=hdi_prob)

    def divergences(self) -> np.ndarray:
        """Number of divergent transitions in each chain"""
        if 'sample_stats' not in self.idata.groups() or 'diverging' not in self.idata.sample_stats:
            return np.zeros(self.n_chains, dtype=int)
        return self.idata.sample_stats['diverging'].sum(dim='draw').values.astype(int)

    def check_convergence(self, r_hat_threshold: float = 1.01) -> List[str]:
        """
        Collect convergence problems and warn about them

        Returns:
        - List[str]
            - human-readable issues, empty when the chains look healthy
        """

        issues = []

        divergences = self.divergences()
        for chain, count in enumerate(divergences):
            if count > 0:
                issues.append(f"chain {chain}: {count} divergent transitions")

        if self.n_chains > 1:
            summary = self.summary()
            bad = summary[summary['r_hat'] > r_hat_threshold]
            for name, row in bad.iterrows():
                issues.append(f"{name}: r_hat = {row['r_hat']:.3f}")

        if issues:
            warnings.warn(
                "Sampler diagnostics flagged possible non-convergence: " + "; ".join(issues),
                SamplerDivergenceWarning
            )

        return issues


class NUTSSampler:
    """
    No-U-Turn sampler over an arbitrary pytensor log joint density
    """

    def __init__(self,
                 target_accept: float = 0.65,
                 cores: Optional[int] = None,
                 random_seed: Optional[int] = None,
                 deadline_seconds: Optional[float] = None,
                 progressbar: bool = False):
        """
        Params:
        - target_accept: float
            - NUTS step-size adaptation target
        - cores: int, optional
            - worker processes; defaults to one per chain (capped by PyMC)
        - random_seed: int, optional
            - seed for reproducible chains
        - deadline_seconds: float, optional
            - abort with SamplingDeadlineExceeded after this much wall time
        - progressbar: bool
            - show PyMC's progress bar
        """

        if not 0 < target_accept < 1:
            raise ValueError(f"target_accept must be in (0, 1), got {target_accept}")

        self.target_accept = target_accept
        self.cores = cores
        self.random_seed = random_seed
        self.deadline_seconds = deadline_seconds
        self.progressbar = progressbar

    def _deadline_callback(self, start: float) -> Optional[Callable]:
        if self.deadline_seconds is None:
            return None

        deadline = self.deadline_seconds

        def callback(trace, draw):
            elapsed = time.monotonic() - start
            if elapsed > deadline:
                raise SamplingDeadlineExceeded(
                    f"Sampling exceeded its {deadline:.1f}s deadline (chain {draw.chain})"
                )

        return callback

    def fit(self,
            log_joint: Callable[[Dict], object],
            initial_params: Dict[str, np.ndarray],
            chains: int = 4,
            warmup: int = 1000,
            draws: int = 250,
            positive: Iterable[str] = ()) -> ModelPosterior:
        """
        Draw posterior samples from exp(log_joint)

        Params:
        - log_joint: callable
            - maps {name: pytensor variable} to a scalar log density
        - initial_params: dict
            - name -> starting value; its shape fixes the parameter's shape
        - chains: int
            - independent chains
        - warmup: int
            - tuning iterations per chain, discarded
        - draws: int
            - kept draws per chain
        - positive: iterable of str
            - parameters constrained to (0, inf)

        Returns:
        - ModelPosterior
        """

        if chains < 1 or draws < 1 or warmup < 0:
            raise ValueError("Need chains >= 1, draws >= 1 and warmup >= 0")

        positive = set(positive)
        unknown = positive - set(initial_params)
        if unknown:
            raise ValueError(f"Unknown positive parameters: {sorted(unknown)}")

        with pm.Model():
            params = {}
            for name, value in initial_params.items():
                value = np.asarray(value, dtype=float)
                if name in positive:
                    if np.any(value <= 0):
                        raise ValueError(f"Initial value of '{name}' must be positive")
                    params[name] = pm.HalfFlat(name, shape=value.shape, initval=value)
                else:
                    params[name] = pm.Flat(name, shape=value.shape, initval=value)

            pm.Potential('log_joint', log_joint(params))

            print(f"Sampling: chains={chains}, warmup={warmup}, draws={draws}, "
                  f"target_accept={self.target_accept}")

            start = time.monotonic()
            idata = pm.sample(
                draws=draws,
                tune=warmup,
                chains=chains,
                cores=self.cores,
                target_accept=self.target_accept,
                random_seed=self.random_seed,
                progressbar=self.progressbar,
                callback=self._deadline_callback(start),
                return_inferencedata=True,
                compute_convergence_checks=False
            )
            elapsed = time.monotonic() - start

        print(f"MCMC sampling finished in {elapsed:.1f} seconds.")

        return ModelPosterior(idata, list(initial_params), elapsed)
