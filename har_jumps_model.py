"""
Bayesian HAR-Jumps regression with a latent volatility-memory term

Latent recursion (lambda):
    lambda_1 = mu_1
    lambda_t = mu_1 + gamma . x_{t-1}[RCV, RCV_5, RCV_21] + beta_1 * lambda_{t-1} + alpha_1 * jump_{t-1}

Observation model:
    y_t ~ Normal(alpha + x_t . beta + theta * lambda_t, sqrt(sigma))

where y_t is the next day's log realized variance and x_t the six HAR
features (RCV, RCV_5, RCV_21, J, J_5, J_21).
"""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
import pymc as pm
import pytensor
import pytensor.tensor as pt

from feature_builder import FEATURE_COLUMNS
from mcmc_sampler import ModelPosterior, NUTSSampler

N_MEMORY_FEATURES = 3


def latent_memory(x: np.ndarray,
                  jumps: np.ndarray,
                  mu_1: float,
                  gamma: np.ndarray,
                  beta_1: float,
                  alpha_1: float) -> np.ndarray:
    """
    Latent volatility memory lambda_t for every row of x

    Params:
    - x: np.ndarray
        - (T, k) feature matrix, first three columns are RCV, RCV_5, RCV_21
    - jumps: np.ndarray
        - (T,) jump indicator
    - mu_1, beta_1, alpha_1: float
        - intercept, persistence and jump feedback of the recursion
    - gamma: np.ndarray
        - (3,) weights on the lagged continuous-variation features

    Returns:
    - np.ndarray
        - (T,) latent series
    """

    x = np.asarray(x, dtype=float)
    jumps = np.asarray(jumps, dtype=float)
    gamma = np.asarray(gamma, dtype=float)

    lam = np.empty(len(x))
    if len(x) == 0:
        return lam

    lam[0] = mu_1
    drive = mu_1 + x[:-1, :N_MEMORY_FEATURES] @ gamma + alpha_1 * jumps[:-1]
    for t in range(1, len(x)):
        lam[t] = drive[t - 1] + beta_1 * lam[t - 1]
    return lam


def latent_memory_tensor(x, jumps, mu_1, gamma, beta_1, alpha_1):
    """Symbolic twin of latent_memory, built with pytensor.scan"""

    x = pt.as_tensor_variable(np.asarray(x, dtype=float))
    jumps = pt.as_tensor_variable(np.asarray(jumps, dtype=float))
    mu_1 = pt.as_tensor_variable(mu_1).astype('float64')
    beta_1 = pt.as_tensor_variable(beta_1).astype('float64')
    alpha_1 = pt.as_tensor_variable(alpha_1).astype('float64')
    gamma = pt.as_tensor_variable(gamma).astype('float64')

    drive = mu_1 + pt.dot(x[:-1, :N_MEMORY_FEATURES], gamma) + alpha_1 * jumps[:-1]

    def step(drive_t, lam_prev, persistence):
        return drive_t + persistence * lam_prev

    lam_rest, _ = pytensor.scan(
        fn=step,
        sequences=[drive],
        outputs_info=[mu_1],
        non_sequences=[beta_1]
    )

    return pt.concatenate([pt.stack([mu_1]), lam_rest])


def design_matrices(frame: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Features, target and jump indicator from a feature table"""
    x = frame[FEATURE_COLUMNS].to_numpy(dtype=float)
    y = frame['RV_ahead'].to_numpy(dtype=float)
    jumps = frame['jump'].to_numpy(dtype=float)
    return x, y, jumps


class HARJumpsModel:
    """
    HAR-Jumps model fit by NUTS
    """

    PARAMETERS = ['mu_1', 'beta_1', 'alpha_1', 'gamma', 'alpha', 'beta', 'theta', 'sigma']

    def __init__(self,
                 sampler: Optional[NUTSSampler] = None,
                 chains: int = 4,
                 warmup: int = 1000,
                 draws: int = 250,
                 r_hat_threshold: float = 1.01):
        """
        Params:
        - sampler: NUTSSampler, optional
            - posterior sampler; a default NUTSSampler when omitted
        - chains, warmup, draws: int
            - sampling schedule (4 x 250 draws after 1000 warmup by default)
        - r_hat_threshold: float
            - chains with R-hat above this are flagged after fitting
        """

        self.sampler = sampler if sampler is not None else NUTSSampler()
        self.chains = chains
        self.warmup = warmup
        self.draws = draws
        self.r_hat_threshold = r_hat_threshold
        self.posterior = None
        self.diagnostics = []

    @staticmethod
    def log_joint(x: np.ndarray, y: np.ndarray, jumps: np.ndarray):
        """
        Log prior plus log likelihood as a function of the parameters

        Returns:
        - callable
            - {name: tensor} -> scalar tensor
        """

        def density(params: Dict):
            mu_1 = params['mu_1']
            beta_1 = params['beta_1']
            alpha_1 = params['alpha_1']
            gamma = params['gamma']
            alpha = params['alpha']
            beta = params['beta']
            theta = params['theta']
            sigma = params['sigma']

            log_prior = (
                pm.logp(pm.Normal.dist(mu=0.0, sigma=1.0), mu_1)
                + pm.logp(pm.Normal.dist(mu=0.0, sigma=1.0), beta_1)
                + pm.logp(pm.Normal.dist(mu=0.0, sigma=1.0), alpha_1)
                + pm.logp(pm.Normal.dist(mu=0.0, sigma=1.0), gamma).sum()
                + pm.logp(pm.Normal.dist(mu=0.0, sigma=5.0), alpha)
                + pm.logp(pm.Normal.dist(mu=0.0, sigma=5.0), beta).sum()
                + pm.logp(pm.Normal.dist(mu=0.0, sigma=5.0), theta)
                #Normal(0, 100) truncated to (0, inf)
                + pm.logp(pm.HalfNormal.dist(sigma=100.0), sigma)
            )

            lam = latent_memory_tensor(x, jumps, mu_1, gamma, beta_1, alpha_1)
            mean = alpha + pt.dot(pt.as_tensor_variable(x), beta) + theta * lam
            log_likelihood = pm.logp(pm.Normal.dist(mu=mean, sigma=pt.sqrt(sigma)), y).sum()

            return log_prior + log_likelihood

        return density

    @staticmethod
    def initial_params(n_features: int) -> Dict[str, np.ndarray]:
        return {
            'mu_1': np.array(0.0),
            'beta_1': np.array(0.0),
            'alpha_1': np.array(0.0),
            'gamma': np.zeros(N_MEMORY_FEATURES),
            'alpha': np.array(0.0),
            'beta': np.zeros(n_features),
            'theta': np.array(0.0),
            'sigma': np.array(1.0)
        }

    def fit(self, train: pd.DataFrame) -> ModelPosterior:
        """
        Sample the posterior on a training feature table

        Params:
        - train: pd.DataFrame
            - output of HARFeatureBuilder (training rows)

        Returns:
        - ModelPosterior
        """

        if len(train) < 2:
            raise ValueError(f"Need at least 2 training rows, got {len(train)}")

        print("Fitting the HAR-Jumps model")

        x, y, jumps = design_matrices(train)

        self.posterior = self.sampler.fit(
            self.log_joint(x, y, jumps),
            self.initial_params(x.shape[1]),
            chains=self.chains,
            warmup=self.warmup,
            draws=self.draws,
            positive=('sigma',)
        )

        self.diagnostics = self.posterior.check_convergence(r_hat_threshold=self.r_hat_threshold)
        if self.diagnostics:
            print(f"Warning: {len(self.diagnostics)} convergence issue(s) flagged")

        return self.posterior

    def _require_posterior(self, posterior: Optional[ModelPosterior]) -> ModelPosterior:
        posterior = posterior if posterior is not None else self.posterior
        if posterior is None:
            raise ValueError("Model not fitted. Call fit() first")
        return posterior

    def predict(self, frame: pd.DataFrame, posterior: Optional[ModelPosterior] = None) -> np.ndarray:
        """
        Posterior-mean forecast of next-day log RV for every row of frame

        The latent recursion runs over the whole frame, so pass the full
        feature table to carry the training history into the test rows.
        """

        posterior = self._require_posterior(posterior)
        p = posterior.means()
        x, _, jumps = design_matrices(frame)

        lam = latent_memory(x, jumps, p['mu_1'], p['gamma'], p['beta_1'], p['alpha_1'])
        return p['alpha'] + x @ p['beta'] + p['theta'] * lam

    def evaluate(self,
                 frame: pd.DataFrame,
                 posterior: Optional[ModelPosterior] = None,
                 start: int = 0) -> Dict:
        """
        Out-of-sample accuracy of the log RV forecast on rows [start, N)

        Returns:
        - Dict
            - rmse, mae, r2 and the number of evaluated rows
        """

        predicted = self.predict(frame, posterior)[start:]
        actual = frame['RV_ahead'].to_numpy(dtype=float)[start:]

        if len(actual) == 0:
            raise ValueError("No rows to evaluate")

        errors = actual - predicted
        ss_res = np.sum(errors ** 2)
        ss_tot = np.sum((actual - actual.mean()) ** 2)

        return {
            'n_rows': len(actual),
            'rmse': float(np.sqrt(np.mean(errors ** 2))),
            'mae': float(np.mean(np.abs(errors))),
            'r2': float(1 - ss_res / ss_tot) if ss_tot > 0 else np.nan
        }
