"""
Error and warning types for the HAR-Jumps volatility pipeline
"""


class DomainError(ValueError):
    """
    Invalid numeric input for a variation estimator or the jump test

    Raised for non-positive prices, days with too few observations and
    degenerate (zero) bipower or realized variation
    """


class SamplerDivergenceWarning(UserWarning):
    """
    MCMC finished but some chains diverged or did not converge
    """


class SamplingDeadlineExceeded(RuntimeError):
    """Sampling was cancelled because it ran past its wall-clock deadline"""
