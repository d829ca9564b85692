import numpy as np
from numpy.typing import ArrayLike, NDArray


def sigmoid(x: ArrayLike) -> NDArray[np.floating]:
    """
    Inverse-logit link, ``p = 1 / (1 + exp(-x))``.

    Evaluated in the algebraically identical form ``exp(x) / (1 + exp(x))``
    for negative ``x`` so large magnitudes never overflow.
    """
    x_arr = np.asarray(x, dtype=np.float64)
    ex = np.exp(-np.abs(x_arr))
    out = np.where(x_arr >= 0, 1.0 / (1.0 + ex), ex / (1.0 + ex))

    return out if out.ndim else out[()]


def logit(p: ArrayLike) -> NDArray[np.floating]:
    """Log-odds of a probability, ``log(p / (1 - p))``."""
    p_arr = np.asarray(p, dtype=np.float64)
    if np.any((p_arr < 0) | (p_arr > 1)):
        raise ValueError("p must lie in [0, 1]")
    with np.errstate(divide="ignore"):
        return np.log(p_arr) - np.log1p(-p_arr)


def odds(p: ArrayLike) -> NDArray[np.floating]:
    p_arr = np.asarray(p, dtype=np.float64)
    if np.any((p_arr < 0) | (p_arr > 1)):
        raise ValueError("p must lie in [0, 1]")
    with np.errstate(divide="ignore"):
        return p_arr / (1.0 - p_arr)


def log_odds(p: ArrayLike) -> NDArray[np.floating]:
    return logit(p)


def odds_ratio(a: ArrayLike, b: ArrayLike = 0.0) -> NDArray[np.floating]:
    """
    Odds ratio between two log-odds values, ``exp(a - b)``.

    With ``b`` left at 0 this is the plain exponentiated coefficient:
    the multiplicative change in odds relative to the baseline level.
    """
    return np.exp(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64))


def empirical_log_odds(successes: ArrayLike, failures: ArrayLike) -> NDArray[np.floating]:
    """``log(successes / failures)``, e.g. ``log(670 / 812)`` for NoBundle."""
    s = np.asarray(successes, dtype=np.float64)
    f = np.asarray(failures, dtype=np.float64)
    with np.errstate(divide="ignore"):
        return np.log(s / f)
