"""
Link-scale arithmetic for logistic models.

Every model here works on the log-odds scale. Reading the results needs
two conversions:

1. **Inverse link**: a linear predictor ``x`` becomes a purchase
   probability ``p = 1 / (1 + exp(-x))``.

2. **Odds ratios**: a treatment-coded coefficient ``b`` means the odds
   are multiplied by ``exp(b)`` relative to the baseline level.

Which level is the baseline is fixed by ``CategoryEncoding``. Getting it
backwards silently inverts every odds ratio, so these functions never
guess: the caller passes both sides explicitly.
"""

from seasonpass.transforms.link import (
    sigmoid,
    logit,
    odds,
    log_odds,
    odds_ratio,
    empirical_log_odds,
)

__all__ = [
    "sigmoid",
    "logit",
    "odds",
    "log_odds",
    "odds_ratio",
    "empirical_log_odds",
]
