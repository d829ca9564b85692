"""
PyMC logistic models for season-pass purchases.

Three architectures, fitted to the same aggregated cells under the same
prior family:

1. **Baseline**: one intercept plus a promotion slope
   - Assumption: the bundle works the same way in every channel
   - Pro: Simplest possible answer to "does the bundle help?"
   - Con: Mixes channels with very different purchase rates

2. **Interaction**: promotion, channel and promotion x channel terms
   - Assumption: every channel has its own bundle effect, estimated alone
   - Pro: Saturated; matches every observed cell
   - Con: Combinations without data fall back entirely on the prior

3. **Multilevel**: per-channel intercept and promotion slope, partially pooled
   - Assumption: channels are exchangeable draws from one population
   - Pro: Small channels borrow strength from large ones
   - Con: More parameters, needs a non-centred parameterization to sample well

``intercept_only`` and ``main_effects`` are also available for comparison.
"""

from seasonpass.models.baseline import (
    build_baseline_model,
    build_intercept_only_model,
    build_main_effects_model,
)
from seasonpass.models.interaction import build_interaction_model
from seasonpass.models.multilevel import build_multilevel_model
from seasonpass.models.fitting import (
    FittedModel,
    ModelKind,
    Prediction,
    fit,
    sample_model,
    trace_encoding,
)

__all__ = [
    "build_baseline_model",
    "build_intercept_only_model",
    "build_main_effects_model",
    "build_interaction_model",
    "build_multilevel_model",
    "FittedModel",
    "ModelKind",
    "Prediction",
    "fit",
    "sample_model",
    "trace_encoding",
]
