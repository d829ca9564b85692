"""
Configuration for the season-pass analysis.

Priors and sampler settings are plain Pydantic models so they can be
validated once, copied per model fit, and printed in reports.
"""

from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from seasonpass.data.loader import SEASON_PASS_URL
from seasonpass.data.schemas import CategoryEncoding


class NormalPrior(BaseModel):
    """``Normal(mu, sigma)``."""

    model_config = ConfigDict(frozen=True)

    mu: float = 0.0
    sigma: float = Field(1.0, gt=0)


class HalfNormalPrior(BaseModel):
    """``HalfNormal(sigma)``."""

    model_config = ConfigDict(frozen=True)

    sigma: float = Field(1.0, gt=0)


class PriorSpec(BaseModel):
    """
    Prior family per coefficient class.

    Defaults are zero-centred normals with sd 2.5 on the log-odds scale.
    Every identified coefficient is dominated by its data; an unidentified
    one stays within a few units of zero.

    Attributes
    ----------
    intercept : NormalPrior
        Population-level intercept.
    slope : NormalPrior
        Every population-level slope (promotion, channel, interaction).
    group_sd : HalfNormalPrior
        Standard deviation of the per-channel varying effects.
    lkj_eta : float
        LKJ concentration for the correlation between varying intercept and
        varying slope. 1 is uniform over correlations, larger values favour 0.
    """

    model_config = ConfigDict(frozen=True)

    intercept: NormalPrior = NormalPrior(sigma=2.5)
    slope: NormalPrior = NormalPrior(sigma=2.5)
    group_sd: HalfNormalPrior = HalfNormalPrior(sigma=2.5)
    lkj_eta: float = Field(2.0, gt=0)


class SamplerConfig(BaseModel):
    """NUTS settings passed straight to ``pymc.sample``."""

    model_config = ConfigDict(frozen=True)

    draws: int = Field(1000, ge=1, description="Posterior draws per chain")
    tune: int = Field(1000, ge=0, description="Tuning steps per chain")
    chains: int = Field(4, ge=1)
    cores: Optional[int] = Field(None, ge=1)
    target_accept: float = Field(0.9, gt=0, lt=1)
    random_seed: Optional[int] = 42
    progressbar: bool = False
    log_likelihood: bool = True


class PipelineConfig(BaseModel):
    """Everything a single end-to-end run needs."""

    source: Union[str, Path] = SEASON_PASS_URL
    encoding: CategoryEncoding = CategoryEncoding()
    prior: PriorSpec = PriorSpec()
    sampler: SamplerConfig = SamplerConfig()
    interval_prob: float = Field(0.89, gt=0, lt=1)
    output_dir: Path = Path("results/")
