"""
Pytest configuration and shared fixtures for season-pass tests.

Provides reusable fixtures for:
- Category encoding and the reference season-pass table
- Raw and normalized contact DataFrames
- Cell tables with a missing promotion x channel combination
- Fitted models (session-scoped for speed)
"""

import os

import numpy as np
import pandas as pd
import pytest
from hypothesis import HealthCheck, settings


settings.register_profile("dev", max_examples=50, deadline=None)
settings.register_profile(
    "ci",
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


# =============================================================================
# BASIC FIXTURES
# =============================================================================


@pytest.fixture
def random_seed() -> int:
    """Consistent random seed for reproducible tests."""
    return 42


@pytest.fixture
def rng(random_seed: int) -> np.random.Generator:
    """NumPy random generator."""
    return np.random.default_rng(random_seed)


@pytest.fixture
def encoding():
    """Default declared levels: NoBundle and Mail are the baselines."""
    from seasonpass.data.schemas import CategoryEncoding

    return CategoryEncoding()


# =============================================================================
# SEASON PASS DATA FIXTURES
# =============================================================================


@pytest.fixture
def season_pass_cells(encoding) -> pd.DataFrame:
    """The published 3,156-contact cell table."""
    from seasonpass.data.synthetic import season_pass_table

    return season_pass_table(encoding)


@pytest.fixture
def season_pass_raw(season_pass_cells: pd.DataFrame, encoding) -> pd.DataFrame:
    """Raw string rows (Pass/Promo/Channel), shuffled."""
    from seasonpass.data.synthetic import expand_cells_to_contacts

    return expand_cells_to_contacts(season_pass_cells, encoding, random_seed=7)


@pytest.fixture
def season_pass_contacts(season_pass_raw: pd.DataFrame, encoding) -> pd.DataFrame:
    """Normalized contacts."""
    from seasonpass.data.schemas import normalize_records

    return normalize_records(season_pass_raw, encoding)


@pytest.fixture
def missing_cell_cells(season_pass_cells: pd.DataFrame) -> pd.DataFrame:
    """Reference table without any Bundle/Email contacts."""
    mask = (season_pass_cells["promotion"].astype(str) == "Bundle") & (
        season_pass_cells["channel"].astype(str) == "Email"
    )
    return season_pass_cells[~mask].reset_index(drop=True)


@pytest.fixture
def small_raw() -> pd.DataFrame:
    """A handful of raw rows covering every column."""
    return pd.DataFrame(
        {
            "Channel": ["Mail", "Park", "Email", "Park", "Mail"],
            "Promo": ["Bundle", "NoBundle", "Bundle", "Bundle", "NoBundle"],
            "Pass": ["YesPass", "NoPass", "NoPass", "YesPass", "YesPass"],
        }
    )


# =============================================================================
# MODEL FIXTURES (Session-scoped for speed)
# =============================================================================


def _test_sampler():
    from seasonpass.config import SamplerConfig

    # Minimal config for fast tests
    return SamplerConfig(draws=500, tune=500, chains=2, random_seed=42)


@pytest.fixture(scope="session")
def reference_analysis():
    """
    Baseline, interaction and multilevel fits on the reference table.

    Session-scoped to avoid refitting for every test.
    """
    pytest.importorskip("pymc")

    from seasonpass.analysis import ComparativeAnalysis
    from seasonpass.data.schemas import CategoryEncoding
    from seasonpass.data.synthetic import season_pass_table

    encoding = CategoryEncoding()
    analysis = ComparativeAnalysis(
        season_pass_table(encoding), encoding, sampler=_test_sampler()
    )
    analysis.fit_all()
    return analysis


@pytest.fixture(scope="session")
def missing_cell_fit():
    """Interaction model fitted with no Bundle/Email contacts at all."""
    pytest.importorskip("pymc")

    from seasonpass.data.schemas import CategoryEncoding
    from seasonpass.data.synthetic import season_pass_table
    from seasonpass.models import fit

    encoding = CategoryEncoding()
    cells = season_pass_table(encoding)
    mask = (cells["promotion"].astype(str) == "Bundle") & (
        cells["channel"].astype(str) == "Email"
    )
    cells = cells[~mask].reset_index(drop=True)

    return fit("interaction", cells, encoding=encoding, sampler=_test_sampler())


@pytest.fixture(scope="session")
def missing_baseline_channel_fit():
    """Interaction model fitted with no Bundle/Mail contacts."""
    pytest.importorskip("pymc")

    from seasonpass.data.schemas import CategoryEncoding
    from seasonpass.data.synthetic import season_pass_table
    from seasonpass.models import fit

    encoding = CategoryEncoding()
    cells = season_pass_table(encoding)
    mask = (cells["promotion"].astype(str) == "Bundle") & (
        cells["channel"].astype(str) == "Mail"
    )
    cells = cells[~mask].reset_index(drop=True)

    return fit("interaction", cells, encoding=encoding, sampler=_test_sampler())


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: end-to-end tests that run the sampler"
    )
    config.addinivalue_line("markers", "pymc: tests that build PyMC models")
