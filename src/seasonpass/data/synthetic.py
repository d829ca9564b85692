"""
Reference season-pass data and synthetic contact generation.

The published season-pass study has 3,156 contacts. Its cell counts are
small enough to ship as a table, which lets the whole pipeline run
offline and gives tests a dataset with known totals:

    NoBundle: 670 purchased / 812 not (1,482 contacts)
    Bundle:   919 purchased / 755 not (1,674 contacts)

``simulate_contacts`` draws contacts from known log-odds, so model
recovery can be checked against ground truth.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
from loguru import logger

from seasonpass.data.schemas import CategoryEncoding
from seasonpass.transforms.link import sigmoid


# (promotion, channel) -> (purchased, not purchased)
SEASON_PASS_COUNTS: dict[tuple[str, str], tuple[int, int]] = {
    ("NoBundle", "Mail"): (359, 278),
    ("NoBundle", "Park"): (284, 49),
    ("NoBundle", "Email"): (27, 485),
    ("Bundle", "Mail"): (242, 449),
    ("Bundle", "Park"): (639, 223),
    ("Bundle", "Email"): (38, 83),
}


def season_pass_table(encoding: Optional[CategoryEncoding] = None) -> pd.DataFrame:
    """
    Published season-pass cell counts as an aggregated cell table.

    Returns
    -------
    pd.DataFrame
        ``promotion``, ``channel``, ``trials``, ``successes``, ordered by the
        encoding's declared levels.
    """
    encoding = encoding or CategoryEncoding()
    rows = [
        {
            "promotion": promo,
            "channel": channel,
            "trials": yes + no,
            "successes": yes,
        }
        for (promo, channel), (yes, no) in SEASON_PASS_COUNTS.items()
    ]
    df = pd.DataFrame(rows)
    df["promotion"] = df["promotion"].astype(encoding.dtype("promotion"))
    df["channel"] = df["channel"].astype(encoding.dtype("channel"))
    return df.sort_values(["promotion", "channel"]).reset_index(drop=True)


def expand_cells_to_contacts(
    cells: pd.DataFrame,
    encoding: Optional[CategoryEncoding] = None,
    shuffle: bool = True,
    random_seed: Optional[int] = 42,
) -> pd.DataFrame:
    """
    Rebuild raw CSV-style contact rows from a cell table.

    The output uses the encoding's raw column names and labels
    (``Pass``/``Promo``/``Channel``, ``YesPass``/``NoPass``), i.e. the same
    shape ``load_raw_contacts`` returns.
    """
    encoding = encoding or CategoryEncoding()
    promos, channels, outcomes = [], [], []

    for row in cells.itertuples(index=False):
        n_yes = int(row.successes)
        n_no = int(row.trials) - n_yes
        promos.extend([str(row.promotion)] * int(row.trials))
        channels.extend([str(row.channel)] * int(row.trials))
        outcomes.extend([encoding.outcome_positive] * n_yes)
        outcomes.extend([encoding.outcome_negative] * n_no)

    df = pd.DataFrame(
        {
            encoding.channel_column: channels,
            encoding.promotion_column: promos,
            encoding.outcome_column: outcomes,
        }
    )

    if shuffle and len(df):
        rng = np.random.default_rng(random_seed)
        df = df.iloc[rng.permutation(len(df))].reset_index(drop=True)

    return df


@dataclass
class SyntheticContactConfig:
    """
    Configuration for synthetic contact generation.

    ``cell_log_odds`` holds the true log-odds of purchase per
    (promotion, channel) cell; ``contacts_per_cell`` the number of contacts
    to draw there. A cell with zero contacts is left out of the data
    entirely, which is how an unidentifiable interaction is produced.
    """

    cell_log_odds: dict[tuple[str, str], float] = field(
        default_factory=lambda: {
            ("NoBundle", "Mail"): 0.26,
            ("NoBundle", "Park"): 1.76,
            ("NoBundle", "Email"): -2.89,
            ("Bundle", "Mail"): -0.62,
            ("Bundle", "Park"): 1.05,
            ("Bundle", "Email"): -0.78,
        }
    )

    contacts_per_cell: dict[tuple[str, str], int] = field(
        default_factory=lambda: {
            ("NoBundle", "Mail"): 600,
            ("NoBundle", "Park"): 300,
            ("NoBundle", "Email"): 500,
            ("Bundle", "Mail"): 700,
            ("Bundle", "Park"): 850,
            ("Bundle", "Email"): 120,
        }
    )

    random_seed: int = 42


def simulate_contacts(
    config: Optional[SyntheticContactConfig] = None,
    encoding: Optional[CategoryEncoding] = None,
    random_seed: Optional[int] = None,
) -> pd.DataFrame:
    """
    Draw raw contact rows from known per-cell log-odds.

    Returns
    -------
    pd.DataFrame
        Raw CSV-style rows, ready for ``normalize_records``.
    """
    config = config or SyntheticContactConfig()
    encoding = encoding or CategoryEncoding()
    seed = config.random_seed if random_seed is None else random_seed
    rng = np.random.default_rng(seed)

    rows = []
    for (promo, channel), n in config.contacts_per_cell.items():
        if n <= 0:
            continue
        p = float(sigmoid(config.cell_log_odds[(promo, channel)]))
        bought = int(rng.binomial(n, p))
        rows.append(
            {"promotion": promo, "channel": channel, "trials": n, "successes": bought}
        )

    cells = pd.DataFrame(rows, columns=["promotion", "channel", "trials", "successes"])
    logger.debug(f"Simulated {int(cells['trials'].sum())} contacts in {len(cells)} cells")
    return expand_cells_to_contacts(cells, encoding, shuffle=True, random_seed=seed)


def save_contacts(
    df: pd.DataFrame,
    output_dir: str = "data/",
    filename: str = "season_pass.csv",
) -> Path:
    """Write raw contact rows to CSV and return the path."""
    output_path = Path(output_dir)
    output_path.mkdir(exist_ok=True, parents=True)

    path = output_path / filename
    df.to_csv(path, index=False)
    logger.info(f"Saved {len(df)} contacts to {path}")
    return path
