"""
Binomial aggregation of contact records.

Per-customer Bernoulli rows are collapsed into one row per observed
factor combination with ``trials`` and ``successes``. Only combinations
that actually occur are emitted; cells are ordered by the declared
levels so the result does not depend on input row order.
"""

from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd
import pandera as pa
from loguru import logger

from seasonpass.data.schemas import AggregatedCell, CategoryEncoding, CellFrame, Factor
from seasonpass.errors import AggregationInvariantError, SchemaError


CELL_KEYS: tuple[Factor, Factor] = ("promotion", "channel")


def _aggregate(
    contacts: pd.DataFrame,
    keys: Sequence[Factor],
    encoding: CategoryEncoding,
) -> pd.DataFrame:
    for key in keys:
        if key not in ("promotion", "channel"):
            raise SchemaError(f"Cannot aggregate by '{key}'", column=key)
        if key not in contacts.columns:
            raise SchemaError(f"Contacts have no '{key}' column", column=key)

    if "outcome" not in contacts.columns:
        raise SchemaError("Contacts have no 'outcome' column", column="outcome")

    # Re-apply the declared dtype so level order comes from the encoding
    frame = pd.DataFrame(
        {key: contacts[key].astype(str).astype(encoding.dtype(key)) for key in keys}
    )
    if frame.isna().any().any():
        bad = {
            key: sorted(set(contacts[key].astype(str)) - set(encoding.levels(key)))
            for key in keys
        }
        raise SchemaError(f"Contacts contain undeclared levels: {bad}")
    frame["outcome"] = contacts["outcome"].astype(bool).to_numpy()

    cells = (
        frame.groupby(list(keys), observed=True, sort=True)["outcome"]
        .agg(trials="size", successes="sum")
        .reset_index()
    )
    cells = cells[cells["trials"] > 0].reset_index(drop=True)
    cells["trials"] = cells["trials"].astype(np.int64)
    cells["successes"] = cells["successes"].astype(np.int64)

    check_cell_invariants(
        cells,
        n_contacts=len(frame),
        n_purchases=int(frame["outcome"].sum()),
    )
    return cells


def aggregate_cells(
    contacts: pd.DataFrame,
    encoding: CategoryEncoding,
) -> pd.DataFrame:
    """
    Collapse contacts into per-(promotion, channel) binomial cells.

    Parameters
    ----------
    contacts : pd.DataFrame
        Normalized contacts (``outcome``, ``promotion``, ``channel``).
    encoding : CategoryEncoding
        Declared levels; also fixes the output row order.

    Returns
    -------
    pd.DataFrame
        Columns ``promotion``, ``channel``, ``trials``, ``successes``.
        One row per combination with at least one contact.

    Raises
    ------
    AggregationInvariantError
        If the resulting counts break ``0 <= successes <= trials`` or do not
        add back up to the input totals.
    """
    cells = _aggregate(contacts, CELL_KEYS, encoding)
    logger.info(
        f"Aggregated {len(contacts)} contacts into {len(cells)} cells "
        f"({int(cells['successes'].sum())} purchases)"
    )

    missing = unobserved_cells(cells, encoding)
    if missing:
        logger.warning(f"No contacts observed for {missing}")
    return cells


def aggregate_by(
    contacts: pd.DataFrame,
    factor: Factor,
    encoding: CategoryEncoding,
) -> pd.DataFrame:
    """Single-factor aggregation, for exploratory summaries."""
    return _aggregate(contacts, (factor,), encoding)


def check_cell_invariants(
    cells: pd.DataFrame,
    n_contacts: Optional[int] = None,
    n_purchases: Optional[int] = None,
) -> None:
    """Raise ``AggregationInvariantError`` if the counts are inconsistent."""
    try:
        CellFrame.validate(cells)
    except pa.errors.SchemaError as e:
        raise AggregationInvariantError(f"Invalid cell counts: {e}") from e

    trials = cells["trials"].to_numpy()
    successes = cells["successes"].to_numpy()

    if (successes < 0).any() or (trials < 0).any():
        raise AggregationInvariantError("Negative counts after aggregation")

    over = cells[successes > trials]
    if len(over):
        raise AggregationInvariantError(
            f"successes exceed trials in {len(over)} cell(s):\n{over.to_string()}"
        )

    if n_contacts is not None and int(trials.sum()) != n_contacts:
        raise AggregationInvariantError(
            f"Trials sum to {int(trials.sum())}, expected {n_contacts}"
        )
    if n_purchases is not None and int(successes.sum()) != n_purchases:
        raise AggregationInvariantError(
            f"Successes sum to {int(successes.sum())}, expected {n_purchases}"
        )


def unobserved_cells(
    cells: pd.DataFrame,
    encoding: CategoryEncoding,
) -> list[tuple[str, str]]:
    """Declared (promotion, channel) combinations with no contacts."""
    seen = set(zip(cells["promotion"].astype(str), cells["channel"].astype(str)))
    return [
        (p, c)
        for p in encoding.promotion_levels
        for c in encoding.channel_levels
        if (p, c) not in seen
    ]


def proportion_table(cells: pd.DataFrame) -> pd.DataFrame:
    """
    Add ``failures``, ``proportion``, ``odds`` and ``log_odds`` columns.

    Cells with zero successes or zero failures get infinite log-odds, which
    is the honest empirical value.
    """
    out = cells.copy()
    out["failures"] = out["trials"] - out["successes"]
    out["proportion"] = out["successes"] / out["trials"]
    with np.errstate(divide="ignore"):
        out["odds"] = out["successes"] / out["failures"]
        out["log_odds"] = np.log(out["odds"])
    return out


def cells_to_records(cells: pd.DataFrame) -> list[AggregatedCell]:
    return [
        AggregatedCell(
            promotion=str(row.promotion),
            channel=str(row.channel),
            trials=int(row.trials),
            successes=int(row.successes),
        )
        for row in cells.itertuples(index=False)
    ]


def cells_from_records(
    records: Iterable[AggregatedCell],
    encoding: CategoryEncoding,
) -> pd.DataFrame:
    """
    Build a cell DataFrame from ``AggregatedCell`` objects.

    Duplicate combinations are summed; rows are sorted by declared level order.
    """
    df = pd.DataFrame([r.model_dump() for r in records])
    if df.empty:
        df = pd.DataFrame(columns=["promotion", "channel", "trials", "successes"])

    for key in CELL_KEYS:
        unknown = sorted(set(df[key].astype(str)) - set(encoding.levels(key)))
        if unknown:
            raise SchemaError(
                f"Cells have {key} values {unknown} outside {encoding.levels(key)}",
                column=key,
                values=unknown,
            )
        df[key] = df[key].astype(encoding.dtype(key))

    cells = (
        df.groupby(list(CELL_KEYS), observed=True, sort=True)[["trials", "successes"]]
        .sum()
        .reset_index()
    )
    cells["trials"] = cells["trials"].astype(np.int64)
    cells["successes"] = cells["successes"].astype(np.int64)
    check_cell_invariants(cells)
    return cells
