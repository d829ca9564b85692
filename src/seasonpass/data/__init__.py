"""Data schemas, loading, aggregation and the reference season-pass dataset."""

from seasonpass.data.schemas import (
    AggregatedCell,
    CategoryEncoding,
    ContactFrame,
    ContactRecord,
    normalize_records,
)
from seasonpass.data.aggregate import (
    aggregate_by,
    aggregate_cells,
    check_cell_invariants,
    proportion_table,
    unobserved_cells,
)
from seasonpass.data.loader import SEASON_PASS_URL, load_contacts, load_raw_contacts
from seasonpass.data.synthetic import (
    SyntheticContactConfig,
    expand_cells_to_contacts,
    season_pass_table,
    simulate_contacts,
)

__all__ = [
    "AggregatedCell",
    "CategoryEncoding",
    "ContactFrame",
    "ContactRecord",
    "normalize_records",
    "aggregate_by",
    "aggregate_cells",
    "check_cell_invariants",
    "proportion_table",
    "unobserved_cells",
    "SEASON_PASS_URL",
    "load_contacts",
    "load_raw_contacts",
    "SyntheticContactConfig",
    "expand_cells_to_contacts",
    "season_pass_table",
    "simulate_contacts",
]
