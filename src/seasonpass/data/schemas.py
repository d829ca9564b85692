"""Pydantic and Pandera schemas for season-pass contact data."""

from typing import Iterable, Literal, Union

import pandas as pd
import pandera as pa
from loguru import logger
from pandera.typing import Series
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from seasonpass.errors import SchemaError


PROMOTION_LEVELS = ("NoBundle", "Bundle")
CHANNEL_LEVELS = ("Mail", "Park", "Email")

Factor = Literal["promotion", "channel"]


class CategoryEncoding(BaseModel):
    """
    Declared level ordering for every categorical field.

    The first level of each factor is the modelling baseline. Levels are
    never inferred from the data: the same instance is threaded through
    normalization, aggregation, every model and every prediction, so the
    meaning of each coefficient is fixed for the whole run.

    Example
    -------
    >>> enc = CategoryEncoding()
    >>> enc.baseline("promotion")
    'NoBundle'
    >>> enc.effect_levels("channel")
    ('Park', 'Email')
    """

    model_config = ConfigDict(frozen=True)

    promotion_levels: tuple[str, ...] = PROMOTION_LEVELS
    channel_levels: tuple[str, ...] = CHANNEL_LEVELS

    # Raw CSV column names and the label that means "purchased"
    outcome_column: str = "Pass"
    promotion_column: str = "Promo"
    channel_column: str = "Channel"
    outcome_positive: str = "YesPass"
    outcome_negative: str = "NoPass"

    @field_validator("promotion_levels", "channel_levels")
    @classmethod
    def levels_must_be_distinct(cls, v: tuple[str, ...], info) -> tuple[str, ...]:
        """A factor needs a baseline plus at least one contrast level."""
        if len(v) < 2:
            raise ValueError(f"{info.field_name} needs at least 2 levels, got {v}")
        if len(set(v)) != len(v):
            raise ValueError(f"{info.field_name} contains duplicates: {v}")
        return v

    def levels(self, factor: Factor) -> tuple[str, ...]:
        if factor == "promotion":
            return self.promotion_levels
        if factor == "channel":
            return self.channel_levels
        raise SchemaError(f"Unknown factor '{factor}'", column=factor)

    def baseline(self, factor: Factor) -> str:
        return self.levels(factor)[0]

    def effect_levels(self, factor: Factor) -> tuple[str, ...]:
        """Non-baseline levels, i.e. the ones that get a treatment-coded slope."""
        return self.levels(factor)[1:]

    def index_of(self, factor: Factor, level: str) -> int:
        levels = self.levels(factor)
        if level not in levels:
            raise SchemaError(
                f"'{level}' is not a declared {factor} level {levels}",
                column=factor,
                values=[level],
            )
        return levels.index(level)

    def dtype(self, factor: Factor) -> pd.CategoricalDtype:
        return pd.CategoricalDtype(categories=list(self.levels(factor)), ordered=True)

    @property
    def raw_columns(self) -> dict[str, str]:
        return {
            self.outcome_column: "outcome",
            self.promotion_column: "promotion",
            self.channel_column: "channel",
        }


class ContactRecord(BaseModel):
    """
    One customer contact event.

    Example
    -------
    >>> ContactRecord(outcome=True, promotion="Bundle", channel="Park")
    ContactRecord(outcome=True, promotion='Bundle', channel='Park')
    """

    model_config = ConfigDict(frozen=True)

    outcome: bool
    promotion: str
    channel: str


class AggregatedCell(BaseModel):
    """Binomial counts for one observed (promotion, channel) combination."""

    model_config = ConfigDict(frozen=True)

    promotion: str
    channel: str
    trials: int = Field(ge=1, description="Contacts in this cell")
    successes: int = Field(ge=0, description="Contacts that bought a pass")

    @model_validator(mode="after")
    def successes_within_trials(self) -> "AggregatedCell":
        if self.successes > self.trials:
            raise ValueError(
                f"successes ({self.successes}) exceed trials ({self.trials}) "
                f"for {self.promotion}/{self.channel}"
            )
        return self

    @property
    def failures(self) -> int:
        return self.trials - self.successes


class ContactFrame(pa.DataFrameModel):
    """
    Pandera schema for a normalized contact DataFrame.

    Level membership is checked separately against the caller's
    ``CategoryEncoding``; this schema only pins the column set and types.
    """

    outcome: Series[bool] = pa.Field(nullable=False, description="Pass purchased")
    promotion: Series[pa.Category] = pa.Field(nullable=False)
    channel: Series[pa.Category] = pa.Field(nullable=False)

    class Config:
        """Pandera configuration."""

        name = "SeasonPassContacts"
        strict = True
        coerce = False
        ordered = False


class CellFrame(pa.DataFrameModel):
    """Pandera schema for aggregated binomial cells."""

    trials: Series[int] = pa.Field(ge=0)
    successes: Series[int] = pa.Field(ge=0)

    class Config:
        """Pandera configuration."""

        name = "SeasonPassCells"
        strict = False
        coerce = True


RawInput = Union[pd.DataFrame, Iterable[dict]]


def normalize_records(
    raw: RawInput,
    encoding: CategoryEncoding,
) -> pd.DataFrame:
    """
    Convert raw string-typed contact rows into typed contact records.

    Parameters
    ----------
    raw : pd.DataFrame or iterable of dict
        Raw rows keyed by the encoding's raw column names
        (``Pass``, ``Promo``, ``Channel`` by default).
    encoding : CategoryEncoding
        Declared level ordering. Nothing is inferred from the data.

    Returns
    -------
    pd.DataFrame
        Columns ``outcome`` (bool), ``promotion`` and ``channel`` (ordered
        categoricals with the declared levels).

    Raises
    ------
    SchemaError
        If a column is missing, a value is null, or a value is not one of the
        declared levels for its field.
    """
    df = raw if isinstance(raw, pd.DataFrame) else pd.DataFrame(list(raw))

    missing = [c for c in encoding.raw_columns if c not in df.columns]
    if missing:
        raise SchemaError(f"Missing required columns: {missing}", values=missing)

    out = pd.DataFrame(index=range(len(df)))

    outcome_raw = df[encoding.outcome_column].reset_index(drop=True)
    if outcome_raw.isna().any():
        raise SchemaError(
            f"Null values in '{encoding.outcome_column}'",
            column=encoding.outcome_column,
        )
    out["outcome"] = (outcome_raw.astype(str).str.strip() == encoding.outcome_positive)

    for factor, column in (
        ("promotion", encoding.promotion_column),
        ("channel", encoding.channel_column),
    ):
        values = df[column].reset_index(drop=True)
        if values.isna().any():
            raise SchemaError(f"Null values in '{column}'", column=column)

        values = values.astype(str).str.strip()
        declared = encoding.levels(factor)
        unknown = sorted(set(values) - set(declared))
        if unknown:
            raise SchemaError(
                f"Column '{column}' has values {unknown} outside declared "
                f"{factor} levels {declared}",
                column=column,
                values=unknown,
            )
        out[factor] = values.astype(encoding.dtype(factor))

    ContactFrame.validate(out)
    logger.debug(f"Normalized {len(out)} contact records")
    return out


def records_to_frame(
    records: Iterable[ContactRecord],
    encoding: CategoryEncoding,
) -> pd.DataFrame:
    """Build a contact DataFrame from already-typed ``ContactRecord`` objects."""
    rows = [
        {
            encoding.outcome_column: (
                encoding.outcome_positive if r.outcome else encoding.outcome_negative
            ),
            encoding.promotion_column: r.promotion,
            encoding.channel_column: r.channel,
        }
        for r in records
    ]
    if not rows:
        return normalize_records(
            pd.DataFrame(columns=list(encoding.raw_columns)), encoding
        )
    return normalize_records(rows, encoding)


def frame_to_records(contacts: pd.DataFrame) -> list[ContactRecord]:
    return [
        ContactRecord(outcome=bool(o), promotion=str(p), channel=str(c))
        for o, p, c in zip(
            contacts["outcome"], contacts["promotion"], contacts["channel"]
        )
    ]
