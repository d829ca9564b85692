"""Raw CSV loading. I/O only: validation lives in ``schemas``."""

from pathlib import Path
from typing import Optional, Union

import pandas as pd
from loguru import logger

from seasonpass.data.schemas import CategoryEncoding, normalize_records


SEASON_PASS_URL = "http://r-marketing.r-forge.r-project.org/data/rintro-chapter9.csv"


def load_raw_contacts(source: Union[str, Path] = SEASON_PASS_URL) -> pd.DataFrame:
    """
    Read the raw season-pass CSV from a URL or a local path.

    Every column is read as a string; no category handling happens here.
    """
    logger.info(f"Loading contacts from {source}")
    df = pd.read_csv(source, dtype=str)
    logger.debug(f"Read {len(df)} rows with columns {list(df.columns)}")
    return df


def load_contacts(
    source: Union[str, Path] = SEASON_PASS_URL,
    encoding: Optional[CategoryEncoding] = None,
) -> pd.DataFrame:
    """Read and normalize contacts in one step."""
    encoding = encoding or CategoryEncoding()
    return normalize_records(load_raw_contacts(source), encoding)
