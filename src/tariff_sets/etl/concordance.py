"""
Loads the country concordance: numeric ISO code -> alpha-3 code and user-defined region.
"""

from pathlib import Path

import polars as pl

from tariff_sets.records import CONCORDANCE_SCHEMA
from tariff_sets.utils.logging_config import get_logger

logger = get_logger(__name__)


def load_concordance(file_path: str | Path, separator: str = "|") -> pl.DataFrame:
    """
    Reads a delimited concordance file with a header row.

    The first three columns are taken as numeric3, alpha3 and region,
    whatever their header names. Codes are kept as text so leading zeros
    survive ("036" stays "036").

    Args:
        file_path: Path to the concordance file (pipe-delimited by default).
        separator: Field delimiter.

    Returns:
        pl.DataFrame with distinct (numeric3, alpha3, region) rows; rows with a
        missing alpha3 or region are dropped.
    """
    file_path = Path(file_path)
    logger.info(f"Loading concordance from: {file_path}")

    raw = pl.read_csv(
        file_path,
        has_header=True,
        separator=separator,
        infer_schema=False,
        truncate_ragged_lines=True,
        encoding="utf8-lossy",
    )
    if raw.width < 3:
        raise ValueError(
            f"Concordance file {file_path} needs at least 3 columns (numeric3|alpha3|region), found {raw.width}"
        )

    names = list(CONCORDANCE_SCHEMA)
    concordance = (
        pl.DataFrame(
            [raw.to_series(i).str.strip_chars().alias(name) for i, name in enumerate(names)]
        )
        .filter(
            pl.col("alpha3").is_not_null()
            & (pl.col("alpha3") != "")
            & pl.col("region").is_not_null()
            & (pl.col("region") != "")
        )
        .unique(maintain_order=True)
    )

    dropped = raw.height - concordance.height
    if dropped:
        logger.warning(f"Dropped {dropped} concordance rows (missing alpha3/region or duplicates)")
    logger.info(f"✅ Loaded {concordance.height} concordance entries")
    return concordance
