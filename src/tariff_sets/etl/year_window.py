"""
Selects, per tariff series, the latest available year at or before a target year.

A resolution for 2011 with a minimum of 1995 uses the 2011 rate where it was
published, else the most recent year back to 1995. The selection is per
series (grouping key), not per record.
"""

from typing import List, Sequence, Union

import polars as pl

from tariff_sets.records import (
    GROUPING_KEY_COLUMNS,
    MFN,
    PRF,
    VariantRecord,
    frame_to_records,
    records_to_frame,
)
from tariff_sets.utils.logging_config import get_logger

logger = get_logger(__name__)


def select_latest_years(
    frame: Union[pl.DataFrame, pl.LazyFrame],
    minimum: int,
    target: int,
    key_columns: Sequence[str],
) -> pl.LazyFrame:
    """
    Keeps the rows of each series that carry the series' latest year within the window.

    Args:
        frame: Tariff rows with a ``year`` column and the key columns.
        minimum: Oldest acceptable year (inclusive).
        target: Year of interest (inclusive upper bound).
        key_columns: Columns identifying a series (e.g. reporter, or reporter + partner).

    Returns:
        LazyFrame with the same schema. Rows sharing the maximum year within a
        series are all kept; rows with no year are dropped.
    """
    logger.debug(f"Selecting latest years in window [{minimum}, {target}] by {list(key_columns)}")
    return (
        frame.lazy()
        .filter(pl.col("year").is_between(minimum, target, closed="both"))
        .filter(pl.col("year") == pl.col("year").max().over(list(key_columns)))
    )


def select_mfn(frame: Union[pl.DataFrame, pl.LazyFrame], minimum: int, target: int) -> pl.LazyFrame:
    return select_latest_years(frame, minimum, target, GROUPING_KEY_COLUMNS[MFN])


def select_prf(frame: Union[pl.DataFrame, pl.LazyFrame], minimum: int, target: int) -> pl.LazyFrame:
    return select_latest_years(frame, minimum, target, GROUPING_KEY_COLUMNS[PRF])


def select(records: Sequence[VariantRecord], minimum: int, target: int) -> List[VariantRecord]:
    """Record-level form of ``select_latest_years``; keys come from the records' variant."""
    if not records:
        return []
    kind = records[0].kind
    selected = select_latest_years(
        records_to_frame(records, kind), minimum, target, GROUPING_KEY_COLUMNS[kind]
    )
    return frame_to_records(selected, kind)
