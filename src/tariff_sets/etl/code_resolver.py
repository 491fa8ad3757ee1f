"""
Translates numeric country codes into alpha-3 codes and regions.

Both joins are left outer joins against the concordance: a code with no match
keeps its row, with null alpha3/region. Nothing is dropped here; the merger
decides what counts as resolved via ``is_resolved``.
"""

from typing import Union

import polars as pl

from tariff_sets.records import BILATERAL_SCHEMA, PRF
from tariff_sets.utils.logging_config import get_logger

logger = get_logger(__name__)

FrameLike = Union[pl.DataFrame, pl.LazyFrame]

MFN_RESOLVED_COLUMNS = ["reporter_alpha3", "reporter_region", "year", "product", "tariff"]


def _lookup(concordance: FrameLike, side: str) -> pl.LazyFrame:
    """Concordance with columns renamed for one side of the join (reporter/partner)."""
    return concordance.lazy().select(
        pl.col("numeric3").alias(f"{side}_numeric"),
        pl.col("alpha3").alias(f"{side}_alpha3"),
        pl.col("region").alias(f"{side}_region"),
    )


def is_resolved(*sides: str) -> pl.Expr:
    """
    Predicate: alpha3 and region are present and non-empty for every given side.

    Example:
        frame.filter(is_resolved("reporter", "partner"))
    """
    conditions = []
    for side in sides:
        for column in (f"{side}_alpha3", f"{side}_region"):
            conditions.append(pl.col(column).is_not_null() & (pl.col(column).str.len_chars() > 0))
    return pl.all_horizontal(conditions)


def resolve_mfn(mfn: FrameLike, concordance: FrameLike) -> pl.LazyFrame:
    """
    Attaches reporter alpha3/region to MFN rows.

    Returns:
        LazyFrame with columns reporter_alpha3, reporter_region, year, product, tariff.
        Duplicate numeric codes in the concordance fan out into one row per match.
    """
    logger.debug("Resolving MFN reporter codes against concordance.")
    return (
        mfn.lazy()
        .join(_lookup(concordance, "reporter"), on="reporter_numeric", how="left")
        .select(MFN_RESOLVED_COLUMNS)
    )


def resolve_prf(prf: FrameLike, concordance: FrameLike) -> pl.LazyFrame:
    """
    Attaches reporter and partner alpha3/region to PRF rows.

    Returns:
        LazyFrame with the bilateral schema and type "PRF".
    """
    logger.debug("Resolving PRF reporter and partner codes against concordance.")
    return (
        prf.lazy()
        .join(_lookup(concordance, "reporter"), on="reporter_numeric", how="left")
        .join(_lookup(concordance, "partner"), on="partner_numeric", how="left")
        .with_columns(pl.lit(PRF, dtype=pl.Utf8).alias("type"))
        .select(list(BILATERAL_SCHEMA))
    )
