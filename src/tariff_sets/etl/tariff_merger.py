"""
Merges preferential and MFN tariffs into one bilateral tariff set.

PRF rows are already bilateral. MFN rows are unilateral, so each is expanded
to every partner in the concordance (except the reporter itself). The two
branches are then unioned on (reporter_alpha3, partner_alpha3, product),
case-insensitively, keeping the PRF row where both branches have the key.
"""

from typing import Union

import polars as pl

from tariff_sets.etl.code_resolver import is_resolved
from tariff_sets.records import BILATERAL_SCHEMA, DEDUP_KEY_COLUMNS, MFN
from tariff_sets.utils.logging_config import get_logger

logger = get_logger(__name__)

FrameLike = Union[pl.DataFrame, pl.LazyFrame]

_FOLDED_KEY_COLUMNS = [f"__dedup_{column}" for column in DEDUP_KEY_COLUMNS]


def expand_mfn(concordance: FrameLike, mfn_resolved: FrameLike) -> pl.LazyFrame:
    """
    Cross joins resolved MFN rows with every concordance country as partner.

    The reporter is never its own partner. This is O(reporters x concordance)
    and is the dominant cost of a run.

    Args:
        concordance: numeric3, alpha3, region.
        mfn_resolved: Output of ``resolve_mfn``.

    Returns:
        LazyFrame with the bilateral schema and type "MFN" (not yet filtered for resolution).
    """
    partners = concordance.lazy().select(
        pl.col("alpha3").alias("partner_alpha3"),
        pl.col("region").alias("partner_region"),
    )
    return (
        mfn_resolved.lazy()
        .join(partners, how="cross")
        .filter(
            pl.col("reporter_alpha3").str.to_lowercase()
            != pl.col("partner_alpha3").str.to_lowercase()
        )
        .with_columns(pl.lit(MFN, dtype=pl.Utf8).alias("type"))
        .select(list(BILATERAL_SCHEMA))
    )


def union_preferring(primary: FrameLike, secondary: FrameLike) -> pl.LazyFrame:
    """
    Set union of two bilateral frames keyed on (reporter_alpha3, partner_alpha3, product).

    Keys compare case-insensitively. Where a key appears in both frames the
    ``primary`` row is kept; duplicates within one frame collapse to the first
    occurrence, so the union is idempotent.
    """
    columns = list(BILATERAL_SCHEMA)
    folded = [
        pl.col(column).str.to_lowercase().alias(alias)
        for column, alias in zip(DEDUP_KEY_COLUMNS, _FOLDED_KEY_COLUMNS)
    ]
    return (
        pl.concat([primary.lazy().select(columns), secondary.lazy().select(columns)], how="vertical")
        .with_columns(folded)
        .unique(subset=_FOLDED_KEY_COLUMNS, keep="first", maintain_order=True)
        .select(columns)
    )


def merge(concordance: FrameLike, mfn_resolved: FrameLike, prf_resolved: FrameLike) -> pl.LazyFrame:
    """
    Builds the bilateral tariff set: PRF where available, MFN otherwise.

    Args:
        concordance: Deduplicated concordance (numeric3, alpha3, region).
        mfn_resolved: Output of ``resolve_mfn``.
        prf_resolved: Output of ``resolve_prf``.

    Returns:
        LazyFrame with the bilateral schema. Every row has non-empty alpha3 and
        region on both sides and reporter != partner for MFN rows.
    """
    logger.info("Merging PRF tariffs with expanded MFN tariffs.")

    prf_branch = prf_resolved.lazy().filter(is_resolved("reporter", "partner"))
    mfn_branch = expand_mfn(concordance, mfn_resolved).filter(is_resolved("reporter", "partner"))

    return union_preferring(prf_branch, mfn_branch)
