"""
Row predicates for restricting resolved tariff sets.
"""

from typing import Iterable

import polars as pl


def region_subset(regions: Iterable[str]) -> pl.Expr:
    """
    Keeps rows where the reporter or the partner belongs to one of ``regions``.

    Example:
        region_subset(["Argentina", "Brazil", "Paraguay", "Uruguay", "Venezuela"])
    """
    regions = list(regions)
    return pl.col("reporter_region").is_in(regions) | pl.col("partner_region").is_in(regions)


def within_regions(regions: Iterable[str]) -> pl.Expr:
    """Keeps rows where both reporter and partner belong to ``regions``."""
    regions = list(regions)
    return pl.col("reporter_region").is_in(regions) & pl.col("partner_region").is_in(regions)
