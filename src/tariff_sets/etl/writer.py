"""
Writes resolved bilateral tariffs as pipe-delimited text.

Line format:
    reporter_alpha3|partner_alpha3|reporter_region|partner_region|type|year|product|tariff
"""

from pathlib import Path
from typing import Union

import polars as pl

from tariff_sets.records import BILATERAL_SCHEMA, tariff_text
from tariff_sets.utils.logging_config import get_logger

logger = get_logger(__name__)


def _text(column: str) -> pl.Expr:
    return pl.col(column).cast(pl.Utf8).fill_null("")


def format_lines(frame: Union[pl.DataFrame, pl.LazyFrame]) -> pl.LazyFrame:
    """Returns a single ``line`` column holding the pipe-delimited form of each row."""
    columns = [_text(c) for c in BILATERAL_SCHEMA if c != "tariff"] + [tariff_text()]
    return frame.lazy().select(pl.concat_str(columns, separator="|").alias("line"))


def write_delimited(
    frame: Union[pl.DataFrame, pl.LazyFrame], file_path: str | Path, append: bool = False
) -> Path:
    """
    Writes one line per bilateral tariff row.

    Args:
        frame: Rows with the bilateral schema.
        file_path: Destination file. Parent directories are created.
        append: Append to an existing file instead of overwriting it.

    Returns:
        The path written.
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Writing to {file_path}")
    lines = format_lines(frame).collect()

    with open(file_path, "ab" if append else "wb") as handle:
        lines.write_csv(handle, include_header=False, quote_style="never", line_terminator="\n")

    logger.info(f"✅ Completed writing {lines.height} rows to {file_path}")
    return file_path
