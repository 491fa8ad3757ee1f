"""
Reads WITS bulk download archives into polars frames.

A bulk archive is a zip of zips; each inner zip holds one or more CSV files
(plus metadata such as ``[Content_Types].xml``, which is skipped):

    BulkArchive.zip
    ├── InnerArchive0.zip
    │   ├── [Content_Types].xml
    │   └── File_0_0.csv
    └── InnerArchive1.zip
        ├── [Content_Types].xml
        └── File_1_0.csv

Values are trimmed and read as text, then cast to the record schema with
strict casts: a value that does not parse fails the load.
"""

import io
import zipfile
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import polars as pl
from tqdm.auto import tqdm

from tariff_sets.records import MFN_SCHEMA, PRF_SCHEMA
from tariff_sets.utils.logging_config import get_logger

logger = get_logger(__name__)

# Column positions in the WITS "Applied" bulk CSV files
MFN_LAYOUT = {"reporter_numeric": 1, "year": 2, "product": 3, "tariff": 7}
PRF_LAYOUT = {"reporter_numeric": 1, "partner_numeric": 4, "year": 2, "product": 3, "tariff": 9}


def iter_archive_entries(archive_path: str | Path) -> Iterator[Tuple[str, bytes]]:
    """
    Yields (name, content) for every CSV file inside every inner archive.

    Non-CSV entries are skipped with a debug message.
    """
    archive_path = Path(archive_path)
    logger.info(f"Opening bulk archive: {archive_path}")

    with zipfile.ZipFile(archive_path) as outer:
        inner_names = [info.filename for info in outer.infolist() if not info.is_dir()]
        logger.debug(f"Found {len(inner_names)} entries in {archive_path.name}")

        for inner_name in tqdm(inner_names, desc=f"Reading {archive_path.name}"):
            with zipfile.ZipFile(io.BytesIO(outer.read(inner_name))) as inner:
                for entry in inner.infolist():
                    if entry.is_dir():
                        continue
                    if not entry.filename.lower().endswith(".csv"):
                        logger.debug(f"Skipping non-delimited file '{inner_name}/{entry.filename}'")
                        continue
                    yield f"{inner_name}/{entry.filename}", inner.read(entry)


def _read_delimited(content: bytes, delimiter: str, header: bool) -> pl.DataFrame:
    """Reads one delimited file as all-text columns, trimmed, with empty values as null."""
    if not content.strip():
        return pl.DataFrame()

    raw = pl.read_csv(
        io.BytesIO(content),
        has_header=header,
        separator=delimiter,
        infer_schema=False,
        truncate_ragged_lines=True,
        encoding="utf8-lossy",
    )
    stripped = [pl.col(c).str.strip_chars() for c in raw.columns]
    return raw.with_columns(stripped).with_columns(
        [pl.when(pl.col(c) == "").then(None).otherwise(pl.col(c)).alias(c) for c in raw.columns]
    )


def _narrowest_row(content: bytes, delimiter: str, header: bool) -> Optional[int]:
    """
    Fewest fields on any data line, counted on the raw text.

    ``read_csv`` pads short lines with nulls, so the width of the parsed frame
    cannot reveal them.
    """
    lines = pl.Series("line", content.decode("utf-8", errors="replace").splitlines(), dtype=pl.Utf8)
    lines = lines.filter(lines.str.strip_chars().str.len_chars() > 0)
    if header:
        lines = lines.slice(1)
    if lines.is_empty():
        return None
    return int((lines.str.count_matches(delimiter, literal=True) + 1).min())


def iter_archive_rows(
    archive_path: str | Path, delimiter: str = ",", header: bool = True
) -> Iterator[List[str]]:
    """
    Yields every data row of every CSV file in the archive as a list of trimmed strings.

    Args:
        archive_path: Path to the bulk (zip of zips) archive.
        delimiter: Field delimiter of the inner files.
        header: True if the inner files start with a header row to skip.
    """
    for _, content in iter_archive_entries(archive_path):
        frame = _read_delimited(content, delimiter, header)
        for row in frame.iter_rows():
            yield ["" if value is None else value for value in row]


def _apply_layout(
    frame: pl.DataFrame,
    layout: Dict[str, int],
    schema: Dict[str, pl.DataType],
    source: str,
    narrowest: Optional[int] = None,
) -> pl.DataFrame:
    """Picks columns by position and casts them to the target schema."""
    if frame.width == 0:
        return pl.DataFrame(schema=schema)

    needed = max(layout.values()) + 1
    if frame.width < needed:
        raise ValueError(
            f"Malformed rows in '{source}': expected at least {needed} columns, found {frame.width}"
        )
    if narrowest is not None and narrowest < needed:
        raise ValueError(
            f"Malformed rows in '{source}': expected at least {needed} columns, found a row with {narrowest}"
        )

    picked = pl.DataFrame([frame.to_series(index).alias(name) for name, index in layout.items()])
    try:
        return picked.select(
            [pl.col(name).cast(dtype, strict=True) for name, dtype in schema.items()]
        )
    except (pl.exceptions.InvalidOperationError, pl.exceptions.ComputeError) as e:
        logger.error(f"❌ Failed to parse tariff rows in '{source}': {e}")
        raise ValueError(f"Malformed rows in '{source}': {e}") from e


def read_archive_frame(
    archive_path: str | Path,
    layout: Dict[str, int],
    schema: Dict[str, pl.DataType],
    delimiter: str = ",",
    header: bool = True,
) -> pl.DataFrame:
    """
    Loads a bulk archive into one typed DataFrame.

    Args:
        archive_path: Path to the bulk (zip of zips) archive.
        layout: Output column name -> zero-based column position in the CSV files.
        schema: Output column name -> polars dtype.
        delimiter: Field delimiter of the inner files.
        header: True if the inner files start with a header row.

    Returns:
        pl.DataFrame with ``schema``. Raises ValueError on a malformed value.
    """
    frames = []
    for name, content in iter_archive_entries(archive_path):
        frame = _read_delimited(content, delimiter, header)
        narrowest = _narrowest_row(content, delimiter, header)
        frames.append(_apply_layout(frame, layout, schema, name, narrowest))

    if not frames:
        logger.warning(f"No delimited files found in {archive_path}")
        return pl.DataFrame(schema=schema)

    combined = pl.concat(frames, how="vertical")
    logger.info(f"✅ Loaded {combined.height} rows from {len(frames)} files in {archive_path}")
    return combined


def load_mfn_archive(archive_path: str | Path, delimiter: str = ",", header: bool = True) -> pl.DataFrame:
    """Loads an MFN bulk archive: reporter_numeric, year, product, tariff."""
    return read_archive_frame(archive_path, MFN_LAYOUT, MFN_SCHEMA, delimiter, header)


def load_prf_archive(archive_path: str | Path, delimiter: str = ",", header: bool = True) -> pl.DataFrame:
    """Loads a PRF bulk archive: reporter_numeric, partner_numeric, year, product, tariff."""
    return read_archive_frame(archive_path, PRF_LAYOUT, PRF_SCHEMA, delimiter, header)
