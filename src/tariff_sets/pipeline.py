"""
Resolves bilateral tariff sets (PRF where available, MFN otherwise) for a list
of (minimum, target) year windows and writes one file per window.
"""

import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import polars as pl
from tqdm.auto import tqdm

from tariff_sets.etl.archive_reader import load_mfn_archive, load_prf_archive
from tariff_sets.etl.code_resolver import resolve_mfn, resolve_prf
from tariff_sets.etl.concordance import load_concordance
from tariff_sets.etl.tariff_merger import merge
from tariff_sets.etl.writer import write_delimited
from tariff_sets.etl.year_window import select_mfn, select_prf
from tariff_sets.records import BILATERAL, BilateralTariffRecord, frame_to_records, records_to_frame
from tariff_sets.utils.filters import region_subset
from tariff_sets.utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

FrameLike = Union[pl.DataFrame, pl.LazyFrame]
RowPredicate = Union[pl.Expr, Callable[[BilateralTariffRecord], bool]]

OUTPUT_FILE_TEMPLATE = "prf_union_mfn_target_{target}.txt"

DEFAULT_DATA_DIR = "data"
DEFAULT_TARGETS = [(1995, 2011)]


def parse_year_pairs(text: str) -> List[Tuple[int, int]]:
    """Parses "1995:2011,2000:2015" into [(1995, 2011), (2000, 2015)]."""
    pairs = []
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            minimum, target = item.split(":")
            pairs.append((int(minimum), int(target)))
        except ValueError:
            raise ValueError(f"Invalid year pair '{item}', expected 'minimum:target'") from None
    return pairs


def get_config() -> Dict[str, Any]:
    """Returns the run configuration. Every entry can be overridden by an environment variable."""
    data_dir = Path(os.environ.get("TARIFF_SETS_DATA_DIR", DEFAULT_DATA_DIR))

    targets_env = os.environ.get("TARIFF_SETS_TARGETS")
    regions_env = os.environ.get("TARIFF_SETS_REGIONS")
    regions = [r.strip() for r in regions_env.split(",") if r.strip()] if regions_env else None

    return {
        "mfn_archive": Path(
            os.environ.get("TARIFF_SETS_MFN_ARCHIVE", data_dir / "downloads" / "MFN_Applied.zip")
        ),
        "prf_archive": Path(
            os.environ.get("TARIFF_SETS_PRF_ARCHIVE", data_dir / "downloads" / "PRF_Applied.zip")
        ),
        "concordance_path": Path(
            os.environ.get("TARIFF_SETS_CONCORDANCE", data_dir / "regions.txt")
        ),
        "output_dir": Path(os.environ.get("TARIFF_SETS_OUTPUT_DIR", data_dir / "tariff_sets")),
        "targets": parse_year_pairs(targets_env) if targets_env else list(DEFAULT_TARGETS),
        "regions": regions,
        "fail_fast": os.environ.get("TARIFF_SETS_FAIL_FAST", "1").lower() not in ("0", "false", "no"),
    }


def resolve_year_pair(
    mfn: FrameLike, prf: FrameLike, concordance: FrameLike, minimum: int, target: int
) -> pl.LazyFrame:
    """
    Resolves one year window: latest-year selection, code resolution, PRF/MFN merge.

    Args:
        mfn: MFN rows (reporter_numeric, year, product, tariff).
        prf: PRF rows (reporter_numeric, partner_numeric, year, product, tariff).
        concordance: Deduplicated concordance (numeric3, alpha3, region).
        minimum: Oldest acceptable tariff year.
        target: Target tariff year.

    Returns:
        LazyFrame of bilateral tariffs.
    """
    mfn_resolved = resolve_mfn(select_mfn(mfn, minimum, target), concordance)
    prf_resolved = resolve_prf(select_prf(prf, minimum, target), concordance)
    return merge(concordance, mfn_resolved, prf_resolved)


def apply_predicate(frame: FrameLike, predicate: Optional[RowPredicate]) -> pl.LazyFrame:
    """Filters bilateral rows with a polars expression or a callable over BilateralTariffRecord."""
    if predicate is None:
        return frame.lazy()
    if isinstance(predicate, pl.Expr):
        return frame.lazy().filter(predicate)
    if callable(predicate):
        kept = [r for r in frame_to_records(frame, BILATERAL) if predicate(r)]
        return records_to_frame(kept, BILATERAL).lazy()
    raise TypeError(f"Unsupported predicate type: {type(predicate).__name__}")


def _validate_targets(targets: Optional[Iterable[Sequence[int]]]) -> List[Tuple[int, int]]:
    if targets is None:
        raise ValueError("targets is required")
    validated = []
    for pair in targets:
        if len(pair) != 2:
            raise ValueError(f"Invalid year pair {pair!r}, expected (minimum, target)")
        minimum, target = int(pair[0]), int(pair[1])
        if minimum > target:
            raise ValueError(f"Invalid year pair {pair!r}: minimum is after target")
        validated.append((minimum, target))
    if not validated:
        raise ValueError("targets must contain at least one (minimum, target) pair")
    return validated


def run_tariff_sets(
    mfn_archive: str | Path,
    prf_archive: str | Path,
    concordance_path: str | Path,
    output_dir: str | Path,
    targets: Iterable[Sequence[int]],
    predicate: Optional[RowPredicate] = None,
    fail_fast: bool = True,
    append: bool = False,
) -> List[Path]:
    """
    Builds and writes one PRF-union-MFN tariff file per (minimum, target) pair.

    Args:
        mfn_archive: Bulk archive of MFN applied tariffs.
        prf_archive: Bulk archive of preferential applied tariffs.
        concordance_path: Pipe-delimited concordance (numeric3|alpha3|region, with header).
        output_dir: Directory receiving prf_union_mfn_target_<target>.txt files.
        targets: (minimum, target) year pairs, processed in order.
        predicate: Optional row filter applied before writing.
        fail_fast: Stop at the first failing pair (True) or log it and continue.
        append: Append to existing output files instead of overwriting them.

    Returns:
        Paths of the files written.
    """
    for name, value in (
        ("mfn_archive", mfn_archive),
        ("prf_archive", prf_archive),
        ("concordance_path", concordance_path),
        ("output_dir", output_dir),
    ):
        if value is None:
            raise ValueError(f"{name} is required")
    year_pairs = _validate_targets(targets)
    output_dir = Path(output_dir)

    logger.info("--- Constructing MFN, PRF and concordance resource sets ---")
    mfn = load_mfn_archive(mfn_archive)
    prf = load_prf_archive(prf_archive)
    concordance = load_concordance(concordance_path)
    logger.info("✅ Completed construction of resource sets.")

    written = []
    failures = []
    for minimum, target in tqdm(year_pairs, desc="Resolving year pairs"):
        output_path = output_dir / OUTPUT_FILE_TEMPLATE.format(target=target)
        logger.info(f"Resolving tariffs for target {target} (minimum {minimum})")
        try:
            resolved = apply_predicate(
                resolve_year_pair(mfn, prf, concordance, minimum, target), predicate
            )
            written.append(write_delimited(resolved, output_path, append=append))
        except Exception as e:
            logger.error(f"❌ Failed to resolve year pair ({minimum}, {target}): {e}", exc_info=True)
            if fail_fast:
                raise
            failures.append((minimum, target))

    if failures:
        logger.warning(f"Finished with {len(failures)} failed year pairs: {failures}")
    else:
        logger.info(f"✅ Wrote {len(written)} tariff sets to {output_dir}")
    return written


def main():
    """Runs the pipeline from environment configuration."""
    setup_logging()
    logger.info("--- Starting Tariff Sets Pipeline ---")

    config = get_config()
    logger.info(f"Configuration: {config}")

    predicate = region_subset(config["regions"]) if config["regions"] else None

    try:
        run_tariff_sets(
            mfn_archive=config["mfn_archive"],
            prf_archive=config["prf_archive"],
            concordance_path=config["concordance_path"],
            output_dir=config["output_dir"],
            targets=config["targets"],
            predicate=predicate,
            fail_fast=config["fail_fast"],
        )
    except Exception as e:
        logger.critical(f"Tariff sets pipeline failed: {e}", exc_info=True)
        sys.exit(1)

    logger.info("--- Pipeline Execution Finished Successfully ---")
    sys.exit(0)


if __name__ == "__main__":
    main()
