"""
Typed tariff records and the column schemas used by the frame engine.

The record variants form a closed set: MFN (unilateral), PRF (bilateral,
numeric codes) and bilateral (resolved alpha codes and regions). Each carries
a ``kind`` tag; grouping keys are computed by ``grouping_key`` dispatching on
that tag.

Equality folds strings to lower case. An absent field equals another absent
field and nothing else, so equality stays reflexive and agrees with hashing.
"""

from dataclasses import dataclass, fields
from typing import ClassVar, Dict, Iterable, List, Optional, Tuple, Union

import polars as pl

MFN = "MFN"
PRF = "PRF"
BILATERAL = "BILATERAL"

# --- Frame schemas ---
MFN_SCHEMA = {
    "reporter_numeric": pl.Utf8,
    "year": pl.Int32,
    "product": pl.Utf8,
    "tariff": pl.Float64,
}

PRF_SCHEMA = {
    "reporter_numeric": pl.Utf8,
    "partner_numeric": pl.Utf8,
    "year": pl.Int32,
    "product": pl.Utf8,
    "tariff": pl.Float64,
}

CONCORDANCE_SCHEMA = {
    "numeric3": pl.Utf8,
    "alpha3": pl.Utf8,
    "region": pl.Utf8,
}

BILATERAL_SCHEMA = {
    "reporter_alpha3": pl.Utf8,
    "partner_alpha3": pl.Utf8,
    "reporter_region": pl.Utf8,
    "partner_region": pl.Utf8,
    "type": pl.Utf8,
    "year": pl.Int32,
    "product": pl.Utf8,
    "tariff": pl.Float64,
}

# Columns that identify "the same tariff series" across years
GROUPING_KEY_COLUMNS = {
    MFN: ["reporter_numeric"],
    PRF: ["reporter_numeric", "partner_numeric"],
    BILATERAL: ["reporter_alpha3", "partner_alpha3"],
}

# Key used by the PRF/MFN union; a PRF row shadows an MFN row with the same key
DEDUP_KEY_COLUMNS = ["reporter_alpha3", "partner_alpha3", "product"]


def _fold(value):
    return value.lower() if isinstance(value, str) else value


def _text(value) -> str:
    return "" if value is None else str(value)


# Integral tariffs at or above this magnitude keep their float text form
MAX_INTEGRAL_TARIFF = 1e15


def tariff_text(column: str = "tariff") -> pl.Expr:
    """Tariff as text: integral values without a fractional part (5.0 -> "5"), null as ""."""
    tariff = pl.col(column)
    integral = tariff.is_finite() & (tariff.abs() < MAX_INTEGRAL_TARIFF) & (tariff == tariff.floor())
    return (
        pl.when(integral)
        .then(tariff.cast(pl.Int64, strict=False).cast(pl.Utf8))
        .otherwise(tariff.cast(pl.Utf8))
        .fill_null("")
    )


def format_tariff(value: Optional[float]) -> str:
    """Single-value form of ``tariff_text``, so records and written files agree."""
    if value is None:
        return ""
    series = pl.Series("tariff", [float(value)], dtype=pl.Float64)
    return series.to_frame().select(tariff_text()).item()


@dataclass(frozen=True, eq=False)
class TariffRecord:
    """Fields shared by every tariff record variant."""

    year: Optional[int] = None
    product: Optional[str] = None
    tariff: Optional[float] = None

    kind: ClassVar[Optional[str]] = None

    def _comparable(self) -> tuple:
        return tuple(_fold(getattr(self, f.name)) for f in fields(self))

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._comparable() == other._comparable()

    def __hash__(self):
        return hash((type(self).__name__,) + self._comparable())

    def grouping_key(self) -> Tuple[Optional[str], Optional[str]]:
        return grouping_key(self)

    def to_line(self) -> str:
        return f"{_text(self.year)}|{_text(self.product)}|{format_tariff(self.tariff)}"

    def __str__(self):
        return self.to_line()


@dataclass(frozen=True, eq=False)
class MfnTariffRecord(TariffRecord):
    """Unilateral most-favored-nation rate set by the reporter for all partners."""

    reporter_numeric: Optional[str] = None

    kind: ClassVar[str] = MFN

    def to_line(self) -> str:
        return f"{_text(self.reporter_numeric)}|{super().to_line()}"


@dataclass(frozen=True, eq=False)
class PrfTariffRecord(TariffRecord):
    """Preferential rate set by the reporter for imports from one partner."""

    reporter_numeric: Optional[str] = None
    partner_numeric: Optional[str] = None

    kind: ClassVar[str] = PRF

    def to_line(self) -> str:
        return (
            f"{_text(self.reporter_numeric)}|{_text(self.partner_numeric)}|{super().to_line()}"
        )


@dataclass(frozen=True, eq=False)
class BilateralTariffRecord(TariffRecord):
    """Resolved rate for a reporter/partner pair, tagged with its source ("MFN"/"PRF")."""

    reporter_alpha3: Optional[str] = None
    partner_alpha3: Optional[str] = None
    reporter_region: Optional[str] = None
    partner_region: Optional[str] = None
    type: Optional[str] = None

    kind: ClassVar[str] = BILATERAL

    def dedup_key(self) -> tuple:
        return dedup_key(self)

    def to_line(self) -> str:
        return "|".join(
            [
                _text(self.reporter_alpha3),
                _text(self.partner_alpha3),
                _text(self.reporter_region),
                _text(self.partner_region),
                _text(self.type),
                super().to_line(),
            ]
        )


@dataclass(frozen=True)
class ConcordanceRecord:
    """Maps one numeric country code to its alpha-3 code and region."""

    numeric3: str
    alpha3: str
    region: str

    def to_line(self) -> str:
        return f"{self.numeric3}|{self.alpha3}|{self.region}"


VariantRecord = Union[MfnTariffRecord, PrfTariffRecord, BilateralTariffRecord]

RECORD_TYPES = {
    MFN: MfnTariffRecord,
    PRF: PrfTariffRecord,
    BILATERAL: BilateralTariffRecord,
}

SCHEMAS = {
    MFN: MFN_SCHEMA,
    PRF: PRF_SCHEMA,
    BILATERAL: BILATERAL_SCHEMA,
}

_KEY_FUNCTIONS = {
    MFN: lambda r: (r.reporter_numeric, ""),
    PRF: lambda r: (r.reporter_numeric, r.partner_numeric),
    BILATERAL: lambda r: (r.reporter_alpha3, r.partner_alpha3),
}


def grouping_key(record: VariantRecord) -> Tuple[Optional[str], Optional[str]]:
    """Return the series key of a record: (reporter, "") for MFN, (reporter, partner) otherwise."""
    try:
        key_function = _KEY_FUNCTIONS[record.kind]
    except KeyError:
        raise TypeError(f"No grouping key for record type {type(record).__name__}") from None
    return key_function(record)


def dedup_key(record: BilateralTariffRecord) -> tuple:
    """Case-folded (reporter_alpha3, partner_alpha3, product)."""
    return tuple(_fold(getattr(record, column)) for column in DEDUP_KEY_COLUMNS)


def same_dedup_key(left: BilateralTariffRecord, right: BilateralTariffRecord) -> bool:
    return dedup_key(left) == dedup_key(right)


# --- Frame conversion ---


def records_to_frame(records: Iterable[VariantRecord], kind: Optional[str] = None) -> pl.DataFrame:
    """
    Build a polars DataFrame from records of a single variant.

    Args:
        records: MFN, PRF or bilateral records. Must all share one variant.
        kind: Variant tag; required when ``records`` is empty.

    Returns:
        pl.DataFrame with the variant's schema.
    """
    records = list(records)
    if kind is None:
        if not records:
            raise ValueError("kind is required to build a frame from an empty record list")
        kind = records[0].kind

    record_type = RECORD_TYPES[kind]
    mismatched = [r for r in records if not isinstance(r, record_type)]
    if mismatched:
        raise TypeError(
            f"Expected only {record_type.__name__} records, got {type(mismatched[0]).__name__}"
        )

    schema = SCHEMAS[kind]
    columns: Dict[str, list] = {column: [] for column in schema}
    for record in records:
        for column in schema:
            value = getattr(record, column)
            if column == "tariff" and value is not None:
                value = float(value)
            columns[column].append(value)

    return pl.DataFrame(columns, schema=schema)


def frame_to_records(frame: Union[pl.DataFrame, pl.LazyFrame], kind: str) -> List[VariantRecord]:
    """Materialize a frame into records of the given variant."""
    if isinstance(frame, pl.LazyFrame):
        frame = frame.collect()
    record_type = RECORD_TYPES[kind]
    columns = list(SCHEMAS[kind])
    return [record_type(**row) for row in frame.select(columns).iter_rows(named=True)]


def concordance_to_frame(records: Iterable[ConcordanceRecord]) -> pl.DataFrame:
    records = list(records)
    return pl.DataFrame(
        {
            "numeric3": [r.numeric3 for r in records],
            "alpha3": [r.alpha3 for r in records],
            "region": [r.region for r in records],
        },
        schema=CONCORDANCE_SCHEMA,
    )

