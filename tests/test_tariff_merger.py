import polars as pl
import pytest

from tariff_sets.etl.code_resolver import resolve_mfn, resolve_prf
from tariff_sets.etl.tariff_merger import expand_mfn, merge, union_preferring
from tariff_sets.records import (
    BILATERAL,
    BILATERAL_SCHEMA,
    CONCORDANCE_SCHEMA,
    BilateralTariffRecord,
    ConcordanceRecord,
    MfnTariffRecord,
    PrfTariffRecord,
    concordance_to_frame,
    frame_to_records,
    records_to_frame,
)


# --- Fixtures ---
@pytest.fixture(scope="module")
def concordance() -> pl.DataFrame:
    return concordance_to_frame(
        [
            ConcordanceRecord("840", "USA", "NA"),
            ConcordanceRecord("124", "CAN", "NA"),
            ConcordanceRecord("484", "MEX", "NA"),
        ]
    )


@pytest.fixture(scope="module")
def mfn_frame() -> pl.DataFrame:
    return records_to_frame(
        [
            MfnTariffRecord(reporter_numeric="840", year=2000, product="0101", tariff=5.0),
            MfnTariffRecord(reporter_numeric="124", year=2000, product="0101", tariff=3.0),
        ]
    )


@pytest.fixture(scope="module")
def prf_frame() -> pl.DataFrame:
    return records_to_frame(
        [
            PrfTariffRecord(
                reporter_numeric="840", partner_numeric="124", year=2000, product="0101", tariff=0.0
            )
        ]
    )


def run_merge(concordance, mfn, prf) -> pl.DataFrame:
    return merge(concordance, resolve_mfn(mfn, concordance), resolve_prf(prf, concordance)).collect()


# --- Helper Validation Function ---
def assert_row_exists(df: pl.DataFrame, filter_criteria: dict, expected_values: dict):
    """
    Asserts exactly one row matches ``filter_criteria`` and that it carries ``expected_values``.
    """
    filter_expressions = [pl.col(col) == val for col, val in filter_criteria.items()]
    matches = df.filter(pl.all_horizontal(filter_expressions))
    assert matches.height == 1, (
        f"Expected exactly 1 row for criteria {filter_criteria}, but found {matches.height}."
    )
    row = matches.row(0, named=True)
    for col, expected_val in expected_values.items():
        assert row[col] == expected_val, (
            f"Column '{col}' mismatch: Expected {expected_val}, got {row[col]} for criteria {filter_criteria}"
        )


# --- MFN expansion ---
def test_mfn_expansion_excludes_self_pairs(concordance, mfn_frame):
    expanded = expand_mfn(concordance, resolve_mfn(mfn_frame, concordance)).collect()
    pairs = set(zip(expanded["reporter_alpha3"], expanded["partner_alpha3"]))
    assert pairs == {("USA", "CAN"), ("USA", "MEX"), ("CAN", "USA"), ("CAN", "MEX")}
    assert set(expanded["type"]) == {"MFN"}


def test_self_pair_never_emitted(concordance, mfn_frame, prf_frame):
    merged = run_merge(concordance, mfn_frame, prf_frame)
    assert merged.filter(pl.col("reporter_alpha3") == pl.col("partner_alpha3")).height == 0
    assert merged.filter(
        (pl.col("reporter_alpha3") == "USA") & (pl.col("partner_alpha3") == "USA")
    ).is_empty()


# --- PRF precedence ---
def test_prf_overrides_mfn_for_same_key(concordance, mfn_frame, prf_frame):
    merged = run_merge(concordance, mfn_frame, prf_frame)
    assert_row_exists(
        merged,
        {"reporter_alpha3": "USA", "partner_alpha3": "CAN", "product": "0101"},
        {"type": "PRF", "tariff": 0.0},
    )
    assert_row_exists(
        merged,
        {"reporter_alpha3": "USA", "partner_alpha3": "MEX", "product": "0101"},
        {"type": "MFN", "tariff": 5.0},
    )
    assert merged.height == 4


def test_prf_override_is_case_insensitive():
    prf = records_to_frame(
        [
            BilateralTariffRecord(
                reporter_alpha3="usa", partner_alpha3="can", reporter_region="NA",
                partner_region="NA", type="PRF", year=2000, product="ab01", tariff=0.0,
            )
        ]
    )
    mfn = records_to_frame(
        [
            BilateralTariffRecord(
                reporter_alpha3="USA", partner_alpha3="CAN", reporter_region="NA",
                partner_region="NA", type="MFN", year=2000, product="AB01", tariff=5.0,
            )
        ]
    )
    unioned = frame_to_records(union_preferring(prf, mfn), BILATERAL)
    assert len(unioned) == 1
    assert unioned[0].type == "PRF"


def test_prf_for_other_product_does_not_shadow_mfn(concordance, mfn_frame):
    prf = records_to_frame(
        [
            PrfTariffRecord(
                reporter_numeric="840", partner_numeric="124", year=2000, product="0202", tariff=0.0
            )
        ]
    )
    merged = run_merge(concordance, mfn_frame, prf)
    usa_can = merged.filter((pl.col("reporter_alpha3") == "USA") & (pl.col("partner_alpha3") == "CAN"))
    assert sorted(zip(usa_can["product"], usa_can["type"])) == [("0101", "MFN"), ("0202", "PRF")]


# --- Unresolved drop ---
def test_unresolved_codes_are_dropped(concordance, mfn_frame, prf_frame):
    baseline = run_merge(concordance, mfn_frame, prf_frame)

    mfn_with_unknown = pl.concat(
        [
            mfn_frame,
            records_to_frame(
                [MfnTariffRecord(reporter_numeric="999", year=2000, product="0101", tariff=1.0)]
            ),
        ]
    )
    prf_with_unknown = pl.concat(
        [
            prf_frame,
            records_to_frame(
                [
                    PrfTariffRecord(
                        reporter_numeric="840", partner_numeric="999", year=2000, product="0101", tariff=0.0
                    ),
                    PrfTariffRecord(
                        reporter_numeric="999", partner_numeric="124", year=2000, product="0101", tariff=0.0
                    ),
                ]
            ),
        ]
    )
    merged = run_merge(concordance, mfn_with_unknown, prf_with_unknown)
    assert merged.height == baseline.height
    for column in ("reporter_alpha3", "partner_alpha3", "reporter_region", "partner_region"):
        assert merged.get_column(column).null_count() == 0


def test_concordance_entry_with_empty_region_is_not_a_partner(mfn_frame):
    concordance = pl.DataFrame(
        {"numeric3": ["840", "124"], "alpha3": ["USA", "CAN"], "region": ["NA", ""]},
        schema=CONCORDANCE_SCHEMA,
    )
    merged = run_merge(concordance, mfn_frame, records_to_frame([], "PRF"))
    assert merged.height == 0


# --- Union semantics ---
def test_union_is_idempotent(concordance, mfn_frame, prf_frame):
    merged = run_merge(concordance, mfn_frame, prf_frame)
    again = union_preferring(merged, pl.concat([merged, merged])).collect()
    assert set(frame_to_records(again, BILATERAL)) == set(frame_to_records(merged, BILATERAL))
    assert again.height == merged.height


def test_duplicates_within_prf_collapse(concordance, mfn_frame, prf_frame):
    merged = run_merge(concordance, mfn_frame, pl.concat([prf_frame, prf_frame]))
    assert merged.filter(pl.col("type") == "PRF").height == 1


# --- Degenerate inputs ---
def test_empty_concordance_yields_nothing(mfn_frame, prf_frame):
    empty = pl.DataFrame(schema=CONCORDANCE_SCHEMA)
    assert run_merge(empty, mfn_frame, prf_frame).height == 0


def test_empty_prf_yields_full_mfn_expansion(concordance, mfn_frame):
    merged = run_merge(concordance, mfn_frame, records_to_frame([], "PRF"))
    assert merged.height == 4
    assert set(merged["type"]) == {"MFN"}
    assert merged.columns == list(BILATERAL_SCHEMA)
