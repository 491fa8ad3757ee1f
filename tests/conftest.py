import io
import zipfile
from pathlib import Path

import pytest

MFN_HEADER = [
    "NomenCode", "Reporter_ISO_N", "Year", "ProductCode", "Sum_Of_Rates",
    "Min_Rate", "Max_Rate", "SimpleAverage",
]
PRF_HEADER = [
    "NomenCode", "Reporter_ISO_N", "Year", "ProductCode", "Partner", "Sum_Of_Rates",
    "Min_Rate", "Max_Rate", "TotalNoOfLines", "SimpleAverage",
]


def mfn_row(reporter, year, product, tariff):
    return ["H0", reporter, str(year), product, "", "", "", str(tariff)]


def prf_row(reporter, partner, year, product, tariff):
    return ["H0", reporter, str(year), product, partner, "", "", "", "", str(tariff)]


def build_bulk_archive(path: Path, files, extra_entries=None) -> Path:
    """
    Writes a zip of zips: one inner archive per item of ``files``.

    Args:
        path: Destination of the outer archive.
        files: List of (csv_name, header, rows) tuples.
        extra_entries: Additional non-CSV entries added to every inner archive.
    """
    extra_entries = extra_entries or {"[Content_Types].xml": "<Types/>"}
    with zipfile.ZipFile(path, "w") as outer:
        for i, (csv_name, header, rows) in enumerate(files):
            lines = [",".join(header)] + [",".join(row) for row in rows]
            inner_buffer = io.BytesIO()
            with zipfile.ZipFile(inner_buffer, "w") as inner:
                for name, content in extra_entries.items():
                    inner.writestr(name, content)
                inner.writestr(csv_name, "\r\n".join(lines) + "\r\n")
            outer.writestr(f"Inner_{i}.zip", inner_buffer.getvalue())
    return path


def write_concordance(path: Path, rows) -> Path:
    lines = ["numeric3|alpha3|region"] + ["|".join(row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def bulk_archive_factory(tmp_path):
    def _factory(name, files, extra_entries=None):
        return build_bulk_archive(tmp_path / name, files, extra_entries)

    return _factory


@pytest.fixture
def concordance_factory(tmp_path):
    def _factory(rows, name="regions.txt"):
        return write_concordance(tmp_path / name, rows)

    return _factory
