"""Unit tests for spreadsheet import."""

from io import BytesIO

import pandas as pd
import pytest

from cenniki.core.exceptions import FileImportError
from cenniki.services.excel_import import MAX_FILE_SIZE, read_row_table


def _xlsx(df: pd.DataFrame) -> bytes:
    buffer = BytesIO()
    df.to_excel(buffer, index=False)
    return buffer.getvalue()


# ============================================================================
# Parsing
# ============================================================================


class TestReadRowTable:
    """Tests for reading spreadsheets into row tables."""

    def test_csv(self) -> None:
        content = b"MODEL,grupa I,grupa II\nM1,500,600\nM2,700,800\n"

        result = read_row_table(content, "cennik.csv")

        assert result == {
            "Arkusz1": [
                {"MODEL": "M1", "grupa I": 500, "grupa II": 600},
                {"MODEL": "M2", "grupa I": 700, "grupa II": 800},
            ]
        }

    def test_xlsx(self) -> None:
        df = pd.DataFrame({"MODEL": ["M1", "M2"], "grupa I": [500.0, 712.5]})

        result = read_row_table(_xlsx(df), "cennik.xlsx")

        assert result["Arkusz1"] == [
            {"MODEL": "M1", "grupa I": 500},
            {"MODEL": "M2", "grupa I": 712.5},
        ]

    def test_model_column_is_case_insensitive_and_stripped(self) -> None:
        content = b" model ,grupa I \nM1,500\n"

        result = read_row_table(content, "cennik.csv")

        assert result["Arkusz1"] == [{"MODEL": "M1", "grupa I": 500}]

    def test_numeric_model_becomes_text(self) -> None:
        content = b"MODEL,grupa I\n101,500\n"

        assert read_row_table(content, "cennik.csv")["Arkusz1"][0]["MODEL"] == "101"

    def test_blank_rows_and_empty_cells(self) -> None:
        content = b"MODEL,grupa I,grupa II\nM1,500,\n,,\nM2,,800\n"

        result = read_row_table(content, "cennik.csv")

        assert result["Arkusz1"] == [
            {"MODEL": "M1", "grupa I": 500},
            {"MODEL": "M2", "grupa II": 800},
        ]

    def test_latin1_fallback(self) -> None:
        content = "MODEL,OPIS\nM1,narożnik\n".encode("utf-8")
        latin = "MODEL,OPIS\nM1,café\n".encode("latin-1")

        assert read_row_table(content, "a.csv")["Arkusz1"][0]["OPIS"] == "narożnik"
        assert read_row_table(latin, "b.csv")["Arkusz1"][0]["OPIS"] == "café"


# ============================================================================
# Errors
# ============================================================================


class TestReadRowTableErrors:
    """Tests for rejected uploads."""

    def test_missing_model_column(self) -> None:
        with pytest.raises(FileImportError, match="MODEL"):
            read_row_table(b"NAZWA,grupa I\nM1,500\n", "cennik.csv")

    def test_unsupported_extension(self) -> None:
        with pytest.raises(FileImportError):
            read_row_table(b"MODEL\nM1\n", "cennik.txt")

    def test_file_too_large(self) -> None:
        with pytest.raises(FileImportError) as exc_info:
            read_row_table(b"x" * (MAX_FILE_SIZE + 1), "cennik.csv")

        assert exc_info.value.status_code == 413

    def test_too_many_rows(self) -> None:
        content = ("MODEL,grupa I\n" + "".join(f"M{i},1\n" for i in range(10001))).encode("utf-8")

        with pytest.raises(FileImportError, match="10,000"):
            read_row_table(content, "cennik.csv")

    def test_unreadable_excel(self) -> None:
        with pytest.raises(FileImportError):
            read_row_table(b"not an excel file", "cennik.xlsx")
