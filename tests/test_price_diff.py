"""Unit tests for the price diff engine."""

import copy

import pytest

from cenniki.core.exceptions import CatalogFormatError
from cenniki.services.catalog_document import CatalogDocument, LayoutType
from cenniki.services.price_diff import (
    diff_catalogs,
    diff_documents,
    percent_change,
    round_percent,
    summarize,
)
from tests.catalogs import category_catalog, element_catalog, flat_catalog, row_catalog

# ============================================================================
# Percent arithmetic
# ============================================================================


class TestPercentChange:
    """Tests for percent change and rounding."""

    def test_increase(self) -> None:
        assert percent_change(100, 110) == 10.0

    def test_decrease(self) -> None:
        assert percent_change(500, 450) == -10.0

    def test_rounds_to_one_decimal(self) -> None:
        assert percent_change(1200, 1300) == 8.3

    def test_from_zero(self) -> None:
        assert percent_change(0, 50) == 100.0
        assert percent_change(0, 0) == 0.0

    def test_half_rounds_away_from_zero(self) -> None:
        assert round_percent(0.25) == 0.3
        assert round_percent(-0.25) == -0.3
        assert round_percent(2.45) == 2.5


# ============================================================================
# Category-grouped layout
# ============================================================================


class TestDiffCategories:
    """Tests for category-grouped catalogs."""

    def test_single_price_group_change(self) -> None:
        old = category_catalog()
        new = copy.deepcopy(old)
        new["categories"]["stoły"]["TRIM"]["prices"]["Grupa I"] = 110

        result = diff_documents(LayoutType.CATEGORY_GROUPED, old, new)

        assert len(result.changes) == 1
        change = result.changes[0]
        assert change.id == "stoły-TRIM-Grupa I"
        assert change.category == "stoły"
        assert change.product == "TRIM"
        assert change.price_group == "Grupa I"
        assert change.old_price == 100
        assert change.new_price == 110
        assert change.percent_change == 10.0
        assert result.summary.total_changes == 1
        assert result.summary.price_increase == 1
        assert result.summary.avg_change_percent == 10.0

    def test_size_price_change(self) -> None:
        old = category_catalog()
        new = copy.deepcopy(old)
        new["categories"]["stoły"]["TRIM"]["sizes"][0]["prices"] = 1100

        result = diff_documents(LayoutType.CATEGORY_GROUPED, old, new)

        assert [c.id for c in result.changes] == ["stoły-TRIM-80x120"]
        assert result.changes[0].dimension == "80x120"
        assert result.changes[0].price_group is None

    def test_average_of_mixed_changes(self) -> None:
        old = category_catalog()
        new = copy.deepcopy(old)
        new["categories"]["stoły"]["TRIM"]["prices"]["Grupa I"] = 110
        new["categories"]["stoły"]["TRIM"]["prices"]["Grupa II"] = 190

        result = diff_documents(LayoutType.CATEGORY_GROUPED, old, new)

        assert result.summary.total_changes == 2
        assert result.summary.price_increase == 1
        assert result.summary.price_decrease == 1
        assert result.summary.avg_change_percent == 2.5

    def test_metadata_changes_are_ignored(self) -> None:
        old = category_catalog()
        new = copy.deepcopy(old)
        new["categories"]["stoły"]["TRIM"]["image"] = "/images/trim-new.jpg"
        new["title"] = "Cennik Bomar 2025"

        result = diff_documents(LayoutType.CATEGORY_GROUPED, old, new)

        assert result.changes == []
        assert result.summary.total_changes == 0

    def test_added_and_removed_products_are_not_reported(self) -> None:
        old = category_catalog()
        new = copy.deepcopy(old)
        new["categories"]["stoły"]["NOWY"] = {"prices": {"Grupa I": 999}}
        del new["categories"]["stoły"]["ARES"]

        result = diff_documents(LayoutType.CATEGORY_GROUPED, old, new)

        assert result.changes == []

    def test_numeric_strings_are_compared_as_numbers(self) -> None:
        old = category_catalog()
        old["categories"]["stoły"]["ARES"]["prices"]["Grupa I"] = "1 200"
        new = copy.deepcopy(old)
        new["categories"]["stoły"]["ARES"]["prices"]["Grupa I"] = 1300

        result = diff_documents(LayoutType.CATEGORY_GROUPED, old, new)

        assert result.changes[0].old_price == 1200
        assert result.changes[0].percent_change == 8.3

    def test_non_numeric_prices_are_skipped(self) -> None:
        old = category_catalog()
        new = copy.deepcopy(old)
        new["categories"]["stoły"]["ARES"]["prices"]["Grupa I"] = "na zapytanie"

        result = diff_documents(LayoutType.CATEGORY_GROUPED, old, new)

        assert result.changes == []

    def test_same_input_gives_same_ids(self) -> None:
        old = category_catalog()
        new = copy.deepcopy(old)
        new["categories"]["krzesła"]["LUNA"]["prices"]["Grupa II"] = 520

        first = diff_documents(LayoutType.CATEGORY_GROUPED, old, new)
        second = diff_documents(LayoutType.CATEGORY_GROUPED, old, new)

        assert [c.id for c in first.changes] == [c.id for c in second.changes] == ["krzesła-LUNA-Grupa II"]


# ============================================================================
# Product-list layouts
# ============================================================================


class TestDiffProductLists:
    """Tests for element-grouped and flat product lists."""

    def test_element_price_group_change(self) -> None:
        old = element_catalog()
        new = copy.deepcopy(old)
        new["products"][0]["elements"][0]["prices"]["A"] = 1050

        result = diff_documents(LayoutType.ELEMENT_GROUPED, old, new)

        assert len(result.changes) == 1
        change = result.changes[0]
        assert change.id == "Sofa Largo-2F-A"
        assert change.element == "2F"
        assert change.price_group == "2F (A)"
        assert change.percent_change == 5.0

    def test_element_scalar_price_change(self) -> None:
        old = element_catalog()
        new = copy.deepcopy(old)
        new["products"][0]["elements"][2]["price"] = 330

        result = diff_documents(LayoutType.ELEMENT_GROUPED, old, new)

        assert [c.id for c in result.changes] == ["Sofa Largo-Pufa"]
        assert result.changes[0].price_group == "Pufa"
        assert result.changes[0].percent_change == 10.0

    def test_elements_stored_as_mapping(self) -> None:
        old = {"products": [{"name": "Sofa", "elements": {"2F": {"prices": {"A": 1000}}}}]}
        new = {"products": [{"name": "Sofa", "elements": {"2F": {"prices": {"A": 900}}}}]}

        result = diff_documents(LayoutType.ELEMENT_GROUPED, old, new)

        assert [c.id for c in result.changes] == ["Sofa-2F-A"]
        assert result.changes[0].percent_change == -10.0

    def test_reordered_elements_match_by_code(self) -> None:
        old = element_catalog()
        new = copy.deepcopy(old)
        new["products"][0]["elements"].reverse()

        result = diff_documents(LayoutType.ELEMENT_GROUPED, old, new)

        assert result.changes == []

    def test_flat_price_change(self) -> None:
        old = flat_catalog()
        new = copy.deepcopy(old)
        new["products"][0]["prices"]["A"] = 450

        result = diff_documents(LayoutType.FLAT_LIST, old, new)

        assert [c.id for c in result.changes] == ["Krzesło K1-A"]
        assert result.changes[0].element is None
        assert result.changes[0].percent_change == -10.0


# ============================================================================
# Row tables
# ============================================================================


class TestDiffRows:
    """Tests for row-table catalogs."""

    def test_row_price_change(self) -> None:
        old = row_catalog()
        new = copy.deepcopy(old)
        new["Arkusz1"][0]["grupa I"] = 450

        result = diff_documents(LayoutType.ROW_TABLE, old, new)

        assert len(result.changes) == 1
        change = result.changes[0]
        assert change.id == "M1-grupa I"
        assert change.product == "M1"
        assert change.price_group == "grupa I"
        assert change.percent_change == -10.0

    def test_only_enumerated_price_groups_are_compared(self) -> None:
        old = row_catalog()
        new = copy.deepcopy(old)
        new["Arkusz1"][0]["grupa I"] = 550
        new["Arkusz1"][0]["OPIS"] = "narożnik XL"

        result = diff_documents(LayoutType.ROW_TABLE, old, new, price_groups=["grupa II"])

        assert result.changes == []

    def test_rows_match_by_model_not_position(self) -> None:
        old = row_catalog()
        new = copy.deepcopy(old)
        new["Arkusz1"].reverse()
        new["Arkusz1"][0]["grupa II"] = 880

        result = diff_documents(LayoutType.ROW_TABLE, old, new)

        assert [c.id for c in result.changes] == ["M2-grupa II"]


# ============================================================================
# Summary and decoding
# ============================================================================


class TestSummaryAndDecoding:
    """Tests for summaries and document decoding."""

    def test_empty_summary(self) -> None:
        summary = summarize([])
        assert summary.total_changes == 0
        assert summary.avg_change_percent == 0

    def test_wrong_root_type_is_a_format_error(self) -> None:
        with pytest.raises(CatalogFormatError):
            CatalogDocument.decode(LayoutType.CATEGORY_GROUPED, {"categories": []})

    def test_missing_root_reads_as_empty(self) -> None:
        old = CatalogDocument.decode(LayoutType.ROW_TABLE, {})
        new = CatalogDocument.decode(LayoutType.ROW_TABLE, row_catalog())

        assert diff_catalogs(old, new).changes == []

    def test_camel_case_serialization(self) -> None:
        old = row_catalog()
        new = copy.deepcopy(old)
        new["Arkusz1"][1]["grupa I"] = 770

        payload = diff_documents(LayoutType.ROW_TABLE, old, new).model_dump(by_alias=True)

        assert payload["changes"][0]["oldPrice"] == 700
        assert payload["changes"][0]["priceGroup"] == "grupa I"
        assert payload["summary"]["avgChangePercent"] == 10.0
