"""Unit tests for the reconciliation engine."""

import copy

from cenniki.schemas.price_change import AtomicChange
from cenniki.services.catalog_document import CatalogDocument, LayoutType
from cenniki.services.change_applier import ApplyPolicy, OutcomeStatus, apply_changes
from cenniki.services.price_diff import diff_documents
from tests.catalogs import category_catalog, element_catalog, flat_catalog, row_catalog


def _doc(layout: LayoutType, data) -> CatalogDocument:
    return CatalogDocument.decode(layout, data)


def _trim_change(old_price=100, new_price=110) -> AtomicChange:
    return AtomicChange(
        id="stoły-TRIM-Grupa I",
        product="TRIM",
        category="stoły",
        price_group="Grupa I",
        old_price=old_price,
        new_price=new_price,
        percent_change=10.0,
    )


# ============================================================================
# Basic application
# ============================================================================


class TestApplyChanges:
    """Tests for writing changes into a document."""

    def test_applies_new_price(self) -> None:
        document = _doc(LayoutType.CATEGORY_GROUPED, category_catalog())

        result = apply_changes(document, [_trim_change()])

        assert result.applied_count == 1
        assert result.outcomes[0].status == OutcomeStatus.APPLIED
        assert result.document.data["categories"]["stoły"]["TRIM"]["prices"]["Grupa I"] == 110

    def test_input_document_is_not_modified(self) -> None:
        document = _doc(LayoutType.CATEGORY_GROUPED, category_catalog())

        apply_changes(document, [_trim_change()])

        assert document.data["categories"]["stoły"]["TRIM"]["prices"]["Grupa I"] == 100

    def test_metadata_is_preserved(self) -> None:
        document = _doc(LayoutType.CATEGORY_GROUPED, category_catalog())

        result = apply_changes(document, [_trim_change()])

        trim = result.document.data["categories"]["stoły"]["TRIM"]
        assert trim["image"] == "/images/trim.jpg"
        assert trim["material"] == "dąb"
        assert result.document.data["title"] == "Cennik Bomar"

    def test_overwrite_is_idempotent(self) -> None:
        document = _doc(LayoutType.CATEGORY_GROUPED, category_catalog())

        once = apply_changes(document, [_trim_change()])
        twice = apply_changes(once.document, [_trim_change()])

        assert twice.document.data == once.document.data
        assert twice.applied_count == 1

    def test_outcome_serialization(self) -> None:
        document = _doc(LayoutType.CATEGORY_GROUPED, category_catalog())

        result = apply_changes(document, [_trim_change()])

        assert result.outcomes[0].to_dict() == {"id": "stoły-TRIM-Grupa I", "status": "applied"}


# ============================================================================
# Drift
# ============================================================================


class TestDrift:
    """Tests for changes whose target moved since the diff was taken."""

    def test_renamed_product_is_skipped(self) -> None:
        data = category_catalog()
        stoly = data["categories"]["stoły"]
        stoly["TRIM 2"] = stoly.pop("TRIM")
        document = _doc(LayoutType.CATEGORY_GROUPED, data)

        result = apply_changes(document, [_trim_change()])

        assert result.applied_count == 0
        assert result.outcomes[0].status == OutcomeStatus.SKIPPED_NOT_FOUND
        assert result.document.data == data

    def test_missing_cell_is_not_created(self) -> None:
        document = _doc(LayoutType.ROW_TABLE, row_catalog())
        change = AtomicChange(
            id="M2-grupa III",
            product="M2",
            price_group="grupa III",
            old_price=900,
            new_price=950,
            percent_change=5.6,
        )

        result = apply_changes(document, [change])

        assert result.outcomes[0].status == OutcomeStatus.SKIPPED_NOT_FOUND
        assert "grupa III" not in result.document.data["Arkusz1"][1]

    def test_skipped_change_does_not_block_others(self) -> None:
        data = category_catalog()
        del data["categories"]["krzesła"]
        document = _doc(LayoutType.CATEGORY_GROUPED, data)
        luna = AtomicChange(
            id="krzesła-LUNA-Grupa I",
            product="LUNA",
            category="krzesła",
            price_group="Grupa I",
            old_price=450,
            new_price=480,
            percent_change=6.7,
        )

        result = apply_changes(document, [luna, _trim_change()])

        assert [o.status for o in result.outcomes] == [OutcomeStatus.SKIPPED_NOT_FOUND, OutcomeStatus.APPLIED]
        assert len(result.skipped) == 1


# ============================================================================
# Verify policy
# ============================================================================


class TestVerifyPolicy:
    """Tests for the old-price verification policy."""

    def test_concurrent_edit_is_a_conflict(self) -> None:
        data = category_catalog()
        data["categories"]["stoły"]["TRIM"]["prices"]["Grupa I"] = 105
        document = _doc(LayoutType.CATEGORY_GROUPED, data)

        result = apply_changes(document, [_trim_change()], ApplyPolicy.VERIFY_OLD_PRICE)

        outcome = result.outcomes[0]
        assert outcome.status == OutcomeStatus.SKIPPED_CONFLICT
        assert outcome.to_dict()["currentPrice"] == 105
        assert result.document.data["categories"]["stoły"]["TRIM"]["prices"]["Grupa I"] == 105

    def test_already_applied_value_is_accepted(self) -> None:
        data = category_catalog()
        data["categories"]["stoły"]["TRIM"]["prices"]["Grupa I"] = 110
        document = _doc(LayoutType.CATEGORY_GROUPED, data)

        result = apply_changes(document, [_trim_change()], ApplyPolicy.VERIFY_OLD_PRICE)

        assert result.outcomes[0].status == OutcomeStatus.APPLIED

    def test_overwrite_ignores_concurrent_edit(self) -> None:
        data = category_catalog()
        data["categories"]["stoły"]["TRIM"]["prices"]["Grupa I"] = 105
        document = _doc(LayoutType.CATEGORY_GROUPED, data)

        result = apply_changes(document, [_trim_change()], ApplyPolicy.OVERWRITE)

        assert result.document.data["categories"]["stoły"]["TRIM"]["prices"]["Grupa I"] == 110


# ============================================================================
# Diff then apply, per layout
# ============================================================================


class TestDiffThenApply:
    """Applying a diff to its baseline reproduces the edited prices."""

    def test_category_sizes(self) -> None:
        old = category_catalog()
        new = copy.deepcopy(old)
        new["categories"]["stoły"]["TRIM"]["sizes"][1]["prices"] = 1500
        new["categories"]["krzesła"]["LUNA"]["prices"]["Grupa II"] = 550

        changes = diff_documents(LayoutType.CATEGORY_GROUPED, old, new).changes
        result = apply_changes(_doc(LayoutType.CATEGORY_GROUPED, old), changes)

        assert result.document.data == new

    def test_elements(self) -> None:
        old = element_catalog()
        new = copy.deepcopy(old)
        new["products"][0]["elements"][1]["prices"]["B"] = 1800
        new["products"][0]["elements"][2]["price"] = 320

        changes = diff_documents(LayoutType.ELEMENT_GROUPED, old, new).changes
        result = apply_changes(_doc(LayoutType.ELEMENT_GROUPED, old), changes)

        assert result.applied_count == 2
        assert result.document.data == new

    def test_flat_list(self) -> None:
        old = flat_catalog()
        new = copy.deepcopy(old)
        new["products"][1]["prices"]["A"] = 660

        changes = diff_documents(LayoutType.FLAT_LIST, old, new).changes
        result = apply_changes(_doc(LayoutType.FLAT_LIST, old), changes)

        assert result.document.data == new

    def test_row_table_after_rows_were_reordered(self) -> None:
        old = row_catalog()
        new = copy.deepcopy(old)
        new["Arkusz1"][0]["grupa I"] = 450

        changes = diff_documents(LayoutType.ROW_TABLE, old, new).changes
        drifted = copy.deepcopy(old)
        drifted["Arkusz1"].reverse()
        result = apply_changes(_doc(LayoutType.ROW_TABLE, drifted), changes)

        assert result.applied_count == 1
        assert result.document.data["Arkusz1"][1] == {"MODEL": "M1", "grupa I": 450, "grupa II": 600, "OPIS": "narożnik"}
