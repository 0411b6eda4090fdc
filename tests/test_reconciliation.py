"""
Tests for field-scoped reconciliation
"""
from prefsync.preferences import (
    PreferenceDocument, PreferenceField, UpdateIntent, apply_snapshot, merge_authority_document,
    reconcile
)
from prefsync.preferences.wire_format import decode_response


class TestReconcile:
    """Test the per-field precedence rules"""

    def test_authority_value_wins_on_changed_field(self):
        previous = PreferenceDocument()
        intent = UpdateIntent(PreferenceField.DATE_FORMAT, "dd/mm/yyyy")

        result = reconcile(previous, intent, {PreferenceField.DATE_FORMAT: "DD/MM/YYYY"})

        assert result.date_format == "DD/MM/YYYY"

    def test_optimistic_value_stands_without_response(self):
        previous = PreferenceDocument()
        intent = UpdateIntent(PreferenceField.DARK_MODE, False)

        assert reconcile(previous, intent, None).dark_mode is False

    def test_optimistic_value_stands_when_response_is_silent(self):
        previous = PreferenceDocument()
        intent = UpdateIntent(PreferenceField.FIXED_SCROLL, True)

        result = reconcile(previous, intent, {PreferenceField.DARK_MODE: False})

        assert result.fixed_scroll is True

    def test_other_fields_keep_local_values(self):
        previous = PreferenceDocument(dark_mode=True, fixed_scroll=True)
        intent = UpdateIntent(PreferenceField.NUM_FORMAT, "US Format")
        authority_values = {
            PreferenceField.NUM_FORMAT: "US Format",
            PreferenceField.DARK_MODE: False,
            PreferenceField.FIXED_SCROLL: False,
        }

        result = reconcile(previous, intent, authority_values)

        assert result.num_format == "US Format"
        assert result.dark_mode is True
        assert result.fixed_scroll is True

    def test_num_format_update_with_empty_date_in_response(self):
        previous = PreferenceDocument(date_format="DD/MM/YYYY")
        intent = UpdateIntent(PreferenceField.NUM_FORMAT, "US Format")
        authority_values = decode_response({"LoggedInNumFormat": 0, "LoggedInDateFormat": ""})

        result = reconcile(previous, intent, authority_values)

        assert result.num_format == "US Format"
        assert result.date_format == "DD/MM/YYYY"

    def test_defaults_fill_missing_previous(self):
        intent = UpdateIntent(PreferenceField.DARK_MODE, False)

        result = reconcile(None, intent, None)

        assert result == PreferenceDocument(dark_mode=False)

    def test_authority_version_is_adopted(self):
        intent = UpdateIntent(PreferenceField.DARK_MODE, False)

        result = reconcile(PreferenceDocument(), intent, {PreferenceField.DARK_MODE: False}, 9)

        assert result.version == 9

    def test_stale_intent_is_discarded(self):
        previous = PreferenceDocument(dark_mode=True)
        intent = UpdateIntent(PreferenceField.DARK_MODE, False, sequence=1)

        result = reconcile(previous, intent, {PreferenceField.DARK_MODE: False},
                           latest_applied_sequence=2)

        assert result is previous


class TestDocumentMerges:
    """Test load and broadcast merges"""

    def test_merge_authority_document_overrides_present_fields(self):
        base = PreferenceDocument(fixed_scroll=True)

        merged = merge_authority_document(base, {PreferenceField.DARK_MODE: False}, 3)

        assert merged.dark_mode is False
        assert merged.fixed_scroll is True
        assert merged.version == 3

    def test_apply_snapshot_skips_invalid_values(self):
        base = PreferenceDocument(num_format="US Format")

        merged = apply_snapshot(base, {"darkMode": False, "numFormat": "bogus", "version": 6})

        assert merged.dark_mode is False
        assert merged.num_format == "US Format"
        assert merged.version == 6
