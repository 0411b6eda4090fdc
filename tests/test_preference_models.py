"""
Tests for the preference document, field definitions and intent validation
"""
import pytest

from prefsync.core.errors import InvalidIntentError
from prefsync.preferences import (
    PREFERENCE_DEFINITIONS, PreferenceDocument, PreferenceField, PreferenceType, validate_intent
)


class TestPreferenceDocument:
    """Test the closed preference document"""

    def test_defaults(self):
        document = PreferenceDocument()

        assert document.dark_mode is True
        assert document.fixed_scroll is False
        assert document.notifications_on is True
        assert document.num_format == "EU Format"
        assert document.date_format == "DD/MM/YYYY"
        assert document.notification_sound_id == "0"
        assert document.version == 1

    def test_definitions_match_document_defaults(self):
        document = PreferenceDocument()
        for pref_field, definition in PREFERENCE_DEFINITIONS.items():
            assert document.get(pref_field) == definition.default_value

    def test_with_value_returns_copy(self):
        document = PreferenceDocument()
        updated = document.with_value("darkMode", False)

        assert updated.dark_mode is False
        assert document.dark_mode is True

    def test_diff_ignores_version(self):
        document = PreferenceDocument()

        assert document.diff(document.with_version(5)) == frozenset()
        assert document.diff(document.with_value(PreferenceField.NUM_FORMAT, "US Format")) == {
            PreferenceField.NUM_FORMAT
        }

    def test_to_dict_uses_internal_names(self):
        data = PreferenceDocument().to_dict()

        assert set(data) == {f.value for f in PreferenceField} | {"version"}
        assert data["notificationSoundId"] == "0"

    def test_from_dict_fills_missing_and_invalid_fields(self):
        document = PreferenceDocument.from_dict({
            "darkMode": False,
            "numFormat": "Roman Format",
            "dateFormat": "",
            "version": 4,
        })

        assert document.dark_mode is False
        assert document.num_format == "EU Format"
        assert document.date_format == "DD/MM/YYYY"
        assert document.fixed_scroll is False
        assert document.version == 4


class TestIntentValidation:
    """Test single-field intent validation"""

    def test_valid_intents(self):
        assert validate_intent("darkMode", False) == PreferenceField.DARK_MODE
        assert validate_intent("numFormat", "US Format") == PreferenceField.NUM_FORMAT
        assert validate_intent(PreferenceField.DATE_FORMAT, "YYYY-MM-DD") == PreferenceField.DATE_FORMAT

    def test_unknown_field(self):
        with pytest.raises(InvalidIntentError) as exc_info:
            validate_intent("fontSize", 12)
        assert exc_info.value.field == "fontSize"

    @pytest.mark.parametrize("name,value", [
        ("darkMode", "yes"),
        ("darkMode", 1),
        ("numFormat", "Roman Format"),
        ("dateFormat", ""),
        ("notificationSoundId", None),
        ("notificationSoundId", "Klaxon"),
    ])
    def test_invalid_values(self, name, value):
        with pytest.raises(InvalidIntentError):
            validate_intent(name, value)

    def test_boolean_fields_are_typed(self):
        boolean_fields = [
            f for f, d in PREFERENCE_DEFINITIONS.items()
            if d.preference_type == PreferenceType.BOOLEAN
        ]
        assert len(boolean_fields) == 6
