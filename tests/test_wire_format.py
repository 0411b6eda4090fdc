"""
Tests for the authority wire format
"""
import pytest

from prefsync.preferences import PreferenceField
from prefsync.preferences.wire_format import (
    build_update_payload, decode_field, decode_response, decode_version, encode_field
)


class TestEncoding:
    """Test request payload encoding"""

    def test_payload_carries_only_changed_field(self):
        payload = build_update_payload("user123", PreferenceField.DARK_MODE, False)
        assert payload == {"userId": "user123", "darkModeOn": 0}

    @pytest.mark.parametrize("pref_field,value,expected", [
        (PreferenceField.FIXED_SCROLL, True, ("fixedScrollOn", 1)),
        (PreferenceField.NOTIFICATIONS_ON, False, ("notificationOn", False)),
        (PreferenceField.NEW_RECAPS_LAYOUT, True, ("recapsStyle", 1)),
        (PreferenceField.NEW_RESEARCH_FILES_LAYOUT, False, ("rFilesStyle", 0)),
        (PreferenceField.NUM_FORMAT, "EU Format", ("numFormat", 1)),
        (PreferenceField.NUM_FORMAT, "US Format", ("numFormat", 0)),
        (PreferenceField.DATE_FORMAT, "MM/DD/YYYY", ("dateFormat", "MM/DD/YYYY")),
        (PreferenceField.NOTIFICATION_SOUND_ID, "Silent", ("notificationSoundId", -1)),
        (PreferenceField.NOTIFICATION_SOUND_ID, "Ping", ("notificationSoundId", 2)),
        (PreferenceField.NOTIFICATION_SOUND_ID, "0", ("notificationSoundId", 0)),
    ])
    def test_encode_field(self, pref_field, value, expected):
        assert encode_field(pref_field, value) == expected


class TestDecoding:
    """Test authority response decoding"""

    def test_logged_in_keys(self):
        decoded = decode_response({
            "LoggedInDarkModeOn": 0,
            "LoggedInFixedScrollOn": "1",
            "LoggedInNumFormat": 0,
            "LoggedInDateFormat": "YYYY-MM-DD",
            "LoggedInNotificationSoundID": 1,
        })

        assert decoded == {
            PreferenceField.DARK_MODE: False,
            PreferenceField.FIXED_SCROLL: True,
            PreferenceField.NUM_FORMAT: "US Format",
            PreferenceField.DATE_FORMAT: "YYYY-MM-DD",
            PreferenceField.NOTIFICATION_SOUND_ID: "Chime",
        }

    def test_empty_date_counts_as_absent(self):
        decoded = decode_response({"LoggedInNumFormat": 0, "LoggedInDateFormat": ""})
        assert PreferenceField.DATE_FORMAT not in decoded
        assert decoded[PreferenceField.NUM_FORMAT] == "US Format"

    def test_notification_fallback_keys(self):
        assert decode_field(PreferenceField.NOTIFICATIONS_ON, {"NotificationsOn": True}) is True
        assert decode_field(PreferenceField.NOTIFICATIONS_ON, {"notificationsOn": 0}) is False

    def test_first_present_key_wins(self):
        response = {"LoggedInDarkModeOn": 1, "darkModeOn": 0}
        assert decode_field(PreferenceField.DARK_MODE, response) is True

    def test_unknown_sound_decodes_to_default(self):
        assert decode_field(PreferenceField.NOTIFICATION_SOUND_ID, {"LoggedInNotificationSoundID": 7}) == "0"

    def test_unparseable_numbers_are_absent(self):
        assert decode_response({"LoggedInNumFormat": "abc"}) == {}

    def test_version(self):
        assert decode_version({"PrefsVersion": "12"}) == 12
        assert decode_version({"PrefsVersion": 0}) is None
        assert decode_version({}) is None
