"""
Authority Wire Format
Bidirectional mapping between internal preference fields and the upstream API
"""
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .preference_models import (
    NUM_FORMAT_EU, NUM_FORMAT_US, SOUND_CHIME, SOUND_DEFAULT, SOUND_PING, SOUND_SILENT,
    PreferenceField
)

# Request field names, one per internal field
WIRE_NAMES: Dict[PreferenceField, str] = {
    PreferenceField.DARK_MODE: "darkModeOn",
    PreferenceField.FIXED_SCROLL: "fixedScrollOn",
    PreferenceField.NOTIFICATIONS_ON: "notificationOn",
    PreferenceField.NEW_WIDGET_LAYOUT: "newWidgetLayout",
    PreferenceField.NEW_RECAPS_LAYOUT: "recapsStyle",
    PreferenceField.NEW_RESEARCH_FILES_LAYOUT: "rFilesStyle",
    PreferenceField.NUM_FORMAT: "numFormat",
    PreferenceField.DATE_FORMAT: "dateFormat",
    PreferenceField.NOTIFICATION_SOUND_ID: "notificationSoundId",
}

# Response keys the authority may use, in lookup order
RESPONSE_KEYS: Dict[PreferenceField, Tuple[str, ...]] = {
    PreferenceField.DARK_MODE: ("LoggedInDarkModeOn", "DarkModeOn", "darkModeOn"),
    PreferenceField.FIXED_SCROLL: ("LoggedInFixedScrollOn", "FixedScrollOn", "fixedScrollOn"),
    PreferenceField.NOTIFICATIONS_ON: (
        "LoggedInNotificationOn", "NotificationOn", "NotificationsOn", "notificationsOn"
    ),
    PreferenceField.NEW_WIDGET_LAYOUT: ("LoggedInNewWidgetLayout", "newWidgetLayout"),
    PreferenceField.NEW_RECAPS_LAYOUT: ("LoggedInRecapsStyle", "recapsStyle"),
    PreferenceField.NEW_RESEARCH_FILES_LAYOUT: ("LoggedInRFilesStyle", "rFilesStyle"),
    PreferenceField.NUM_FORMAT: ("LoggedInNumFormat", "NumFormat", "numFormat"),
    PreferenceField.DATE_FORMAT: ("LoggedInDateFormat", "DateFormat", "dateFormat"),
    PreferenceField.NOTIFICATION_SOUND_ID: (
        "LoggedInNotificationSoundID", "NotificationSoundID", "notificationSoundId"
    ),
}

VERSION_KEY = "PrefsVersion"

_SOUND_TO_WIRE = {SOUND_SILENT: -1, SOUND_CHIME: 1, SOUND_PING: 2}
_WIRE_TO_SOUND = {v: k for k, v in _SOUND_TO_WIRE.items()}


def to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value == "1" or value.lower() == "true"
    return None


def to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError:
            return None
    return None


def _encode_flag(value: Any) -> int:
    return 1 if value else 0


def _encode_num_format(value: Any) -> int:
    return 1 if value == NUM_FORMAT_EU else 0


def _encode_sound(value: Any) -> int:
    return _SOUND_TO_WIRE.get(value, 0)


def _decode_num_format(value: Any) -> Optional[str]:
    n = to_int(value)
    if n is None:
        return None
    return NUM_FORMAT_EU if n == 1 else NUM_FORMAT_US


def _decode_date_format(value: Any) -> Optional[str]:
    # Empty or non-string dates are treated as not mentioned
    if isinstance(value, str) and value:
        return value
    return None


def _decode_sound(value: Any) -> Optional[str]:
    n = to_int(value)
    if n is None:
        return None
    return _WIRE_TO_SOUND.get(n, SOUND_DEFAULT)


_ENCODERS: Dict[PreferenceField, Callable[[Any], Any]] = {
    PreferenceField.DARK_MODE: _encode_flag,
    PreferenceField.FIXED_SCROLL: _encode_flag,
    PreferenceField.NOTIFICATIONS_ON: bool,
    PreferenceField.NEW_WIDGET_LAYOUT: _encode_flag,
    PreferenceField.NEW_RECAPS_LAYOUT: _encode_flag,
    PreferenceField.NEW_RESEARCH_FILES_LAYOUT: _encode_flag,
    PreferenceField.NUM_FORMAT: _encode_num_format,
    PreferenceField.DATE_FORMAT: str,
    PreferenceField.NOTIFICATION_SOUND_ID: _encode_sound,
}

_DECODERS: Dict[PreferenceField, Callable[[Any], Any]] = {
    PreferenceField.DARK_MODE: to_bool,
    PreferenceField.FIXED_SCROLL: to_bool,
    PreferenceField.NOTIFICATIONS_ON: to_bool,
    PreferenceField.NEW_WIDGET_LAYOUT: to_bool,
    PreferenceField.NEW_RECAPS_LAYOUT: to_bool,
    PreferenceField.NEW_RESEARCH_FILES_LAYOUT: to_bool,
    PreferenceField.NUM_FORMAT: _decode_num_format,
    PreferenceField.DATE_FORMAT: _decode_date_format,
    PreferenceField.NOTIFICATION_SOUND_ID: _decode_sound,
}


def encode_field(pref_field: PreferenceField, value: Any) -> Tuple[str, Any]:
    """Wire name and encoded value for a single field"""
    return WIRE_NAMES[pref_field], _ENCODERS[pref_field](value)


def build_update_payload(user_id: str, pref_field: PreferenceField, value: Any) -> Dict[str, Any]:
    """Authority write request carrying only the changed field"""
    wire_name, wire_value = encode_field(pref_field, value)
    return {"userId": user_id, wire_name: wire_value}


def decode_field(pref_field: PreferenceField, response: Mapping[str, Any]) -> Optional[Any]:
    """Decoded value of one field, or None when the response does not mention it"""
    for key in RESPONSE_KEYS[pref_field]:
        raw = response.get(key)
        if raw is None:
            continue
        return _DECODERS[pref_field](raw)
    return None


def decode_response(response: Mapping[str, Any]) -> Dict[PreferenceField, Any]:
    """Every field the authority response explicitly encodes"""
    decoded = {}
    for pref_field in PreferenceField:
        value = decode_field(pref_field, response)
        if value is not None:
            decoded[pref_field] = value
    return decoded


def decode_version(response: Mapping[str, Any]) -> Optional[int]:
    version = to_int(response.get(VERSION_KEY))
    if version is None or version <= 0:
        return None
    return version
