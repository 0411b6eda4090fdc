"""
User Preference Data Models
Closed preference document, update intents and sync results
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from prefsync.core.errors import FailureReason, InvalidIntentError


class PreferenceField(str, Enum):
    """Internal names of every preference in the document"""
    DARK_MODE = "darkMode"
    FIXED_SCROLL = "fixedScroll"
    NOTIFICATIONS_ON = "notificationsOn"
    NEW_WIDGET_LAYOUT = "newWidgetLayout"
    NEW_RECAPS_LAYOUT = "newRecapsLayout"
    NEW_RESEARCH_FILES_LAYOUT = "newResearchFilesLayout"
    NUM_FORMAT = "numFormat"
    DATE_FORMAT = "dateFormat"
    NOTIFICATION_SOUND_ID = "notificationSoundId"

    @classmethod
    def parse(cls, name: Any) -> "PreferenceField":
        """Resolve a field from a member or its internal name"""
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            raise InvalidIntentError(f"Unknown preference field: {name}", str(name))

    @property
    def attr(self) -> str:
        return _FIELD_ATTRS[self]


class PreferenceType(str, Enum):
    """Kinds of preference values"""
    BOOLEAN = "boolean"
    ENUM = "enum"
    STRING = "string"


class PreferenceSyncStatus(str, Enum):
    """Synchronization status of a consumer's document"""
    SYNCED = "synced"
    PENDING = "pending"
    LOCAL_ONLY = "local_only"


class FieldSyncState(str, Enum):
    """Lifecycle of the latest update to a single field"""
    IDLE = "idle"
    OPTIMISTIC = "optimistic"
    RECONCILING = "reconciling"
    SETTLED_OK = "settled_ok"
    SETTLED_UNSYNCED = "settled_unsynced"


NUM_FORMAT_EU = "EU Format"
NUM_FORMAT_US = "US Format"

DATE_FORMAT_DMY = "DD/MM/YYYY"
DATE_FORMAT_MDY = "MM/DD/YYYY"

SOUND_DEFAULT = "0"
SOUND_SILENT = "Silent"
SOUND_CHIME = "Chime"
SOUND_PING = "Ping"


@dataclass(frozen=True)
class PreferenceDefinition:
    """Definition of a preference with its default and accepted values"""
    field: PreferenceField
    preference_type: PreferenceType
    default_value: Any
    description: str
    enum_values: Optional[List[str]] = None

    def validate_value(self, value: Any) -> bool:
        """Basic value validation against type and allowed values"""
        if self.preference_type == PreferenceType.BOOLEAN:
            return isinstance(value, bool)

        if not isinstance(value, str):
            return False

        if self.preference_type == PreferenceType.ENUM and self.enum_values:
            return value in self.enum_values

        # Empty strings read as "absent" on the wire
        return bool(value)


PREFERENCE_DEFINITIONS: Dict[PreferenceField, PreferenceDefinition] = {
    d.field: d for d in [
        PreferenceDefinition(PreferenceField.DARK_MODE, PreferenceType.BOOLEAN, True,
                             "Dark terminal theme"),
        PreferenceDefinition(PreferenceField.FIXED_SCROLL, PreferenceType.BOOLEAN, False,
                             "Pin dashboard scroll position"),
        PreferenceDefinition(PreferenceField.NOTIFICATIONS_ON, PreferenceType.BOOLEAN, True,
                             "Push notifications enabled"),
        PreferenceDefinition(PreferenceField.NEW_WIDGET_LAYOUT, PreferenceType.BOOLEAN, False,
                             "New widget layout"),
        PreferenceDefinition(PreferenceField.NEW_RECAPS_LAYOUT, PreferenceType.BOOLEAN, False,
                             "New recaps layout"),
        PreferenceDefinition(PreferenceField.NEW_RESEARCH_FILES_LAYOUT, PreferenceType.BOOLEAN, False,
                             "New research files layout"),
        PreferenceDefinition(PreferenceField.NUM_FORMAT, PreferenceType.ENUM, NUM_FORMAT_EU,
                             "Number formatting convention",
                             enum_values=[NUM_FORMAT_EU, NUM_FORMAT_US]),
        PreferenceDefinition(PreferenceField.DATE_FORMAT, PreferenceType.STRING, DATE_FORMAT_DMY,
                             "Date display pattern"),
        PreferenceDefinition(PreferenceField.NOTIFICATION_SOUND_ID, PreferenceType.ENUM, SOUND_DEFAULT,
                             "Notification sound",
                             enum_values=[SOUND_DEFAULT, SOUND_SILENT, SOUND_CHIME, SOUND_PING]),
    ]
}

DEFAULT_VERSION = 1


@dataclass(frozen=True)
class PreferenceDocument:
    """The full preference document; every field always has a value"""
    dark_mode: bool = True
    fixed_scroll: bool = False
    notifications_on: bool = True
    new_widget_layout: bool = False
    new_recaps_layout: bool = False
    new_research_files_layout: bool = False
    num_format: str = NUM_FORMAT_EU
    date_format: str = DATE_FORMAT_DMY
    notification_sound_id: str = SOUND_DEFAULT
    version: int = DEFAULT_VERSION

    def get(self, name: Any) -> Any:
        return getattr(self, PreferenceField.parse(name).attr)

    def with_value(self, name: Any, value: Any) -> "PreferenceDocument":
        """Copy with one field replaced"""
        return replace(self, **{PreferenceField.parse(name).attr: value})

    def with_values(self, values: Mapping[Any, Any]) -> "PreferenceDocument":
        """Copy with the given fields replaced"""
        if not values:
            return self
        changes = {PreferenceField.parse(k).attr: v for k, v in values.items()}
        return replace(self, **changes)

    def with_version(self, version: int) -> "PreferenceDocument":
        return replace(self, version=version)

    def diff(self, other: "PreferenceDocument") -> FrozenSet[PreferenceField]:
        """Fields whose values differ from another document (version ignored)"""
        return frozenset(
            f for f in PreferenceField
            if getattr(self, f.attr) != getattr(other, f.attr)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Flat dictionary in internal field names"""
        data = {f.value: getattr(self, f.attr) for f in PreferenceField}
        data["version"] = self.version
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PreferenceDocument":
        """Build from a flat dictionary, filling missing or invalid fields with defaults"""
        values = {}
        for pref_field, definition in PREFERENCE_DEFINITIONS.items():
            if pref_field.value in data and definition.validate_value(data[pref_field.value]):
                values[pref_field.attr] = data[pref_field.value]

        version = data.get("version")
        if isinstance(version, int) and not isinstance(version, bool):
            values["version"] = version

        return cls(**values)


_FIELD_ATTRS: Dict[PreferenceField, str] = {
    PreferenceField.DARK_MODE: "dark_mode",
    PreferenceField.FIXED_SCROLL: "fixed_scroll",
    PreferenceField.NOTIFICATIONS_ON: "notifications_on",
    PreferenceField.NEW_WIDGET_LAYOUT: "new_widget_layout",
    PreferenceField.NEW_RECAPS_LAYOUT: "new_recaps_layout",
    PreferenceField.NEW_RESEARCH_FILES_LAYOUT: "new_research_files_layout",
    PreferenceField.NUM_FORMAT: "num_format",
    PreferenceField.DATE_FORMAT: "date_format",
    PreferenceField.NOTIFICATION_SOUND_ID: "notification_sound_id",
}


def validate_intent(name: Any, value: Any) -> PreferenceField:
    """Check a single-field change, returning the resolved field"""
    pref_field = PreferenceField.parse(name)
    definition = PREFERENCE_DEFINITIONS[pref_field]
    if not definition.validate_value(value):
        raise InvalidIntentError(f"Invalid value for {pref_field.value}: {value!r}", pref_field.value)
    return pref_field


@dataclass(frozen=True)
class UpdateIntent:
    """One user-initiated change to exactly one field"""
    field: PreferenceField
    new_value: Any
    sequence: int = 0


class ChangeSource(str, Enum):
    """What caused a local document change"""
    UPDATE = "update"
    RECONCILE = "reconcile"
    LOAD = "load"
    BROADCAST = "broadcast"
    RESET = "reset"


@dataclass(frozen=True)
class PreferenceChange:
    """Notification delivered to local subscribers"""
    document: PreferenceDocument
    previous: PreferenceDocument
    source: ChangeSource
    changed_fields: FrozenSet[PreferenceField]


@dataclass
class UpdateResult:
    """Outcome of PreferenceStore.update; never raised, always returned"""
    ok: bool
    document: PreferenceDocument
    field: Optional[PreferenceField] = None
    reason: Optional[FailureReason] = None
    error: Optional[str] = None
    changed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "field": self.field.value if self.field else None,
            "reason": self.reason.value if self.reason else None,
            "error": self.error,
            "changed": self.changed,
            "preferences": self.document.to_dict(),
        }


class LoadSource(str, Enum):
    """Where a cold load found its document"""
    AUTHORITY = "authority"
    PERSISTENT = "persistent"
    DEFAULT = "default"


@dataclass
class LoadResult:
    """Outcome of PreferenceStore.load"""
    ok: bool
    source: LoadSource
    document: PreferenceDocument
    reason: Optional[FailureReason] = None
    error: Optional[str] = None
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "source": self.source.value,
            "reason": self.reason.value if self.reason else None,
            "error": self.error,
            "loaded_at": self.loaded_at.isoformat(),
            "preferences": self.document.to_dict(),
        }


def toggled_value(pref_field: PreferenceField, current: Any) -> Any:
    """The value a toggle switches to from ``current``"""
    definition = PREFERENCE_DEFINITIONS[pref_field]
    if definition.preference_type == PreferenceType.BOOLEAN:
        return not current
    if pref_field == PreferenceField.NUM_FORMAT:
        return NUM_FORMAT_US if current == NUM_FORMAT_EU else NUM_FORMAT_EU
    if pref_field == PreferenceField.DATE_FORMAT:
        return DATE_FORMAT_MDY if current == DATE_FORMAT_DMY else DATE_FORMAT_DMY
    return SOUND_CHIME if current == SOUND_DEFAULT else SOUND_DEFAULT
