"""
User Preference Synchronization
Optimistic updates, field-scoped reconciliation, durable fallback and cross-consumer broadcast
"""

from .preference_models import (
    PreferenceField,
    PreferenceType,
    PreferenceDefinition,
    PreferenceDocument,
    PreferenceSyncStatus,
    FieldSyncState,
    UpdateIntent,
    UpdateResult,
    LoadResult,
    LoadSource,
    ChangeSource,
    PreferenceChange,
    PREFERENCE_DEFINITIONS,
    toggled_value,
    validate_intent
)

from .reconciliation import (
    reconcile,
    merge_authority_document,
    apply_snapshot
)

from .broadcast import (
    BroadcastChannel,
    BroadcastMessage,
    new_origin_id
)

from .preference_storage import (
    PersistentStore,
    InMemoryPersistentStore,
    FilePersistentStore,
    RedisPersistentStore
)

from .preference_store import PreferenceStore

from .preference_service import (
    PreferenceService,
    SessionNotFoundError,
    create_persistent_store
)

__all__ = [
    # Models
    "PreferenceField",
    "PreferenceType",
    "PreferenceDefinition",
    "PreferenceDocument",
    "PreferenceSyncStatus",
    "FieldSyncState",
    "UpdateIntent",
    "UpdateResult",
    "LoadResult",
    "LoadSource",
    "ChangeSource",
    "PreferenceChange",
    "PREFERENCE_DEFINITIONS",
    "toggled_value",
    "validate_intent",

    # Reconciliation
    "reconcile",
    "merge_authority_document",
    "apply_snapshot",

    # Broadcast
    "BroadcastChannel",
    "BroadcastMessage",
    "new_origin_id",

    # Storage Layer
    "PersistentStore",
    "InMemoryPersistentStore",
    "FilePersistentStore",
    "RedisPersistentStore",

    # Store and Service Layer
    "PreferenceStore",
    "PreferenceService",
    "SessionNotFoundError",
    "create_persistent_store"
]
