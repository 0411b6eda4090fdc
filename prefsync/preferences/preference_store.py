"""
Preference Store
Per-consumer façade: optimistic updates, reconciliation, persistence and broadcast
"""
import asyncio
import itertools
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Mapping, Optional, Set, Tuple

from prefsync.core.errors import (
    AuthorityError, AuthorityUnreachable, FailureReason, InvalidIntentError
)
from prefsync.core.logging import StructuredLogger

from .broadcast import BroadcastChannel, BroadcastMessage, new_origin_id
from .preference_models import (
    ChangeSource, FieldSyncState, LoadResult, LoadSource, PreferenceChange,
    PreferenceDocument, PreferenceField, PreferenceSyncStatus, UpdateIntent,
    UpdateResult, toggled_value, validate_intent
)
from .preference_storage import PersistentStore
from .reconciliation import apply_snapshot, merge_authority_document, reconcile
from .wire_format import build_update_payload, decode_response, decode_version

PreferenceCallback = Callable[[PreferenceChange], None]
AfterSyncCallback = Callable[[PreferenceField, Any], Awaitable[None]]


class PreferenceStore:
    """Owns one consumer's in-memory preference document.

    ``update`` applies the change locally and broadcasts it before the
    authority answers, then reconciles the answer field by field. Failures
    keep the optimistic value, mark the field unsynced and come back as an
    ``UpdateResult``; neither ``update`` nor ``load`` raises.
    """

    def __init__(self, user_id: Optional[str],
                 authority,
                 persistent_store: PersistentStore,
                 channel: BroadcastChannel,
                 logger: StructuredLogger,
                 request_timeout_seconds: float = 10.0,
                 enable_sequence_guard: bool = False,
                 origin_id: Optional[str] = None,
                 after_sync: Optional[AfterSyncCallback] = None):
        self.user_id = user_id
        self.authority = authority
        self.persistent_store = persistent_store
        self.channel = channel
        self.request_timeout_seconds = request_timeout_seconds
        self.enable_sequence_guard = enable_sequence_guard
        self.origin_id = origin_id or new_origin_id()
        self.logger = logger.bind(user_id=user_id, origin_id=self.origin_id)
        self.after_sync = after_sync

        self._document = PreferenceDocument()
        self._subscribers: Dict[int, PreferenceCallback] = {}
        self._subscriber_ids = itertools.count()

        self._field_states: Dict[PreferenceField, FieldSyncState] = {
            f: FieldSyncState.IDLE for f in PreferenceField
        }
        self._in_flight: Dict[PreferenceField, int] = {f: 0 for f in PreferenceField}
        self._unsynced: Set[PreferenceField] = set()
        self._submitted_sequence: Dict[PreferenceField, int] = {}
        self._applied_sequence: Dict[PreferenceField, int] = {}
        self._load_source: Optional[LoadSource] = None

        self._unsubscribe_channel = channel.subscribe(self.origin_id, self._on_broadcast)

    # State inspection

    @property
    def document(self) -> PreferenceDocument:
        return self._document

    @property
    def load_source(self) -> Optional[LoadSource]:
        return self._load_source

    @property
    def unsynced_fields(self) -> FrozenSet[PreferenceField]:
        return frozenset(self._unsynced)

    @property
    def is_synced(self) -> bool:
        return not self._unsynced and not any(self._in_flight.values())

    @property
    def sync_status(self) -> PreferenceSyncStatus:
        if any(self._in_flight.values()):
            return PreferenceSyncStatus.PENDING
        if self._unsynced or self._load_source in (LoadSource.PERSISTENT, LoadSource.DEFAULT):
            return PreferenceSyncStatus.LOCAL_ONLY
        return PreferenceSyncStatus.SYNCED

    def field_state(self, name: Any) -> FieldSyncState:
        return self._field_states[PreferenceField.parse(name)]

    # Subscriptions

    def subscribe(self, callback: PreferenceCallback) -> Callable[[], None]:
        """Call ``callback`` on every local document change; returns unsubscribe"""
        token = next(self._subscriber_ids)
        self._subscribers[token] = callback

        def unsubscribe():
            self._subscribers.pop(token, None)

        return unsubscribe

    def set_after_sync(self, callback: Optional[AfterSyncCallback]):
        """Awaited with (field, value) after each update the authority accepted"""
        self.after_sync = callback

    def close(self):
        """Detach from the broadcast channel and drop local subscribers"""
        self._unsubscribe_channel()
        self._subscribers.clear()

    # Cold load

    async def load(self) -> LoadResult:
        """Fetch from the authority, falling back to the persisted slot, then defaults"""
        if not self.user_id:
            reason, error = FailureReason.NO_USER, "No user id"
        else:
            response, failure = await self._call_authority(
                lambda: self.authority.fetch_preferences(self.user_id)
            )
            if failure is None:
                return await self._apply_authority_load(response)
            reason, error = failure.reason, failure.message

        stored = await self._read_persistent()
        if stored is not None:
            source, document = LoadSource.PERSISTENT, stored
        else:
            source, document = LoadSource.DEFAULT, PreferenceDocument()

        self._load_source = source
        self._set_document(document, ChangeSource.LOAD)

        self.logger.warning("Preferences loaded without authority",
                            source=source.value, reason=reason.value, error=error)

        return LoadResult(ok=False, source=source, document=self._document,
                          reason=reason, error=error)

    async def _apply_authority_load(self, response: Dict[str, Any]) -> LoadResult:
        decoded = decode_response(response)
        stored = await self._read_persistent()
        base = stored if stored is not None else self._document

        merged = merge_authority_document(base, decoded, decode_version(response))

        self._load_source = LoadSource.AUTHORITY
        self._unsynced.difference_update(decoded.keys())
        self._set_document(merged, ChangeSource.LOAD)
        await self._persist()

        self.logger.info("Preferences loaded from authority",
                         fields=len(decoded), version=merged.version)

        return LoadResult(ok=True, source=LoadSource.AUTHORITY, document=self._document)

    # Mutation

    async def update(self, name: Any, value: Any) -> UpdateResult:
        """Change one field: optimistic apply, authority round trip, reconcile"""
        if not self.user_id:
            self.logger.warning("Cannot update preferences without user id", field=str(name))
            return UpdateResult(ok=False, document=self._document, reason=FailureReason.NO_USER,
                                error="No user id", changed=False)

        try:
            pref_field = validate_intent(name, value)
        except InvalidIntentError as e:
            self.logger.warning("Rejected preference update", field=e.field, error=e.message)
            return UpdateResult(ok=False, document=self._document, reason=FailureReason.INVALID_INTENT,
                                error=e.message, changed=False)

        if self._document.get(pref_field) == value and pref_field not in self._unsynced:
            return UpdateResult(ok=True, document=self._document, field=pref_field, changed=False)

        sequence = self._submitted_sequence.get(pref_field, 0) + 1
        self._submitted_sequence[pref_field] = sequence
        intent = UpdateIntent(field=pref_field, new_value=value, sequence=sequence)

        # Optimistic apply, visible to this consumer and every other one right away
        self._in_flight[pref_field] += 1
        self._field_states[pref_field] = FieldSyncState.OPTIMISTIC
        optimistic = self._document.with_value(pref_field, value).with_version(self._document.version + 1)
        if self._set_document(optimistic, ChangeSource.UPDATE):
            self._broadcast()

        payload = build_update_payload(self.user_id, pref_field, value)
        self.logger.info("Sending preference update", field=pref_field.value, payload=payload)

        self._field_states[pref_field] = FieldSyncState.RECONCILING
        response, failure = await self._call_authority(
            lambda: self.authority.update_preferences(payload)
        )

        authority_values = decode_response(response) if response is not None else None
        authority_version = decode_version(response) if response is not None else None

        latest_applied = None
        stale = False
        if self.enable_sequence_guard:
            latest_applied = self._applied_sequence.get(pref_field)
            stale = latest_applied is not None and sequence < latest_applied
            if stale:
                self.logger.info("Discarding out-of-order preference response",
                                 field=pref_field.value, sequence=sequence, latest_applied=latest_applied)
            else:
                self._applied_sequence[pref_field] = sequence

        optimistic_guess = self._document
        reconciled = reconcile(optimistic_guess, intent, authority_values,
                               authority_version, latest_applied)

        if not stale:
            if failure is None:
                self._unsynced.discard(pref_field)
            else:
                self._unsynced.add(pref_field)
        self._settle_flight(pref_field)

        changed = self._set_document(reconciled, ChangeSource.RECONCILE)
        await self._persist()

        if changed:
            self._broadcast()

        if failure is not None:
            self.logger.warning("Preference update kept locally",
                                field=pref_field.value, reason=failure.reason.value, error=failure.message)
            return UpdateResult(ok=False, document=self._document, field=pref_field,
                                reason=failure.reason, error=failure.message)

        self.logger.info("Preference update synced",
                         field=pref_field.value, value=self._document.get(pref_field),
                         reconciled_changes=sorted(f.value for f in changed))
        await self._run_after_sync(pref_field)
        return UpdateResult(ok=True, document=self._document, field=pref_field)

    async def toggle(self, name: Any) -> UpdateResult:
        """Flip a field to its alternate value through the normal update flow"""
        try:
            pref_field = PreferenceField.parse(name)
        except InvalidIntentError as e:
            self.logger.warning("Rejected preference toggle", field=e.field, error=e.message)
            return UpdateResult(ok=False, document=self._document, reason=FailureReason.INVALID_INTENT,
                                error=e.message, changed=False)

        return await self.update(pref_field, toggled_value(pref_field, self._document.get(pref_field)))

    def apply_local(self, values: Mapping[Any, Any]) -> FrozenSet[PreferenceField]:
        """Apply already-authoritative values without a round trip.

        Subscribers are notified and other consumers receive the snapshot;
        nothing is sent to the authority and nothing is persisted. Raises
        ``InvalidIntentError`` if any value is rejected, before applying any.
        """
        checked = {validate_intent(name, value): value for name, value in values.items()}
        changed = self._set_document(self._document.with_values(checked), ChangeSource.LOAD)
        if changed:
            self._broadcast()
            self.logger.debug("Preferences applied locally",
                              fields=sorted(f.value for f in changed))
        return changed

    async def reset(self) -> PreferenceDocument:
        """Overwrite the local and persisted document with defaults"""
        self._unsynced.clear()
        for pref_field in PreferenceField:
            if not self._in_flight[pref_field]:
                self._field_states[pref_field] = FieldSyncState.IDLE

        self._set_document(PreferenceDocument(), ChangeSource.RESET)
        await self._persist()
        self._broadcast()

        self.logger.info("Preferences reset to defaults")
        return self._document

    # Internals

    def _settle_flight(self, pref_field: PreferenceField):
        self._in_flight[pref_field] -= 1
        if self._in_flight[pref_field] > 0:
            return
        self._field_states[pref_field] = (
            FieldSyncState.SETTLED_UNSYNCED if pref_field in self._unsynced
            else FieldSyncState.SETTLED_OK
        )

    async def _call_authority(
        self, call: Callable[[], Awaitable[Dict[str, Any]]]
    ) -> Tuple[Optional[Dict[str, Any]], Optional[AuthorityError]]:
        """Run one authority call under the timeout; failures come back as values"""
        try:
            response = await asyncio.wait_for(call(), timeout=self.request_timeout_seconds)
        except asyncio.TimeoutError:
            return None, AuthorityUnreachable(
                f"Authority did not answer within {self.request_timeout_seconds}s"
            )
        except AuthorityError as e:
            return None, e
        except Exception as e:
            self.logger.error("Unexpected authority failure", error=str(e))
            return None, AuthorityUnreachable(str(e))

        return response, None

    async def _run_after_sync(self, pref_field: PreferenceField):
        if self.after_sync is None:
            return
        try:
            await self.after_sync(pref_field, self._document.get(pref_field))
        except Exception as e:
            self.logger.error("After-sync callback failed", field=pref_field.value, error=str(e))

    async def _read_persistent(self) -> Optional[PreferenceDocument]:
        try:
            return await self.persistent_store.get(self.user_id or "")
        except Exception as e:
            self.logger.error("Failed to read persisted preferences", error=str(e))
            return None

    async def _persist(self):
        try:
            await self.persistent_store.set(self.user_id or "", self._document)
        except Exception as e:
            self.logger.error("Failed to persist preferences", error=str(e))

    def _broadcast(self):
        self.channel.emit(BroadcastMessage.from_document(self.origin_id, self._document))

    def _on_broadcast(self, message: BroadcastMessage):
        self._set_document(apply_snapshot(self._document, message.preferences), ChangeSource.BROADCAST)

    def _set_document(self, document: PreferenceDocument,
                      source: ChangeSource) -> FrozenSet[PreferenceField]:
        """Replace the document; notify subscribers when a preference value changed"""
        previous = self._document
        self._document = document
        changed = document.diff(previous)
        if not changed:
            return changed

        change = PreferenceChange(document=document, previous=previous,
                                  source=source, changed_fields=changed)
        for callback in list(self._subscribers.values()):
            try:
                callback(change)
            except Exception as e:
                self.logger.error("Preference subscriber failed",
                                  source=source.value, error=str(e))
        return changed
