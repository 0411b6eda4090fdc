"""
Preference Reconciliation
Field-scoped merge of an authority response into the local document
"""
from typing import Any, Dict, Mapping, Optional

from .preference_models import PREFERENCE_DEFINITIONS, PreferenceDocument, PreferenceField, UpdateIntent


def reconcile(previous: Optional[PreferenceDocument],
              intent: UpdateIntent,
              authority_values: Optional[Mapping[PreferenceField, Any]],
              authority_version: Optional[int] = None,
              latest_applied_sequence: Optional[int] = None) -> PreferenceDocument:
    """Compute the next local document after one update round trip.

    Precedence, per field:

    1. the intent's field, when the authority response encodes it: the
       authority's decoded value wins (it may have normalized the request);
    2. the intent's field, when the response is absent or silent about it:
       the optimistic ``intent.new_value`` stands;
    3. every other field: the previous local value wins, whatever the
       authority echoed back for it;
    4. with no previous document, compiled defaults fill the rest.

    ``authority_values`` is the output of ``wire_format.decode_response`` or
    None when the call failed. When ``latest_applied_sequence`` is given and the
    intent is older, the response is discarded and ``previous`` is returned.
    """
    base = previous if previous is not None else PreferenceDocument()

    if latest_applied_sequence is not None and intent.sequence < latest_applied_sequence:
        return base

    if authority_values is not None and intent.field in authority_values:
        value = authority_values[intent.field]
    else:
        value = intent.new_value

    next_document = base.with_value(intent.field, value)

    if authority_version is not None:
        next_document = next_document.with_version(authority_version)

    return next_document


def merge_authority_document(base: PreferenceDocument,
                             authority_values: Mapping[PreferenceField, Any],
                             authority_version: Optional[int] = None) -> PreferenceDocument:
    """Cold-load merge: every field present in the response overrides the base"""
    merged = base.with_values(dict(authority_values))
    if authority_version is not None:
        merged = merged.with_version(authority_version)
    return merged


def apply_snapshot(base: PreferenceDocument, snapshot: Mapping[str, Any]) -> PreferenceDocument:
    """Overwrite the fields named in a broadcast snapshot, ignoring invalid values"""
    values: Dict[PreferenceField, Any] = {
        f: snapshot[f.value] for f in PreferenceField
        if f.value in snapshot and PREFERENCE_DEFINITIONS[f].validate_value(snapshot[f.value])
    }
    merged = base.with_values(values)
    version = snapshot.get("version")
    if isinstance(version, int) and not isinstance(version, bool):
        merged = merged.with_version(version)
    return merged
