"""Mapping of event snapshots to Tribe Events update payloads."""
from typing import Any, Dict, List

from processor.models import Event

# Scalar fields the update endpoint expects to receive again on every write.
PASSTHROUGH_FIELDS = (
    'title',
    'description',
    'excerpt',
    'status',
    'start_date',
    'end_date',
    'timezone',
    'all_day',
    'website',
    'cost',
    'featured',
    'sticky',
    'hide_from_listings',
    'show_map',
    'show_map_link',
)


def _ids(value: Any) -> List[int]:
    """Extract ids from a list of objects, a single object or a list of ids."""
    if not value:
        return []
    if isinstance(value, dict):
        value = [value]
    ids = []
    for item in value:
        item_id = item.get('id') if isinstance(item, dict) else item
        if item_id is not None:
            ids.append(int(item_id))
    return ids


def build_update_payload(event: Event, categories: List[int]) -> Dict[str, Any]:
    """
    Build a full replacement payload for one event.

    The endpoint replaces the stored record, so every field that was
    returned by the query is sent back alongside the new categories.

    Args:
        event: Event snapshot from the query
        categories: Target category ids

    Returns:
        JSON serializable payload
    """
    raw = event.raw
    payload: Dict[str, Any] = {}

    for name in PASSTHROUGH_FIELDS:
        if name in raw and raw[name] is not None:
            payload[name] = raw[name]

    # Snapshot fields win over raw ones when the event was built by hand
    if event.title:
        payload['title'] = event.title
    if event.start_date:
        payload['start_date'] = event.start_date
    if event.end_date:
        payload['end_date'] = event.end_date
    if event.timezone:
        payload['timezone'] = event.timezone
    payload['all_day'] = event.all_day

    venue_ids = _ids(raw.get('venue'))
    if venue_ids:
        payload['venue'] = venue_ids[0]

    organizer_ids = _ids(raw.get('organizer'))
    if organizer_ids:
        payload['organizer'] = organizer_ids

    tag_ids = _ids(raw.get('tags'))
    if tag_ids:
        payload['tags'] = tag_ids

    payload['categories'] = list(categories)
    return payload
