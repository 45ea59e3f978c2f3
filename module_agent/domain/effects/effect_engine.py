"""
Effect propagation for schema-level effect rules.

After an entry is created or updated, its schema's ``effects`` list may
declare derived updates on other entries it references by id:

    adjust_reference   add/subtract a numeric amount on the referenced entry
    set_reference      overwrite a field on the referenced entry

``compute_updates`` is pure; ``apply_updates`` commits the resulting map as
one Firestore batch so either every derived update lands or none does.
"""

import math
from typing import Any, Dict, Iterable, List, Optional, Union

import structlog
from pydantic import BaseModel, Field

from module_agent.domain.effects.rules import (
    AdjustReferenceRule, SetReferenceRule, parse_effect_rules
)
from module_agent.infrastructure.persistence.firestore_client import entries_ref

logger = structlog.get_logger(__name__)

# {entry_id: {field: new_value}}
UpdateMap = Dict[str, Dict[str, Any]]


class EntryRecord(BaseModel):
    """Candidate record an effect rule may reference"""
    id: str
    data: Dict[str, Any] = Field(default_factory=dict)


def to_number(value: Any) -> Optional[Union[int, float]]:
    """Coerce ints, floats and numeric strings; anything else is None"""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and math.isnan(value) else value
    if isinstance(value, str):
        try:
            number = float(value.strip() or "0")
        except ValueError:
            return None
        if math.isnan(number):
            return None
        return int(number) if number.is_integer() and "." not in value else number
    return None


def _reference_id(trigger_data: Dict[str, Any], reference_field: str) -> str:
    value = trigger_data.get(reference_field)
    return "" if value is None else str(value)


def _adjust(
    rule: AdjustReferenceRule,
    trigger_data: Dict[str, Any],
    entry_by_id: Dict[str, EntryRecord],
    updates: UpdateMap,
) -> None:
    entry_id = _reference_id(trigger_data, rule.reference_field)
    entry = entry_by_id.get(entry_id) if entry_id else None
    if entry is None:
        return

    if rule.amount is not None:
        amount = to_number(rule.amount)
    elif rule.amount_field:
        amount = to_number(trigger_data.get(rule.amount_field))
    else:
        return
    if amount is None:
        return

    # Running total: earlier rules in this call take precedence over stored data
    accumulated = updates.get(entry_id, {})
    if rule.target_field in accumulated:
        current_raw = accumulated[rule.target_field]
    else:
        current_raw = entry.data.get(rule.target_field)
    current = to_number(current_raw) or 0

    new_value = current + amount if rule.operation == "add" else current - amount
    updates.setdefault(entry_id, {})[rule.target_field] = new_value


def _set(
    rule: SetReferenceRule,
    trigger_data: Dict[str, Any],
    entry_by_id: Dict[str, EntryRecord],
    updates: UpdateMap,
) -> None:
    entry_id = _reference_id(trigger_data, rule.reference_field)
    entry = entry_by_id.get(entry_id) if entry_id else None
    if entry is None:
        return

    new_value = None
    if rule.source_field:
        new_value = trigger_data.get(rule.source_field)
    if new_value is None:
        new_value = rule.value
    if new_value is None:
        return

    updates.setdefault(entry_id, {})[rule.target_field] = new_value


def compute_updates(
    rules: Iterable[Union[AdjustReferenceRule, SetReferenceRule]],
    trigger_data: Dict[str, Any],
    candidates: Iterable[EntryRecord],
    updates: Optional[UpdateMap] = None,
) -> UpdateMap:
    """
    Compute derived field updates for the entries referenced by trigger_data.

    Rules are evaluated in order. Passing an existing ``updates`` map continues
    its accumulation, so several triggers (a batch) compose into one result.
    """

    entry_by_id = {entry.id: entry for entry in candidates}
    updates = {} if updates is None else updates

    for rule in rules:
        if isinstance(rule, AdjustReferenceRule):
            _adjust(rule, trigger_data, entry_by_id, updates)
        elif isinstance(rule, SetReferenceRule):
            _set(rule, trigger_data, entry_by_id, updates)

    return updates


async def apply_updates(db, user_id: str, module_id: str, updates: UpdateMap) -> UpdateMap:
    """Commit an update map atomically as a single batch"""

    if not updates:
        return updates

    entries = entries_ref(db, user_id, module_id)
    batch = db.batch()
    for entry_id, fields in updates.items():
        batch.update(
            entries.document(entry_id),
            {f"data.{field}": value for field, value in fields.items()},
        )
    await batch.commit()

    logger.info("Applied effect updates", module_id=module_id, entries=list(updates.keys()))
    return updates


async def load_candidates(db, user_id: str, module_id: str) -> List[EntryRecord]:
    """Load every entry of a module as effect candidates"""

    snapshots = await entries_ref(db, user_id, module_id).get()
    return [
        EntryRecord(id=snapshot.id, data=(snapshot.to_dict() or {}).get("data") or {})
        for snapshot in snapshots
    ]


async def propagate_effects(
    db,
    user_id: str,
    module_id: str,
    raw_rules: List[Dict[str, Any]],
    triggers: List[Dict[str, Any]],
) -> Optional[str]:
    """
    Run schema effects for one or more triggering writes.

    The triggering write is already committed; failures here are logged and
    returned as a warning string instead of raised.
    """

    rules = parse_effect_rules(raw_rules)
    if not rules or not triggers:
        return None

    try:
        candidates = await load_candidates(db, user_id, module_id)
        updates: UpdateMap = {}
        for trigger_data in triggers:
            compute_updates(rules, trigger_data, candidates, updates)
        await apply_updates(db, user_id, module_id, updates)
    except Exception as e:
        logger.warning(
            "Schema effects failed (triggering write was kept)",
            module_id=module_id,
            error=str(e),
        )
        return f"Effects could not be applied: {e}"

    return None
