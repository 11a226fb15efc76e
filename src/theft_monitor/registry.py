import logging
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError

from theft_monitor.config import MeterDefinition
from theft_monitor.store import Store

logger = logging.getLogger(__name__)


def _definition_fields(definition: MeterDefinition) -> dict:
    """Fields a definition sets on its meter. Unset optional fields are left alone."""
    fields = {"name": definition.name, "role": definition.role}
    if definition.owner is not None:
        fields["owner"] = definition.owner
    return fields


def ensure_bootstrap(store: Store, definitions: Iterable[MeterDefinition]) -> int:
    """Upsert every defined meter by id. Returns how many were applied.

    Safe to call repeatedly. A failing definition is logged and skipped.
    """
    applied = 0
    for definition in definitions:
        try:
            inserted = store.upsert_meter(definition.id, _definition_fields(definition))
        except SQLAlchemyError:
            logger.exception("Failed to bootstrap meter %s", definition.id)
            continue
        applied += 1
        if inserted:
            logger.info("Registered meter %s (%s, %s)", definition.id, definition.name, definition.role.value)
    return applied
