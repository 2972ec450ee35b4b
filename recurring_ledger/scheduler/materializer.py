"""
Occurrence Materializer

Turns a due template into one realized ledger entry and writes it.
"""

import uuid
from typing import Optional

from recurring_ledger.models.transaction import RealizedOccurrence, RecurringTemplate
from recurring_ledger.services.storage import (
    LedgerStoreInterface,
    PersistenceError,
    with_timeout,
)


def occurrence_id_for(template: RecurringTemplate) -> uuid.UUID:
    """
    ID of the occurrence for the template's current due date.

    Derived from (template id, due time), so every attempt at the same
    due date targets the same row and a retry collides instead of
    duplicating.
    """
    return uuid.uuid5(template.id, template.next_run.isoformat())


class OccurrenceMaterializer:
    """
    Writes realized occurrences for due templates.

    GUARANTEES:
    - The input template is never modified
    - The occurrence carries no recurrence state
    - A failed write raises; nothing is silently skipped
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        store_timeout: Optional[float] = None,
    ):
        self._store = store
        self._store_timeout = store_timeout

    def build(self, template: RecurringTemplate) -> RealizedOccurrence:
        """Create (but do not persist) the occurrence for the template's next run."""
        if template.next_run is None:
            raise ValueError(f"Template {template.id} has no next run to materialize")
        return RealizedOccurrence(
            id=occurrence_id_for(template),
            occurrence_time=template.next_run,
            template_id=template.id,
            **template.descriptive_fields(),
        )

    async def materialize(self, template: RecurringTemplate) -> RealizedOccurrence:
        """
        Create and persist the occurrence for the template's next run.

        Raises:
            DuplicateError: The occurrence for this due date already exists
            PersistenceError: The store write failed or timed out
        """
        occurrence = self.build(template)
        call = self._store.insert(occurrence)
        try:
            if self._store_timeout is not None:
                await with_timeout(call, self._store_timeout, "insert occurrence")
            else:
                await call
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to materialize occurrence: {e}") from e
        return occurrence
