"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for ledger storage.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep scheduler logic decoupled from storage implementation

The interface is intentionally small - it is exactly what the scheduler
and the lifecycle controller need, not a general ORM.

CRITICAL: Templates are never overwritten blindly. update_template is a
compare-and-set: it applies new_fields only if every field in `expected`
still holds, and reports a lost race by returning False.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Mapping
from datetime import datetime
from typing import Any, Optional, TypeVar
from uuid import UUID

from recurring_ledger.models.transaction import (
    RecurringTemplate,
    TransactionRecord,
)
from recurring_ledger.models.audit import AuditEvent


# Template fields a conditional update may compare or set
CONDITION_FIELDS = frozenset({"owner_id", "active", "next_run"})
UPDATABLE_FIELDS = frozenset({"active", "next_run"})

T = TypeVar("T")


class LedgerStoreInterface(ABC):
    """
    Abstract interface for the transaction store.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def find_due_templates(self, before: datetime) -> list[RecurringTemplate]:
        """
        Find templates that are due.

        Args:
            before: Exclusive upper bound for next_run

        Returns:
            Active templates with next_run strictly before `before`

        Raises:
            PersistenceError: If the query fails
        """
        pass

    @abstractmethod
    async def insert(self, record: TransactionRecord) -> UUID:
        """
        Insert a new record.

        Args:
            record: Template or realized occurrence

        Returns:
            The record's ID

        Raises:
            DuplicateError: If a record with this ID already exists
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def update_template(
        self,
        template_id: UUID,
        expected: Mapping[str, Any],
        new_fields: Mapping[str, Any],
    ) -> bool:
        """
        Conditionally update a template.

        Args:
            template_id: Template to update
            expected: Field values that must still hold (owner_id, active, next_run)
            new_fields: Field values to write (active, next_run)

        Returns:
            True if applied, False if the template is missing or a
            condition no longer holds

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def find_template_by_id_and_owner(
        self,
        template_id: UUID,
        owner_id: str,
    ) -> Optional[RecurringTemplate]:
        """
        Look up a template scoped to its owner.

        Returns:
            The template if it exists AND belongs to owner_id, None otherwise
        """
        pass

    @abstractmethod
    async def get_template(self, template_id: UUID) -> Optional[RecurringTemplate]:
        """
        Look up a template regardless of owner.

        Only the scheduler uses this, to re-read a template after a lost race.
        """
        pass

    @abstractmethod
    async def list_records(
        self,
        owner_id: str,
        recurring: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        """
        List one owner's records, newest occurrence first.

        Args:
            owner_id: Whose records to list
            recurring: True for templates only, False for occurrences only
            limit: Maximum number of results
            offset: Number of results to skip
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one sweep).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


def check_update_fields(expected: Mapping[str, Any], new_fields: Mapping[str, Any]) -> None:
    """Reject conditional updates that touch fields outside the template state."""
    unknown = set(expected) - CONDITION_FIELDS
    if unknown:
        raise ValueError(f"Cannot condition on fields: {sorted(unknown)}")
    unknown = set(new_fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {sorted(unknown)}")


async def with_timeout(call: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await a store call with a bound.

    Raises:
        StoreTimeoutError: If the call does not finish within `timeout` seconds
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        raise StoreTimeoutError(f"{operation} timed out after {timeout:g}s")


class PersistenceError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(PersistenceError):
    """Entity not found, or not visible to the caller."""
    pass


class DuplicateError(PersistenceError):
    """Attempted to insert a duplicate entity."""
    pass


class ConflictError(PersistenceError):
    """A conditional write kept losing races."""
    pass


class StoreConnectionError(PersistenceError):
    """Could not connect to storage backend."""
    pass


class StoreTimeoutError(PersistenceError):
    """A storage call did not finish in time."""
    pass
