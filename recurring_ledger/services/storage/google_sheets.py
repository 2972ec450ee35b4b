"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the production storage backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: conditional updates are serialized by one thread
  lock and checked against a fresh read of the row inside the same
  worker thread that writes it. This holds because only one scheduler
  instance runs against a spreadsheet.
- Limited query capabilities (we filter in Python)

gspread is synchronous; calls run in a worker thread so the scheduler's
timeouts can still fire while a request is in flight.
"""

import asyncio
import json
import threading
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recurring_ledger.config import get_settings
from recurring_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from recurring_ledger.models.transaction import (
    IntervalUnit,
    RealizedOccurrence,
    RecurringTemplate,
    TransactionRecord,
    TransactionType,
)
from recurring_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStoreInterface,
    PersistenceError,
    StoreConnectionError,
    check_update_fields,
)


logger = structlog.get_logger(__name__)


# Column mappings for Ledger sheet
LEDGER_COLUMNS = [
    "id",
    "owner_id",
    "is_recurring",
    "description",
    "amount",
    "category",
    "type",
    "occurrence_time",
    "interval",
    "next_run",
    "active",
    "template_id",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Transient API errors (quota, 5xx) are retried; anything else surfaces.
api_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StoreConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StoreConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_ledger_sheet(self) -> gspread.Worksheet:
        """Get or create the Ledger worksheet."""
        return self._get_or_create(
            self._settings.ledger_sheet_name, LEDGER_COLUMNS, rows=2000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


def _fmt_time(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def _parse_time(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of the ledger store.

    Templates and occurrences share one worksheet, one record per row.
    The recurrence columns are blank on occurrence rows.

    CRITICAL: Every write (duplicate check + append, compare + overwrite)
    runs start to finish inside one worker thread holding _write_lock.
    A timed-out caller stops waiting, but its thread still finishes under
    the lock, so the next writer always checks against what it wrote.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._write_lock = threading.Lock()

    def _record_to_row(self, record: TransactionRecord) -> list:
        """Convert a record to a spreadsheet row."""
        if isinstance(record, RecurringTemplate):
            interval = record.interval.value
            next_run = _fmt_time(record.next_run)
            active = str(record.active)
            template_id = ""
        else:
            interval = next_run = active = ""
            template_id = str(record.template_id) if record.template_id else ""

        return [
            str(record.id),
            record.owner_id,
            str(record.is_recurring),
            record.description,
            str(record.amount),
            record.category,
            record.type.value,
            record.occurrence_time.isoformat(),
            interval,
            next_run,
            active,
            template_id,
            record.created_at.isoformat(),
            datetime.utcnow().isoformat(),
        ]

    def _row_to_record(
        self,
        row: list,
        keep_unknown_interval: bool = False,
    ) -> TransactionRecord:
        """
        Convert a spreadsheet row to a template or occurrence.

        Args:
            row: Raw cell values
            keep_unknown_interval: Return a template whose interval cell
                holds an unknown unit with the raw value in place, instead
                of raising. The sweep then reports it as an invalid interval.
        """
        # Handle missing columns gracefully
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        common = dict(
            id=UUID(safe_get(0)),
            owner_id=safe_get(1),
            description=safe_get(3),
            amount=Decimal(safe_get(4)),
            category=safe_get(5),
            type=TransactionType(safe_get(6)),
            occurrence_time=datetime.fromisoformat(safe_get(7)),
            created_at=datetime.fromisoformat(safe_get(12)),
        )

        if safe_get(2).lower() == "true":
            recurrence = dict(
                next_run=_parse_time(safe_get(9)),
                active=safe_get(10).lower() == "true",
            )
            try:
                interval = IntervalUnit(safe_get(8))
            except ValueError:
                if not keep_unknown_interval:
                    raise
                return RecurringTemplate.model_construct(
                    **common, **recurrence, interval=safe_get(8)
                )
            return RecurringTemplate(**common, **recurrence, interval=interval)

        return RealizedOccurrence(
            **common,
            template_id=UUID(safe_get(11)) if safe_get(11) else None,
        )

    @api_retry
    def _read_rows(self) -> list[list]:
        """All data rows, header excluded."""
        return self._client.get_ledger_sheet().get_all_values()[1:]

    @api_retry
    def _append_row(self, row: list) -> None:
        self._client.get_ledger_sheet().append_row(row, value_input_option="RAW")

    @api_retry
    def _write_row(self, sheet_row: int, row: list) -> None:
        self._client.get_ledger_sheet().update(
            range_name=f"A{sheet_row}",
            values=[row],
            value_input_option="RAW",
        )

    def _insert_row(self, record: TransactionRecord) -> None:
        with self._write_lock:
            rows = self._read_rows()
            if any(row and row[0] == str(record.id) for row in rows):
                raise DuplicateError(f"Record already exists: {record.id}")
            self._append_row(self._record_to_row(record))

    def _compare_and_write(
        self,
        template_id: UUID,
        expected: Mapping[str, Any],
        new_fields: Mapping[str, Any],
    ) -> bool:
        with self._write_lock:
            rows = self._read_rows()

            # Row 1 is the header
            for sheet_row, row in enumerate(rows, start=2):
                if not row or row[0] != str(template_id):
                    continue

                current = self._row_to_record(row)
                if not isinstance(current, RecurringTemplate):
                    return False
                for field, value in expected.items():
                    if getattr(current, field) != value:
                        return False

                updated = RecurringTemplate.model_validate(
                    {**current.model_dump(), **dict(new_fields)}
                )
                self._write_row(sheet_row, self._record_to_row(updated))
                return True

            return False

    async def _records(self, keep_unknown_interval: bool = False) -> list[TransactionRecord]:
        rows = await asyncio.to_thread(self._read_rows)
        records = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                records.append(self._row_to_record(row, keep_unknown_interval))
            except (ValueError, ArithmeticError) as e:
                logger.warning("ledger_row_skipped", row_id=row[0], error=str(e))
        return records

    async def find_due_templates(self, before: datetime) -> list[RecurringTemplate]:
        try:
            records = await self._records(keep_unknown_interval=True)
        except Exception as e:
            raise PersistenceError(f"Failed to find due templates: {e}")

        due = [
            r for r in records
            if isinstance(r, RecurringTemplate)
            and r.active
            and r.next_run is not None
            and r.next_run < before
        ]
        due.sort(key=lambda t: t.next_run)
        return due

    async def insert(self, record: TransactionRecord) -> UUID:
        try:
            await asyncio.to_thread(self._insert_row, record)
        except DuplicateError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to insert record: {e}")
        return record.id

    async def update_template(
        self,
        template_id: UUID,
        expected: Mapping[str, Any],
        new_fields: Mapping[str, Any],
    ) -> bool:
        check_update_fields(expected, new_fields)
        try:
            return await asyncio.to_thread(
                self._compare_and_write, template_id, expected, new_fields
            )
        except Exception as e:
            raise PersistenceError(f"Failed to update template: {e}")

    async def find_template_by_id_and_owner(
        self,
        template_id: UUID,
        owner_id: str,
    ) -> Optional[RecurringTemplate]:
        template = await self.get_template(template_id)
        if template is None or template.owner_id != owner_id:
            return None
        return template

    async def get_template(self, template_id: UUID) -> Optional[RecurringTemplate]:
        try:
            records = await self._records()
        except Exception as e:
            raise PersistenceError(f"Failed to get template: {e}")

        for record in records:
            if record.id == template_id and isinstance(record, RecurringTemplate):
                return record
        return None

    async def list_records(
        self,
        owner_id: str,
        recurring: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        try:
            records = await self._records()
        except Exception as e:
            raise PersistenceError(f"Failed to list records: {e}")

        records = [
            r for r in records
            if r.owner_id == owner_id
            and (recurring is None or r.is_recurring == recurring)
        ]
        records.sort(key=lambda r: r.occurrence_time, reverse=True)
        return records[offset:offset + limit]


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    @api_retry
    def _append(self, row: list) -> None:
        self._client.get_audit_sheet().append_row(row, value_input_option="RAW")

    async def _events(self) -> list[AuditEvent]:
        rows = await asyncio.to_thread(
            lambda: self._client.get_audit_sheet().get_all_values()[1:]
        )
        events = []
        for row in rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except ValueError:
                    continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            await asyncio.to_thread(self._append, event.to_sheets_row())
            return True
        except Exception as e:
            raise PersistenceError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = await self._events()
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")
        events = [e for e in events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = await self._events()
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")
        events = [
            e for e in events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = await self._events()
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
