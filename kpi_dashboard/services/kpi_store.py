"""
KPI record store.

Holds every saved KPI definition in memory and mirrors the full list, as one
JSON array, into a single key-value slot of a storage backend. The store is
built once by the app factory and handed to request handlers; callers only
ever receive copies of the records.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol
from pydantic import ValidationError
from sqlalchemy.orm import Session
from kpi_dashboard.db import get_db
from kpi_dashboard.models import StorageSlot
from kpi_dashboard.schemas import ChartKind, KpiCreate, KpiRecord, KpiUpdate

logger = logging.getLogger(__name__)

DEFAULT_SLOT = 'kpi-store-data'


class StorageBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Dict-backed slots, for tests and throwaway sessions."""

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._slots: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._slots.get(key)

    def set(self, key: str, value: str) -> None:
        self._slots[key] = value


class SqlStorage:
    """Slots persisted in the storage_slot table."""

    def get(self, key: str) -> str | None:
        with get_db() as session:
            slot = session.get(StorageSlot, key)
            return slot.value if slot else None

    def set(self, key: str, value: str) -> None:
        with get_db() as session:
            self._upsert(session, key, value)

    @staticmethod
    def _upsert(session: Session, key: str, value: str) -> None:
        slot = session.get(StorageSlot, key)
        if slot is None:
            session.add(StorageSlot(key=key, value=value))
        else:
            slot.value = value


def _now_iso() -> str:
    """UTC now as e.g. ``2024-05-01T12:00:00.123Z``."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class KpiStore:
    def __init__(self, backend: StorageBackend, slot: str = DEFAULT_SLOT):
        self._backend = backend
        self._slot = slot
        self._kpis: list[KpiRecord] = []
        self._load()

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        raw = self._backend.get(self._slot)

        if raw is None:
            self._kpis = []
            self._save()
            return

        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError(f"expected a JSON array, got {type(entries).__name__}")
        except ValueError as e:
            logger.error(f"Failed to parse KPI data from slot '{self._slot}': {e}")
            self._kpis = []
            self._save()
            return

        needs_update = self._migrate(entries)
        self._kpis = []
        for entry in entries:
            try:
                self._kpis.append(KpiRecord.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Dropping invalid KPI record {entry.get('id') if isinstance(entry, dict) else entry!r}: {e}")
                needs_update = True

        if needs_update:
            self._save()

        logger.info(f"Loaded {len(self._kpis)} KPI record(s) from slot '{self._slot}'")

    @staticmethod
    def _migrate(entries: list[Any]) -> bool:
        """Backfill fields older records lack. Returns True when anything changed."""
        changed = False
        for entry in entries:
            if isinstance(entry, dict) and not entry.get('chartType'):
                entry['chartType'] = ChartKind.LINE.value
                changed = True
        return changed

    def _save(self) -> None:
        payload = json.dumps([kpi.to_json() for kpi in self._kpis])
        self._backend.set(self._slot, payload)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def list_all(self) -> list[KpiRecord]:
        return [kpi.model_copy(deep=True) for kpi in self._kpis]

    def get_by_id(self, kpi_id: str) -> KpiRecord | None:
        for kpi in self._kpis:
            if kpi.id == kpi_id:
                return kpi.model_copy(deep=True)
        return None

    def create(self, fields: KpiCreate | Mapping[str, Any]) -> KpiRecord:
        if not isinstance(fields, KpiCreate):
            fields = KpiCreate.model_validate(fields)

        now = _now_iso()
        kpi = KpiRecord(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **fields.model_dump(),
        )
        self._kpis.append(kpi)
        self._save()

        logger.info(f"Created KPI {kpi.id} ({kpi.name!r}) for machine {kpi.machine_id}")
        return kpi.model_copy(deep=True)

    def update(self, kpi_id: str, updates: KpiUpdate | Mapping[str, Any]) -> KpiRecord | None:
        if not isinstance(updates, KpiUpdate):
            updates = KpiUpdate.model_validate(updates)

        for index, kpi in enumerate(self._kpis):
            if kpi.id != kpi_id:
                continue

            changes = updates.model_dump(exclude_unset=True)
            merged = kpi.model_dump()
            merged.update(changes)
            merged['updated_at'] = _now_iso()

            updated = KpiRecord.model_validate(merged)
            self._kpis[index] = updated
            self._save()

            logger.info(f"Updated KPI {kpi_id}: {sorted(changes)}")
            return updated.model_copy(deep=True)

        return None

    def delete(self, kpi_id: str) -> bool:
        initial = len(self._kpis)
        self._kpis = [kpi for kpi in self._kpis if kpi.id != kpi_id]
        deleted = len(self._kpis) < initial
        if deleted:
            self._save()
            logger.info(f"Deleted KPI {kpi_id}")
        return deleted

    def clear_all(self) -> None:
        self._kpis = []
        self._save()

    def __len__(self) -> int:
        return len(self._kpis)
