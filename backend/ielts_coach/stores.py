"""
Record stores
=============

Two interchangeable persistence backends behind one async CRUD contract:

- ``LocalRecordStore``: this device only. The whole collection lives as one
  JSON array under one storage key and is rewritten on every change. Field
  names follow the browser storage format (``aiScript``, ``personalScript``,
  millisecond ``timestamp``) so existing exports load as-is.
- ``RemoteRecordStore``: a shared SQL table, every row tagged with its owner
  and every query scoped to the signed-in user.

Translation between the canonical ``Record`` and each on-disk shape happens
here and nowhere else.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import os
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import IdentityRequiredError, StoreError
from .models import SpeakingRecord
from .schemas import Highlight, Record, format_band, utcnow

logger = logging.getLogger(__name__)


def new_record_id() -> str:
	return uuid.uuid4().hex


class RecordStore(abc.ABC):
	"""CRUD contract shared by both backends."""

	@abc.abstractmethod
	async def list(self) -> List[Record]:
		"""Return every record in scope, most recently updated first."""

	@abc.abstractmethod
	async def upsert(self, record: Record) -> Record:
		"""Replace the record with the same id, or insert it as new.

		A record without an id gets a fresh one. ``created_at`` of an existing
		record is kept; ``updated_at`` is always refreshed.
		"""

	@abc.abstractmethod
	async def remove(self, record_id: str) -> None:
		"""Delete by id. Unknown ids are not an error."""

	async def get(self, record_id: str) -> Optional[Record]:
		for record in await self.list():
			if record.id == record_id:
				return record
		return None

	def close(self) -> None:
		pass


# ============================================================================
# LOCAL BACKEND
# ============================================================================

def _to_millis(value: datetime) -> int:
	return int(value.replace(tzinfo=timezone.utc).timestamp() * 1000)


def _from_millis(value: Any) -> datetime:
	return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).replace(tzinfo=None)


def record_to_local(record: Record) -> Dict[str, Any]:
	return {
		"id": record.id,
		"timestamp": _to_millis(record.updated_at),
		"createdAt": _to_millis(record.created_at),
		"part": record.part.value,
		"topic": record.topic,
		"band": format_band(record.band),
		"aiScript": record.ai_script,
		"highlights": [h.to_wire() for h in record.highlights],
		"personalScript": record.personal_script,
	}


def record_from_local(item: Dict[str, Any]) -> Record:
	# Items written before createdAt existed only carry the save timestamp
	updated = _from_millis(item["timestamp"])
	created = _from_millis(item["createdAt"]) if item.get("createdAt") is not None else updated
	return Record(
		id=str(item["id"]),
		created_at=created,
		updated_at=updated,
		part=item["part"],
		topic=item["topic"],
		band=item["band"],
		ai_script=item["aiScript"],
		personal_script=item.get("personalScript"),
		highlights=item.get("highlights") or [],
	)


class LocalRecordStore(RecordStore):
	"""One JSON file standing in for the browser's key/value storage."""

	def __init__(self, path: Path | str, key: str = "ielts_records") -> None:
		self.path = Path(path)
		self.key = key
		self._lock = threading.Lock()

	async def list(self) -> List[Record]:
		return await asyncio.to_thread(self._list_sync)

	async def upsert(self, record: Record) -> Record:
		return await asyncio.to_thread(self._upsert_sync, record)

	async def remove(self, record_id: str) -> None:
		await asyncio.to_thread(self._remove_sync, record_id)

	def _list_sync(self) -> List[Record]:
		with self._lock:
			records = self._read_all()
		return sorted(records, key=lambda r: r.updated_at, reverse=True)

	def _upsert_sync(self, record: Record) -> Record:
		with self._lock:
			records = self._read_all()
			existing = next((r for r in records if record.id is not None and r.id == record.id), None)
			now = _from_millis(_to_millis(utcnow()))
			stored = record.model_copy(update={
				"id": record.id or new_record_id(),
				"owner": None,
				"created_at": existing.created_at if existing else now,
				"updated_at": now,
			})
			remaining = [r for r in records if r.id != stored.id]
			# Newest first, the same order the list is shown in
			self._write_all([stored] + remaining)
		logger.info("%s local record %s", "Updated" if existing else "Created", stored.id)
		return stored

	def _remove_sync(self, record_id: str) -> None:
		with self._lock:
			records = self._read_all()
			remaining = [r for r in records if r.id != record_id]
			if len(remaining) == len(records):
				return
			self._write_all(remaining)
		logger.info("Removed local record %s", record_id)

	def _read_slots(self) -> Dict[str, Any]:
		if not self.path.exists():
			return {}
		try:
			slots = json.loads(self.path.read_text(encoding="utf-8") or "{}")
		except (OSError, ValueError) as exc:
			raise StoreError(f"Failed to read local records from {self.path}: {exc}") from exc
		if not isinstance(slots, dict):
			raise StoreError(f"Local storage file {self.path} is not a JSON object")
		return slots

	def _read_all(self) -> List[Record]:
		items = self._read_slots().get(self.key) or []
		try:
			return [record_from_local(item) for item in items]
		except (KeyError, TypeError, ValueError, PydanticValidationError) as exc:
			raise StoreError(f"Local records under '{self.key}' are corrupt: {exc}") from exc

	def _write_all(self, records: List[Record]) -> None:
		slots = self._read_slots()
		slots[self.key] = [record_to_local(r) for r in records]
		try:
			self.path.parent.mkdir(parents=True, exist_ok=True)
			fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
		except OSError as exc:
			raise StoreError(f"Failed to write local records to {self.path}: {exc}") from exc
		try:
			with os.fdopen(fd, "w", encoding="utf-8") as fh:
				json.dump(slots, fh, ensure_ascii=False, indent=2)
			os.replace(tmp_name, self.path)
		except (OSError, TypeError, ValueError) as exc:
			# The previous file stays as it was; only the partial copy is dropped
			try:
				os.unlink(tmp_name)
			except OSError as cleanup_exc:
				logger.warning("Could not remove partial write %s: %s", tmp_name, cleanup_exc)
			raise StoreError(f"Failed to write local records to {self.path}: {exc}") from exc


# ============================================================================
# REMOTE BACKEND
# ============================================================================

def record_from_row(row: SpeakingRecord) -> Record:
	return Record(
		id=row.id,
		owner=row.owner,
		created_at=row.created_at,
		updated_at=row.updated_at,
		part=row.part,
		topic=row.topic,
		band=row.band,
		ai_script=row.ai_script,
		personal_script=row.personal_script,
		highlights=[Highlight(**h) for h in json.loads(row.highlights_json or "[]")],
	)


def _apply_to_row(row: SpeakingRecord, record: Record) -> None:
	row.part = record.part.value
	row.topic = record.topic
	row.band = format_band(record.band)
	row.ai_script = record.ai_script
	row.personal_script = record.personal_script
	row.highlights_json = json.dumps([h.to_wire() for h in record.highlights], ensure_ascii=False)


class RemoteRecordStore(RecordStore):
	"""Owner-scoped records in the shared ``speaking_records`` table."""

	def __init__(self, session_factory: Callable[[], Session], owner: Optional[str]) -> None:
		self._session_factory = session_factory
		self.owner = owner

	def _require_owner(self) -> str:
		if not self.owner:
			raise IdentityRequiredError("Sign in to use the cloud record store")
		return self.owner

	async def list(self) -> List[Record]:
		owner = self._require_owner()
		return await asyncio.to_thread(self._list_sync, owner)

	async def upsert(self, record: Record) -> Record:
		owner = self._require_owner()
		return await asyncio.to_thread(self._upsert_sync, owner, record)

	async def remove(self, record_id: str) -> None:
		owner = self._require_owner()
		await asyncio.to_thread(self._remove_sync, owner, record_id)

	def _list_sync(self, owner: str) -> List[Record]:
		with self._session_factory() as db:
			try:
				rows = db.execute(
					select(SpeakingRecord)
					.where(SpeakingRecord.owner == owner)
					.order_by(SpeakingRecord.updated_at.desc())
				).scalars().all()
			except SQLAlchemyError as exc:
				logger.warning("Listing records for %s failed: %s", owner, exc)
				raise StoreError(f"Failed to list records: {exc}") from exc
			return [record_from_row(row) for row in rows]

	def _upsert_sync(self, owner: str, record: Record) -> Record:
		with self._session_factory() as db:
			try:
				row = db.get(SpeakingRecord, record.id) if record.id else None
				if row is not None and row.owner != owner:
					raise StoreError(f"Record {record.id} belongs to another user")
				now = utcnow()
				created = row is None
				if row is None:
					row = SpeakingRecord(id=record.id or new_record_id(), owner=owner, created_at=now)
					db.add(row)
				_apply_to_row(row, record)
				row.updated_at = now
				db.commit()
				db.refresh(row)
			except SQLAlchemyError as exc:
				db.rollback()
				logger.warning("Saving record %s for %s failed: %s", record.id, owner, exc)
				raise StoreError(f"Failed to save record: {exc}") from exc
			logger.info("%s remote record %s for %s", "Created" if created else "Updated", row.id, owner)
			return record_from_row(row)

	def _remove_sync(self, owner: str, record_id: str) -> None:
		with self._session_factory() as db:
			try:
				db.execute(
					delete(SpeakingRecord)
					.where(SpeakingRecord.id == record_id)
					.where(SpeakingRecord.owner == owner)
				)
				db.commit()
			except SQLAlchemyError as exc:
				db.rollback()
				logger.warning("Removing record %s for %s failed: %s", record_id, owner, exc)
				raise StoreError(f"Failed to remove record: {exc}") from exc
