"""
Editing session
===============

One ``EditingSession`` per active editing context. It holds the draft the user
is working on and, once saved or loaded, the id of the record it belongs to.
Every action (generate, save, load, delete, reset) goes through it so the
transition rules live in one place, whichever record store is configured.

States are derived from the fields rather than stored:

- EMPTY: nothing typed, nothing generated
- DRAFTING: topic or idea typed, no answer yet
- GENERATING: a generation call is outstanding
- GENERATED_UNSAVED: answer present, no record id
- GENERATED_SAVED: answer present, matches the saved record
- EDITING_SAVED: answer present, differs from the saved record

A second ``generate`` while one is outstanding is rejected with
``SessionBusyError``; it is never queued and never races the first.
Draft and personal-script edits are rejected the same way until the call
returns, so a result always lands on the topic and part it was asked for.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from .errors import SessionBusyError, ValidationError
from .schemas import GenerationRequest, GenerationResult, Highlight, Part, Record, check_band
from .stores import RecordStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
	EMPTY = "empty"
	DRAFTING = "drafting"
	GENERATING = "generating"
	GENERATED_UNSAVED = "generated_unsaved"
	GENERATED_SAVED = "generated_saved"
	EDITING_SAVED = "editing_saved"


class Generator(Protocol):
	async def generate(self, req: GenerationRequest) -> GenerationResult: ...


class EditingSession:
	def __init__(self, *, part: Part = Part.PART1, band: float = 7.0, owner: Optional[str] = None) -> None:
		self.session_id: str = uuid.uuid4().hex
		self.owner: Optional[str] = owner
		self.part: Part = part
		self.band: float = band
		self.topic: str = ""
		self.idea: str = ""
		self.ai_script: str = ""
		self.personal_script: str = ""
		self.highlights: List[Highlight] = []
		self.record_id: Optional[str] = None
		self._saved: Optional[Record] = None
		self._generating: bool = False
		# Bumped by load/reset so a late generation result is not folded into a different draft
		self._epoch: int = 0

	# ------------------------------------------------------------------
	# state
	# ------------------------------------------------------------------

	@property
	def state(self) -> SessionState:
		if self._generating:
			return SessionState.GENERATING
		if not self.ai_script:
			if self.topic.strip() or self.idea.strip():
				return SessionState.DRAFTING
			return SessionState.EMPTY
		if self.record_id is None:
			return SessionState.GENERATED_UNSAVED
		if self._saved is not None and self._fingerprint() == _fingerprint_of(self._saved):
			return SessionState.GENERATED_SAVED
		return SessionState.EDITING_SAVED

	@property
	def is_generating(self) -> bool:
		return self._generating

	def _fingerprint(self) -> Tuple[Any, ...]:
		return (self.part, self.band, self.topic, self.ai_script, self.personal_script, tuple(self.highlights))

	def _check_idle(self) -> None:
		if self._generating:
			raise SessionBusyError("Wait for the generation to finish before editing")

	# ------------------------------------------------------------------
	# edits
	# ------------------------------------------------------------------

	def update_draft(
		self,
		*,
		part: Optional[Part] = None,
		band: Optional[float] = None,
		topic: Optional[str] = None,
		idea: Optional[str] = None,
	) -> None:
		self._check_idle()
		if part is not None:
			self.part = Part(part)
		if band is not None:
			try:
				self.band = check_band(band)
			except ValueError as exc:
				raise ValidationError(str(exc)) from exc
		if topic is not None:
			self.topic = topic
		if idea is not None:
			self.idea = idea

	def edit_personal_script(self, text: str) -> None:
		self._check_idle()
		self.personal_script = text

	# ------------------------------------------------------------------
	# actions
	# ------------------------------------------------------------------

	async def generate(self, gateway: Generator) -> GenerationResult:
		if self._generating:
			raise SessionBusyError("A generation is already running for this session")
		if not self.topic.strip() or not self.idea.strip():
			raise ValidationError("Enter both a topic and an idea before generating")
		req = GenerationRequest(part=self.part, band=self.band, topic=self.topic, idea=self.idea)

		regenerating = self.record_id is not None
		if not regenerating:
			# A first-time generation starts from a clean slate
			self.ai_script = ""
			self.highlights = []
			self.personal_script = ""
		epoch = self._epoch
		self._generating = True
		try:
			result = await gateway.generate(req)
		finally:
			self._generating = False

		if epoch != self._epoch:
			logger.info("Session %s changed during generation; result discarded", self.session_id)
			return result
		self.ai_script = result.content
		self.highlights = list(result.highlights)
		if not regenerating:
			self.personal_script = result.content
		logger.info("Session %s generated -> %s", self.session_id, self.state.value)
		return result

	async def save(self, store: RecordStore) -> Record:
		if self._generating:
			raise SessionBusyError("Wait for the generation to finish before saving")
		if not self.topic.strip() or not self.ai_script:
			raise ValidationError("Nothing to save yet: generate an answer first")
		draft = Record(
			id=self.record_id,
			owner=self.owner,
			part=self.part,
			topic=self.topic,
			band=self.band,
			ai_script=self.ai_script,
			personal_script=self.personal_script or self.ai_script,
			highlights=list(self.highlights),
		)
		saved = await store.upsert(draft)
		# Only commit to the session once the store has accepted the write
		self.record_id = saved.id
		self.personal_script = saved.personal_script or ""
		self._saved = saved
		logger.info("Session %s saved record %s", self.session_id, saved.id)
		return saved

	def load(self, record: Record) -> None:
		self._epoch += 1
		self.record_id = record.id
		self.part = record.part
		self.band = record.band
		self.topic = record.topic
		# idea is not stored with a record and is left as typed
		self.ai_script = record.ai_script
		self.personal_script = record.personal_script or record.ai_script
		self.highlights = list(record.highlights)
		self._saved = record
		logger.debug("Session %s loaded record %s", self.session_id, record.id)

	async def delete(self, store: RecordStore, record_id: str) -> None:
		await store.remove(record_id)
		if record_id == self.record_id:
			self.reset()

	def reset(self) -> None:
		self._epoch += 1
		self.record_id = None
		self.topic = ""
		self.idea = ""
		self.ai_script = ""
		self.personal_script = ""
		self.highlights = []
		self._saved = None

	def snapshot(self) -> Dict[str, Any]:
		return {
			"session_id": self.session_id,
			"state": self.state.value,
			"record_id": self.record_id,
			"part": self.part.value,
			"band": self.band,
			"topic": self.topic,
			"idea": self.idea,
			"ai_script": self.ai_script,
			"personal_script": self.personal_script,
			"highlights": [h.to_wire() for h in self.highlights],
		}


def _fingerprint_of(record: Record) -> Tuple[Any, ...]:
	return (record.part, record.band, record.topic, record.ai_script, record.personal_script, tuple(record.highlights))


def group_by_part(records: Iterable[Record]) -> Dict[str, List[Record]]:
	"""Group history by speaking part, skipping parts with no records."""
	records = list(records)
	grouped: Dict[str, List[Record]] = {}
	for part in Part:
		items = [r for r in records if r.part == part]
		if items:
			grouped[part.value] = items
	return grouped
