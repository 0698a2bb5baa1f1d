from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


# Target bands offered by the band selector
BANDS: List[float] = [6.0, 6.5, 7.0, 7.5, 8.0]


class Part(str, Enum):
	PART1 = "Part 1"
	PART2 = "Part 2"
	PART3 = "Part 3"


def utcnow() -> datetime:
	# Naive UTC, matching what SQLite hands back
	return datetime.now(timezone.utc).replace(tzinfo=None)


def format_band(band: float) -> str:
	return f"{band:.1f}"


def check_band(value: Any) -> float:
	try:
		band = float(value)
	except (TypeError, ValueError):
		raise ValueError(f"band must be one of {', '.join(format_band(b) for b in BANDS)}")
	if band not in BANDS:
		raise ValueError(f"band must be one of {', '.join(format_band(b) for b in BANDS)}")
	return band


def check_text(value: Any) -> str:
	if not isinstance(value, str) or not value.strip():
		raise ValueError("must not be empty")
	return value


class Highlight(BaseModel):
	"""A reusable high-scoring phrase picked out of a model answer."""
	model_config = ConfigDict(frozen=True, populate_by_name=True)

	phrase: str
	cn_meaning: str
	reusability_note: str = Field(
		validation_alias=AliasChoices("reusability_note", "reusability"),
		serialization_alias="reusability",
	)

	def to_wire(self) -> Dict[str, str]:
		return {"phrase": self.phrase, "cn_meaning": self.cn_meaning, "reusability": self.reusability_note}


class GenerationRequest(BaseModel):
	part: Part = Part.PART1
	band: float = 7.0
	topic: str
	idea: str

	@field_validator("band", mode="before")
	@classmethod
	def _validate_band(cls, value: Any) -> float:
		return check_band(value)

	@field_validator("topic", "idea")
	@classmethod
	def _not_blank(cls, value: str) -> str:
		return check_text(value).strip()


class GenerationResult(BaseModel):
	model_config = ConfigDict(frozen=True)

	content: str
	highlights: tuple[Highlight, ...] = ()


class Record(BaseModel):
	"""The persisted unit: one generated answer plus the user's own edit of it."""

	id: Optional[str] = None
	owner: Optional[str] = None
	created_at: datetime = Field(default_factory=utcnow)
	updated_at: datetime = Field(default_factory=utcnow)
	part: Part
	topic: str
	band: float
	ai_script: str
	personal_script: Optional[str] = None
	highlights: List[Highlight] = Field(default_factory=list)

	@field_validator("band", mode="before")
	@classmethod
	def _validate_band(cls, value: Any) -> float:
		return check_band(value)

	@field_validator("topic", "ai_script")
	@classmethod
	def _not_blank(cls, value: str) -> str:
		return check_text(value)

	@model_validator(mode="after")
	def _default_personal_script(self) -> "Record":
		# A cleared personal version falls back to the model answer
		if not (self.personal_script or "").strip():
			self.personal_script = self.ai_script
		return self


class RecordIn(BaseModel):
	"""Body accepted by the record upsert endpoint."""
	id: Optional[str] = None
	part: Part
	topic: str
	band: float
	ai_script: str
	personal_script: Optional[str] = None
	highlights: List[Highlight] = Field(default_factory=list)

	@field_validator("band", mode="before")
	@classmethod
	def _validate_band(cls, value: Any) -> float:
		return check_band(value)

	@field_validator("topic", "ai_script")
	@classmethod
	def _not_blank(cls, value: str) -> str:
		return check_text(value)
