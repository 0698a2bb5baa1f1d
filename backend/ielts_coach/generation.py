"""
Generation Gateway
==================

Turns a topic and a rough idea into a band-targeted IELTS speaking answer plus
a handful of reusable phrases, using Gemini in JSON output mode.

The gateway only talks to the provider. It never touches the record store;
folding a result into an editing session is the session's job.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from .errors import ConfigurationError, ParseError
from .gemini_client import GeminiClient
from .schemas import GenerationRequest, GenerationResult, Highlight, format_band
from .settings import settings

logger = logging.getLogger(__name__)


def build_prompt(req: GenerationRequest) -> str:
	"""Build the examiner instruction for one request."""
	band = format_band(req.band)
	return f"""
You are an experienced IELTS speaking examiner and coach.

Task 1: Write a Band {band} answer for IELTS Speaking {req.part.value}.
Topic: {req.topic}
Candidate's idea (may be written in Chinese): {req.idea}
- Build the answer around the candidate's idea and speak in the first person.
- It must sound spoken, not written: natural fillers, contractions, idiomatic collocations typical of Band {band}.
- Match the usual length of a {req.part.value} answer.

Task 2: Pick 3-5 "magic phrases" (high-scoring collocations or idioms) from the answer you wrote.
- Each phrase must be generic enough to be reused for other topics.
- Give its meaning in Chinese.
- Give a short tip, in Chinese, on where else it can be reused.

Return STRICT JSON only, no markdown, following exactly this schema:
{{
  "content": string,
  "highlights": [
    {{"phrase": string, "cn_meaning": string, "reusability": string}}
  ]
}}
""".strip()


def _extract_json_block(text: str) -> Dict[str, Any]:
	"""Decode the model text into a JSON object.

	JSON mode normally yields a bare object, but a stray markdown fence or a
	sentence around it still happens; the first ``{...}`` block is tried next.

	Raises:
		ParseError: If no JSON object can be recovered.
	"""
	try:
		data = json.loads(text)
	except (TypeError, ValueError):
		data = None
		match = re.search(r"\{[\s\S]*\}", text or "")
		if match:
			try:
				data = json.loads(match.group(0))
			except ValueError:
				data = None
	if not isinstance(data, dict):
		raise ParseError("Model output is not a JSON object", raw=text)
	return data


def parse_result(text: str) -> GenerationResult:
	"""Validate the model output against ``{content, highlights[]}``.

	Extra top-level keys are ignored; anything missing or of the wrong type
	is a ParseError.
	"""
	data = _extract_json_block(text)
	content = data.get("content")
	if not isinstance(content, str) or not content.strip():
		raise ParseError("Model output has no 'content' text", raw=text)
	raw_highlights = data.get("highlights")
	if not isinstance(raw_highlights, list):
		raise ParseError("Model output has no 'highlights' list", raw=text)
	highlights: List[Highlight] = []
	for index, item in enumerate(raw_highlights):
		if not isinstance(item, dict):
			raise ParseError(f"Highlight #{index} is not an object", raw=text)
		fields = {}
		for key in ("phrase", "cn_meaning", "reusability"):
			value = item.get(key)
			if not isinstance(value, str):
				raise ParseError(f"Highlight #{index} is missing '{key}'", raw=text)
			fields[key] = value.strip()
		highlights.append(Highlight(**fields))
	return GenerationResult(content=content.strip(), highlights=tuple(highlights))


class GenerationGateway:
	"""Single round trip to Gemini per call; failures are raised, never retried."""

	def __init__(
		self,
		*,
		api_key: Optional[str] = None,
		model: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self._api_key = api_key
		self._model = model
		self._transport = transport

	@property
	def configured(self) -> bool:
		return bool(self._api_key or settings.gemini_api_key)

	async def generate(self, req: GenerationRequest) -> GenerationResult:
		if not self.configured:
			raise ConfigurationError("GEMINI_API_KEY is not configured")
		client = GeminiClient(self._api_key, model=self._model, transport=self._transport)
		try:
			logger.info("Generating %s band %s answer for topic %r", req.part.value, format_band(req.band), req.topic)
			raw = await client.generate_json(build_prompt(req))
		finally:
			await client.aclose()
		try:
			result = parse_result(raw)
		except ParseError:
			logger.warning("Gemini output did not match the answer schema")
			raise
		logger.debug("Generated %d characters, %d highlights", len(result.content), len(result.highlights))
		return result
