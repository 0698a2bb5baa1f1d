"""Read-aloud playback for the model answer and the personal version.

Both script variants share one controller, so at most one utterance is ever
playing. The platform engine is reached through ``SpeechEngine``; the pyttsx3
binding below is the one used on a desktop and is imported lazily so the web
service does not need it installed.
"""

from __future__ import annotations

import abc
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from .errors import ConfigurationError
from .settings import settings

logger = logging.getLogger(__name__)

# Name fragments platforms use for their better-sounding voices
QUALITY_MARKERS = ("natural", "neural", "premium", "enhanced")


@dataclass(frozen=True)
class Voice:
	id: str
	name: str
	lang: str


class SpeechEngine(abc.ABC):
	@abc.abstractmethod
	def voices(self) -> List[Voice]:
		"""Voices installed on this platform."""

	@abc.abstractmethod
	def start(self, text: str, voice: Voice, rate: float, on_done: Callable[[], None]) -> None:
		"""Begin speaking without blocking; call ``on_done`` when finished."""

	@abc.abstractmethod
	def cancel(self) -> None:
		"""Stop the current utterance immediately."""

	def close(self) -> None:
		pass


def _is_english(voice: Voice) -> bool:
	return voice.lang.lower().replace("_", "-").startswith("en")


def select_voice(voices: Sequence[Voice]) -> Optional[Voice]:
	english = [v for v in voices if _is_english(v)]
	for voice in english:
		name = voice.name.lower()
		if any(marker in name for marker in QUALITY_MARKERS):
			return voice
	return english[0] if english else None


class SpeechController:
	def __init__(self, engine: SpeechEngine, *, rate: float = 0.9) -> None:
		self.engine = engine
		self.rate = rate
		self._lock = threading.Lock()
		self._speaking = False
		# Identifies the current utterance so a late completion of a cancelled one is ignored
		self._utterance = 0

	@property
	def is_speaking(self) -> bool:
		return self._speaking

	def speak(self, text: str) -> bool:
		"""Play ``text``, replacing whatever is playing. Returns False on a no-op."""
		if not (text or "").strip():
			return False
		with self._lock:
			if self._speaking:
				self.engine.cancel()
				self._speaking = False
			voice = select_voice(self.engine.voices())
			if voice is None:
				logger.info("No English voice installed; skipping playback")
				return False
			self._utterance += 1
			token = self._utterance
			self._speaking = True
		logger.debug("Speaking %d characters with %s", len(text), voice.name)
		self.engine.start(text, voice, self.rate, lambda: self._finished(token))
		return True

	def stop(self) -> None:
		with self._lock:
			if self._speaking:
				self.engine.cancel()
			self._speaking = False
			self._utterance += 1

	def _finished(self, token: int) -> None:
		with self._lock:
			if token == self._utterance:
				self._speaking = False

	def close(self) -> None:
		self.stop()
		self.engine.close()


def _voice_lang(raw: Any) -> str:
	# pyttsx3 drivers report languages as a list of str or bytes (espeak prefixes a priority byte)
	langs = getattr(raw, "languages", None) or []
	for lang in langs:
		if isinstance(lang, bytes):
			lang = lang.lstrip(b"\x00\x01\x02\x03\x04\x05").decode("utf-8", errors="ignore")
		if lang:
			return str(lang)
	# Some drivers only encode the locale in the voice id
	ident = str(getattr(raw, "id", "")).lower()
	return "en" if ".en" in ident or "en-" in ident or "english" in ident else ""


class Pyttsx3SpeechEngine(SpeechEngine):
	"""Offline platform speech via pyttsx3 (SAPI5, NSSpeechSynthesizer, espeak)."""

	# pyttsx3 speaks at roughly 200 wpm when rate is left alone
	BASE_WPM = 200

	def __init__(self) -> None:
		try:
			import pyttsx3  # type: ignore
		except ImportError as exc:
			raise ConfigurationError("pyttsx3 is not installed; install the 'speech' extra") from exc
		try:
			self._engine = pyttsx3.init()
		except (ImportError, OSError, RuntimeError) as exc:
			raise ConfigurationError(f"No platform speech driver available: {exc}") from exc
		self._thread: Optional[threading.Thread] = None
		self._on_done: Optional[Callable[[], None]] = None
		self._engine.connect("finished-utterance", self._handle_finished)

	def voices(self) -> List[Voice]:
		return [
			Voice(id=str(v.id), name=str(getattr(v, "name", "") or v.id), lang=_voice_lang(v))
			for v in self._engine.getProperty("voices")
		]

	def start(self, text: str, voice: Voice, rate: float, on_done: Callable[[], None]) -> None:
		self._on_done = on_done
		self._engine.setProperty("voice", voice.id)
		self._engine.setProperty("rate", int(self.BASE_WPM * rate))
		self._engine.say(text)
		self._thread = threading.Thread(target=self._engine.runAndWait, name="speech", daemon=True)
		self._thread.start()

	def cancel(self) -> None:
		self._on_done = None
		self._engine.stop()
		if self._thread is not None:
			self._thread.join(timeout=2)
			self._thread = None

	def _handle_finished(self, name: Any, completed: bool) -> None:
		callback, self._on_done = self._on_done, None
		if callback is not None:
			callback()

	def close(self) -> None:
		self.cancel()


def open_platform_speech() -> SpeechController:
	"""Controller bound to the local speech engine; call ``close()`` on shutdown."""
	return SpeechController(Pyttsx3SpeechEngine(), rate=settings.speech_rate)
