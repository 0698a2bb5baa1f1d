"""Error taxonomy shared by the gateway, the record stores and the session."""

from __future__ import annotations


class CoachError(RuntimeError):
	"""Base class for every error the core raises."""


class ConfigurationError(CoachError):
	"""A required credential or setting is missing."""


class GenerationError(CoachError):
	"""The text-generation provider call failed."""


class ParseError(CoachError):
	"""The provider answered, but not with the agreed JSON shape."""

	def __init__(self, message: str, raw: str | None = None) -> None:
		super().__init__(message)
		self.raw = raw


class StoreError(CoachError):
	"""A persistence call failed; nothing was committed."""


class IdentityRequiredError(StoreError):
	"""The remote store was used without a signed-in user."""


class ValidationError(CoachError):
	"""Required input is missing, so the action was blocked locally."""


class SessionBusyError(ValidationError):
	"""A generation is already outstanding for this session."""
