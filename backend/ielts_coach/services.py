"""Process-wide service handles and the FastAPI dependencies that expose them.

``Services`` is built once at startup and closed at shutdown (see ``main``);
routers reach it through ``request.app.state.services`` instead of module
globals.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import Depends, HTTPException, Request

from .db import SessionLocal
from .errors import (
	CoachError,
	ConfigurationError,
	GenerationError,
	IdentityRequiredError,
	ParseError,
	SessionBusyError,
	StoreError,
	ValidationError,
)
from .generation import GenerationGateway
from .routers.auth import get_identity
from .session import EditingSession
from .settings import settings
from .speech import SpeechController, open_platform_speech
from .stores import LocalRecordStore, RecordStore, RemoteRecordStore

logger = logging.getLogger(__name__)


class Services:
	def __init__(
		self,
		gateway: GenerationGateway,
		local_store: Optional[LocalRecordStore] = None,
		speech: Optional[SpeechController] = None,
	) -> None:
		self.gateway = gateway
		self.local_store = local_store
		# Read-aloud is only available where the host has a speech engine
		self.speech = speech
		self.sessions: Dict[str, EditingSession] = {}

	@classmethod
	def from_settings(cls) -> "Services":
		local_store = None
		if not settings.uses_remote_store:
			local_store = LocalRecordStore(settings.local_store_path, key=settings.local_store_key)
		speech = open_platform_speech() if settings.speech_enabled else None
		return cls(GenerationGateway(), local_store, speech)

	def store_for(self, identity: Optional[str]) -> RecordStore:
		if self.local_store is not None:
			return self.local_store
		return RemoteRecordStore(SessionLocal, identity)

	def close(self) -> None:
		self.sessions.clear()
		if self.local_store is not None:
			self.local_store.close()
		if self.speech is not None:
			self.speech.close()
			self.speech = None


def get_services(request: Request) -> Services:
	return request.app.state.services


def get_store(identity: Optional[str] = Depends(get_identity), services: Services = Depends(get_services)) -> RecordStore:
	return services.store_for(identity)


def get_session(sid: str, identity: Optional[str] = Depends(get_identity), services: Services = Depends(get_services)) -> EditingSession:
	state = services.sessions.get(sid)
	# Sessions are only visible to the identity that opened them
	if state is None or state.owner != identity:
		raise HTTPException(status_code=404, detail="Session not found or expired")
	return state


def http_error(exc: CoachError) -> HTTPException:
	if isinstance(exc, SessionBusyError):
		return HTTPException(status_code=409, detail={"code": "generation_in_progress", "message": str(exc)})
	if isinstance(exc, ValidationError):
		return HTTPException(status_code=400, detail={"code": "missing_input", "message": str(exc)})
	if isinstance(exc, ConfigurationError):
		return HTTPException(status_code=500, detail={"code": "not_configured", "message": str(exc)})
	if isinstance(exc, ParseError):
		return HTTPException(status_code=502, detail={"code": "unparseable_generation", "message": str(exc)})
	if isinstance(exc, GenerationError):
		return HTTPException(status_code=502, detail={"code": "generation_failed", "message": str(exc)})
	if isinstance(exc, IdentityRequiredError):
		return HTTPException(status_code=401, detail={"code": "signed_out", "message": str(exc)})
	if isinstance(exc, StoreError):
		return HTTPException(status_code=503, detail={"code": "store_failed", "message": str(exc)})
	logger.error("Unmapped error: %r", exc)
	return HTTPException(status_code=500, detail={"code": "internal", "message": str(exc)})
