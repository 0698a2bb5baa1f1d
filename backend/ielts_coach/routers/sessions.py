"""
Editing sessions
================

Server-side editing sessions, one per open editor. The client drives the
session with the same actions as the two-pane page: type a draft, generate,
edit the personal version, save, load from history, delete, start over.

API Endpoints:
- POST   /sessions: open a new empty session
- GET    /sessions/{sid}: current draft and state
- PATCH  /sessions/{sid}: edit topic/idea/part/band or the personal script
- POST   /sessions/{sid}/generate: (re)generate the model answer
- POST   /sessions/{sid}/save: create or update the stored record
- POST   /sessions/{sid}/load/{record_id}: open a stored record
- DELETE /sessions/{sid}/records/{record_id}: delete a stored record
- POST   /sessions/{sid}/reset: start a new practice
- DELETE /sessions/{sid}: close the session
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from ..errors import CoachError
from ..schemas import Highlight, Part, Record
from ..services import Services, get_services, get_session, get_store, http_error
from ..session import EditingSession
from ..stores import RecordStore
from .auth import get_identity

router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionView(BaseModel):
	session_id: str
	state: str
	record_id: Optional[str] = None
	part: Part
	band: float
	topic: str
	idea: str
	ai_script: str
	personal_script: str
	highlights: List[Highlight] = Field(default_factory=list)


class StartRequest(BaseModel):
	part: Part = Part.PART1
	band: float = 7.0


class DraftUpdate(BaseModel):
	part: Optional[Part] = None
	band: Optional[float] = None
	topic: Optional[str] = None
	idea: Optional[str] = None
	personal_script: Optional[str] = None


def _view(state: EditingSession) -> SessionView:
	return SessionView(**state.snapshot())


@router.post("", response_model=SessionView, status_code=201)
async def open_session(
	req: Optional[StartRequest] = None,
	identity: Optional[str] = Depends(get_identity),
	services: Services = Depends(get_services),
):
	req = req or StartRequest()
	state = EditingSession(part=req.part, owner=identity)
	try:
		state.update_draft(band=req.band)
	except CoachError as e:
		raise http_error(e)
	services.sessions[state.session_id] = state
	return _view(state)


@router.get("/{sid}", response_model=SessionView)
async def read_session(state: EditingSession = Depends(get_session)):
	return _view(state)


@router.patch("/{sid}", response_model=SessionView)
async def update_session(body: DraftUpdate, state: EditingSession = Depends(get_session)):
	try:
		state.update_draft(part=body.part, band=body.band, topic=body.topic, idea=body.idea)
		if body.personal_script is not None:
			state.edit_personal_script(body.personal_script)
	except CoachError as e:
		raise http_error(e)
	return _view(state)


@router.post("/{sid}/generate", response_model=SessionView)
async def generate(state: EditingSession = Depends(get_session), services: Services = Depends(get_services)):
	try:
		await state.generate(services.gateway)
	except CoachError as e:
		raise http_error(e)
	return _view(state)


@router.post("/{sid}/save", response_model=Record)
async def save(state: EditingSession = Depends(get_session), store: RecordStore = Depends(get_store)):
	try:
		return await state.save(store)
	except CoachError as e:
		raise http_error(e)


@router.post("/{sid}/load/{record_id}", response_model=SessionView)
async def load(record_id: str, state: EditingSession = Depends(get_session), store: RecordStore = Depends(get_store)):
	try:
		record = await store.get(record_id)
	except CoachError as e:
		raise http_error(e)
	if record is None:
		raise HTTPException(status_code=404, detail="Record not found")
	state.load(record)
	return _view(state)


@router.delete("/{sid}/records/{record_id}", response_model=SessionView)
async def delete_record(record_id: str, state: EditingSession = Depends(get_session), store: RecordStore = Depends(get_store)):
	try:
		await state.delete(store, record_id)
	except CoachError as e:
		raise http_error(e)
	return _view(state)


@router.post("/{sid}/reset", response_model=SessionView)
async def reset(state: EditingSession = Depends(get_session)):
	state.reset()
	return _view(state)


@router.delete("/{sid}", status_code=204)
async def close_session(state: EditingSession = Depends(get_session), services: Services = Depends(get_services)):
	services.sessions.pop(state.session_id, None)
	return Response(status_code=204)
