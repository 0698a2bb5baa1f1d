from __future__ import annotations
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Response

from ..errors import CoachError
from ..schemas import Record, RecordIn
from ..session import group_by_part
from ..services import get_store, http_error
from ..stores import RecordStore

router = APIRouter(prefix="/records", tags=["records"])


@router.get("", response_model=List[Record])
async def list_records(store: RecordStore = Depends(get_store)):
	try:
		return await store.list()
	except CoachError as e:
		raise http_error(e)


@router.get("/grouped", response_model=Dict[str, List[Record]])
async def grouped_records(store: RecordStore = Depends(get_store)):
	"""History sidebar: records grouped under Part 1/2/3, newest first in each."""
	try:
		return group_by_part(await store.list())
	except CoachError as e:
		raise http_error(e)


@router.get("/{record_id}", response_model=Record)
async def get_record(record_id: str, store: RecordStore = Depends(get_store)):
	try:
		record = await store.get(record_id)
	except CoachError as e:
		raise http_error(e)
	if record is None:
		raise HTTPException(status_code=404, detail="Record not found")
	return record


@router.put("", response_model=Record)
async def upsert_record(body: RecordIn, store: RecordStore = Depends(get_store)):
	try:
		return await store.upsert(Record(**body.model_dump()))
	except CoachError as e:
		raise http_error(e)


@router.delete("/{record_id}", status_code=204)
async def delete_record(record_id: str, store: RecordStore = Depends(get_store)):
	try:
		await store.remove(record_id)
	except CoachError as e:
		raise http_error(e)
	return Response(status_code=204)
