from fastapi import APIRouter, Depends
from typing import List

from pydantic import BaseModel

from ..errors import CoachError
from ..schemas import GenerationRequest, Highlight
from ..services import Services, get_services, http_error
from .auth import get_identity

router = APIRouter(prefix="/generate", tags=["generate"])


class GenerateResponse(BaseModel):
	content: str
	highlights: List[Highlight]


@router.post("", response_model=GenerateResponse)
async def generate(req: GenerationRequest, identity=Depends(get_identity), services: Services = Depends(get_services)):
	try:
		result = await services.gateway.generate(req)
	except CoachError as e:
		raise http_error(e)
	return GenerateResponse(content=result.content, highlights=list(result.highlights))
