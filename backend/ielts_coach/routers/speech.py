from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..services import Services, get_services
from ..speech import SpeechController

router = APIRouter(prefix="/speech", tags=["speech"])


class SpeakRequest(BaseModel):
	text: str


class SpeechStatus(BaseModel):
	speaking: bool


def get_speech(services: Services = Depends(get_services)) -> SpeechController:
	if services.speech is None:
		raise HTTPException(status_code=503, detail={"code": "speech_disabled", "message": "Read-aloud is not enabled on this server"})
	return services.speech


# Plain def: engine calls may block briefly and run in the threadpool
@router.post("/speak", response_model=SpeechStatus)
def speak(body: SpeakRequest, speech: SpeechController = Depends(get_speech)):
	speech.speak(body.text)
	return SpeechStatus(speaking=speech.is_speaking)


@router.post("/stop", response_model=SpeechStatus)
def stop(speech: SpeechController = Depends(get_speech)):
	speech.stop()
	return SpeechStatus(speaking=speech.is_speaking)


@router.get("", response_model=SpeechStatus)
def status(speech: SpeechController = Depends(get_speech)):
	return SpeechStatus(speaking=speech.is_speaking)
