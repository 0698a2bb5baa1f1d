import logging

from fastapi import FastAPI

from .db import Base, engine
from .services import Services
from .settings import settings
from .routers import auth
from .routers import generate
from .routers import records
from .routers import sessions
from .routers import speech

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("ielts_coach")

app = FastAPI(title="IELTS Speaking Coach API")
app.include_router(auth.router)
app.include_router(generate.router)
app.include_router(records.router)
app.include_router(sessions.router)
app.include_router(speech.router)


@app.get("/info")
def root():
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"store_backend": "remote" if settings.uses_remote_store else "local",
		"speech_enabled": settings.speech_enabled,
	}


@app.on_event("startup")
async def startup_event():
	if settings.uses_remote_store:
		# Accounts and the shared record table only exist for the remote store
		Base.metadata.create_all(bind=engine)
	app.state.services = Services.from_settings()
	logger.info("Started with %s record store", "remote" if settings.uses_remote_store else "local")


@app.on_event("shutdown")
async def shutdown_event():
	services = getattr(app.state, "services", None)
	if services is not None:
		services.close()
