from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from touchin.core.logging import setup_logging
from touchin.core.init_db import init_db
from touchin.api.router import api_router
from touchin.modules.encounters.routes import router as encounters_router
from touchin.services.geocoder import NominatimGeocoder
from touchin.services.session import ProximitySession, SessionRegistry

setup_logging()
logger.info("Starting Touchin backend")


def _new_session(user_id: str, room_id: str) -> ProximitySession:
    return ProximitySession(user_id, app.state.geocoder, room_id=room_id, publish_location=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # sessions must stop before the process does
    await app.state.sessions.close_all()
    logger.info("Proximity sessions closed")


app = FastAPI(
    title="Touchin Backend",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.geocoder = NominatimGeocoder()
app.state.sessions = SessionRegistry(_new_session)

# All API routes (presence + dwell via router.py)
app.include_router(api_router)
# Encounters module
app.include_router(encounters_router)

# Init DB after app is created
init_db()

@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}
