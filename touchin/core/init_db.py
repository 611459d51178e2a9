from loguru import logger
from touchin.core.db import engine, Base

# Import all models so SQLAlchemy registers them
from touchin.models.presence import Presence  # noqa: F401
from touchin.modules.encounters.models import EncounterRecord, PeerRelation, UserCounter  # noqa: F401

def init_db(bind=engine):
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables created")
