# checkout/main.py
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from checkout.api import create_app
from checkout.data.database import Base, engine
from checkout.utils.logging import get_logger

# every model has to be registered on Base.metadata before create_all
import checkout.data.models  # noqa: F401

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Initializing database, tables: {sorted(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
    logger.info("Database tables ready")
    yield


app = create_app(lifespan=lifespan)

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
