from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse

from . import __version__
from .config import CORS_ORIGINS, OPENAI_API_KEY
from .router import router as analysis_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Alarm Insights", version=__version__, default_response_class=ORJSONResponse)

# CORS for frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Compress large JSON responses (event lists get big)
app.add_middleware(GZipMiddleware, minimum_size=500)

app.include_router(analysis_router)

logger.info(f"Alarm insights API ready. OPENAI_API_KEY present={bool(OPENAI_API_KEY)}")


@app.get("/")
def root():
    return {"service": "alarm-insights", "version": __version__}
