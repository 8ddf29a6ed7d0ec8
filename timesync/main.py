import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timesync.config import get_settings
from timesync.controllers.health import router as health_router
from timesync.controllers.polls import router as polls_router
from timesync.errors import register_exception_handlers
from timesync.lifespan import lifespan
from timesync.middleware import HTTPLogMiddleware

settings = get_settings()

logging.basicConfig(
    level=settings.debug.log_level,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)

app = FastAPI(title="TimeSync API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_origin_regex=settings.cors.origins_regex or None,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.debug.request:
    logging.getLogger("timesync.http").setLevel(logging.DEBUG)
    app.add_middleware(HTTPLogMiddleware)

register_exception_handlers(app)

app.include_router(health_router)
app.include_router(polls_router)
