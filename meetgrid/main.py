import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from meetgrid.config import get_settings
from meetgrid.errors import register_exception_handlers
from meetgrid.lifespan import cleanup_resources, setup_resources
from meetgrid.middleware import HTTPLogMiddleware
from meetgrid.controllers.health import router as health_router
from meetgrid.controllers.events import router as events_router
from meetgrid.controllers.ws_availability import router as ws_availability_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)


settings = get_settings()

app = FastAPI(title="meetgrid", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_origin_regex=settings.cors.origins_regex or None,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.debug.request:
    logging.getLogger("meetgrid.http").setLevel(logging.DEBUG)
    app.add_middleware(HTTPLogMiddleware)

if settings.debug.websocket:
    logging.getLogger("meetgrid.ws").setLevel(logging.DEBUG)
    logging.getLogger("meetgrid.live").setLevel(logging.DEBUG)
    logging.getLogger("meetgrid.bus").setLevel(logging.DEBUG)
    logging.getLogger("meetgrid.controller").setLevel(logging.DEBUG)

register_exception_handlers(app)

app.include_router(health_router)
app.include_router(events_router)
app.include_router(ws_availability_router)
