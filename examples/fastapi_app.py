"""Minimal FastAPI app serving restgate events for one REST API."""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from restgate import ApiDescriptor, EventServer, RestgatePlugin
from restgate.router import router


@asynccontextmanager
async def lifespan(app: FastAPI):
    server = EventServer()
    server.register_plugin(
        RestgatePlugin([ApiDescriptor.from_url("local", os.getenv("API_URL", "http://localhost:8081"))])
    )
    await server.setup()
    app.extra["restgate_server"] = server
    try:
        yield
    finally:
        await server.stop()


app = FastAPI(lifespan=lifespan)
app.include_router(router)
