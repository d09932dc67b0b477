"""FastAPI application - serves the beat tracking API."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from beatmarker.api.upload import router as upload_router
from beatmarker.api.websocket import router as ws_router

app = FastAPI(title="Beatmarker", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(upload_router, prefix="/api")
app.include_router(ws_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


def run():
    import logging

    import uvicorn
    from beatmarker.config import settings

    logging.basicConfig(level=settings.log_level, format="%(name)s %(levelname)s: %(message)s")
    uvicorn.run(
        "beatmarker.main:app",
        host=settings.host,
        port=settings.port,
    )
