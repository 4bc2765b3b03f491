"""FastAPI application - serves the phrase API and live sessions."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lickduel.api.phrases import router as phrases_router
from lickduel.api.websocket import router as ws_router

app = FastAPI(title="Lickduel", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(phrases_router, prefix="/api")
app.include_router(ws_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


def run():
    import uvicorn
    from lickduel.config import settings
    uvicorn.run(
        "lickduel.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
