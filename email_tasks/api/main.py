import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from email_tasks.api.routes.embeddings import router as embeddings_router
from email_tasks.api.routes.extraction import router as extraction_router
from email_tasks.api.routes.search import router as search_router
from email_tasks.api.routes.tasks import router as tasks_router
from email_tasks.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Email Task Assistant API",
    description="Task extraction and hybrid search over synced email",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5000",
    ],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(extraction_router)
app.include_router(search_router)
app.include_router(tasks_router)
app.include_router(embeddings_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
