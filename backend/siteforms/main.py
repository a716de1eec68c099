import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from siteforms.config import settings
from siteforms.routers.forms import router as forms_router
from siteforms.routers.sessions import router as sessions_router
from siteforms.sessions import registry

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # pending redirects and in-flight submissions die with the process
    registry.close_all()


app = FastAPI(title="Site Forms (demo booking + contact)", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(forms_router)
app.include_router(sessions_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
