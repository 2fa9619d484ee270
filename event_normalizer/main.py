from contextlib import asynccontextmanager

from fastapi import FastAPI

from event_normalizer.routes.normalize import router as normalize_router
from event_normalizer.routes.service import SERVICE_VERSION
from event_normalizer.routes.service import router as service_router
from event_normalizer.services import metrics as metrics_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    metrics_service.rehydrate()
    yield


app = FastAPI(title="Event Normalizer", version=SERVICE_VERSION, lifespan=lifespan)

app.include_router(normalize_router)
app.include_router(service_router)
