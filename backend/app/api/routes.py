from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict

from backend.app.config import AppSettings
from backend.app.dependencies import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str


@router.get(
    "/hello",
    response_class=PlainTextResponse,
    tags=["greeting"],
    operation_id="hello",
)
def hello(settings: Annotated[AppSettings, Depends(get_settings)]) -> str:
    return settings.greeting


@router.get(
    "/",
    response_class=PlainTextResponse,
    tags=["greeting"],
    operation_id="root",
)
def root(settings: Annotated[AppSettings, Depends(get_settings)]) -> str:
    return settings.info_message


@router.get(
    "/actuator/health",
    response_model=HealthResponse,
    tags=["system"],
    operation_id="health_check",
)
def health_check() -> HealthResponse:
    """Liveness and readiness: answering at all means the process can serve."""
    return HealthResponse(status="UP")
