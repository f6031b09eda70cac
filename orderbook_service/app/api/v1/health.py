from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from ...core.container import ServiceContainer
from ..dependencies import ContainerDep

router = APIRouter()


@router.get("/health")
async def health_check(container: ServiceContainer = ContainerDep) -> JSONResponse:
    """Aggregate health of store, cache, broker, processor and broadcaster"""
    report = await container.health_report()
    return JSONResponse(
        status_code=status.HTTP_200_OK if report["healthy"] else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=report,
    )


@router.get("/ready")
async def readiness_check(container: ServiceContainer = ContainerDep) -> JSONResponse:
    report = await container.readiness_report()
    return JSONResponse(
        status_code=status.HTTP_200_OK if report["healthy"] else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=report,
    )
