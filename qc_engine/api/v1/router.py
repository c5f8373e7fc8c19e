from fastapi import APIRouter

from qc_engine.api.v1.endpoints import quality_control


api_router = APIRouter(prefix="/api/v1")

# Quality Control (inspections, rework, certificates, analytics)
api_router.include_router(
    quality_control.router,
    prefix="/qc",
    tags=["Quality Control"]
)
