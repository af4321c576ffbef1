from fastapi import APIRouter

from grantflow.api.v1.endpoints import applications, investments, milestones, programs

api_router = APIRouter()
api_router.include_router(investments.router, prefix="/investments", tags=["investments"])
api_router.include_router(applications.router, prefix="/applications", tags=["applications"])
api_router.include_router(milestones.router, prefix="/milestones", tags=["milestones"])
api_router.include_router(programs.router, prefix="/programs", tags=["programs"])
