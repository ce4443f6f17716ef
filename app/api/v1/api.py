from fastapi import APIRouter, Depends

from app.api import deps
from app.api.v1.endpoints import custom_domains

api_router = APIRouter(dependencies=[Depends(deps.verify_service_token)])
api_router.include_router(custom_domains.router, prefix="/tenants", tags=["custom-domains"])
