from fastapi import APIRouter

from api.v1.routes.communications import router as communications_router

# Main v1 router (includes all endpoints)
router = APIRouter()
router.include_router(communications_router)
