from fastapi import APIRouter

from golink.api.links.routes import router as links_router

router = APIRouter()
router.include_router(links_router)
