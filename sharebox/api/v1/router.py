from fastapi import APIRouter

from sharebox.api.v1.shares import router as shares_router

router = APIRouter()
router.include_router(shares_router)
