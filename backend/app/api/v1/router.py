from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.stores import router as stores_router
from backend.app.api.v1.endpoints.products import router as products_router
from backend.app.api.v1.endpoints.suppliers import router as suppliers_router
from backend.app.api.v1.endpoints.stock import router as stock_router
from backend.app.api.v1.endpoints.stock_adjustments import router as stock_adjustments_router
from backend.app.api.v1.endpoints.transfers import router as transfers_router
from backend.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(stores_router, tags=["stores"])
router.include_router(products_router, tags=["products"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(stock_router, tags=["stock"])
router.include_router(stock_adjustments_router, tags=["stock_adjustments"])
router.include_router(transfers_router, tags=["transfers"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
