"""
API Version 1 Package

All v1 API endpoints are defined here.
"""
from fastapi import APIRouter
from devicehub.api.v1.health import router as health_router
from devicehub.api.v1.devices import router as devices_router
from devicehub.api.v1.auth import router as auth_router
from devicehub.api.v1.captures import router as captures_router
from devicehub.api.v1.payloads import router as payloads_router

router = APIRouter()

router.include_router(health_router)
router.include_router(devices_router)
router.include_router(auth_router)
router.include_router(captures_router)
router.include_router(payloads_router)
