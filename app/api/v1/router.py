from fastapi import APIRouter

from app.api.v1.endpoints import (
    appointments,
    auth,
    calendar,
    chat,
    notifications,
    queue,
    ws,
)

router = APIRouter()

router.include_router(auth.router, prefix="/auth")
router.include_router(queue.router, prefix="/queue")
router.include_router(appointments.router, prefix="/appointments")
router.include_router(notifications.router, prefix="/notifications")
router.include_router(chat.router, prefix="/chat")
router.include_router(calendar.router, prefix="/calendar")
router.include_router(ws.router)
