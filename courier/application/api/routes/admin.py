"""
Admin Routes

Operational controls over the running courier. Every queue action answers
with the queue status after the action so operators see the effect at once.
"""

from fastapi import APIRouter, status

from courier.application.api.dependencies import ManagerDep
from courier.application.api.models.admin import (
    QueueActionResponse,
    SendRequest,
    SendResponse,
    StatusResponse,
)
from courier.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/status", response_model=StatusResponse)
async def get_status(manager: ManagerDep):
    """Connection state, queue counters and session file info."""
    return await manager.status()


@router.post("/queue/pause", response_model=QueueActionResponse)
async def pause_queue(manager: ManagerDep):
    manager.pause_queue()
    return QueueActionResponse(action="pause", queue=manager.queue.status())


@router.post("/queue/resume", response_model=QueueActionResponse)
async def resume_queue(manager: ManagerDep):
    manager.resume_queue()
    return QueueActionResponse(action="resume", queue=manager.queue.status())


@router.post("/queue/clear", response_model=QueueActionResponse)
async def clear_queue(manager: ManagerDep):
    cleared = manager.clear_queue()
    logger.warning("Queue cleared by operator", cleared=cleared)
    return QueueActionResponse(action="clear", affected=cleared, queue=manager.queue.status())


@router.post("/queue/retry-dead-letters", response_model=QueueActionResponse)
async def retry_dead_letters(manager: ManagerDep):
    revived = await manager.retry_dead_letters()
    return QueueActionResponse(
        action="retry_dead_letters", affected=revived, queue=manager.queue.status()
    )


@router.post("/send", response_model=SendResponse, status_code=status.HTTP_202_ACCEPTED)
async def send_message(body: SendRequest, manager: ManagerDep):
    """Queue a message; delivery happens once the connection is up."""
    message = manager.request_send(
        body.destination, body.text, priority=body.priority, message_id=body.message_id
    )
    return SendResponse(
        accepted=message is not None,
        message_id=message.id if message is not None else body.message_id,
        queue=manager.queue.status(),
    )


@router.post("/restart", status_code=status.HTTP_202_ACCEPTED)
async def restart(manager: ManagerDep):
    """Reset the reconnect counter and reconnect; recovers after a give-up."""
    await manager.restart()
    return {"restarted": True, "state": manager.state.value}
