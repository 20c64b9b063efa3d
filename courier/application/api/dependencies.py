"""
FastAPI Dependency Injection

The lifecycle manager is built once in the application lifespan and stored
on ``app.state``; routes receive it through ``ManagerDep``. Tests replace it
by assigning ``app.state.manager`` directly.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from courier.connection.lifecycle_manager import LifecycleManager
from courier.core.config.settings import Settings, get_settings


def get_manager(request: Request) -> LifecycleManager:
    """
    Retrieve the LifecycleManager from application state.

    Raises:
        HTTPException 503: lifespan has not finished starting the courier
    """
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Courier is not initialized")
    return manager


ManagerDep = Annotated[LifecycleManager, Depends(get_manager)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
