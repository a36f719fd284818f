from fastapi import Depends, HTTPException, Request, status

from habitcontrol.schemas.profile import Session
from habitcontrol.services.habit_store import HabitStore
from habitcontrol.services.profile_service import ProfileService


def get_store(request: Request) -> HabitStore:
    return request.app.state.store


def get_profiles(request: Request) -> ProfileService:
    return request.app.state.profiles


async def get_current_session(store: HabitStore = Depends(get_store)) -> Session:
    """Get the signed-in session, or fail with 401"""
    if store.session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in"
        )
    return store.session
