from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from habitcontrol.core.deps import get_profiles, get_store
from habitcontrol.schemas.profile import Session
from habitcontrol.services.habit_store import HabitStore
from habitcontrol.services.profile_service import ProfileService

router = APIRouter()


class SignInRequest(BaseModel):
    email: str


class ProfileResponse(BaseModel):
    id: str
    email: str
    createdAt: str
    updatedAt: str


@router.post("/sign-in", response_model=ProfileResponse)
async def sign_in(
    request: SignInRequest,
    profiles: ProfileService = Depends(get_profiles),
    store: HabitStore = Depends(get_store)
):
    """Create or update the device profile and load its habits"""
    profile = await profiles.update_profile(request.email)
    await store.sign_in(Session.for_profile(profile))
    return ProfileResponse(**profile.to_record())


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    profiles: ProfileService = Depends(get_profiles),
    store: HabitStore = Depends(get_store)
):
    await profiles.sign_out()
    await store.sign_out()


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(profiles: ProfileService = Depends(get_profiles)):
    if profiles.profile is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in"
        )
    return ProfileResponse(**profiles.profile.to_record())
