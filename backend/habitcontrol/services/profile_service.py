"""
Profile Service - the device-local account that scopes a habit session
"""

import json
from typing import Optional
import logging

from pydantic import ValidationError as SchemaValidationError

from habitcontrol.core.errors import PersistenceError, ValidationError
from habitcontrol.schemas.habit import new_id, now_iso
from habitcontrol.schemas.profile import Session, UserProfile
from habitcontrol.services.persistence import KeyValueStore

logger = logging.getLogger(__name__)

PROFILE_KEY = "@HabitControl:profile"


class ProfileService:
    """Stores a single profile in the key-value store; its presence is the session"""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self._profile: Optional[UserProfile] = None
        self._loaded = False

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    async def load_profile(self) -> Optional[UserProfile]:
        try:
            raw = await self.kv.load(PROFILE_KEY)
        except OSError as e:
            raise PersistenceError(f"Could not read profile: {e}") from e

        self._loaded = True
        if raw is None:
            self._profile = None
            return None

        try:
            self._profile = UserProfile.from_record(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, SchemaValidationError) as e:
            logger.error(f"Stored profile is unreadable, ignoring it: {e}")
            self._profile = None
        return self._profile

    async def current_session(self) -> Optional[Session]:
        if not self._loaded:
            await self.load_profile()
        if self._profile is None:
            return None
        return Session.for_profile(self._profile)

    async def update_profile(self, email: str) -> UserProfile:
        """Create the profile, or change the email of the existing one (id and created_at are kept)"""
        if not self._loaded:
            await self.load_profile()

        now = now_iso()
        existing = self._profile
        try:
            profile = UserProfile(
                id=existing.id if existing else new_id(),
                email=email.strip(),
                created_at=existing.created_at if existing else now,
                updated_at=now
            )
        except SchemaValidationError as e:
            raise ValidationError("Please enter a valid email address", field="email") from e

        payload = json.dumps(profile.to_record()).encode("utf-8")
        if not await self.kv.save(PROFILE_KEY, payload):
            raise PersistenceError("Could not save profile")

        self._profile = profile
        logger.info(f"Profile {profile.id} saved")
        return profile

    async def sign_out(self) -> None:
        if not await self.kv.remove(PROFILE_KEY):
            raise PersistenceError("Could not remove profile")
        self._profile = None
        self._loaded = True
        logger.info("Signed out")
