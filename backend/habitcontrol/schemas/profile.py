from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, EmailStr


class UserProfile(BaseModel):
    id: str
    email: EmailStr
    created_at: str
    updated_at: str

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=record["id"],
            email=record["email"],
            created_at=record["createdAt"],
            updated_at=record["updatedAt"],
        )


class Session(BaseModel):
    """Explicit session context handed to the habit store on sign-in"""

    model_config = ConfigDict(frozen=True)

    owner_id: str
    email: str

    @classmethod
    def for_profile(cls, profile: UserProfile) -> "Session":
        return cls(owner_id=profile.id, email=profile.email)
