"""User lookup use case."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class UserOutput:
    """A user as returned to callers."""

    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        """Return the JSON body for this user."""
        return {"id": self.id, "name": self.name}


class UserUseCase:
    """Looks users up through a repository."""

    def __init__(self, user_repository) -> None:
        self.user_repository = user_repository

    def find_user_by_id(self, user_id: str) -> UserOutput:
        """Return the user with the given id."""
        user = self.user_repository.find_user_by_id(user_id)
        return UserOutput(id=user.id, name=user.name)