"""MongoDB storage for users."""

from __future__ import annotations

from pymongo.errors import PyMongoError

from . import logger
from .entities import User
from .errors import InternalServerError, NotFoundError


class UserRepository:
    """Reads users from the "users" collection."""

    def __init__(self, database) -> None:
        self.collection = database["users"]

    def find_user_by_id(self, user_id: str) -> User:
        """Return the user with the given id.

        Raises NotFoundError when no such user exists and InternalServerError
        when the database cannot be queried.
        """
        try:
            document = self.collection.find_one({"_id": user_id})
        except PyMongoError as exc:
            logger.error("Error trying to find user by userId", exc)
            raise InternalServerError("Error trying to find user by userId") from exc

        if document is None:
            message = f"User not found with this id = {user_id}"
            logger.error(message, LookupError("no documents in result"))
            raise NotFoundError(message)

        return User(id=document["_id"], name=document.get("name", ""))