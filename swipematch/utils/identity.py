"""Identifier validation applied before any operation touches state."""

import re
from typing import Any, Optional, Tuple

from swipematch.config import settings
from swipematch.custom_types import MatchId, UserId
from swipematch.utils.errors import InvalidIdentifierError, SelfReferenceNotAllowedError
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:\-]*$")


class IdentityGuard:
    """
    Validates opaque identifiers.

    Every service runs its user and match ids through this guard at the
    component boundary. A malformed id always raises; there is no silent
    success path.
    """

    def __init__(self, max_length: Optional[int] = None) -> None:
        self.max_length = max_length or settings.USER_ID_MAX_LENGTH

    def _check(self, value: Any, label: str) -> str:
        if not isinstance(value, str):
            raise InvalidIdentifierError(
                f"{label} must be a string",
                details={"field": label, "type": type(value).__name__},
            )
        if not value:
            raise InvalidIdentifierError(f"{label} cannot be empty", details={"field": label})
        if len(value) > self.max_length:
            raise InvalidIdentifierError(
                f"{label} is too long",
                details={"field": label, "max_length": self.max_length},
            )
        if not IDENTIFIER_PATTERN.match(value):
            logger.debug("Rejected malformed identifier", field=label)
            raise InvalidIdentifierError(f"{label} is malformed", details={"field": label, "value": value})
        return value

    def validate(self, user_id: Any, label: str = "user_id") -> UserId:
        """
        Validate a user identifier.

        Args:
            user_id (Any): Candidate identifier.
            label (str): Field name reported in the error details.

        Returns:
            UserId: The validated identifier.

        Raises:
            InvalidIdentifierError: If the identifier is not a well-formed key.
        """
        return UserId(self._check(user_id, label))

    def validate_pair(self, actor: Any, target: Any) -> Tuple[UserId, UserId]:
        """
        Validate an actor/target pair where self-reference is disallowed.

        Raises:
            InvalidIdentifierError: If either identifier is malformed.
            SelfReferenceNotAllowedError: If actor and target are the same user.
        """
        actor_id = self.validate(actor, "actor")
        target_id = self.validate(target, "target")
        if actor_id == target_id:
            raise SelfReferenceNotAllowedError(
                "A user cannot act on themselves",
                details={"user_id": actor_id},
            )
        return actor_id, target_id

    def validate_match_id(self, match_id: Any) -> MatchId:
        """Validate a match identifier."""
        return MatchId(self._check(match_id, "match_id"))


# Default guard shared by services that are not given one explicitly
identity_guard = IdentityGuard()
