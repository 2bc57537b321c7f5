import hmac
import logging

from wishkeeper.errors import AuthorizationError

logger = logging.getLogger(__name__)


class AuthorizationContext:
    """Shared-secret gate for admin operations.

    One instance is created per session and handed to the operations that
    need it. An empty secret never authorizes.
    """

    def __init__(self, password: str) -> None:
        self._password = password
        self._authorized = False

    @property
    def is_authorized(self) -> bool:
        return self._authorized

    def login(self, candidate: str) -> bool:
        if not self._password or not isinstance(candidate, str):
            self._authorized = False
            return False
        self._authorized = hmac.compare_digest(
            candidate.encode("utf-8"), self._password.encode("utf-8")
        )
        if not self._authorized:
            logger.info("admin login rejected")
        return self._authorized

    def logout(self) -> None:
        self._authorized = False

    def require(self) -> None:
        if not self._authorized:
            raise AuthorizationError("admin authorization required")
