"""
Operator authentication for the admin area.

Operators are configured as {email, password_hash} pairs (werkzeug hashes).
A signed-in operator is remembered in the Flask session under ``operator``;
signing out clears the whole session.
"""
import hmac
import logging
from typing import Dict, List, MutableMapping, Optional

from werkzeug.security import check_password_hash, generate_password_hash

logger = logging.getLogger(__name__)

SESSION_KEY = "operator"


class AuthError(Exception):
    """Raised when sign-in credentials are rejected."""
    pass


class OperatorAuth:
    """Checks operator credentials and tracks the signed-in operator in a session."""

    def __init__(self, operators: List[Dict[str, str]]):
        self.operators = {
            (op.get("email") or "").strip().lower(): op.get("password_hash", "")
            for op in operators or []
            if op.get("email")
        }

    def is_operator(self, email: str) -> bool:
        return (email or "").strip().lower() in self.operators

    def sign_in(self, session: MutableMapping, email: str, password: str) -> str:
        """Validate credentials and store the operator in ``session``. Raises AuthError."""
        email = (email or "").strip().lower()
        stored = self.operators.get(email)
        if not stored or not password or not check_password_hash(stored, password):
            logger.warning(f"Rejected sign-in for {email!r}")
            raise AuthError("Invalid email or password")
        session.clear()
        session[SESSION_KEY] = email
        logger.info(f"Operator {email} signed in")
        return email

    def current_operator(self, session: MutableMapping) -> Optional[str]:
        """Return the signed-in operator, or None if absent or no longer configured."""
        email = session.get(SESSION_KEY)
        if email and self.is_operator(email):
            return email
        return None

    def sign_out(self, session: MutableMapping) -> None:
        email = session.get(SESSION_KEY)
        session.clear()
        if email:
            logger.info(f"Operator {email} signed out")


def hash_password(password: str) -> str:
    """Produce a password_hash value for the operators config list."""
    return generate_password_hash(password)


def api_key_matches(provided: str, secret: str) -> bool:
    """Constant-time API key comparison; an unset secret never matches."""
    if not secret:
        return False
    return hmac.compare_digest((provided or "").strip(), secret)
