"""
Identity verification: bearer tokens (JWT) and the user directory they refer to.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from bloodbank.config import JWT_ALGORITHM, SECRET_KEY, TOKEN_EXPIRY_HOURS
from bloodbank.database import identity_users
from bloodbank.errors import Unauthenticated
from bloodbank.models import CallerIdentity


class UnknownUser(LookupError):
    pass


class IdentityVerifier(ABC):
    """What the API needs from the identity service."""

    @abstractmethod
    def verify(self, token: str) -> CallerIdentity:
        """Return the caller behind *token* or raise Unauthenticated."""

    @abstractmethod
    def user_exists(self, uid: str) -> bool:
        ...

    @abstractmethod
    def set_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        ...


class JwtIdentityProvider(IdentityVerifier):
    """HS256 JWTs checked against the ``identity_users`` directory."""

    def __init__(self, engine, secret_key: str = SECRET_KEY,
                 algorithm: str = JWT_ALGORITHM,
                 expiry_hours: int = TOKEN_EXPIRY_HOURS):
        self._engine = engine
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expiry_hours = expiry_hours

    # ── Directory ────────────────────────────────────────────────────

    def create_user(self, uid: str, display_name: Optional[str] = None) -> bool:
        """Add *uid* to the directory. Returns False if it was already there."""
        try:
            with self._engine.begin() as conn:
                conn.execute(insert(identity_users).values(
                    uid=uid,
                    display_name=display_name,
                    claims={},
                    created_at=datetime.now(timezone.utc),
                ))
        except IntegrityError:
            return False
        return True

    def get_claims(self, uid: str) -> Optional[Dict[str, Any]]:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(identity_users.c.claims).where(identity_users.c.uid == uid)
            ).first()
        if row is None:
            return None
        return dict(row.claims or {})

    def user_exists(self, uid: str) -> bool:
        return self.get_claims(uid) is not None

    def set_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        with self._engine.begin() as conn:
            result = conn.execute(
                update(identity_users)
                .where(identity_users.c.uid == uid)
                .values(claims=dict(claims))
            )
            if result.rowcount == 0:
                raise UnknownUser(uid)

    # ── Tokens ───────────────────────────────────────────────────────

    def issue_token(self, uid: str) -> str:
        """Generate a JWT for a user in the directory."""
        claims = self.get_claims(uid)
        if claims is None:
            raise UnknownUser(uid)
        now = datetime.now(timezone.utc)
        payload = {
            "uid": uid,
            "role": claims.get("role"),
            "iat": now,
            "exp": now + timedelta(hours=self._expiry_hours),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> CallerIdentity:
        if not token:
            raise Unauthenticated("Authentication token is missing")
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Token has expired")
        except jwt.InvalidTokenError:
            raise Unauthenticated("Invalid token")

        uid = payload.get("uid")
        if not isinstance(uid, str) or not uid:
            raise Unauthenticated("Invalid token")

        claims = self.get_claims(uid)
        if claims is None:
            raise Unauthenticated("User no longer exists")
        return CallerIdentity(uid=uid, role_claim=claims.get("role"), claims=claims)
