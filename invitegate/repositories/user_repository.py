"""
In-memory user accounts for the login and profile routes.
"""

import threading
import uuid
from dataclasses import dataclass

from invitegate.models.domain.security_domain import AuthenticatedUser, MembershipTier
from invitegate.security.passwords import hash_password, verify_password


@dataclass
class UserRecord:
    id: str
    email: str
    password_hash: str
    role: str = "user"
    membership_tier: MembershipTier = MembershipTier.FREE
    full_name: str | None = None

    def to_user(self) -> AuthenticatedUser:
        return AuthenticatedUser(
            id=self.id, email=self.email, role=self.role, membership_tier=self.membership_tier
        )


class UserRepository:
    def __init__(self):
        self._users: dict[str, UserRecord] = {}
        self._lock = threading.Lock()

    def create(
        self,
        email: str,
        password: str,
        role: str = "user",
        membership_tier: MembershipTier | str = MembershipTier.FREE,
        full_name: str | None = None,
    ) -> UserRecord:
        record = UserRecord(
            id=str(uuid.uuid4()),
            email=email.strip().lower(),
            password_hash=hash_password(password),
            role=role,
            membership_tier=MembershipTier(membership_tier),
            full_name=full_name,
        )
        with self._lock:
            self._users[record.id] = record
        return record

    def get(self, user_id: str) -> UserRecord | None:
        return self._users.get(user_id)

    def find_by_email(self, email: str) -> UserRecord | None:
        email = email.strip().lower()
        with self._lock:
            return next((u for u in self._users.values() if u.email == email), None)

    def verify_credentials(self, email: str, password: str) -> UserRecord | None:
        record = self.find_by_email(email)
        if record is None or not verify_password(password, record.password_hash):
            return None
        return record

    def update_profile(self, user_id: str, **fields) -> UserRecord | None:
        with self._lock:
            record = self._users.get(user_id)
            if record is None:
                return None
            for name, value in fields.items():
                if value is not None and hasattr(record, name):
                    setattr(record, name, value)
            return record

    def resolve_claims(self, claims: dict) -> AuthenticatedUser | None:
        """User resolver for JWTAuthenticator: the account must still exist."""
        record = self.get(str(claims.get("id") or claims.get("sub") or ""))
        return record.to_user() if record else None
