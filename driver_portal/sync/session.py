"""
Explicit session lifecycle: created on sign-in or sign-up, torn down on
sign-out, and the owner of every live feed opened on the user's behalf.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from driver_portal.exceptions import AuthError, IdentityProviderUnavailable, LocalStoreWriteError, PortalError
from driver_portal.schemas.user import UserRole
from driver_portal.sync.gateway import FALLBACK_AUTH_KEY, USER_ROLE_PREFIX, Feed, SyncGateway
from driver_portal.sync.results import WriteFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    uid: str
    email: str


class AuthProvider(Protocol):
    """Opaque identity provider; raises AuthError on bad credentials"""

    async def sign_in(self, email: str, password: str) -> AuthenticatedUser:
        raise NotImplementedError

    async def create_account(self, email: str, password: str) -> AuthenticatedUser:
        raise NotImplementedError

    async def sign_out(self) -> None:
        raise NotImplementedError


class Session:
    """A signed-in user and the feeds opened for them"""

    def __init__(self, user_id: str, email: str, role: UserRole, fallback: bool = False):
        self.user_id = user_id
        self.email = email
        self.role = UserRole(role)
        self.fallback = fallback
        self._feeds: List[Feed] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_driver(self) -> bool:
        return self.role == UserRole.DRIVER

    def track(self, feed: Feed) -> Feed:
        """Tie a feed to this session so sign-out closes it"""
        if self._closed:
            feed.unsubscribe()
        else:
            self._feeds.append(feed)
        return feed

    def close(self) -> None:
        self._closed = True
        while self._feeds:
            self._feeds.pop().unsubscribe()


class SessionManager:
    """Signs users in and out through the identity provider and the gateway"""

    def __init__(self, auth: AuthProvider, gateway: SyncGateway, admin_secret: str):
        self.auth = auth
        self.gateway = gateway
        self.admin_secret = admin_secret

    async def sign_in(self, email: str, password: str) -> Session:
        """
        Authenticate and resolve the user's role.

        Raises:
            AuthError: if the identity provider rejects the credentials
        """
        user = await self.auth.sign_in(email, password)
        role = await self._resolve_role(user.uid)
        self._cache_role(user.uid, role)
        logger.info(f"Signed in {user.email} as {role.value}")
        return Session(user.uid, user.email, role)

    async def sign_up(self, email: str, password: str, role: UserRole,
                      admin_password: Optional[str] = None) -> Session:
        """
        Create an account and its profile document.

        When the identity provider cannot be reached the user is kept as a
        local-only fallback user.

        Raises:
            AuthError: on a wrong admin password or a rejected account
            PortalError: if the profile cannot be stored anywhere
        """
        role = UserRole(role)
        if role == UserRole.ADMIN and admin_password != self.admin_secret:
            raise AuthError("Invalid admin password")

        try:
            user = await self.auth.create_account(email, password)
        except IdentityProviderUnavailable as e:
            logger.warning(f"Identity provider unavailable ({e}), creating local-only account for {email}")
            record = self.gateway.add_fallback_user(email, role)
            self.gateway.local.set(FALLBACK_AUTH_KEY, {"email": email, "role": role.value})
            return Session(record.id, email, role, fallback=True)

        result = await self.gateway.register_user(user.uid, user.email, role)
        if isinstance(result, WriteFailed):
            raise PortalError(f"Failed to create profile: {result.reason}")

        self._cache_role(user.uid, role)
        return Session(user.uid, user.email, role)

    async def sign_out(self, session: Session) -> None:
        session.close()
        if not session.fallback:
            try:
                await self.auth.sign_out()
            except AuthError as e:
                logger.error(f"Sign out error: {e}")
        self.gateway.local.remove(FALLBACK_AUTH_KEY)

    async def _resolve_role(self, user_id: str) -> UserRole:
        profile = await self.gateway.get_user_profile(user_id)
        if profile is not None:
            return UserRole(profile.role)

        cached = self.gateway.local.get(f"{USER_ROLE_PREFIX}{user_id}")
        if cached in (UserRole.ADMIN.value, UserRole.DRIVER.value):
            return UserRole(cached)
        return UserRole.DRIVER

    def _cache_role(self, user_id: str, role: UserRole) -> None:
        try:
            self.gateway.local.set(f"{USER_ROLE_PREFIX}{user_id}", role.value)
        except LocalStoreWriteError as e:
            logger.warning(f"Could not cache role for {user_id}: {e}")
