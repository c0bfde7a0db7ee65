"""
Session/identity provider.

Holds the single published ``current_user`` slot. Both the initial
session resolution in ``start()`` and the backend's session-change
callbacks write to it; whichever finishes last wins.
"""
import logging
from typing import Awaitable, Callable, List, Optional
from urllib.parse import quote

from django.conf import settings

from .exceptions import AnswerHubError, AuthError, RemoteError, UsernameTaken, ValidationError
from .notifications import ERROR, Notification, log_notification
from .types import AuthSession, SessionEvent, User

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[User]], Awaitable[None]]


def avatar_url_for(username: str) -> str:
    template = getattr(settings, "ANSWERHUB_AVATAR_URL",
                       "https://ui-avatars.com/api/?name={name}&background=random")
    return template.format(name=quote(username))


class SessionProvider:

    def __init__(self, backend, notify=None):
        self.backend = backend
        self.notify = notify or log_notification
        self.current_user: Optional[User] = None
        self.last_error: Optional[AnswerHubError] = None
        self._listeners: List[IdentityListener] = []
        self._unsubscribe = None

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    @property
    def is_admin(self) -> bool:
        return bool(self.current_user and self.current_user.is_admin)

    def subscribe(self, listener: IdentityListener) -> None:
        self._listeners.append(listener)

    async def start(self):
        """Listen for session changes, then resolve any persisted session once."""
        self._unsubscribe = self.backend.on_session_change(self._on_session_change)
        try:
            session = await self.backend.get_session()
        except RemoteError as e:
            logger.error(f"Error getting initial session: {e}")
            return
        if session is not None:
            await self._resolve(session)

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_session_change(self, event: SessionEvent, session: Optional[AuthSession]):
        logger.info(f"Auth state changed: {event.value} (user={session.user_id if session else None})")
        if session is None:
            await self._publish(None)
        else:
            await self._resolve(session)

    async def _resolve(self, session: AuthSession):
        try:
            profile = await self.backend.get_profile(session.user_id)
        except RemoteError as e:
            logger.error(f"Could not fetch user profile for {session.user_id}: {e}")
            await self._publish(None)
            self.notify(Notification(
                "Profile Unavailable",
                f"Could not load your profile: {e}",
                ERROR,
            ))
            return
        await self._publish(User(
            id=profile["id"],
            username=profile["username"],
            email=session.email or "",
            is_admin=bool(profile.get("is_admin")),
            avatar_url=profile.get("avatar_url") or "",
        ))

    async def _publish(self, user: Optional[User]):
        self.current_user = user
        for listener in list(self._listeners):
            await listener(user)

    async def sign_in(self, email: str, password: str) -> bool:
        """
        Sign in with email and password.

        The published user is filled in by the session-change callback,
        not here.
        """
        self.last_error = None
        try:
            if not email or not password:
                raise ValidationError("Email and password are required.")
            await self.backend.sign_in_with_password(email, password)
        except AnswerHubError as e:
            self._fail("Login failed", e, title="Login Failed" if isinstance(e, RemoteError) else None)
            return False
        return True

    async def sign_out(self):
        try:
            await self.backend.sign_out()
        except RemoteError as e:
            self._fail("Logout failed", e, title="Logout Failed")
        else:
            self.notify(Notification("Logged out", "You have been logged out successfully."))
        finally:
            await self._publish(None)

    async def sign_up(self, username: str, email: str, password: str) -> bool:
        self.last_error = None
        try:
            if not username or not email or not password:
                raise ValidationError("Username, email and password are required.")
            if not await self.backend.check_username_available(username):
                raise UsernameTaken("Username already exists. Please choose another one.")
            await self.backend.sign_up(username, email, password, avatar_url_for(username))
        except AnswerHubError as e:
            self._fail("Registration failed", e, title="Registration Failed")
            return False
        self.notify(Notification(
            "Registration Successful",
            "Please check your email to confirm your account.",
        ))
        return True

    def _fail(self, action: str, error: AnswerHubError, title: Optional[str] = None):
        self.last_error = error
        if isinstance(error, AuthError):
            logger.info(f"{action}: {error}")
        else:
            logger.error(f"{action}: {error}")
        self.notify(Notification(title or error.title, f"{action}: {error}", ERROR))
