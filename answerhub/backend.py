"""
Backend collaborator used by the session provider and the question store.

``Backend`` is the contract: every method is a coroutine, rows are plain
dicts keyed by column name, storage failures surface as ``RemoteError``
and authentication failures as ``AuthError`` subclasses.

``OrmBackend`` fulfils it with the Django ORM and ``django.contrib.auth``.
Given a request it signs users in and out of the request's session;
without one it keeps the session on the instance.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings
from django.contrib.auth import aauthenticate, alogin, alogout
from django.contrib.auth.models import User
from django.contrib.auth.tokens import default_token_generator
from django.core.mail import send_mail
from django.db import DatabaseError
from django.db.models import Count
from django.dispatch import Signal
from django.urls import reverse
from django.utils.encoding import force_bytes, force_str
from django.utils.http import urlsafe_base64_decode, urlsafe_base64_encode

from .exceptions import EmailUnconfirmed, InvalidCredentials, RemoteError
from .models import Comment, Like, Profile, Question, Solution
from .types import AuthSession, SessionEvent

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
SessionCallback = Callable[[SessionEvent, Optional[AuthSession]], Awaitable[None]]

QUESTION_FIELDS = ("id", "title", "description", "difficulty", "tags", "images", "created_at")


class Backend(ABC):

    # -- reads --

    @abstractmethod
    async def list_questions(self) -> List[Row]:
        """All questions, newest first."""

    @abstractmethod
    async def list_solutions(self, question_id) -> List[Row]:
        """Solutions of one question, newest first."""

    @abstractmethod
    async def list_comments(self, solution_id) -> List[Row]:
        """Comments of one solution, oldest first."""

    @abstractmethod
    async def get_profile(self, user_id) -> Row:
        """``{"id", "username", "avatar_url", "is_admin"}`` for a user."""

    @abstractmethod
    async def find_like(self, solution_id, user_id) -> bool:
        pass

    @abstractmethod
    async def check_username_available(self, username: str) -> bool:
        pass

    # -- writes --

    @abstractmethod
    async def insert_question(self, fields: Row) -> Row:
        pass

    @abstractmethod
    async def insert_solution(self, fields: Row) -> Row:
        pass

    @abstractmethod
    async def insert_comment(self, fields: Row) -> Row:
        pass

    @abstractmethod
    async def insert_like(self, solution_id, user_id) -> None:
        pass

    @abstractmethod
    async def delete_like(self, solution_id, user_id) -> None:
        pass

    @abstractmethod
    async def update_solution_like_count(self, solution_id, count: int) -> None:
        pass

    # -- session --

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        pass

    @abstractmethod
    async def sign_up(self, username: str, email: str, password: str, avatar_url: str) -> None:
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    async def get_session(self) -> Optional[AuthSession]:
        pass

    @abstractmethod
    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        """Register ``callback(event, session)``; returns an unsubscribe function."""


@contextmanager
def remote_errors(action: str):
    try:
        yield
    except DatabaseError as e:
        logger.error(f"Backend call failed ({action}): {e}")
        raise RemoteError(str(e)) from e


class OrmBackend(Backend):

    def __init__(self, request=None):
        self.request = request
        self._session: Optional[AuthSession] = None
        self.session_changed = Signal()

    async def list_questions(self):
        with remote_errors("list questions"):
            qs = Question.objects.order_by("-created_at", "-id").values(*QUESTION_FIELDS)
            return [row async for row in qs]

    async def list_solutions(self, question_id):
        with remote_errors("list solutions"):
            # Likes are counted from the relation set, not the stored counter.
            qs = (
                Solution.objects.filter(question_id=question_id)
                .annotate(like_count=Count("like_relations"))
                .order_by("-created_at", "-id")
                .values("id", "question_id", "author_id", "title", "content", "code",
                        "images", "created_at", "like_count")
            )
            rows = []
            async for row in qs:
                row["user_id"] = row.pop("author_id")
                row["likes"] = row.pop("like_count")
                rows.append(row)
            return rows

    async def list_comments(self, solution_id):
        with remote_errors("list comments"):
            qs = (
                Comment.objects.filter(solution_id=solution_id)
                .order_by("created_at", "id")
                .values("id", "solution_id", "author_id", "content", "created_at")
            )
            rows = []
            async for row in qs:
                row["user_id"] = row.pop("author_id")
                rows.append(row)
            return rows

    async def get_profile(self, user_id):
        with remote_errors("get profile"):
            profile = await Profile.objects.select_related("user").filter(user_id=user_id).afirst()
        if profile is None:
            raise RemoteError(f"No profile for user {user_id}")
        return {
            "id": profile.user_id,
            "username": profile.user.username,
            "avatar_url": profile.avatar_url,
            "is_admin": profile.is_admin,
        }

    async def find_like(self, solution_id, user_id):
        with remote_errors("find like"):
            return await Like.objects.filter(solution_id=solution_id, user_id=user_id).aexists()

    async def check_username_available(self, username):
        with remote_errors("check username"):
            return not await User.objects.filter(username=username).aexists()

    async def insert_question(self, fields):
        with remote_errors("insert question"):
            question = await Question.objects.acreate(
                title=fields["title"],
                description=fields["description"],
                difficulty=fields["difficulty"],
                tags=list(fields.get("tags") or []),
                images=list(fields.get("images") or []),
            )
        return {name: getattr(question, name) for name in QUESTION_FIELDS}

    async def insert_solution(self, fields):
        with remote_errors("insert solution"):
            solution = await Solution.objects.acreate(
                question_id=fields["question_id"],
                author_id=fields["user_id"],
                title=fields["title"],
                content=fields["content"],
                code=fields["code"],
                images=list(fields.get("images") or []),
            )
        return {
            "id": solution.id,
            "question_id": solution.question_id,
            "user_id": solution.author_id,
            "title": solution.title,
            "content": solution.content,
            "code": solution.code,
            "images": solution.images,
            "likes": solution.likes,
            "created_at": solution.created_at,
        }

    async def insert_comment(self, fields):
        with remote_errors("insert comment"):
            comment = await Comment.objects.acreate(
                solution_id=fields["solution_id"],
                author_id=fields["user_id"],
                content=fields["content"],
            )
        return {
            "id": comment.id,
            "solution_id": comment.solution_id,
            "user_id": comment.author_id,
            "content": comment.content,
            "created_at": comment.created_at,
        }

    async def insert_like(self, solution_id, user_id):
        with remote_errors("insert like"):
            await Like.objects.acreate(solution_id=solution_id, user_id=user_id)

    async def delete_like(self, solution_id, user_id):
        with remote_errors("delete like"):
            await Like.objects.filter(solution_id=solution_id, user_id=user_id).adelete()

    async def update_solution_like_count(self, solution_id, count):
        with remote_errors("update like count"):
            await Solution.objects.filter(pk=solution_id).aupdate(likes=max(count, 0))

    async def sign_in_with_password(self, email, password):
        with remote_errors("sign in"):
            user = await User.objects.filter(email__iexact=email).afirst()
            if user is None:
                raise InvalidCredentials("Invalid login credentials")
            if not user.is_active:
                if await sync_to_async(user.check_password)(password):
                    raise EmailUnconfirmed("Email not confirmed")
                raise InvalidCredentials("Invalid login credentials")
            user = await aauthenticate(self.request, username=user.get_username(), password=password)
            if user is None:
                raise InvalidCredentials("Invalid login credentials")
            if self.request is not None:
                await alogin(self.request, user)

        session = AuthSession(user_id=user.pk, email=user.email)
        self._session = session
        await self._emit(SessionEvent.SIGNED_IN, session)
        return session

    async def sign_up(self, username, email, password, avatar_url):
        require_confirmation = settings.ANSWERHUB_REQUIRE_EMAIL_CONFIRMATION
        with remote_errors("sign up"):
            user = await sync_to_async(User.objects.create_user)(
                username=username,
                email=email,
                password=password,
                is_active=not require_confirmation,
            )
            await Profile.objects.filter(user=user).aupdate(avatar_url=avatar_url)

        if require_confirmation:
            await self._send_confirmation(user)

    async def _send_confirmation(self, user):
        uid = urlsafe_base64_encode(force_bytes(user.pk))
        token = default_token_generator.make_token(user)
        link = settings.ANSWERHUB_SITE_URL.rstrip("/") + reverse("confirm_email", args=[uid, token])
        try:
            await sync_to_async(send_mail)(
                "Confirm your AlgoAnswerHub account",
                f"Hi {user.username},\n\nConfirm your email address by opening:\n{link}\n",
                settings.DEFAULT_FROM_EMAIL,
                [user.email],
            )
        except OSError as e:
            logger.error(f"Could not send confirmation mail to {user.email}: {e}")
            raise RemoteError(f"Could not send confirmation email: {e}") from e

    async def confirm_email(self, uidb64: str, token: str) -> bool:
        """Activate the account behind a confirmation link."""
        try:
            user_id = int(force_str(urlsafe_base64_decode(uidb64)))
        except (TypeError, ValueError):
            return False
        with remote_errors("confirm email"):
            user = await User.objects.filter(pk=user_id).afirst()
            if user is None or not default_token_generator.check_token(user, token):
                return False
            if not user.is_active:
                user.is_active = True
                await user.asave(update_fields=["is_active"])
        return True

    async def sign_out(self):
        try:
            with remote_errors("sign out"):
                if self.request is not None:
                    await alogout(self.request)
        finally:
            self._session = None
            await self._emit(SessionEvent.SIGNED_OUT, None)

    async def get_session(self):
        if self.request is None:
            return self._session
        with remote_errors("get session"):
            user = await self.request.auser()
        if not user.is_authenticated:
            return None
        return AuthSession(user_id=user.pk, email=user.email)

    def on_session_change(self, callback):
        async def receiver(sender, event, session, **kwargs):
            await callback(event, session)

        self.session_changed.connect(receiver, weak=False)

        def unsubscribe():
            self.session_changed.disconnect(receiver)

        return unsubscribe

    async def _emit(self, event, session):
        await self.session_changed.asend(sender=self.__class__, event=event, session=session)
