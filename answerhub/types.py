"""
View-model records published by the question store.

Collections are tuples and every record is frozen, so a published view
can only change by the store swapping in a new tuple.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


class Difficulty(str, enum.Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


@dataclass(frozen=True)
class User:
    id: int
    username: str
    email: str = ""
    is_admin: bool = False
    avatar_url: str = ""


@dataclass(frozen=True)
class Comment:
    id: int
    content: str
    created_at: datetime
    user: User


@dataclass(frozen=True)
class Solution:
    id: int
    title: str
    content: str
    code: str
    created_at: datetime
    images: Tuple[str, ...] = ()
    likes: int = 0
    comments: Tuple[Comment, ...] = ()
    liked_by_current_user: bool = False
    author: Optional[User] = None


@dataclass(frozen=True)
class Question:
    id: int
    title: str
    description: str
    difficulty: Difficulty
    created_at: datetime
    tags: Tuple[str, ...] = ()
    images: Tuple[str, ...] = ()
    solutions: Tuple[Solution, ...] = ()


@dataclass(frozen=True)
class AuthSession:
    """An authenticated backend session."""
    user_id: int
    email: str = ""


class SessionEvent(str, enum.Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
