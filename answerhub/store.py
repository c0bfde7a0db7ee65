"""
Question store: the materialized Question -> Solution -> Comment view.

The store loads the whole graph from a ``Backend`` with a concurrent
fan-out, keeps per-viewer like flags, and applies each successful write
as a local patch. The published view is a tuple of frozen records; every
change swaps in a new tuple, read at patch time, so the last completed
operation wins.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from django.conf import settings

from .exceptions import (
    AnswerHubError,
    NotAuthenticated,
    NotFoundError,
    PermissionDenied,
    RemoteError,
    ValidationError,
)
from .notifications import ERROR, Notification, log_notification
from .types import Comment, Difficulty, Question, Solution, User

logger = logging.getLogger(__name__)


def _question_from_row(row, solutions=()) -> Question:
    return Question(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        difficulty=Difficulty(row["difficulty"]),
        created_at=row["created_at"],
        tags=tuple(row.get("tags") or ()),
        images=tuple(row.get("images") or ()),
        solutions=tuple(solutions),
    )


def _solution_from_row(row, comments=(), liked=False, author=None) -> Solution:
    return Solution(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        code=row["code"],
        created_at=row["created_at"],
        images=tuple(row.get("images") or ()),
        likes=row.get("likes") or 0,
        comments=tuple(comments),
        liked_by_current_user=liked,
        author=author,
    )


def _user_from_profile(profile) -> User:
    return User(
        id=profile["id"],
        username=profile["username"],
        is_admin=bool(profile.get("is_admin")),
        avatar_url=profile.get("avatar_url") or "",
    )


def parse_tags(raw: str) -> List[str]:
    """Split a comma separated tag string, dropping blanks."""
    return [tag.strip() for tag in (raw or "").split(",") if tag.strip()]


class QuestionStore:

    def __init__(self, backend, notify=None, reload_delay: Optional[float] = None):
        self.backend = backend
        self.notify = notify or log_notification
        if reload_delay is None:
            reload_delay = getattr(settings, "ANSWERHUB_RELOAD_DELAY", 1.0)
        self.reload_delay = reload_delay
        self.current_user: Optional[User] = None
        self.is_loading = False
        self.error: Optional[RemoteError] = None
        self.last_failure: Optional[AnswerHubError] = None
        self._questions: Tuple[Question, ...] = ()
        self._reload_task: Optional[asyncio.Task] = None

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._questions

    # -- identity --

    async def attach(self, session):
        """Follow the identity published by a SessionProvider and load."""
        self.current_user = session.current_user
        session.subscribe(self.set_current_user)
        await self.load()

    async def set_current_user(self, user: Optional[User]):
        previous = self.current_user
        self.current_user = user
        if previous == user:
            return
        # Like flags belong to the previous viewer until the reload lands.
        self._questions = tuple(
            replace(q, solutions=tuple(replace(s, liked_by_current_user=False) for s in q.solutions))
            for q in self._questions
        )
        await self.load()

    # -- bulk load --

    async def load(self):
        self.is_loading = True
        viewer = self.current_user
        try:
            try:
                rows = await self.backend.list_questions()
            except RemoteError as e:
                logger.error(f"Error fetching questions: {e}")
                self.error = e
                self._questions = ()
                self.notify(Notification(
                    "Error",
                    "Failed to load questions. Please try again later.",
                    ERROR,
                ))
                return
            questions = await asyncio.gather(*(self._load_question(row, viewer) for row in rows))
            questions = [q for q in questions if q is not None]
            self._questions = tuple(sorted(questions, key=lambda q: q.created_at, reverse=True))
            self.error = None
        finally:
            self.is_loading = False

    async def _load_question(self, row, viewer) -> Optional[Question]:
        if row["difficulty"] not in {d.value for d in Difficulty}:
            logger.error(f"Skipping question {row['id']} with unknown difficulty {row['difficulty']!r}")
            return None
        try:
            solution_rows = await self.backend.list_solutions(row["id"])
        except RemoteError as e:
            logger.error(f"Error fetching solutions for question {row['id']}: {e}")
            return _question_from_row(row)
        solutions = await asyncio.gather(*(self._load_solution(s, viewer) for s in solution_rows))
        solutions = sorted(solutions, key=lambda s: s.created_at, reverse=True)
        return _question_from_row(row, solutions)

    async def _load_solution(self, row, viewer) -> Solution:
        author = None
        try:
            author = _user_from_profile(await self.backend.get_profile(row["user_id"]))
        except RemoteError as e:
            logger.error(f"Error fetching user profile {row['user_id']}: {e}")

        try:
            comment_rows = await self.backend.list_comments(row["id"])
        except RemoteError as e:
            logger.error(f"Error fetching comments for solution {row['id']}: {e}")
            comments = []
        else:
            comments = await asyncio.gather(*(self._load_comment(c) for c in comment_rows))
            comments = sorted(comments, key=lambda c: c.created_at)

        liked = False
        if viewer is not None:
            try:
                liked = await self.backend.find_like(row["id"], viewer.id)
            except RemoteError as e:
                logger.error(f"Error checking like on solution {row['id']}: {e}")

        return _solution_from_row(row, comments, liked, author)

    async def _load_comment(self, row) -> Comment:
        try:
            user = _user_from_profile(await self.backend.get_profile(row["user_id"]))
        except RemoteError as e:
            logger.error(f"Error fetching user profile {row['user_id']}: {e}")
            user = User(id=row["user_id"], username="Unknown")
        return Comment(id=row["id"], content=row["content"], created_at=row["created_at"], user=user)

    # -- reads --

    def get_question_by_id(self, question_id) -> Optional[Question]:
        for question in self._questions:
            if question.id == question_id:
                return question
        return None

    def filter_questions(self, search_term: str = "", tags: Iterable[str] = (),
                         difficulty: Optional[Difficulty] = None) -> List[Question]:
        term = (search_term or "").lower()
        wanted = set(tags or ())

        def matches(q: Question) -> bool:
            if term and term not in q.title.lower() and term not in q.description.lower():
                return False
            if wanted and wanted.isdisjoint(q.tags):
                return False
            if difficulty and q.difficulty != difficulty:
                return False
            return True

        return [q for q in self._questions if matches(q)]

    def all_tags(self) -> List[str]:
        return sorted({tag for q in self._questions for tag in q.tags})

    # -- writes --

    async def add_question(self, title, description, difficulty, tags, images=None) -> Optional[Question]:
        try:
            user = self._require_user()
            if not user.is_admin:
                raise PermissionDenied("Only admins can add questions.")
            tags = [t for t in (tags or ()) if t]
            if not title or not description or not tags:
                raise ValidationError("Please fill in all required fields.")
            try:
                difficulty = Difficulty(difficulty)
            except ValueError:
                raise ValidationError(f"Unknown difficulty: {difficulty}") from None

            row = await self.backend.insert_question({
                "title": title,
                "description": description,
                "difficulty": difficulty.value,
                "tags": tags,
                "images": list(images or ()),
            })
        except AnswerHubError as e:
            self._fail("Failed to add question", e)
            return None

        question = _question_from_row(row)
        self._questions = (question,) + self._questions
        self.notify(Notification("Question Added", "Your question has been successfully added."))
        return question

    async def add_solution(self, question_id, title, content, code, images=None) -> Optional[Solution]:
        try:
            user = self._require_user()
            if not title or not content or not code:
                raise ValidationError("Please fill in all required fields.")
            self._find_question(question_id)
            row = await self.backend.insert_solution({
                "question_id": question_id,
                "user_id": user.id,
                "title": title,
                "content": content,
                "code": code,
                "images": list(images or ()),
            })
        except AnswerHubError as e:
            self._fail("Failed to add solution", e)
            return None

        solution = _solution_from_row(dict(row, likes=0), author=user)
        self._patch_question(question_id, lambda q: replace(q, solutions=(solution,) + q.solutions))
        self.notify(Notification("Solution Added", "Your solution has been successfully added."))
        self._schedule_reload()
        return solution

    async def add_comment(self, question_id, solution_id, content) -> Optional[Comment]:
        try:
            user = self._require_user()
            if not content or not content.strip():
                raise ValidationError("Comment cannot be empty.")
            self._find_solution(question_id, solution_id)
            row = await self.backend.insert_comment({
                "solution_id": solution_id,
                "user_id": user.id,
                "content": content,
            })
        except AnswerHubError as e:
            self._fail("Failed to add comment", e)
            return None

        comment = Comment(id=row["id"], content=row["content"], created_at=row["created_at"], user=user)
        self._patch_solution(question_id, solution_id,
                             lambda s: replace(s, comments=s.comments + (comment,)))
        self.notify(Notification("Comment Added", "Your comment has been successfully added."))
        return comment

    async def toggle_like(self, question_id, solution_id) -> Optional[Solution]:
        try:
            user = self._require_user()
            solution = self._find_solution(question_id, solution_id)
            liked = solution.liked_by_current_user
            if liked:
                await self.backend.delete_like(solution_id, user.id)
                count = solution.likes - 1
            else:
                await self.backend.insert_like(solution_id, user.id)
                count = solution.likes + 1
            try:
                await self.backend.update_solution_like_count(solution_id, count)
            except RemoteError:
                # Relation written, counter not: the next load recounts from relations.
                logger.warning(f"Like relation and counter diverge on solution {solution_id}")
                raise
        except AnswerHubError as e:
            self._fail("Failed to update like", e)
            return None

        def flip(s: Solution) -> Solution:
            delta = -1 if s.liked_by_current_user else 1
            return replace(s, likes=s.likes + delta, liked_by_current_user=not s.liked_by_current_user)

        return self._patch_solution(question_id, solution_id, flip)

    async def settle(self):
        """Wait for a pending consistency reload, if any."""
        task = self._reload_task
        if task is not None:
            await task

    # -- helpers --

    def _require_user(self) -> User:
        if self.current_user is None:
            raise NotAuthenticated("Please log in first.")
        return self.current_user

    def _find_question(self, question_id) -> Question:
        question = self.get_question_by_id(question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} not found")
        return question

    def _find_solution(self, question_id, solution_id) -> Solution:
        question = self._find_question(question_id)
        for solution in question.solutions:
            if solution.id == solution_id:
                return solution
        raise NotFoundError(f"Solution {solution_id} not found")

    def _patch_question(self, question_id, change) -> Optional[Question]:
        patched = None
        questions = []
        for question in self._questions:
            if question.id == question_id:
                question = patched = change(question)
            questions.append(question)
        self._questions = tuple(questions)
        return patched

    def _patch_solution(self, question_id, solution_id, change) -> Optional[Solution]:
        patched = []

        def patch(question: Question) -> Question:
            solutions = []
            for solution in question.solutions:
                if solution.id == solution_id:
                    solution = change(solution)
                    patched.append(solution)
                solutions.append(solution)
            return replace(question, solutions=tuple(solutions))

        self._patch_question(question_id, patch)
        return patched[0] if patched else None

    def _schedule_reload(self):
        if self._reload_task is not None and not self._reload_task.done():
            return
        self._reload_task = asyncio.ensure_future(self._delayed_reload())

    async def _delayed_reload(self):
        await asyncio.sleep(self.reload_delay)
        await self.load()

    def _fail(self, action: str, error: AnswerHubError):
        self.last_failure = error
        if isinstance(error, RemoteError):
            logger.error(f"{action}: {error}")
        else:
            logger.info(f"{action}: {error}")
        self.notify(Notification(error.title, f"{action}: {error}", ERROR))
