import pytest

from answerhub.exceptions import NotAuthenticated, NotFoundError, PermissionDenied, RemoteError, ValidationError
from answerhub.notifications import NotificationLog
from answerhub.store import QuestionStore, parse_tags
from answerhub.types import Difficulty

from .fakes import FakeBackend


class World:
    """A small seeded backend: three questions, two solutions, three comments."""

    def __init__(self):
        self.backend = FakeBackend()
        self.admin = self.backend.add_user("admin", "admin@example.com", is_admin=True)
        self.alice = self.backend.add_user("alice", "alice@example.com")
        self.bob = self.backend.add_user("bob", "bob@example.com")

        self.two_sum = self.backend.add_question(
            "Two Sum", "Find two numbers adding up to target.", "Easy", ["Array", "Hash Table"])
        self.intervals = self.backend.add_question(
            "Merge Intervals", "Merge all overlapping intervals.", "Medium", ["Array", "Sorting"])
        self.median = self.backend.add_question(
            "Median of Two Sorted Arrays", "Use binary search on the partition.", "Hard", ["Binary Search"])

        self.hash_map = self.backend.add_solution(self.two_sum["id"], self.admin.id, "Hash map")
        self.brute = self.backend.add_solution(self.two_sum["id"], self.alice.id, "Brute force")
        self.backend.add_comment(self.hash_map["id"], self.alice.id, "first")
        self.backend.add_comment(self.hash_map["id"], self.bob.id, "second")
        self.backend.add_comment(self.brute["id"], self.bob.id, "too slow")
        self.backend.like(self.hash_map["id"], self.alice.id)

        self.notices = NotificationLog()

    def store(self, user=None):
        store = QuestionStore(self.backend, notify=self.notices, reload_delay=0)
        store.current_user = user
        return store


@pytest.fixture
def world():
    return World()


def titles(questions):
    return [q.title for q in questions]


@pytest.mark.asyncio
class TestBulkLoad:
    async def test_builds_nested_view_in_display_order(self, world):
        store = world.store()
        await store.load()

        assert titles(store.questions) == ["Median of Two Sorted Arrays", "Merge Intervals", "Two Sum"]
        two_sum = store.get_question_by_id(world.two_sum["id"])
        assert [s.title for s in two_sum.solutions] == ["Brute force", "Hash map"]
        hash_map = two_sum.solutions[1]
        assert [c.content for c in hash_map.comments] == ["first", "second"]
        assert [c.user.username for c in hash_map.comments] == ["alice", "bob"]
        assert hash_map.author.username == "admin"
        assert hash_map.likes == 1
        assert two_sum.difficulty is Difficulty.EASY
        assert two_sum.tags == ("Array", "Hash Table")
        assert store.error is None
        assert store.is_loading is False

    async def test_like_flags_follow_viewer(self, world):
        anonymous = world.store()
        await anonymous.load()
        alice = world.store(world.alice)
        await alice.load()

        def liked(store):
            return store.get_question_by_id(world.two_sum["id"]).solutions[1].liked_by_current_user

        assert liked(anonymous) is False
        assert liked(alice) is True

    async def test_comment_failure_only_empties_that_solution(self, world):
        world.backend.fail("list_comments", world.brute["id"])
        store = world.store()
        await store.load()

        two_sum = store.get_question_by_id(world.two_sum["id"])
        brute, hash_map = two_sum.solutions
        assert brute.comments == ()
        assert [c.content for c in hash_map.comments] == ["first", "second"]
        assert store.error is None
        assert world.notices.errors == []

    async def test_solution_failure_empties_that_question(self, world):
        world.backend.fail("list_solutions", world.two_sum["id"])
        store = world.store()
        await store.load()

        assert len(store.questions) == 3
        assert store.get_question_by_id(world.two_sum["id"]).solutions == ()
        assert store.error is None

    async def test_unknown_difficulty_skips_only_that_question(self, world):
        legacy = world.backend.add_question("Legacy", "Imported row.", "Legendary", ["Array"])
        store = world.store()
        await store.load()

        assert store.get_question_by_id(legacy["id"]) is None
        assert titles(store.questions) == ["Median of Two Sorted Arrays", "Merge Intervals", "Two Sum"]
        assert store.error is None

    async def test_unresolvable_comment_author_becomes_placeholder(self, world):
        world.backend.fail("get_profile", world.bob.id)
        store = world.store()
        await store.load()

        hash_map = store.get_question_by_id(world.two_sum["id"]).solutions[1]
        assert hash_map.comments[1].user.username == "Unknown"
        assert hash_map.comments[1].user.id == world.bob.id

    async def test_root_failure_publishes_empty_view(self, world):
        store = world.store()
        await store.load()
        world.backend.fail("list_questions", message="relation does not exist")

        await store.load()

        assert store.questions == ()
        assert isinstance(store.error, RemoteError)
        assert str(store.error) == "relation does not exist"
        assert world.notices.errors[-1].description == "Failed to load questions. Please try again later."

    async def test_successful_reload_clears_error(self, world):
        world.backend.fail("list_questions")
        store = world.store()
        await store.load()
        world.backend.recover()

        await store.load()

        assert store.error is None
        assert len(store.questions) == 3


@pytest.mark.asyncio
class TestFilterQuestions:
    async def test_empty_filter_returns_everything_in_order(self, world):
        store = world.store()
        await store.load()
        assert store.filter_questions("", [], None) == list(store.questions)

    async def test_search_is_case_insensitive_substring(self, world):
        store = world.store()
        await store.load()
        assert titles(store.filter_questions("two sum", [], None)) == ["Two Sum"]
        assert titles(store.filter_questions("BINARY", [], None)) == ["Median of Two Sorted Arrays"]

    async def test_tags_match_any(self, world):
        store = world.store()
        await store.load()
        assert titles(store.filter_questions("", ["Hash Table", "Sorting"], None)) == ["Merge Intervals", "Two Sum"]
        assert titles(store.filter_questions("", ["Array", "Sorting"], None)) == ["Merge Intervals", "Two Sum"]

    async def test_difficulty_is_exact(self, world):
        store = world.store()
        await store.load()
        assert titles(store.filter_questions("", [], Difficulty.HARD)) == ["Median of Two Sorted Arrays"]

    async def test_criteria_combine(self, world):
        store = world.store()
        await store.load()
        assert store.filter_questions("merge", ["Array"], Difficulty.EASY) == []
        assert titles(store.filter_questions("merge", ["Array"], Difficulty.MEDIUM)) == ["Merge Intervals"]

    async def test_result_is_a_new_list(self, world):
        store = world.store()
        await store.load()
        result = store.filter_questions()
        result.clear()
        assert len(store.questions) == 3

    async def test_all_tags(self, world):
        store = world.store()
        await store.load()
        assert store.all_tags() == ["Array", "Binary Search", "Hash Table", "Sorting"]


@pytest.mark.asyncio
class TestAddQuestion:
    async def test_admin_questions_are_prepended(self, world):
        store = world.store(world.admin)
        await store.load()

        await store.add_question("Valid Parentheses", "Match the brackets.", Difficulty.EASY, ["Stack"])
        latest = await store.add_question("LRU Cache", "Design a cache.", "Medium", ["Design"])

        assert store.questions[0] == latest
        assert titles(store.questions[:2]) == ["LRU Cache", "Valid Parentheses"]
        assert latest.solutions == ()
        assert latest.difficulty is Difficulty.MEDIUM
        assert world.notices.entries[-1].title == "Question Added"

    async def test_non_admin_cannot_add(self, world):
        store = world.store(world.alice)
        await store.load()
        before = store.questions

        result = await store.add_question("Sneaky", "Not allowed.", Difficulty.EASY, ["Array"])

        assert result is None
        assert store.questions == before
        assert "insert_question" not in world.backend.writes
        assert isinstance(store.last_failure, PermissionDenied)
        assert world.notices.errors[-1].title == "Permission Denied"

    async def test_anonymous_cannot_add(self, world):
        store = world.store()
        await store.load()

        assert await store.add_question("Nope", "No.", Difficulty.EASY, ["Array"]) is None
        assert isinstance(store.last_failure, NotAuthenticated)
        assert world.notices.errors[-1].title == "Authentication Required"

    async def test_missing_fields_never_reach_backend(self, world):
        store = world.store(world.admin)
        await store.load()

        assert await store.add_question("Title only", "", Difficulty.EASY, ["Array"]) is None
        assert await store.add_question("No tags", "Body", Difficulty.EASY, []) is None
        assert await store.add_question("Bad level", "Body", "Impossible", ["Array"]) is None
        assert isinstance(store.last_failure, ValidationError)
        assert world.backend.writes == []

    async def test_backend_failure_leaves_view_unchanged(self, world):
        store = world.store(world.admin)
        await store.load()
        before = store.questions
        world.backend.fail("insert_question", message="permission denied for table questions")

        assert await store.add_question("LRU Cache", "Design a cache.", "Medium", ["Design"]) is None
        assert store.questions == before
        assert "permission denied for table questions" in world.notices.errors[-1].description


@pytest.mark.asyncio
class TestAddSolution:
    async def test_prepends_then_reloads_from_backend(self, world):
        store = world.store(world.bob)
        await store.load()

        solution = await store.add_solution(world.two_sum["id"], "Two pointers", "Sort first.", "nums.sort()")

        two_sum = store.get_question_by_id(world.two_sum["id"])
        assert two_sum.solutions[0] == solution
        assert solution.likes == 0 and solution.comments == ()
        assert solution.author == world.bob

        # A value computed on the server side shows up after the reload.
        world.backend.solution(solution.id)["likes"] = 2
        await store.settle()

        reloaded = store.get_question_by_id(world.two_sum["id"]).solutions[0]
        assert reloaded.id == solution.id
        assert reloaded.likes == 2

    async def test_unknown_question(self, world):
        store = world.store(world.bob)
        await store.load()

        assert await store.add_solution(9999, "T", "C", "code") is None
        assert isinstance(store.last_failure, NotFoundError)
        assert "insert_solution" not in world.backend.writes

    async def test_requires_login(self, world):
        store = world.store()
        await store.load()

        assert await store.add_solution(world.two_sum["id"], "T", "C", "code") is None
        assert isinstance(store.last_failure, NotAuthenticated)


@pytest.mark.asyncio
class TestAddComment:
    async def test_comment_is_appended_with_caller_as_author(self, world):
        store = world.store(world.bob)
        await store.load()

        await store.add_comment(world.two_sum["id"], world.hash_map["id"], "hello")

        comments = store.get_question_by_id(world.two_sum["id"]).solutions[1].comments
        assert comments[-1].content == "hello"
        assert comments[-1].user == world.bob
        assert len(comments) == 3

    async def test_empty_comment_is_rejected_locally(self, world):
        store = world.store(world.bob)
        await store.load()

        assert await store.add_comment(world.two_sum["id"], world.hash_map["id"], "   ") is None
        assert isinstance(store.last_failure, ValidationError)
        assert world.backend.writes == []

    async def test_unknown_solution(self, world):
        store = world.store(world.bob)
        await store.load()

        assert await store.add_comment(world.two_sum["id"], 9999, "hi") is None
        assert isinstance(store.last_failure, NotFoundError)
        assert world.backend.writes == []


@pytest.mark.asyncio
class TestToggleLike:
    def hash_map(self, store, world):
        return store.get_question_by_id(world.two_sum["id"]).solutions[1]

    async def test_toggle_twice_restores_state(self, world):
        store = world.store(world.bob)
        await store.load()
        original = self.hash_map(store, world)

        liked = await store.toggle_like(world.two_sum["id"], world.hash_map["id"])
        assert liked.likes == original.likes + 1
        assert liked.liked_by_current_user is True
        assert (world.hash_map["id"], world.bob.id) in world.backend.likes
        assert world.backend.solution(world.hash_map["id"])["likes"] == 2

        await store.toggle_like(world.two_sum["id"], world.hash_map["id"])
        restored = self.hash_map(store, world)
        assert restored.likes == original.likes
        assert restored.liked_by_current_user == original.liked_by_current_user
        assert (world.hash_map["id"], world.bob.id) not in world.backend.likes

    async def test_unlike_existing(self, world):
        store = world.store(world.alice)
        await store.load()

        unliked = await store.toggle_like(world.two_sum["id"], world.hash_map["id"])

        assert unliked.likes == 0
        assert unliked.liked_by_current_user is False
        assert world.backend.writes == ["delete_like", "update_solution_like_count"]

    async def test_counter_failure_aborts_local_change(self, world):
        store = world.store(world.bob)
        await store.load()
        before = self.hash_map(store, world)
        world.backend.fail("update_solution_like_count", world.hash_map["id"])

        assert await store.toggle_like(world.two_sum["id"], world.hash_map["id"]) is None

        assert self.hash_map(store, world) == before
        # The relation write already happened.
        assert (world.hash_map["id"], world.bob.id) in world.backend.likes
        assert world.notices.errors[-1].description.startswith("Failed to update like")

    async def test_relation_failure_skips_counter(self, world):
        store = world.store(world.bob)
        await store.load()
        world.backend.fail("insert_like", world.hash_map["id"])

        assert await store.toggle_like(world.two_sum["id"], world.hash_map["id"]) is None
        assert "update_solution_like_count" not in world.backend.writes

    async def test_requires_login(self, world):
        store = world.store()
        await store.load()

        assert await store.toggle_like(world.two_sum["id"], world.hash_map["id"]) is None
        assert isinstance(store.last_failure, NotAuthenticated)
        assert world.backend.writes == []


@pytest.mark.asyncio
class TestIdentityChange:
    async def test_switching_user_recomputes_like_flags(self, world):
        store = world.store(world.alice)
        await store.load()
        assert store.get_question_by_id(world.two_sum["id"]).solutions[1].liked_by_current_user

        await store.set_current_user(world.bob)

        assert store.current_user == world.bob
        assert not store.get_question_by_id(world.two_sum["id"]).solutions[1].liked_by_current_user

    async def test_same_user_does_not_reload(self, world):
        store = world.store(world.alice)
        await store.load()
        world.backend.fail("list_questions")

        await store.set_current_user(world.alice)

        assert store.error is None
        assert len(store.questions) == 3


def test_get_question_by_id_on_empty_store():
    store = QuestionStore(FakeBackend(), reload_delay=0)
    assert store.get_question_by_id(1) is None


def test_parse_tags():
    assert parse_tags(" Array, Hash Table,,  ") == ["Array", "Hash Table"]
    assert parse_tags("") == []
