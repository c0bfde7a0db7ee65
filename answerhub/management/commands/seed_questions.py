from django.contrib.auth.models import User
from django.core.management.base import BaseCommand
from django.db import transaction

from answerhub.models import Comment, Profile, Question, Solution
from answerhub.types import Difficulty

SAMPLE_QUESTIONS = [
    {
        "title": "Two Sum",
        "description": (
            "Given an array of integers nums and an integer target, return indices "
            "of the two numbers such that they add up to target.\n\n"
            "You may assume that each input would have exactly one solution, and you "
            "may not use the same element twice."
        ),
        "difficulty": Difficulty.EASY,
        "tags": ["Array", "Hash Table"],
        "solution": {
            "title": "O(n) Solution using Hash Map",
            "content": (
                "Store each value's index in a dict. For every number check whether "
                "target - n has been seen already."
            ),
            "code": (
                "def two_sum(nums, target):\n"
                "    seen = {}\n"
                "    for i, n in enumerate(nums):\n"
                "        if target - n in seen:\n"
                "            return [seen[target - n], i]\n"
                "        seen[n] = i\n"
                "    return []\n"
            ),
            "comment": "This solution is very efficient!",
        },
    },
    {
        "title": "Merge Intervals",
        "description": (
            "Given an array of intervals where intervals[i] = [start, end], merge all "
            "overlapping intervals and return the non-overlapping intervals that cover "
            "all the intervals in the input."
        ),
        "difficulty": Difficulty.MEDIUM,
        "tags": ["Array", "Sorting"],
        "solution": {
            "title": "Sort then sweep",
            "content": "Sort by start, then extend the last merged interval while they overlap.",
            "code": (
                "def merge(intervals):\n"
                "    merged = []\n"
                "    for start, end in sorted(intervals):\n"
                "        if merged and start <= merged[-1][1]:\n"
                "            merged[-1][1] = max(merged[-1][1], end)\n"
                "        else:\n"
                "            merged.append([start, end])\n"
                "    return merged\n"
            ),
            "comment": "Sorting dominates, so this is O(n log n).",
        },
    },
    {
        "title": "Median of Two Sorted Arrays",
        "description": (
            "Given two sorted arrays nums1 and nums2, return the median of the two "
            "sorted arrays. The overall run time complexity should be O(log (m+n))."
        ),
        "difficulty": Difficulty.HARD,
        "tags": ["Array", "Binary Search", "Divide and Conquer"],
        "solution": None,
    },
]


class Command(BaseCommand):
    help = 'Create an admin and a regular user plus a few sample questions.'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='password123', help='Password for the seeded users.')

    @transaction.atomic
    def handle(self, *args, **options):
        admin = self._user("admin", "admin@example.com", options["password"], is_admin=True)
        member = self._user("user", "user@example.com", options["password"], is_admin=False)

        created = 0
        for sample in SAMPLE_QUESTIONS:
            if Question.objects.filter(title=sample["title"]).exists():
                continue
            question = Question.objects.create(
                title=sample["title"],
                description=sample["description"],
                difficulty=sample["difficulty"].value,
                tags=sample["tags"],
            )
            created += 1
            if sample["solution"]:
                solution = Solution.objects.create(
                    question=question,
                    author=admin,
                    title=sample["solution"]["title"],
                    content=sample["solution"]["content"],
                    code=sample["solution"]["code"],
                )
                Comment.objects.create(solution=solution, author=member, content=sample["solution"]["comment"])

        self.stdout.write(f"Seeded {created} question(s).\n")

    def _user(self, username, email, password, is_admin):
        user, created = User.objects.get_or_create(username=username, defaults={"email": email})
        if created:
            user.set_password(password)
            user.save()
        Profile.objects.filter(user=user).update(is_admin=is_admin)
        return user
