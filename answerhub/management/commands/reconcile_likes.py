import logging

from django.core.management.base import BaseCommand
from django.db.models import Count, F

from answerhub.models import Solution

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Rewrite stored solution like counters from the like relations.'

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='Report drift without writing.')

    def handle(self, *args, **options):
        drifted = (
            Solution.objects
            .annotate(relation_count=Count("like_relations"))
            .exclude(likes=F("relation_count"))
        )
        fixed = 0
        for solution in drifted:
            self.stdout.write(
                f"Solution {solution.id}: stored {solution.likes}, relations {solution.relation_count}\n"
            )
            if not options["dry_run"]:
                Solution.objects.filter(pk=solution.pk).update(likes=solution.relation_count)
                fixed += 1

        if fixed:
            logger.info(f"Reconciled like counters on {fixed} solutions")
        self.stdout.write(f"{fixed} solution(s) updated.\n")
