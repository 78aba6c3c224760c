from io import StringIO

from django.core.management import call_command
from django.test import TestCase


class MigrationsInSyncTest(TestCase):
    def test_models_match_migrations(self):
        out = StringIO()
        # --check exits non-zero when a new migration would be written
        try:
            call_command("makemigrations", "backoffice", "--check", "--dry-run", stdout=out, stderr=out)
        except SystemExit:
            self.fail(f"Models and migrations are out of sync:\n{out.getvalue()}")
