from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from donations.auth import issue_token


class Command(BaseCommand):
    help = "Print a bearer token for an API user"

    def add_arguments(self, parser):
        parser.add_argument("username")
        parser.add_argument("--minutes", type=int, default=None, help="Lifetime (default ADMIN_TOKEN_TTL_MINUTES)")

    def handle(self, *args, **opts):
        User = get_user_model()
        user = User.objects.filter(username=opts["username"], is_active=True).first()
        if user is None:
            raise CommandError(f"No active user {opts['username']!r}")
        if not user.is_staff:
            self.stderr.write(self.style.WARNING("User is not staff; token will not open admin endpoints."))
        self.stdout.write(issue_token(user, minutes=opts["minutes"]))
