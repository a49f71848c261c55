"""
Print a user's notification inbox.

Usage: python manage.py check_notifications <username> [--limit N]
"""

from django.core.management.base import BaseCommand, CommandError

from forum.queries import get_user_by_username, list_notifications, unread_count


class Command(BaseCommand):
    help = "Show a user's notifications and unread count"

    def add_arguments(self, parser):
        parser.add_argument('username')
        parser.add_argument(
            '--limit',
            type=int,
            default=20,
            help='Number of notifications to show'
        )

    def handle(self, *args, **options):
        user = get_user_by_username(options['username'])
        if user is None:
            raise CommandError(f"User {options['username']} does not exist")

        notifications = list_notifications(user.id, limit=options['limit'])
        self.stdout.write(f"Found {len(notifications)} notifications for {user.username}:")
        for index, notification in enumerate(notifications, start=1):
            marker = ' ' if notification.is_read else '*'
            question = f" [{notification.question.title}]" if notification.question else ''
            self.stdout.write(
                f"{marker}{index}. {notification.type} - {notification.title}{question}"
            )

        self.stdout.write(self.style.SUCCESS(f"Unread: {unread_count(user.id)}"))
