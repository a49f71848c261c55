"""
Management command to seed the database with sample data.

Usage: python manage.py seed_data [--users N] [--questions N] [--posts N] [--clear]

All writes go through the service layer so tallies, accepted answers and
notifications come out consistent.
"""

import random
from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from forum.accounts import create_user, delete_user
from forum.models import AdminLog, Post, Question, User
from forum.services import (
    accept_answer,
    add_comment,
    cast_vote,
    create_answer,
    create_post,
    create_question,
    like_post,
    purge_posts,
    purge_questions,
)

SAMPLE_TAGS = ['python', 'django', 'javascript', 'typescript', 'react', 'sql', 'css', 'api']

QUESTION_TITLES = [
    "How do I debounce an input in React?",
    "Why does my TypeScript build ignore path aliases?",
    "What is the difference between select_related and prefetch_related?",
    "How to paginate a large SQL table efficiently?",
    "Best way to structure a Django project with several apps?",
    "CSS grid vs flexbox for a dashboard layout?",
    "How to return 409 from an API on duplicate insert?",
    "Why is my async function returning a Promise?",
]

DESCRIPTIONS = [
    "<p>I tried the obvious approach but it does not behave the way I expect. What am I missing?</p>",
    "<p>The documentation is a bit vague here. Any pointers or a minimal example would help.</p>",
    "<p>This works locally but fails in production. Logs show nothing useful.</p>",
]

ANSWERS = [
    "<p>You need to wrap it in a transaction so both writes commit together.</p>",
    "<p>Check the order of your middleware; that is usually the culprit.</p>",
    "<p>Use an index on the column you filter by, then measure again.</p>",
    "<p>Here is a minimal example that works for me.</p>",
]

POST_TITLES = [
    "Sharing my weekend project",
    "TIL about database constraints",
    "A small helper I keep reusing",
    "Thoughts on code review etiquette",
]

COMMENTS = [
    "Great write-up, thanks!",
    "I ran into the same thing last week.",
    "Could you share the full snippet?",
    "Bookmarked.",
]


class Command(BaseCommand):
    help = 'Seed the database with sample users, questions, answers and posts'

    def add_arguments(self, parser):
        parser.add_argument(
            '--users',
            type=int,
            default=8,
            help='Number of users to create'
        )
        parser.add_argument(
            '--questions',
            type=int,
            default=12,
            help='Number of questions to create'
        )
        parser.add_argument(
            '--posts',
            type=int,
            default=8,
            help='Number of posts to create'
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding'
        )

    def handle(self, *args, **options):
        if options['users'] < 1:
            raise CommandError('--users must be at least 1')
        if options['questions'] < 0 or options['posts'] < 0:
            raise CommandError('--questions and --posts cannot be negative')

        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear()

        self.stdout.write('Creating users...')
        users = self._create_users(options['users'])

        self.stdout.write('Creating questions and answers...')
        questions, answer_count = self._create_questions(users, options['questions'])

        self.stdout.write('Casting votes...')
        vote_count = self._cast_votes(users, questions)

        self.stdout.write('Creating posts...')
        posts = self._create_posts(users, options['posts'])

        self.stdout.write(self.style.SUCCESS(
            f'Successfully created:\n'
            f'  - {len(users)} users\n'
            f'  - {len(questions)} questions\n'
            f'  - {answer_count} answers\n'
            f'  - {vote_count} votes\n'
            f'  - {len(posts)} posts with comments and likes'
        ))

    @transaction.atomic
    def _clear(self):
        purge_questions(list(Question.objects.values_list('id', flat=True)))
        purge_posts(list(Post.objects.values_list('id', flat=True)))
        AdminLog.objects.all().delete()
        for user_id in User.objects.filter(is_superuser=False).values_list('id', flat=True):
            delete_user(user_id)

    def _create_users(self, count):
        users = []
        for i in range(count):
            username = f'user{i+1}'
            user = User.objects.filter(username=username).first()
            if user is None:
                user = create_user(
                    username=username,
                    password='password123',
                    name=f'User {i+1}',
                    email=f'{username}@example.com',
                )
            users.append(user)
        return users

    def _create_questions(self, users, count):
        questions = []
        answer_count = 0
        for i in range(count):
            author = random.choice(users)
            question = create_question(
                author=author,
                title=f"{random.choice(QUESTION_TITLES)} #{i+1}",
                description=random.choice(DESCRIPTIONS),
                tags=random.sample(SAMPLE_TAGS, k=random.randint(1, 3)),
            )
            Question.objects.filter(id=question.id).update(
                created_at=timezone.now() - timedelta(hours=random.randint(0, 72))
            )
            questions.append(question)

            # Roughly a quarter stay unanswered
            if random.random() < 0.25:
                continue
            others = [u for u in users if u.id != author.id]
            answers = [
                create_answer(question.id, answerer, random.choice(ANSWERS))
                for answerer in random.sample(others, k=min(len(others), random.randint(1, 3)))
            ]
            answer_count += len(answers)
            if answers and random.random() < 0.5:
                accept_answer(question.id, random.choice(answers).id, acting_user=author)
        return questions, answer_count

    def _cast_votes(self, users, questions):
        count = 0
        for question in questions:
            for voter in random.sample(users, k=len(users) // 2):
                if voter.id == question.author_id:
                    continue
                cast_vote(voter, random.choice(['up', 'up', 'down']), question_id=question.id)
                count += 1
        return count

    def _create_posts(self, users, count):
        posts = []
        for i in range(count):
            post = create_post(
                author=random.choice(users),
                title=f"{random.choice(POST_TITLES)} #{i+1}",
                content="Here is what I learned along the way.",
                code_snippet="print('hello, stackit')" if random.random() < 0.5 else None,
                language='python',
                tags=random.sample(SAMPLE_TAGS, k=2),
            )
            posts.append(post)

            for commenter in random.sample(users, k=min(3, len(users))):
                add_comment(post.id, commenter, random.choice(COMMENTS))
            for liker in random.sample(users, k=len(users) // 2):
                if liker.id != post.author_id:  # Don't self-like
                    like_post(post.id, liker)
        return posts
