"""
Read Queries
============

Every read path in one place. A missing entity is reported as None (or an
empty list), never as an exception; the HTTP layer decides what that means.

AVOIDING N+1:
-------------
A question page shows the question, its author, its tags, and every answer
with its author. Done naively that is 1 + 1 + 1 + N + N queries.

    question = Question.objects.get(id=1)     # 1 query
    question.author.username                  # 1 query
    for answer in question.answers.all():     # 1 query
        answer.author.username                # N queries

OUR APPROACH:
-------------
1. select_related('author') on the question (JOIN)
2. prefetch_related for tags and for answers (with their authors JOINed)

That is 3 queries regardless of the number of answers. Listings use the same
shape plus an annotated answer count instead of loading the answers.
"""

from typing import Optional

from django.db.models import Count, Exists, OuterRef, Prefetch, Q

from .exceptions import InvalidInputError
from .models import (
    AdminLog,
    Answer,
    Notification,
    Post,
    PostComment,
    PostLike,
    PostTag,
    Question,
    QuestionTag,
    User,
    Vote,
)

QUESTION_FILTERS = ('newest', 'unanswered')


def _check_window(limit: int, offset: int) -> None:
    if limit < 0 or offset < 0:
        raise InvalidInputError('limit and offset must not be negative')


# ============================================================================
# USERS
# ============================================================================

def get_user(user_id: int) -> Optional[User]:
    return User.objects.filter(id=user_id).first()


def get_user_by_username(username: str) -> Optional[User]:
    """Exact, case-sensitive match."""
    return User.objects.filter(username=username).first()


def get_user_by_email(email: Optional[str]) -> Optional[User]:
    if not email:
        return None
    return User.objects.filter(email=email).first()


def list_users(search: Optional[str] = None, limit: int = 50, offset: int = 0) -> list[User]:
    """Newest accounts first, optionally filtered on name/username/email."""
    _check_window(limit, offset)
    queryset = User.objects.order_by('-created_at', '-id')
    if search and search.strip():
        term = search.strip()
        queryset = queryset.filter(
            Q(name__icontains=term)
            | Q(username__icontains=term)
            | Q(email__icontains=term)
        )
    return list(queryset[offset:offset + limit])


# ============================================================================
# QUESTIONS & ANSWERS
# ============================================================================

def _ordered_answers() -> Prefetch:
    """
    Answers in presentation order: accepted first, then by votes, then
    oldest first. Authors are JOINed in the same query.
    """
    return Prefetch(
        'answers',
        queryset=(
            Answer.objects
            .select_related('author')
            .order_by('-is_accepted', '-votes', 'created_at', 'id')
        ),
        to_attr='ordered_answers',
    )


def list_questions(
    search: Optional[str] = None,
    tags: Optional[list[str]] = None,
    filter: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Question]:
    """
    Question listing, newest first.

    - search: case-insensitive substring of title OR description
    - tags: questions carrying at least one of the given tags
    - filter='unanswered': only questions without any answer

    Each question gets `answer_count` annotated; answers themselves are not
    loaded.

    Queries: 2 (questions + tags prefetch)
    """
    filter = filter or 'newest'
    if filter not in QUESTION_FILTERS:
        raise InvalidInputError(f"Unknown question filter: {filter}")
    _check_window(limit, offset)

    queryset = (
        Question.objects
        .select_related('author')
        .prefetch_related('tag_links')
        .annotate(answer_count=Count('answers', distinct=True))
    )

    if search and search.strip():
        term = search.strip()
        queryset = queryset.filter(Q(title__icontains=term) | Q(description__icontains=term))

    tags = [tag for tag in (tags or []) if tag]
    if tags:
        queryset = queryset.filter(
            id__in=QuestionTag.objects.filter(name__in=tags).values('question_id')
        )

    if filter == 'unanswered':
        queryset = queryset.filter(
            ~Exists(Answer.objects.filter(question_id=OuterRef('pk')))
        )

    return list(queryset.order_by('-created_at', '-id')[offset:offset + limit])


def get_question(question_id: int) -> Optional[Question]:
    """
    One question with author, tags and its answers in presentation order.

    The answers land on `question.ordered_answers`.

    Queries: 3
    """
    question = (
        Question.objects
        .select_related('author')
        .prefetch_related('tag_links', _ordered_answers())
        .filter(id=question_id)
        .first()
    )
    if question is not None:
        question.answer_count = len(question.ordered_answers)
    return question


def get_answers_for_question(question_id: int) -> list[Answer]:
    return list(
        Answer.objects
        .filter(question_id=question_id)
        .select_related('author')
        .order_by('-is_accepted', '-votes', 'created_at', 'id')
    )


def get_answer(answer_id: int) -> Optional[Answer]:
    return (
        Answer.objects
        .select_related('author', 'question')
        .filter(id=answer_id)
        .first()
    )


def get_vote(
    user_id: int,
    question_id: Optional[int] = None,
    answer_id: Optional[int] = None,
) -> Optional[Vote]:
    """The user's vote on exactly one target, or None."""
    if bool(question_id) == bool(answer_id):
        raise InvalidInputError('A vote lookup needs exactly one of questionId or answerId')
    if question_id:
        return Vote.objects.filter(user_id=user_id, question_id=question_id).first()
    return Vote.objects.filter(user_id=user_id, answer_id=answer_id).first()


# ============================================================================
# POSTS
# ============================================================================

def _post_queryset():
    # Comments oldest first, each with its author
    return (
        Post.objects
        .select_related('author')
        .prefetch_related(
            'tag_links',
            Prefetch(
                'comments',
                queryset=PostComment.objects.select_related('author').order_by('created_at', 'id'),
            ),
            Prefetch('like_records', queryset=PostLike.objects.order_by('created_at', 'id')),
        )
    )


def list_posts(
    search: Optional[str] = None,
    tags: Optional[list[str]] = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Post]:
    """
    Feed listing, newest first, with comments and likes prefetched.

    Queries: 4 (posts + tags + comments + likes)
    """
    _check_window(limit, offset)
    queryset = _post_queryset()

    if search and search.strip():
        term = search.strip()
        queryset = queryset.filter(Q(title__icontains=term) | Q(content__icontains=term))

    tags = [tag for tag in (tags or []) if tag]
    if tags:
        queryset = queryset.filter(
            id__in=PostTag.objects.filter(name__in=tags).values('post_id')
        )

    return list(queryset.order_by('-created_at', '-id')[offset:offset + limit])


def get_post(post_id: int) -> Optional[Post]:
    return _post_queryset().filter(id=post_id).first()


def list_post_comments(post_id: int) -> list[PostComment]:
    return list(
        PostComment.objects
        .filter(post_id=post_id)
        .select_related('author')
        .order_by('created_at', 'id')
    )


def get_post_comment(post_id: int, comment_id: int) -> Optional[PostComment]:
    return PostComment.objects.filter(id=comment_id, post_id=post_id).first()


def is_post_liked_by(post_id: int, user_id: int) -> bool:
    return PostLike.objects.filter(post_id=post_id, user_id=user_id).exists()


# ============================================================================
# NOTIFICATIONS
# ============================================================================

def list_notifications(user_id: int, limit: int = 20) -> list[Notification]:
    """Newest first; the referenced question (for its title) is JOINed."""
    _check_window(limit, 0)
    return list(
        Notification.objects
        .filter(user_id=user_id)
        .select_related('question')
        .order_by('-created_at', '-id')[:limit]
    )


def unread_count(user_id: int) -> int:
    return Notification.objects.filter(user_id=user_id, is_read=False).count()


# ============================================================================
# ADMIN
# ============================================================================

def list_admin_logs(
    admin_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AdminLog]:
    """Audit trail newest first, optionally only one admin's actions."""
    _check_window(limit, offset)
    queryset = AdminLog.objects.select_related('admin')
    if admin_id is not None:
        queryset = queryset.filter(admin_id=admin_id)
    return list(queryset.order_by('-created_at', '-id')[offset:offset + limit])
