"""
Identity & Admin Lifecycle
==========================

User creation and edits, the cascading user delete, and the privileged
admin actions.

ADMIN ACTIONS:
--------------
Each admin_* function performs its change and appends the AdminLog row in
the same transaction: either both are committed or neither is. The
self-demotion and self-deletion guards live here and nowhere else; the
plain functions (toggle_admin, delete_user) do not check who is calling.
"""

import json
import logging
from typing import Optional

from django.db import transaction, IntegrityError
from django.db.models import F
from django.utils import timezone

from .exceptions import ConflictError, InvalidInputError, NotFoundError
from .models import (
    AdminLog,
    Answer,
    Notification,
    Post,
    PostComment,
    PostLike,
    Question,
    User,
    Vote,
)
from .services import (
    delete_answer,
    delete_post,
    delete_question,
    purge_answers,
    purge_posts,
    purge_questions,
    recompute_tally,
)

logger = logging.getLogger(__name__)

USER_FIELDS = ('username', 'email', 'name', 'profile_image_url', 'is_admin', 'password')


# ============================================================================
# USERS
# ============================================================================

def create_user(
    username: str,
    password: str,
    name: str,
    email: Optional[str] = None,
    **extra,
) -> User:
    """
    Insert a user. The password is hashed once into `password`.

    Raises ConflictError when the username or email is already taken.
    """
    # StackIt admins also reach the Django admin
    extra.setdefault('is_staff', bool(extra.get('is_admin')))
    try:
        with transaction.atomic():
            return User.objects.create_user(
                username=username,
                email=email or None,
                password=password,
                name=name,
                **extra,
            )
    except IntegrityError as exc:
        logger.warning(f"Duplicate user on create ({username}): {exc}")
        raise ConflictError('Username or email is already registered') from exc


def register_user(username: str, password: str, name: str, email: Optional[str] = None) -> User:
    """Self-service registration with friendly duplicate messages."""
    if User.objects.filter(username=username).exists():
        raise ConflictError(
            f'Username "{username}" is already taken. Please choose a different username.'
        )
    if email and User.objects.filter(email=email).exists():
        raise ConflictError(
            f'Email "{email}" is already registered. Please use a different email or try logging in.'
        )
    user = create_user(username=username, password=password, name=name, email=email)
    logger.info(f"Registered user {user.username} (id={user.id})")
    return user


def update_user(user_id: int, **fields) -> User:
    """
    Partial update. `password` is hashed; empty email/profile image become NULL.
    """
    unknown = set(fields) - set(USER_FIELDS)
    if unknown:
        raise InvalidInputError(f"Unknown user fields: {', '.join(sorted(unknown))}")

    user = User.objects.filter(id=user_id).first()
    if user is None:
        raise NotFoundError(f"User {user_id} does not exist")

    password = fields.pop('password', None)
    for name, value in fields.items():
        setattr(user, name, value)
    if 'is_admin' in fields:
        user.is_staff = user.is_admin or user.is_superuser
    if password:
        user.set_password(password)
        user.password_hash = None

    try:
        with transaction.atomic():
            user.save()
    except IntegrityError as exc:
        logger.warning(f"Duplicate user on update ({user_id}): {exc}")
        raise ConflictError('Username or email is already registered') from exc
    return user


def toggle_admin(user_id: int, grant: bool) -> User:
    """
    Set or clear the admin flag. No guard against self-demotion here.

    `is_staff` follows the flag so admins can use the Django admin;
    superusers keep it.
    """
    updated = User.objects.filter(id=user_id).update(
        is_admin=grant,
        is_staff=True if grant else F('is_superuser'),
        updated_at=timezone.now(),
    )
    if not updated:
        raise NotFoundError(f"User {user_id} does not exist")
    return User.objects.get(id=user_id)


def delete_user(user_id: int) -> None:
    """
    Remove a user and everything that references them.

    CASCADE ORDER (single transaction):
    1. Answers to the user's questions (+ their votes/notifications)
    2. Answers authored by the user (+ their votes/notifications)
    3. The user's questions (+ their votes/notifications)
    4. Votes cast by the user; the tallies they fed are recomputed
    5. Notifications addressed to the user
    6. Likes and comments on the user's posts, then the posts
    7. Likes and comments the user left elsewhere; like counters move down
    8. The user row; AdminLog.admin is set to NULL

    Any step failing rolls the whole cascade back.
    """
    with transaction.atomic():
        user = User.objects.select_for_update().filter(id=user_id).first()
        if user is None:
            raise NotFoundError(f"User {user_id} does not exist")

        question_ids = list(user.questions.values_list('id', flat=True))
        purge_answers(list(
            Answer.objects.filter(question_id__in=question_ids).values_list('id', flat=True)
        ))
        purge_answers(list(user.answers.values_list('id', flat=True)))
        purge_questions(question_ids)

        # Surviving targets the user voted on need their tallies recomputed
        votes = Vote.objects.filter(user_id=user_id)
        voted_questions = list(votes.filter(question__isnull=False).values_list('question_id', flat=True))
        voted_answers = list(votes.filter(answer__isnull=False).values_list('answer_id', flat=True))
        votes.delete()
        for question_id in voted_questions:
            recompute_tally(Question, question_id, 'question_id')
        for answer_id in voted_answers:
            recompute_tally(Answer, answer_id, 'answer_id')

        Notification.objects.filter(user_id=user_id).delete()

        purge_posts(list(user.posts.values_list('id', flat=True)))
        liked_posts = list(PostLike.objects.filter(user_id=user_id).values_list('post_id', flat=True))
        PostLike.objects.filter(user_id=user_id).delete()
        Post.objects.filter(id__in=liked_posts).update(likes=F('likes') - 1)
        PostComment.objects.filter(author_id=user_id).delete()

        user.delete()

    logger.info(f"Deleted user {user_id} and dependent rows")


# ============================================================================
# ADMIN
# ============================================================================

def create_admin_log(
    admin_id: Optional[int],
    action: str,
    target_type: str,
    target_id=None,
    details: Optional[str] = None,
) -> AdminLog:
    """Append one audit row. AdminLog rows are never updated or deleted."""
    return AdminLog.objects.create(
        admin_id=admin_id,
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        details=details,
    )


def admin_update_user(admin: User, user_id: int, data: dict) -> User:
    if user_id == admin.id and data.get('is_admin') is False:
        raise InvalidInputError('Cannot remove admin status from yourself')

    # Never write the new password into the audit trail
    logged = {key: value for key, value in data.items() if key != 'password'}
    with transaction.atomic():
        user = update_user(user_id, **data)
        create_admin_log(
            admin.id, 'update_user', 'user', user_id,
            f"Updated user: {json.dumps(logged, default=str)}",
        )
    logger.info(f"Admin {admin.username} updated user {user_id}")
    return user


def admin_delete_user(admin: User, user_id: int) -> None:
    if user_id == admin.id:
        raise InvalidInputError('Cannot delete yourself')

    with transaction.atomic():
        delete_user(user_id)
        create_admin_log(
            admin.id, 'delete_user', 'user', user_id,
            f"Deleted user with ID: {user_id}",
        )
    logger.info(f"Admin {admin.username} deleted user {user_id}")


def set_admin_status(admin: User, user_id: int, grant: bool) -> User:
    """Grant or revoke admin rights on behalf of `admin`, with an audit row."""
    if not grant and user_id == admin.id:
        raise InvalidInputError('Cannot remove admin status from yourself')

    with transaction.atomic():
        user = toggle_admin(user_id, grant)
        if grant:
            create_admin_log(
                admin.id, 'make_admin', 'user', user_id,
                f"Granted admin privileges to user ID: {user_id}",
            )
        else:
            create_admin_log(
                admin.id, 'remove_admin', 'user', user_id,
                f"Removed admin privileges from user ID: {user_id}",
            )
    logger.info(f"Admin {admin.username} set is_admin={grant} on user {user_id}")
    return user


def admin_delete_question(admin: User, question_id: int) -> None:
    with transaction.atomic():
        delete_question(question_id)
        create_admin_log(
            admin.id, 'delete_question', 'question', question_id,
            f"Deleted question with ID: {question_id}",
        )
    logger.info(f"Admin {admin.username} deleted question {question_id}")


def admin_delete_answer(admin: User, answer_id: int) -> None:
    with transaction.atomic():
        delete_answer(answer_id)
        create_admin_log(
            admin.id, 'delete_answer', 'answer', answer_id,
            f"Deleted answer with ID: {answer_id}",
        )
    logger.info(f"Admin {admin.username} deleted answer {answer_id}")


def admin_delete_post(admin: User, post_id: int) -> None:
    with transaction.atomic():
        delete_post(post_id)
        create_admin_log(
            admin.id, 'delete_post', 'post', post_id,
            f"Deleted post with ID: {post_id}",
        )
    logger.info(f"Admin {admin.username} deleted post {post_id}")
