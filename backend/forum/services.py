"""
Write Services for Questions, Answers, Votes, Posts and Notifications
=====================================================================

Every operation that touches more than one row runs inside a single
transaction.atomic() block, so a failure part way leaves nothing behind.

CONCURRENCY STRATEGY:
---------------------
- Votes: the target question/answer row is locked with select_for_update
  before the vote row is read. The tally is then recomputed from the Vote
  rows and written back, all under the same lock.
- Likes: the post row is locked, the PostLike insert/delete and the
  counter move (F() expression) happen in one transaction. The unique
  constraint on (post, user) is the last line; IntegrityError becomes
  ConflictError.
- Accept answer: the question row is locked; clearing the old flag, setting
  the new one and moving the question pointer commit together.

SQLite ignores select_for_update; its database-level write lock gives the
same serialization.
"""

import logging
from typing import Iterable, Literal, Optional

from django.db import transaction, IntegrityError
from django.db.models import Count, F, Q

from .exceptions import ConflictError, InvalidInputError, NotFoundError
from .models import (
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

logger = logging.getLogger(__name__)


# ============================================================================
# TAGS
# ============================================================================

def clean_tags(tags: Optional[Iterable[str]], distinct: bool = False) -> list[str]:
    """Strip whitespace and drop empty entries, keeping the given order."""
    cleaned = []
    for tag in tags or []:
        tag = str(tag).strip()
        if not tag:
            continue
        if distinct and tag in cleaned:
            continue
        cleaned.append(tag)
    return cleaned


def _replace_question_tags(question: Question, tags: list[str]) -> None:
    QuestionTag.objects.filter(question=question).delete()
    QuestionTag.objects.bulk_create([
        QuestionTag(question=question, name=name, position=position)
        for position, name in enumerate(tags)
    ])


def _replace_post_tags(post: Post, tags: list[str]) -> None:
    PostTag.objects.filter(post=post).delete()
    PostTag.objects.bulk_create([
        PostTag(post=post, name=name, position=position)
        for position, name in enumerate(tags)
    ])


# ============================================================================
# QUESTIONS
# ============================================================================

def create_question(author: User, title: str, description: str, tags=None) -> Question:
    """Create a question. Votes and views start at 0, no accepted answer."""
    with transaction.atomic():
        question = Question.objects.create(
            author=author,
            title=title,
            description=description,
        )
        _replace_question_tags(question, clean_tags(tags))
    return question


def update_question(question_id: int, **fields) -> Question:
    """Partial update of title, description and/or tags."""
    allowed = {'title', 'description', 'tags'}
    unknown = set(fields) - allowed
    if unknown:
        raise InvalidInputError(f"Unknown question fields: {', '.join(sorted(unknown))}")

    with transaction.atomic():
        question = Question.objects.select_for_update().filter(id=question_id).first()
        if question is None:
            raise NotFoundError(f"Question {question_id} does not exist")

        tags = fields.pop('tags', None)
        for name, value in fields.items():
            setattr(question, name, value)
        # save() also bumps updated_at
        question.save()

        if tags is not None:
            _replace_question_tags(question, clean_tags(tags))
    return question


def purge_answers(answer_ids: list[int]) -> int:
    """
    Delete answers plus the votes and notifications that point at them.

    Must run inside a transaction. A question whose accepted answer is
    removed gets its pointer cleared (SET_NULL).
    """
    if not answer_ids:
        return 0
    Vote.objects.filter(answer_id__in=answer_ids).delete()
    Notification.objects.filter(answer_id__in=answer_ids).delete()
    deleted, _ = Answer.objects.filter(id__in=answer_ids).delete()
    return deleted


def purge_questions(question_ids: list[int]) -> int:
    """
    Delete questions in dependency order: their answers (with votes and
    notifications on those answers), votes and notifications on the
    questions, then the questions. Must run inside a transaction.
    """
    if not question_ids:
        return 0
    answer_ids = list(
        Answer.objects.filter(question_id__in=question_ids).values_list('id', flat=True)
    )
    purge_answers(answer_ids)
    Vote.objects.filter(question_id__in=question_ids).delete()
    Notification.objects.filter(question_id__in=question_ids).delete()
    deleted, _ = Question.objects.filter(id__in=question_ids).delete()
    return deleted


def delete_question(question_id: int) -> None:
    with transaction.atomic():
        if not Question.objects.select_for_update().filter(id=question_id).exists():
            raise NotFoundError(f"Question {question_id} does not exist")
        purge_questions([question_id])


def increment_view_count(question_id: int) -> None:
    """Atomic +1 on the view counter. Missing questions are ignored."""
    Question.objects.filter(id=question_id).update(views=F('views') + 1)


# ============================================================================
# ANSWERS
# ============================================================================

def create_answer(question_id: int, author: User, content: str) -> Answer:
    """
    Post an answer and notify the question author.

    No notification when the author answers their own question.
    """
    with transaction.atomic():
        question = Question.objects.filter(id=question_id).first()
        if question is None:
            raise NotFoundError(f"Question {question_id} does not exist")

        answer = Answer.objects.create(
            question=question,
            author=author,
            content=content,
        )

        if question.author_id != author.id:
            create_notification(
                user_id=question.author_id,
                type=Notification.Type.QUESTION_ANSWERED,
                title='New Answer',
                message=f"Someone answered your question: {question.title}",
                question_id=question.id,
                answer_id=answer.id,
            )
    return answer


def update_answer(answer_id: int, content: str) -> Answer:
    answer = Answer.objects.filter(id=answer_id).first()
    if answer is None:
        raise NotFoundError(f"Answer {answer_id} does not exist")
    answer.content = content
    answer.save(update_fields=['content', 'updated_at'])
    return answer


def delete_answer(answer_id: int) -> None:
    with transaction.atomic():
        if not Answer.objects.filter(id=answer_id).exists():
            raise NotFoundError(f"Answer {answer_id} does not exist")
        purge_answers([answer_id])


def accept_answer(question_id: int, answer_id: int, acting_user: Optional[User] = None) -> Answer:
    """
    Mark one answer as THE accepted answer of its question.

    OPERATION (single transaction):
    1. Lock the question row
    2. Clear is_accepted on every answer of the question
    3. Set is_accepted on the target answer
    4. Point question.accepted_answer at it
    5. Notify the answer author unless they are the acceptor

    The acceptor defaults to the question author.
    """
    with transaction.atomic():
        question = Question.objects.select_for_update().filter(id=question_id).first()
        if question is None:
            raise NotFoundError(f"Question {question_id} does not exist")

        answer = Answer.objects.filter(id=answer_id).first()
        if answer is None:
            raise NotFoundError(f"Answer {answer_id} does not exist")
        if answer.question_id != question.id:
            raise InvalidInputError(
                f"Answer {answer_id} does not belong to question {question_id}"
            )

        Answer.objects.filter(question_id=question.id).update(is_accepted=False)
        Answer.objects.filter(id=answer.id).update(is_accepted=True)
        Question.objects.filter(id=question.id).update(accepted_answer=answer)

        acceptor_id = acting_user.id if acting_user is not None else question.author_id
        if answer.author_id != acceptor_id:
            create_notification(
                user_id=answer.author_id,
                type=Notification.Type.ANSWER_ACCEPTED,
                title='Answer Accepted',
                message=f"Your answer was accepted for: {question.title}",
                question_id=question.id,
                answer_id=answer.id,
            )

    answer.is_accepted = True
    return answer


# ============================================================================
# VOTES
# ============================================================================

class VoteResult:
    """Outcome of cast_vote."""
    def __init__(
        self,
        action: Literal['created', 'removed', 'changed'],
        vote: Optional[Vote],
        votes: int,
    ):
        self.action = action
        self.vote = vote
        self.votes = votes


def _resolve_target(question_id, answer_id):
    """Return (model, id, field name) for exactly one vote target."""
    if bool(question_id) == bool(answer_id):
        raise InvalidInputError('A vote needs exactly one of questionId or answerId')
    if question_id:
        return Question, question_id, 'question_id'
    return Answer, answer_id, 'answer_id'


def recompute_tally(model, target_id: int, field: str) -> int:
    """
    Net votes = ups - downs, counted from the Vote rows and written into
    the target's denormalized `votes` column.
    """
    counts = Vote.objects.filter(**{field: target_id}).aggregate(
        ups=Count('id', filter=Q(vote_type=Vote.VoteType.UP)),
        downs=Count('id', filter=Q(vote_type=Vote.VoteType.DOWN)),
    )
    net = counts['ups'] - counts['downs']
    model.objects.filter(id=target_id).update(votes=net)
    return net


def cast_vote(
    user: User,
    vote_type: str,
    question_id: Optional[int] = None,
    answer_id: Optional[int] = None,
) -> VoteResult:
    """
    Three-way vote state machine:

    1. No vote yet          -> insert          (action='created')
    2. Same direction again -> delete (toggle)  (action='removed')
    3. Opposite direction   -> flip in place    (action='changed')

    The target's tally is recomputed from the Vote table afterwards.
    """
    if vote_type not in Vote.VoteType.values:
        raise InvalidInputError(f"Invalid vote type: {vote_type}")
    model, target_id, field = _resolve_target(question_id, answer_id)

    try:
        with transaction.atomic():
            if not model.objects.select_for_update().filter(id=target_id).exists():
                raise NotFoundError(f"{model.__name__} {target_id} does not exist")

            existing = Vote.objects.filter(user=user, **{field: target_id}).first()

            if existing is None:
                vote = Vote.objects.create(user=user, vote_type=vote_type, **{field: target_id})
                action = 'created'
            elif existing.vote_type == vote_type:
                existing.delete()
                vote = None
                action = 'removed'
            else:
                existing.vote_type = vote_type
                existing.save(update_fields=['vote_type'])
                vote = existing
                action = 'changed'

            net = recompute_tally(model, target_id, field)
    except IntegrityError as exc:
        # Concurrent first vote by the same user on the same target
        logger.warning(f"Duplicate vote by user {user.id} on {field}={target_id}: {exc}")
        raise ConflictError('Vote already recorded') from exc

    return VoteResult(action=action, vote=vote, votes=net)


# ============================================================================
# NOTIFICATIONS
# ============================================================================

def create_notification(
    user_id: int,
    type: str,
    title: str,
    message: str,
    question_id: Optional[int] = None,
    answer_id: Optional[int] = None,
) -> Notification:
    if type not in Notification.Type.values:
        raise InvalidInputError(f"Invalid notification type: {type}")
    return Notification.objects.create(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        question_id=question_id,
        answer_id=answer_id,
    )


def mark_read(notification_id: int, user_id: Optional[int] = None) -> bool:
    """Mark one notification read. With user_id, only if it belongs to that user."""
    queryset = Notification.objects.filter(id=notification_id)
    if user_id is not None:
        queryset = queryset.filter(user_id=user_id)
    return queryset.update(is_read=True) > 0


def mark_all_read(user_id: int) -> int:
    return Notification.objects.filter(user_id=user_id, is_read=False).update(is_read=True)


# ============================================================================
# POSTS
# ============================================================================

def create_post(
    author: User,
    title: str,
    content: str,
    code_snippet: Optional[str] = None,
    language: Optional[str] = None,
    tags=None,
    image_urls=None,
    video_urls=None,
) -> Post:
    with transaction.atomic():
        post = Post.objects.create(
            author=author,
            title=title,
            content=content,
            code_snippet=code_snippet or None,
            language=language or None,
            image_urls=list(image_urls or []),
            video_urls=list(video_urls or []),
        )
        _replace_post_tags(post, clean_tags(tags, distinct=True))
    return post


def update_post(post_id: int, **fields) -> Post:
    allowed = {'title', 'content', 'code_snippet', 'language', 'tags', 'image_urls', 'video_urls'}
    unknown = set(fields) - allowed
    if unknown:
        raise InvalidInputError(f"Unknown post fields: {', '.join(sorted(unknown))}")

    with transaction.atomic():
        post = Post.objects.select_for_update().filter(id=post_id).first()
        if post is None:
            raise NotFoundError(f"Post {post_id} does not exist")

        tags = fields.pop('tags', None)
        for name, value in fields.items():
            if name in ('code_snippet', 'language'):
                value = value or None
            setattr(post, name, value)
        post.save()

        if tags is not None:
            _replace_post_tags(post, clean_tags(tags, distinct=True))
    return post


def purge_posts(post_ids: list[int]) -> int:
    """Delete posts with their likes and comments. Must run inside a transaction."""
    if not post_ids:
        return 0
    PostLike.objects.filter(post_id__in=post_ids).delete()
    PostComment.objects.filter(post_id__in=post_ids).delete()
    deleted, _ = Post.objects.filter(id__in=post_ids).delete()
    return deleted


def delete_post(post_id: int) -> None:
    with transaction.atomic():
        if not Post.objects.select_for_update().filter(id=post_id).exists():
            raise NotFoundError(f"Post {post_id} does not exist")
        purge_posts([post_id])


class LikeResult:
    """Result of a like operation."""
    def __init__(
        self,
        success: bool,
        action: Literal['created', 'removed', 'already_exists', 'already_removed'],
        like_count: int = 0
    ):
        self.success = success
        self.action = action
        self.like_count = like_count

    @property
    def liked(self) -> bool:
        return self.action in ('created', 'already_exists')


def _current_like_count(post_id: int) -> int:
    return Post.objects.filter(id=post_id).values_list('likes', flat=True).first() or 0


def like_post(post_id: int, user: User) -> LikeResult:
    """
    Like a post atomically.

    The PostLike insert and the counter increment commit together; a
    duplicate (unique constraint) leaves both untouched.
    """
    try:
        with transaction.atomic():
            if not Post.objects.select_for_update().filter(id=post_id).exists():
                raise NotFoundError(f"Post {post_id} does not exist")
            if PostLike.objects.filter(post_id=post_id, user=user).exists():
                return LikeResult(success=False, action='already_exists',
                                  like_count=_current_like_count(post_id))

            PostLike.objects.create(post_id=post_id, user=user)
            Post.objects.filter(id=post_id).update(likes=F('likes') + 1)
    except IntegrityError:
        # Lost the race against an identical like
        return LikeResult(success=False, action='already_exists',
                          like_count=_current_like_count(post_id))

    return LikeResult(success=True, action='created', like_count=_current_like_count(post_id))


def unlike_post(post_id: int, user: User) -> LikeResult:
    """Remove a like. The counter only moves when a row was actually deleted."""
    with transaction.atomic():
        if not Post.objects.select_for_update().filter(id=post_id).exists():
            raise NotFoundError(f"Post {post_id} does not exist")

        deleted_count, _ = PostLike.objects.filter(post_id=post_id, user=user).delete()
        if deleted_count == 0:
            return LikeResult(success=False, action='already_removed',
                              like_count=_current_like_count(post_id))

        Post.objects.filter(id=post_id).update(likes=F('likes') - 1)

    return LikeResult(success=True, action='removed', like_count=_current_like_count(post_id))


def toggle_like(post_id: int, user: User) -> LikeResult:
    """
    Like the post if the user has not, otherwise remove the like.

    The existence check and the write share one transaction with the post
    row locked, so two concurrent toggles serialize instead of both
    inserting or both decrementing.
    """
    with transaction.atomic():
        if not Post.objects.select_for_update().filter(id=post_id).exists():
            raise NotFoundError(f"Post {post_id} does not exist")
        if PostLike.objects.filter(post_id=post_id, user=user).exists():
            return unlike_post(post_id, user)
        return like_post(post_id, user)


def add_comment(post_id: int, author: User, content: str) -> PostComment:
    if not Post.objects.filter(id=post_id).exists():
        raise NotFoundError(f"Post {post_id} does not exist")
    return PostComment.objects.create(post_id=post_id, author=author, content=content)


def delete_post_comment(comment_id: int) -> None:
    deleted, _ = PostComment.objects.filter(id=comment_id).delete()
    if not deleted:
        raise NotFoundError(f"Comment {comment_id} does not exist")
