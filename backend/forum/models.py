"""
Data Models for StackIt
=======================

Entities:
---------
- User: custom auth user (username, optional unique email, display name,
  admin flag, profile image reference, legacy password column)
- Question / Answer: Q&A threads with denormalized vote tallies
- Vote: one per (user, target); target is exactly one of question/answer
- Notification: per-user inbox written as a side effect of Q&A actions
- Post / PostComment / PostLike: community feed
- AdminLog: append-only audit trail of admin actions

Deletion Strategy:
------------------
Foreign keys between content rows use PROTECT. Deleting a question, a post
or a user is done by the service layer in dependency order inside one
transaction (see services.py). A missed step raises ProtectedError instead
of silently orphaning or silently cascading rows.

Exceptions to PROTECT:
- Question.accepted_answer is SET_NULL: removing the accepted answer clears
  the pointer.
- AdminLog.admin is SET_NULL: audit rows outlive the admin who wrote them.
- QuestionTag / PostTag are CASCADE: they are part of their parent row.

Indexes Strategy:
-----------------
- question.created_at / post.created_at: newest-first listings
- answer (question, created_at): answer list per question
- vote (user, question) / (user, answer): unique, also the lookup path
- notification (user, is_read): unread counter
- tag name: tag filter for questions and posts
"""

import bcrypt
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class User(AbstractUser):
    """
    Application user.

    The credential lives in Django's `password` column. `password_hash` is a
    legacy column filled by the previous system with raw bcrypt hashes
    ("$2b$..."); it is only read as a fallback when verifying a password and
    is cleared once the user logs in successfully.
    """
    email = models.EmailField(unique=True, null=True, blank=True)
    name = models.CharField(max_length=100)
    password_hash = models.CharField(max_length=255, null=True, blank=True)
    profile_image_url = models.CharField(max_length=500, null=True, blank=True)
    is_admin = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta(AbstractUser.Meta):
        ordering = ['-created_at']

    def __str__(self):
        return self.username

    def save(self, *args, **kwargs):
        # Absence is NULL, never an empty string
        if not self.email:
            self.email = None
        if not self.profile_image_url:
            self.profile_image_url = None
        super().save(*args, **kwargs)

    def check_password(self, raw_password):
        """
        Verify against the legacy column when it is set, else the Django hash.

        A successful legacy match rehashes the password into `password` and
        clears `password_hash`.
        """
        if self.password_hash:
            try:
                matched = bcrypt.checkpw(
                    raw_password.encode('utf-8'),
                    self.password_hash.encode('utf-8'),
                )
            except ValueError:
                # Not a bcrypt hash at all
                matched = False
            if matched and self.pk is not None:
                self.set_password(raw_password)
                self.password_hash = None
                self.save(update_fields=['password', 'password_hash'])
            return matched
        return super().check_password(raw_password)


class Question(models.Model):
    """
    A question thread.

    `votes` is the denormalized net tally (ups - downs) of its Vote rows.
    `accepted_answer`, when set, points at one of this question's answers.
    """
    title = models.TextField()
    description = models.TextField()
    author = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='questions',
    )
    votes = models.IntegerField(default=0)
    views = models.PositiveIntegerField(default=0)
    accepted_answer = models.ForeignKey(
        'Answer',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return self.title[:50]

    @property
    def tags(self):
        return [link.name for link in self.tag_links.all()]


class Answer(models.Model):
    """An answer to a question. At most one per question has is_accepted set."""
    content = models.TextField()
    question = models.ForeignKey(
        Question,
        on_delete=models.PROTECT,
        related_name='answers',
    )
    author = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='answers',
    )
    votes = models.IntegerField(default=0)
    is_accepted = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        # Presentation order: accepted first, best voted, then oldest
        ordering = ['-is_accepted', '-votes', 'created_at', 'id']
        indexes = [
            models.Index(fields=['question', 'created_at'], name='answer_question_created_idx'),
        ]

    def __str__(self):
        return f"Answer by {self.author.username} on {self.question_id}"


class Vote(models.Model):
    """
    One user's up/down vote on exactly one question or answer.

    Uniqueness per (user, target) is enforced by partial unique constraints;
    the check constraint rejects rows with zero or two targets.
    """

    class VoteType(models.TextChoices):
        UP = 'up', 'Up'
        DOWN = 'down', 'Down'

    user = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='votes',
    )
    question = models.ForeignKey(
        Question,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='vote_records',
    )
    answer = models.ForeignKey(
        Answer,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='vote_records',
    )
    vote_type = models.CharField(max_length=4, choices=VoteType.choices)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(question__isnull=False, answer__isnull=True)
                    | models.Q(question__isnull=True, answer__isnull=False)
                ),
                name='vote_exactly_one_target',
            ),
            models.UniqueConstraint(
                fields=['user', 'question'],
                condition=models.Q(question__isnull=False),
                name='unique_vote_per_user_per_question',
            ),
            models.UniqueConstraint(
                fields=['user', 'answer'],
                condition=models.Q(answer__isnull=False),
                name='unique_vote_per_user_per_answer',
            ),
        ]

    def __str__(self):
        target = f"question {self.question_id}" if self.question_id else f"answer {self.answer_id}"
        return f"{self.user_id} voted {self.vote_type} on {target}"


class Notification(models.Model):
    """Inbox entry for one user. Only is_read ever changes after insert."""

    class Type(models.TextChoices):
        QUESTION_ANSWERED = 'question_answered', 'Question Answered'
        ANSWER_ACCEPTED = 'answer_accepted', 'Answer Accepted'
        MENTION = 'mention', 'Mention'

    user = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='notifications',
    )
    type = models.CharField(max_length=20, choices=Type.choices)
    title = models.TextField()
    message = models.TextField()
    question = models.ForeignKey(
        Question,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='notifications',
    )
    answer = models.ForeignKey(
        Answer,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='notifications',
    )
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'is_read'], name='notification_user_read_idx'),
            models.Index(fields=['user', '-created_at'], name='notification_user_recent_idx'),
        ]

    def __str__(self):
        return f"{self.type} for {self.user_id}"


class Post(models.Model):
    """
    Community feed post.

    `likes` is a denormalized counter moved with F() expressions together
    with the PostLike insert/delete. Read models count the like rows instead.
    """
    title = models.TextField()
    content = models.TextField()
    code_snippet = models.TextField(null=True, blank=True)
    language = models.CharField(max_length=50, null=True, blank=True)
    author = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='posts',
    )
    likes = models.IntegerField(default=0)
    shares = models.IntegerField(default=0)
    image_urls = models.JSONField(default=list, blank=True)
    video_urls = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.title[:50]} by {self.author.username}"

    @property
    def tags(self):
        return [link.name for link in self.tag_links.all()]


class PostComment(models.Model):
    post = models.ForeignKey(
        Post,
        on_delete=models.PROTECT,
        related_name='comments',
    )
    author = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='post_comments',
    )
    content = models.TextField()
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['created_at', 'id']  # Oldest first
        indexes = [
            models.Index(fields=['post', 'created_at'], name='comment_post_created_idx'),
        ]

    def __str__(self):
        return f"Comment by {self.author.username} on {self.post_id}"


class PostLike(models.Model):
    post = models.ForeignKey(
        Post,
        on_delete=models.PROTECT,
        related_name='like_records',
    )
    user = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='post_likes',
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['post', 'user'],
                name='unique_like_per_user_per_post',
            ),
        ]

    def __str__(self):
        return f"{self.user_id} liked post {self.post_id}"


class QuestionTag(models.Model):
    """One entry of a question's ordered tag list."""
    question = models.ForeignKey(
        Question,
        on_delete=models.CASCADE,
        related_name='tag_links',
    )
    name = models.CharField(max_length=50, db_index=True)
    position = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self):
        return self.name


class PostTag(models.Model):
    """One entry of a post's ordered tag list."""
    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        related_name='tag_links',
    )
    name = models.CharField(max_length=50, db_index=True)
    position = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self):
        return self.name


class AdminLog(models.Model):
    """
    Append-only audit row. NEVER update or delete.

    `admin` is nulled if the acting admin account is later deleted; the row
    itself is kept.
    """
    admin = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='admin_logs',
    )
    action = models.CharField(max_length=255)
    target_type = models.CharField(max_length=50)
    target_id = models.TextField(null=True, blank=True)
    details = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.action} on {self.target_type} {self.target_id}"


# ============================================================================
# LIMITS
# ============================================================================
MAX_TAGS = 5
MAX_POST_IMAGES = 5
MAX_POST_VIDEOS = 2
MAX_CHAT_MESSAGE_LENGTH = 2000
