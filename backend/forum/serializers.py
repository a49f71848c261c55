"""
DRF Serializers
===============

Serializers handle:
1. Validation of incoming data
2. Transformation of model instances to the camelCase JSON read models
3. Nested shapes (author summary, answers, comments, likes, _count)

DESIGN DECISIONS:
-----------------
1. Read serializers never hit the database: everything nested is expected to
   be select_related/prefetched by queries.py.
2. Input serializers are plain Serializers; the write goes through
   services.py, never through serializer.save().
3. `_count` is a method field so its shape is fixed regardless of how the
   count was obtained (annotation or prefetched list).
"""

import json

from rest_framework import serializers

from .models import (
    AdminLog,
    Answer,
    MAX_CHAT_MESSAGE_LENGTH,
    MAX_TAGS,
    Notification,
    Post,
    PostComment,
    PostLike,
    Question,
    User,
    Vote,
)


# ============================================================================
# USERS
# ============================================================================

class AuthorSerializer(serializers.ModelSerializer):
    """Author summary embedded in questions, answers, posts and comments."""
    profileImageUrl = serializers.CharField(source='profile_image_url', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'name', 'username', 'profileImageUrl']
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    """Full user representation. Credential columns are never serialized."""
    profileImageUrl = serializers.CharField(source='profile_image_url', read_only=True)
    isAdmin = serializers.BooleanField(source='is_admin', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'name', 'profileImageUrl', 'isAdmin', 'createdAt', 'updatedAt']
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(min_length=3, max_length=50)
    password = serializers.CharField(min_length=6, write_only=True)
    name = serializers.CharField(min_length=1, max_length=100)
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True)

    def validate_username(self, value):
        return value.strip()

    def validate_email(self, value):
        # Absent, never ''
        return value or None


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class AdminUserUpdateSerializer(serializers.Serializer):
    """Fields an admin may change on any account."""
    username = serializers.CharField(min_length=3, max_length=50, required=False)
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True)
    name = serializers.CharField(min_length=1, max_length=100, required=False)
    profileImageUrl = serializers.CharField(
        source='profile_image_url', max_length=500,
        required=False, allow_blank=True, allow_null=True,
    )
    isAdmin = serializers.BooleanField(source='is_admin', required=False)
    password = serializers.CharField(min_length=6, required=False, write_only=True)

    def validate_email(self, value):
        return value or None


# ============================================================================
# QUESTIONS & ANSWERS
# ============================================================================

class TagListField(serializers.ListField):
    """
    A list of tag strings.

    Multipart forms send the list JSON-encoded in a single field; that form
    is accepted too. Unparseable JSON counts as no tags.
    """
    child = serializers.CharField(max_length=50, allow_blank=True)

    def to_internal_value(self, data):
        if (isinstance(data, (list, tuple)) and len(data) == 1
                and isinstance(data[0], str) and data[0].lstrip().startswith('[')):
            data = data[0]
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                data = []
        return super().to_internal_value(data)


class AnswerSerializer(serializers.ModelSerializer):
    author = AuthorSerializer(read_only=True)
    isAccepted = serializers.BooleanField(source='is_accepted', read_only=True)
    authorId = serializers.IntegerField(source='author_id', read_only=True)
    questionId = serializers.IntegerField(source='question_id', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Answer
        fields = [
            'id',
            'content',
            'votes',
            'isAccepted',
            'createdAt',
            'updatedAt',
            'authorId',
            'questionId',
            'author',
        ]
        read_only_fields = fields


class QuestionSerializer(serializers.ModelSerializer):
    """
    Question read model.

    List views carry `answers: []` and the annotated count; the detail view
    carries the answers prefetched into `ordered_answers`.
    """
    author = AuthorSerializer(read_only=True)
    tags = serializers.ListField(child=serializers.CharField(), read_only=True)
    authorId = serializers.IntegerField(source='author_id', read_only=True)
    acceptedAnswerId = serializers.IntegerField(source='accepted_answer_id', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)
    answers = serializers.SerializerMethodField()
    _count = serializers.SerializerMethodField(method_name='get_count')

    class Meta:
        model = Question
        fields = [
            'id',
            'title',
            'description',
            'tags',
            'votes',
            'views',
            'authorId',
            'acceptedAnswerId',
            'createdAt',
            'updatedAt',
            'author',
            'answers',
            '_count',
        ]
        read_only_fields = fields

    def get_answers(self, obj):
        return AnswerSerializer(getattr(obj, 'ordered_answers', []), many=True).data

    def get_count(self, obj):
        count = getattr(obj, 'answer_count', None)
        if count is None:
            count = len(getattr(obj, 'ordered_answers', []))
        return {'answers': count}


class QuestionWriteSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField()
    tags = TagListField(max_length=MAX_TAGS, required=False)

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError("Title cannot be empty.")
        return value.strip()


class AnswerWriteSerializer(serializers.Serializer):
    content = serializers.CharField()

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError("Answer cannot be empty.")
        return value


# ============================================================================
# VOTES
# ============================================================================

class VoteSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source='user_id', read_only=True)
    questionId = serializers.IntegerField(source='question_id', read_only=True)
    answerId = serializers.IntegerField(source='answer_id', read_only=True)
    voteType = serializers.CharField(source='vote_type', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = Vote
        fields = ['id', 'userId', 'questionId', 'answerId', 'voteType', 'createdAt']
        read_only_fields = fields


class VoteActionSerializer(serializers.Serializer):
    """
    Validates a vote cast.

    Exactly one of questionId / answerId must be given.
    """
    questionId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    answerId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    voteType = serializers.ChoiceField(choices=Vote.VoteType.choices)

    def validate(self, attrs):
        if bool(attrs.get('questionId')) == bool(attrs.get('answerId')):
            raise serializers.ValidationError(
                'Exactly one of questionId or answerId is required.'
            )
        return attrs


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source='user_id', read_only=True)
    questionId = serializers.IntegerField(source='question_id', read_only=True)
    answerId = serializers.IntegerField(source='answer_id', read_only=True)
    isRead = serializers.BooleanField(source='is_read', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    question = serializers.SerializerMethodField()

    class Meta:
        model = Notification
        fields = [
            'id',
            'userId',
            'type',
            'title',
            'message',
            'questionId',
            'answerId',
            'isRead',
            'createdAt',
            'question',
        ]
        read_only_fields = fields

    def get_question(self, obj):
        if obj.question is None:
            return None
        return {'id': obj.question.id, 'title': obj.question.title}


# ============================================================================
# POSTS
# ============================================================================

class PostCommentSerializer(serializers.ModelSerializer):
    author = AuthorSerializer(read_only=True)
    postId = serializers.IntegerField(source='post_id', read_only=True)
    authorId = serializers.IntegerField(source='author_id', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = PostComment
        fields = ['id', 'postId', 'authorId', 'content', 'createdAt', 'author']
        read_only_fields = fields


class PostLikeSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source='user_id', read_only=True)
    postId = serializers.IntegerField(source='post_id', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = PostLike
        fields = ['id', 'userId', 'postId', 'createdAt']
        read_only_fields = fields


class PostSerializer(serializers.ModelSerializer):
    """
    Post read model with comments (oldest first), likes and their counts.

    Counts come from the prefetched rows, not from the stored counter.
    """
    author = AuthorSerializer(read_only=True)
    tags = serializers.ListField(child=serializers.CharField(), read_only=True)
    codeSnippet = serializers.CharField(source='code_snippet', read_only=True)
    authorId = serializers.IntegerField(source='author_id', read_only=True)
    imageUrls = serializers.JSONField(source='image_urls', read_only=True)
    videoUrls = serializers.JSONField(source='video_urls', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)
    comments = PostCommentSerializer(many=True, read_only=True)
    likes = PostLikeSerializer(source='like_records', many=True, read_only=True)
    _count = serializers.SerializerMethodField(method_name='get_count')

    class Meta:
        model = Post
        fields = [
            'id',
            'title',
            'content',
            'codeSnippet',
            'language',
            'authorId',
            'shares',
            'tags',
            'imageUrls',
            'videoUrls',
            'createdAt',
            'updatedAt',
            'author',
            'comments',
            'likes',
            '_count',
        ]
        read_only_fields = fields

    def get_count(self, obj):
        return {
            'comments': len(obj.comments.all()),
            'likes': len(obj.like_records.all()),
        }


class PostWriteSerializer(serializers.Serializer):
    title = serializers.CharField()
    content = serializers.CharField()
    codeSnippet = serializers.CharField(
        source='code_snippet', required=False, allow_blank=True, allow_null=True,
        trim_whitespace=False,
    )
    language = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    tags = TagListField(max_length=MAX_TAGS, required=False)

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError("Title cannot be empty.")
        return value.strip()


class CommentCreateSerializer(serializers.Serializer):
    content = serializers.CharField(error_messages={
        'required': 'Comment content is required',
        'blank': 'Comment content is required',
    })


# ============================================================================
# AI CHAT & ADMIN
# ============================================================================

class ChatSerializer(serializers.Serializer):
    message = serializers.CharField(
        max_length=MAX_CHAT_MESSAGE_LENGTH,
        trim_whitespace=False,
        error_messages={
            'required': 'Message is required',
            'blank': 'Message is required',
            'max_length': f'Message too long. Please keep it under {MAX_CHAT_MESSAGE_LENGTH} characters.',
        },
    )


class AdminLogSerializer(serializers.ModelSerializer):
    adminId = serializers.IntegerField(source='admin_id', read_only=True)
    targetType = serializers.CharField(source='target_type', read_only=True)
    targetId = serializers.CharField(source='target_id', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    admin = AuthorSerializer(read_only=True)

    class Meta:
        model = AdminLog
        fields = ['id', 'adminId', 'action', 'targetType', 'targetId', 'details', 'createdAt', 'admin']
        read_only_fields = fields


class RecentActivitySerializer(serializers.Serializer):
    questions = serializers.IntegerField()
    answers = serializers.IntegerField()
    posts = serializers.IntegerField()
    users = serializers.IntegerField()


class AnalyticsSerializer(serializers.Serializer):
    """Serializer for the analytics payload."""
    totalUsers = serializers.IntegerField()
    totalQuestions = serializers.IntegerField()
    totalAnswers = serializers.IntegerField()
    totalPosts = serializers.IntegerField()
    totalVotes = serializers.IntegerField()
    recentActivity = RecentActivitySerializer()
