"""
DRF Views
=========

API endpoints for StackIt. Each view does three things:
1. Authorization (authenticated / owner / admin)
2. Input validation through a serializer
3. One call into queries.py (reads) or services.py / accounts.py (writes)

Domain errors raised by the service layer propagate to
forum.exceptions.custom_exception_handler, which maps them to status codes.

AUTHENTICATION NOTE:
--------------------
Session authentication. Anonymous requests to protected endpoints get a
403 from DRF; /api/auth/user answers 401 explicitly so the frontend can
tell "logged out" apart from "forbidden".
"""

import logging

from django.conf import settings
from django.contrib.auth import authenticate, login, logout
from django.db import DatabaseError
from rest_framework import permissions, status
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from . import accounts, queries, services
from .analytics import get_analytics
from .assistant import generate_reply
from .permissions import IsAdmin, is_owner
from .serializers import (
    AdminLogSerializer,
    AdminUserUpdateSerializer,
    AnalyticsSerializer,
    AnswerSerializer,
    AnswerWriteSerializer,
    ChatSerializer,
    CommentCreateSerializer,
    LoginSerializer,
    NotificationSerializer,
    PostCommentSerializer,
    PostSerializer,
    PostWriteSerializer,
    QuestionSerializer,
    QuestionWriteSerializer,
    RegisterSerializer,
    UserSerializer,
    VoteActionSerializer,
    VoteSerializer,
)
from .uploads import store_post_media

logger = logging.getLogger(__name__)


def _window(request, default_limit):
    """
    Parse limit/offset (or 1-based page) from the query string.

    Malformed values fall back to the defaults; limit is capped.
    """
    try:
        limit = int(request.query_params.get('limit', default_limit))
        offset = int(request.query_params.get('offset', 0))
        page = request.query_params.get('page')
        if page is not None:
            offset = (max(int(page), 1) - 1) * limit
    except ValueError:
        limit, offset = default_limit, 0
    limit = max(0, min(limit, settings.STACKIT_MAX_PAGE_SIZE))
    return limit, max(offset, 0)


def _tags_param(request):
    """`?tags=a,b` and `?tags=a&tags=b` are both accepted."""
    tags = []
    for value in request.query_params.getlist('tags'):
        tags.extend(tag.strip() for tag in value.split(',') if tag.strip())
    return tags


# ============================================================================
# AUTH
# ============================================================================

class RegisterView(APIView):
    """
    POST /api/auth/register/

    Body: { "username", "password", "name", "email"? }
    Creates the account and starts a session.
    """
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = accounts.register_user(**serializer.validated_data)
        login(request, user, backend='django.contrib.auth.backends.ModelBackend')
        return Response({'user': UserSerializer(user).data}, status=status.HTTP_201_CREATED)


class LoginView(APIView):
    """POST /api/auth/login/"""
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = authenticate(request, **serializer.validated_data)
        if user is None:
            return Response(
                {'error': 'Invalid username or password'},
                status=status.HTTP_401_UNAUTHORIZED
            )
        login(request, user)
        return Response({'user': UserSerializer(user).data})


class LogoutView(APIView):
    """POST /api/auth/logout/"""
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        logout(request)
        return Response({'message': 'Logged out successfully'})


class CurrentUserView(APIView):
    """GET /api/auth/user/"""
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        if not request.user.is_authenticated:
            return Response({'error': 'Unauthorized'}, status=status.HTTP_401_UNAUTHORIZED)
        return Response(UserSerializer(request.user).data)


# ============================================================================
# QUESTIONS & ANSWERS
# ============================================================================

class QuestionListView(APIView):
    """
    GET  /api/questions/?search=&tags=a,b&filter=newest|unanswered&limit=&offset=
    POST /api/questions/

    Listing: 2 queries (questions with author + answer count, tags).
    """

    def get_permissions(self):
        if self.request.method == 'POST':
            return [permissions.IsAuthenticated()]
        return [permissions.AllowAny()]

    def get(self, request):
        limit, offset = _window(request, settings.STACKIT_DEFAULT_PAGE_SIZE)
        questions = queries.list_questions(
            search=request.query_params.get('search'),
            tags=_tags_param(request),
            filter=request.query_params.get('filter'),
            limit=limit,
            offset=offset,
        )
        return Response(QuestionSerializer(questions, many=True).data)

    def post(self, request):
        serializer = QuestionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        question = services.create_question(author=request.user, **serializer.validated_data)
        return Response(
            QuestionSerializer(queries.get_question(question.id)).data,
            status=status.HTTP_201_CREATED
        )


class QuestionDetailView(APIView):
    """
    GET    /api/questions/<id>/   question + ordered answers, bumps views
    PUT    /api/questions/<id>/   author only
    DELETE /api/questions/<id>/   author only
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [permissions.AllowAny()]
        return [permissions.IsAuthenticated()]

    def _get_owned(self, request, question_id, verb):
        question = queries.get_question(question_id)
        if question is None:
            raise NotFound('Question not found')
        if not is_owner(request.user, question.author_id):
            raise PermissionDenied(f'Not authorized to {verb} this question')
        return question

    def get(self, request, question_id):
        question = queries.get_question(question_id)
        if question is None:
            return Response(
                {'error': 'Question not found'},
                status=status.HTTP_404_NOT_FOUND
            )

        # The view counter never fails the read
        try:
            services.increment_view_count(question_id)
        except DatabaseError as e:
            logger.warning(f"View count update failed for question {question_id}: {e}")

        return Response(QuestionSerializer(question).data)

    def put(self, request, question_id):
        self._get_owned(request, question_id, 'edit')
        serializer = QuestionWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        services.update_question(question_id, **serializer.validated_data)
        return Response(QuestionSerializer(queries.get_question(question_id)).data)

    def delete(self, request, question_id):
        self._get_owned(request, question_id, 'delete')
        services.delete_question(question_id)
        return Response({'message': 'Question deleted successfully'})


class AnswerListView(APIView):
    """
    GET  /api/questions/<id>/answers/
    POST /api/questions/<id>/answers/   notifies the question author
    """

    def get_permissions(self):
        if self.request.method == 'POST':
            return [permissions.IsAuthenticated()]
        return [permissions.AllowAny()]

    def get(self, request, question_id):
        answers = queries.get_answers_for_question(question_id)
        return Response(AnswerSerializer(answers, many=True).data)

    def post(self, request, question_id):
        serializer = AnswerWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        answer = services.create_answer(question_id, request.user, serializer.validated_data['content'])
        return Response(
            AnswerSerializer(queries.get_answer(answer.id)).data,
            status=status.HTTP_201_CREATED
        )


class AnswerDetailView(APIView):
    """
    PUT    /api/answers/<id>/   author only
    DELETE /api/answers/<id>/   author only
    """
    permission_classes = [permissions.IsAuthenticated]

    def _get_owned(self, request, answer_id, verb):
        answer = queries.get_answer(answer_id)
        if answer is None:
            raise NotFound('Answer not found')
        if not is_owner(request.user, answer.author_id):
            raise PermissionDenied(f'Not authorized to {verb} this answer')
        return answer

    def put(self, request, answer_id):
        self._get_owned(request, answer_id, 'edit')
        serializer = AnswerWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        services.update_answer(answer_id, serializer.validated_data['content'])
        return Response(AnswerSerializer(queries.get_answer(answer_id)).data)

    def delete(self, request, answer_id):
        self._get_owned(request, answer_id, 'delete')
        services.delete_answer(answer_id)
        return Response({'message': 'Answer deleted successfully'})


class AcceptAnswerView(APIView):
    """
    POST /api/questions/<question_id>/answers/<answer_id>/accept/

    Only the question author can accept. The flag move, the question
    pointer and the notification commit together.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, question_id, answer_id):
        question = queries.get_question(question_id)
        if question is None:
            raise NotFound('Question not found')
        if question.author_id != request.user.id:
            raise PermissionDenied('Only the question author can accept answers')

        services.accept_answer(question_id, answer_id, acting_user=request.user)
        return Response({'message': 'Answer accepted successfully'})


# ============================================================================
# VOTES
# ============================================================================

class VoteView(APIView):
    """
    GET  /api/votes/?questionId=<id> | ?answerId=<id>   caller's current vote
    POST /api/votes/

    Body:
    {
        "questionId": 1 | null,
        "answerId": 2 | null,
        "voteType": "up" | "down"
    }

    Returns:
    {
        "action": "created" | "removed" | "changed",
        "votes": <new net tally>,
        "vote": {...} | null
    }
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        try:
            question_id = int(request.query_params.get('questionId') or 0) or None
            answer_id = int(request.query_params.get('answerId') or 0) or None
        except ValueError:
            return Response(
                {'error': 'questionId and answerId must be integers'},
                status=status.HTTP_400_BAD_REQUEST
            )
        vote = queries.get_vote(request.user.id, question_id=question_id, answer_id=answer_id)
        return Response({'vote': VoteSerializer(vote).data if vote else None})

    def post(self, request):
        serializer = VoteActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = services.cast_vote(
            request.user,
            data['voteType'],
            question_id=data.get('questionId'),
            answer_id=data.get('answerId'),
        )
        return Response({
            'action': result.action,
            'votes': result.votes,
            'vote': VoteSerializer(result.vote).data if result.vote else None,
        })


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationListView(APIView):
    """GET /api/notifications/?limit="""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        limit, _ = _window(request, settings.STACKIT_DEFAULT_PAGE_SIZE)
        notifications = queries.list_notifications(request.user.id, limit=limit)
        return Response(NotificationSerializer(notifications, many=True).data)


class UnreadCountView(APIView):
    """GET /api/notifications/unread-count/"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response({'count': queries.unread_count(request.user.id)})


class NotificationReadView(APIView):
    """PUT /api/notifications/<id>/read/  (own notifications only)"""
    permission_classes = [permissions.IsAuthenticated]

    def put(self, request, notification_id):
        if not services.mark_read(notification_id, user_id=request.user.id):
            raise NotFound('Notification not found')
        return Response({'message': 'Notification marked as read'})


class MarkAllReadView(APIView):
    """PUT /api/notifications/mark-all-read/"""
    permission_classes = [permissions.IsAuthenticated]

    def put(self, request):
        updated = services.mark_all_read(request.user.id)
        return Response({'message': 'All notifications marked as read', 'updated': updated})


# ============================================================================
# POSTS
# ============================================================================

class PostListView(APIView):
    """
    GET  /api/posts/?search=&tags=&limit=&offset=
    POST /api/posts/   multipart: title, content, codeSnippet?, language?,
                       tags (JSON list), images[] (<=5), videos[] (<=2)
    """
    permission_classes = [permissions.IsAuthenticated]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    def get(self, request):
        limit, offset = _window(request, settings.STACKIT_DEFAULT_PAGE_SIZE)
        posts = queries.list_posts(
            search=request.query_params.get('search'),
            tags=_tags_param(request),
            limit=limit,
            offset=offset,
        )
        return Response(PostSerializer(posts, many=True).data)

    def post(self, request):
        serializer = PostWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        image_urls, video_urls = store_post_media(
            request.FILES.getlist('images'),
            request.FILES.getlist('videos'),
        )
        post = services.create_post(
            author=request.user,
            image_urls=image_urls,
            video_urls=video_urls,
            **serializer.validated_data,
        )
        return Response(
            PostSerializer(queries.get_post(post.id)).data,
            status=status.HTTP_201_CREATED
        )


class PostDetailView(APIView):
    """
    GET    /api/posts/<id>/
    PUT    /api/posts/<id>/   author only
    DELETE /api/posts/<id>/   author only

    QUERY COUNT (GET): 4 - post+author, tags, comments+authors, likes
    """
    permission_classes = [permissions.IsAuthenticated]

    def _get_owned(self, request, post_id, verb):
        post = queries.get_post(post_id)
        if post is None:
            raise NotFound('Post not found')
        if not is_owner(request.user, post.author_id):
            raise PermissionDenied(f'Not authorized to {verb} this post')
        return post

    def get(self, request, post_id):
        post = queries.get_post(post_id)
        if post is None:
            return Response(
                {'error': 'Post not found'},
                status=status.HTTP_404_NOT_FOUND
            )
        data = PostSerializer(post).data
        data['likedByMe'] = any(like.user_id == request.user.id for like in post.like_records.all())
        return Response(data)

    def put(self, request, post_id):
        self._get_owned(request, post_id, 'edit')
        serializer = PostWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        services.update_post(post_id, **serializer.validated_data)
        return Response(PostSerializer(queries.get_post(post_id)).data)

    def delete(self, request, post_id):
        self._get_owned(request, post_id, 'delete')
        services.delete_post(post_id)
        return Response({'message': 'Post deleted successfully'})


class PostLikeView(APIView):
    """
    POST /api/posts/<id>/like/

    Toggle: like if not liked yet, otherwise unlike.

    CONCURRENCY:
    - Post row locked for the duration of the toggle
    - Unique constraint on (post, user) prevents duplicates
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, post_id):
        result = services.toggle_like(post_id, request.user)
        return Response({
            'message': 'Post liked' if result.liked else 'Post unliked',
            'liked': result.liked,
            'action': result.action,
            'likes': result.like_count,
        })


class PostCommentListView(APIView):
    """
    GET  /api/posts/<id>/comments/   oldest first
    POST /api/posts/<id>/comments/
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, post_id):
        comments = queries.list_post_comments(post_id)
        return Response(PostCommentSerializer(comments, many=True).data)

    def post(self, request, post_id):
        serializer = CommentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        comment = services.add_comment(post_id, request.user, serializer.validated_data['content'])
        return Response(PostCommentSerializer(comment).data, status=status.HTTP_201_CREATED)


class PostCommentDetailView(APIView):
    """DELETE /api/posts/<post_id>/comments/<comment_id>/  (comment author only)"""
    permission_classes = [permissions.IsAuthenticated]

    def delete(self, request, post_id, comment_id):
        comment = queries.get_post_comment(post_id, comment_id)
        if comment is None:
            raise NotFound('Comment not found')
        if not is_owner(request.user, comment.author_id):
            raise PermissionDenied('Not authorized to delete this comment')

        services.delete_post_comment(comment_id)
        return Response({'message': 'Comment deleted successfully'})


# ============================================================================
# AI CHAT
# ============================================================================

class ChatView(APIView):
    """
    POST /api/ai/chat/

    Body: { "message": "..." }  (max 2000 characters)
    Returns: { "response": "..." }; 503 when the AI service fails.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ChatSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reply = generate_reply(serializer.validated_data['message'])
        return Response({'response': reply})


# ============================================================================
# ADMIN
# ============================================================================

class AnalyticsView(APIView):
    """GET /api/admin/analytics/"""
    permission_classes = [IsAdmin]

    def get(self, request):
        return Response(AnalyticsSerializer(get_analytics()).data)


class AdminUserListView(APIView):
    """GET /api/admin/users/?search=&page=&limit="""
    permission_classes = [IsAdmin]

    def get(self, request):
        limit, offset = _window(request, settings.STACKIT_ADMIN_PAGE_SIZE)
        users = queries.list_users(
            search=request.query_params.get('search'),
            limit=limit,
            offset=offset,
        )
        return Response(UserSerializer(users, many=True).data)


class AdminUserDetailView(APIView):
    """
    PUT    /api/admin/users/<id>/   cannot clear own admin flag
    DELETE /api/admin/users/<id>/   cannot delete self; full cascade
    """
    permission_classes = [IsAdmin]

    def put(self, request, user_id):
        serializer = AdminUserUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        user = accounts.admin_update_user(request.user, user_id, dict(serializer.validated_data))
        return Response(UserSerializer(user).data)

    def delete(self, request, user_id):
        accounts.admin_delete_user(request.user, user_id)
        return Response({'message': 'User deleted successfully'})


class MakeAdminView(APIView):
    """POST /api/admin/users/<id>/make-admin/"""
    permission_classes = [IsAdmin]

    def post(self, request, user_id):
        accounts.set_admin_status(request.user, user_id, grant=True)
        return Response({'message': 'User granted admin privileges'})


class RemoveAdminView(APIView):
    """POST /api/admin/users/<id>/remove-admin/"""
    permission_classes = [IsAdmin]

    def post(self, request, user_id):
        accounts.set_admin_status(request.user, user_id, grant=False)
        return Response({'message': 'Admin privileges removed from user'})


class AdminLogListView(APIView):
    """GET /api/admin/logs/?adminId=&page=&limit="""
    permission_classes = [IsAdmin]

    def get(self, request):
        limit, offset = _window(request, settings.STACKIT_ADMIN_PAGE_SIZE)
        try:
            admin_id = int(request.query_params['adminId']) if request.query_params.get('adminId') else None
        except ValueError:
            admin_id = None
        logs = queries.list_admin_logs(admin_id=admin_id, limit=limit, offset=offset)
        return Response(AdminLogSerializer(logs, many=True).data)


class AdminQuestionDeleteView(APIView):
    """DELETE /api/admin/questions/<id>/"""
    permission_classes = [IsAdmin]

    def delete(self, request, question_id):
        accounts.admin_delete_question(request.user, question_id)
        return Response({'message': 'Question deleted successfully'})


class AdminAnswerDeleteView(APIView):
    """DELETE /api/admin/answers/<id>/"""
    permission_classes = [IsAdmin]

    def delete(self, request, answer_id):
        accounts.admin_delete_answer(request.user, answer_id)
        return Response({'message': 'Answer deleted successfully'})


class AdminPostDeleteView(APIView):
    """DELETE /api/admin/posts/<id>/"""
    permission_classes = [IsAdmin]

    def delete(self, request, post_id):
        accounts.admin_delete_post(request.user, post_id)
        return Response({'message': 'Post deleted successfully'})
