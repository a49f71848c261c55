"""
Forum App URL Configuration
"""
from django.urls import path
from .views import (
    AcceptAnswerView,
    AdminAnswerDeleteView,
    AdminLogListView,
    AdminPostDeleteView,
    AdminQuestionDeleteView,
    AdminUserDetailView,
    AdminUserListView,
    AnalyticsView,
    AnswerDetailView,
    AnswerListView,
    ChatView,
    CurrentUserView,
    LoginView,
    LogoutView,
    MakeAdminView,
    MarkAllReadView,
    NotificationListView,
    NotificationReadView,
    PostCommentDetailView,
    PostCommentListView,
    PostDetailView,
    PostLikeView,
    PostListView,
    QuestionDetailView,
    QuestionListView,
    RegisterView,
    RemoveAdminView,
    UnreadCountView,
    VoteView,
)

urlpatterns = [
    # Auth
    path('auth/register/', RegisterView.as_view(), name='register'),
    path('auth/login/', LoginView.as_view(), name='login'),
    path('auth/logout/', LogoutView.as_view(), name='logout'),
    path('auth/user/', CurrentUserView.as_view(), name='current-user'),

    # Questions & answers
    path('questions/', QuestionListView.as_view(), name='question-list'),
    path('questions/<int:question_id>/', QuestionDetailView.as_view(), name='question-detail'),
    path('questions/<int:question_id>/answers/', AnswerListView.as_view(), name='answer-list'),
    path(
        'questions/<int:question_id>/answers/<int:answer_id>/accept/',
        AcceptAnswerView.as_view(),
        name='answer-accept'
    ),
    path('answers/<int:answer_id>/', AnswerDetailView.as_view(), name='answer-detail'),

    # Votes
    path('votes/', VoteView.as_view(), name='votes'),

    # Notifications
    path('notifications/', NotificationListView.as_view(), name='notification-list'),
    path('notifications/unread-count/', UnreadCountView.as_view(), name='notification-unread-count'),
    path('notifications/mark-all-read/', MarkAllReadView.as_view(), name='notification-mark-all-read'),
    path('notifications/<int:notification_id>/read/', NotificationReadView.as_view(), name='notification-read'),

    # Posts
    path('posts/', PostListView.as_view(), name='post-list'),
    path('posts/<int:post_id>/', PostDetailView.as_view(), name='post-detail'),
    path('posts/<int:post_id>/like/', PostLikeView.as_view(), name='post-like'),
    path('posts/<int:post_id>/comments/', PostCommentListView.as_view(), name='post-comment-list'),
    path(
        'posts/<int:post_id>/comments/<int:comment_id>/',
        PostCommentDetailView.as_view(),
        name='post-comment-detail'
    ),

    # AI assistant
    path('ai/chat/', ChatView.as_view(), name='ai-chat'),

    # Admin
    path('admin/analytics/', AnalyticsView.as_view(), name='admin-analytics'),
    path('admin/users/', AdminUserListView.as_view(), name='admin-user-list'),
    path('admin/users/<int:user_id>/', AdminUserDetailView.as_view(), name='admin-user-detail'),
    path('admin/users/<int:user_id>/make-admin/', MakeAdminView.as_view(), name='admin-make-admin'),
    path('admin/users/<int:user_id>/remove-admin/', RemoveAdminView.as_view(), name='admin-remove-admin'),
    path('admin/logs/', AdminLogListView.as_view(), name='admin-logs'),
    path('admin/questions/<int:question_id>/', AdminQuestionDeleteView.as_view(), name='admin-question-delete'),
    path('admin/answers/<int:answer_id>/', AdminAnswerDeleteView.as_view(), name='admin-answer-delete'),
    path('admin/posts/<int:post_id>/', AdminPostDeleteView.as_view(), name='admin-post-delete'),
]
