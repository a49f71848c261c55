"""
Django Admin Configuration for Forum Models

Tallies, like counters and the accepted answer are owned by the service
layer, so the admin shows them read-only. StackIt admins (`is_admin`) get
full access to the registered models.
"""
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    AdminLog,
    Answer,
    Notification,
    Post,
    PostComment,
    PostLike,
    Question,
    QuestionTag,
    User,
    Vote,
)


class StackItAdminAccess:
    """Grants model permissions to users flagged `is_admin`."""

    def _is_stackit_admin(self, request):
        return request.user.is_active and getattr(request.user, 'is_admin', False)

    def has_module_permission(self, request):
        return self._is_stackit_admin(request) or super().has_module_permission(request)

    def has_view_permission(self, request, obj=None):
        return self._is_stackit_admin(request) or super().has_view_permission(request, obj)

    def has_add_permission(self, request, *args):
        return self._is_stackit_admin(request) or super().has_add_permission(request, *args)

    def has_change_permission(self, request, obj=None):
        return self._is_stackit_admin(request) or super().has_change_permission(request, obj)

    def has_delete_permission(self, request, obj=None):
        return self._is_stackit_admin(request) or super().has_delete_permission(request, obj)


class ReadOnlyAdmin(StackItAdminAccess, admin.ModelAdmin):
    """Rows written only through the service layer."""

    def has_add_permission(self, request, *args):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(User)
class UserAdmin(StackItAdminAccess, BaseUserAdmin):
    list_display = ['username', 'name', 'email', 'is_admin', 'created_at']
    list_filter = ['is_admin', 'is_staff', 'created_at']
    search_fields = ['username', 'name', 'email']
    ordering = ['-created_at']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('StackIt', {'fields': ('name', 'profile_image_url', 'is_admin')}),
    )


class QuestionTagInline(StackItAdminAccess, admin.TabularInline):
    model = QuestionTag
    extra = 0


@admin.register(Question)
class QuestionAdmin(StackItAdminAccess, admin.ModelAdmin):
    list_display = ['title', 'author', 'votes', 'views', 'accepted_answer', 'created_at']
    list_filter = ['created_at']
    search_fields = ['title', 'description', 'author__username']
    readonly_fields = ['votes', 'views', 'accepted_answer', 'created_at', 'updated_at']
    inlines = [QuestionTagInline]


@admin.register(Answer)
class AnswerAdmin(StackItAdminAccess, admin.ModelAdmin):
    list_display = ['id', 'question', 'author', 'votes', 'is_accepted', 'created_at']
    list_filter = ['is_accepted', 'created_at']
    search_fields = ['content', 'author__username']
    readonly_fields = ['votes', 'is_accepted', 'created_at', 'updated_at']


@admin.register(Vote)
class VoteAdmin(ReadOnlyAdmin):
    list_display = ['user', 'vote_type', 'question', 'answer', 'created_at']
    list_filter = ['vote_type', 'created_at']
    search_fields = ['user__username']


@admin.register(Notification)
class NotificationAdmin(StackItAdminAccess, admin.ModelAdmin):
    list_display = ['user', 'type', 'title', 'is_read', 'created_at']
    list_filter = ['type', 'is_read', 'created_at']
    search_fields = ['user__username', 'title', 'message']


@admin.register(Post)
class PostAdmin(StackItAdminAccess, admin.ModelAdmin):
    list_display = ['title', 'author', 'likes', 'shares', 'created_at']
    list_filter = ['created_at']
    search_fields = ['title', 'content', 'author__username']
    readonly_fields = ['likes', 'created_at', 'updated_at']


@admin.register(PostComment)
class PostCommentAdmin(StackItAdminAccess, admin.ModelAdmin):
    list_display = ['id', 'post', 'author', 'created_at']
    list_filter = ['created_at']
    search_fields = ['content', 'author__username']


@admin.register(PostLike)
class PostLikeAdmin(ReadOnlyAdmin):
    list_display = ['user', 'post', 'created_at']
    list_filter = ['created_at']
    search_fields = ['user__username']


@admin.register(AdminLog)
class AdminLogAdmin(ReadOnlyAdmin):
    # Audit trail is immutable
    list_display = ['admin', 'action', 'target_type', 'target_id', 'created_at']
    list_filter = ['action', 'target_type', 'created_at']
    search_fields = ['admin__username', 'details']
    readonly_fields = ['admin', 'action', 'target_type', 'target_id', 'details', 'created_at']
