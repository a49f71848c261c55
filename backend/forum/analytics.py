"""
Admin Analytics
===============

Site-wide totals plus activity in a trailing window (30 days by default).

Computed on demand with plain COUNT queries; nothing is cached or stored.
Every count runs against an indexed column:

    SELECT COUNT(*) FROM forum_question WHERE created_at >= NOW() - INTERVAL '30 days';

created_at carries a b-tree index on users, questions and posts, so the
windowed counts are range scans. Answers are counted through the
(question_id, created_at) index only for totals; the windowed answer count
is a sequential filter, acceptable for an admin dashboard.
"""

from datetime import datetime, timedelta
from typing import Optional, TypedDict

from django.utils import timezone

from .models import Answer, Post, Question, User, Vote


class RecentActivity(TypedDict):
    """Rows created inside the window."""
    questions: int
    answers: int
    posts: int
    users: int


class Analytics(TypedDict):
    """Type hint for the analytics payload (camelCase, as served)."""
    totalUsers: int
    totalQuestions: int
    totalAnswers: int
    totalPosts: int
    totalVotes: int
    recentActivity: RecentActivity


def get_analytics(days: int = 30, now: Optional[datetime] = None) -> Analytics:
    """
    Totals for every content table and counts created since `now - days`.

    Queries: 9 (five totals, four windowed counts)
    """
    cutoff = (now or timezone.now()) - timedelta(days=days)

    recent: RecentActivity = {
        'questions': Question.objects.filter(created_at__gte=cutoff).count(),
        'answers': Answer.objects.filter(created_at__gte=cutoff).count(),
        'posts': Post.objects.filter(created_at__gte=cutoff).count(),
        'users': User.objects.filter(created_at__gte=cutoff).count(),
    }

    return {
        'totalUsers': User.objects.count(),
        'totalQuestions': Question.objects.count(),
        'totalAnswers': Answer.objects.count(),
        'totalPosts': Post.objects.count(),
        'totalVotes': Vote.objects.count(),
        'recentActivity': recent,
    }
