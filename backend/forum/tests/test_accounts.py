"""
Tests for accounts, the user delete cascade and audited admin actions.

CRITICAL: These tests verify that:
1. Duplicate usernames/emails are reported as conflicts, not crashes
2. Legacy bcrypt credentials still log in and are migrated on success
3. Deleting a user leaves no row referencing them
4. An admin action and its audit row commit together
"""

from datetime import timedelta
from unittest import mock

import bcrypt
from django.contrib.auth import authenticate
from django.db import DatabaseError
from django.test import TestCase, TransactionTestCase
from django.utils import timezone

from ..accounts import (
    admin_delete_answer,
    admin_delete_post,
    admin_delete_question,
    admin_delete_user,
    admin_update_user,
    create_user,
    delete_user,
    register_user,
    set_admin_status,
    toggle_admin,
    update_user,
)
from ..analytics import get_analytics
from ..exceptions import ConflictError, InvalidInputError, NotFoundError
from ..models import (
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
from ..queries import get_user_by_email, get_user_by_username, list_admin_logs, list_users
from ..services import (
    accept_answer,
    add_comment,
    cast_vote,
    create_answer,
    create_post,
    create_question,
    like_post,
)


class RegistrationTestCase(TestCase):

    def test_register_and_login(self):
        user = register_user('newbie', 'secret123', 'New Bie', 'newbie@test.com')

        self.assertTrue(user.check_password('secret123'))
        self.assertIsNone(user.password_hash)
        self.assertFalse(user.is_admin)
        self.assertEqual(authenticate(username='newbie', password='secret123'), user)
        self.assertIsNone(authenticate(username='newbie', password='wrong'))

    def test_duplicate_username(self):
        register_user('taken', 'secret123', 'First')

        with self.assertRaises(ConflictError) as ctx:
            register_user('taken', 'secret456', 'Second')
        self.assertIn('already taken', ctx.exception.message)

    def test_duplicate_email(self):
        register_user('one', 'secret123', 'One', 'same@test.com')

        with self.assertRaises(ConflictError) as ctx:
            register_user('two', 'secret123', 'Two', 'same@test.com')
        self.assertIn('already registered', ctx.exception.message)

    def test_create_user_maps_integrity_error(self):
        create_user('dup', 'secret123', 'Dup')
        with self.assertRaises(ConflictError):
            create_user('dup', 'secret123', 'Dup again')

    def test_empty_email_is_stored_as_null(self):
        first = register_user('noemail1', 'secret123', 'No Email', '')
        second = register_user('noemail2', 'secret123', 'No Email Either')

        first.refresh_from_db()
        self.assertIsNone(first.email)
        self.assertIsNone(second.email)
        self.assertIsNone(get_user_by_email(''))

    def test_username_lookup_is_exact(self):
        register_user('CaseSensitive', 'secret123', 'Case')

        self.assertIsNotNone(get_user_by_username('CaseSensitive'))
        self.assertIsNone(get_user_by_username('casesensitive'))


class LegacyPasswordTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user('legacy', 'legacy@test.com', name='Legacy')
        self.user.password_hash = bcrypt.hashpw(b'oldsecret', bcrypt.gensalt(rounds=4)).decode()
        self.user.save()

    def test_legacy_hash_logs_in_and_is_migrated(self):
        user = authenticate(username='legacy', password='oldsecret')

        self.assertEqual(user, self.user)
        user.refresh_from_db()
        self.assertIsNone(user.password_hash)
        self.assertTrue(user.check_password('oldsecret'))

    def test_wrong_password_keeps_legacy_hash(self):
        self.assertIsNone(authenticate(username='legacy', password='nope'))

        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.password_hash)

    def test_password_update_clears_legacy_hash(self):
        update_user(self.user.id, password='brandnew')

        self.user.refresh_from_db()
        self.assertIsNone(self.user.password_hash)
        self.assertTrue(self.user.check_password('brandnew'))


class UserManagementTestCase(TestCase):

    def setUp(self):
        self.alice = User.objects.create_user('alice', 'alice@test.com', name='Alice Smith')
        self.bob = User.objects.create_user('bob', 'bob@test.com', name='Bob Jones')

    def test_update_user(self):
        user = update_user(self.alice.id, name='Alice S.', profile_image_url='')

        self.assertEqual(user.name, 'Alice S.')
        self.assertIsNone(user.profile_image_url)

    def test_update_user_conflict(self):
        with self.assertRaises(ConflictError):
            update_user(self.alice.id, username='bob')

    def test_update_user_rejects_unknown_fields(self):
        with self.assertRaises(InvalidInputError):
            update_user(self.alice.id, is_superuser=True)

    def test_update_missing_user(self):
        with self.assertRaises(NotFoundError):
            update_user(999999, name='Ghost')

    def test_toggle_admin(self):
        self.assertTrue(toggle_admin(self.alice.id, True).is_admin)
        self.assertFalse(toggle_admin(self.alice.id, False).is_admin)
        with self.assertRaises(NotFoundError):
            toggle_admin(999999, True)

    def test_list_users_search(self):
        self.assertEqual([u.id for u in list_users(search='jones')], [self.bob.id])
        self.assertEqual(len(list_users()), 2)


class DeleteUserCascadeTestCase(TestCase):
    """
    CRITICAL: after delete_user no row anywhere references the user, and
    other users' unrelated content survives.
    """

    def setUp(self):
        self.doomed = User.objects.create_user('doomed', 'doomed@test.com', name='Doomed', is_admin=True)
        self.other = User.objects.create_user('other', 'other@test.com', name='Other')

        # Content owned by the doomed user, with other people's activity on it
        self.q_doomed = create_question(self.doomed, 'Doomed question', 'x', ['a'])
        self.a_other_on_doomed = create_answer(self.q_doomed.id, self.other, 'Other answers doomed')
        cast_vote(self.other, 'up', question_id=self.q_doomed.id)
        cast_vote(self.other, 'up', answer_id=self.a_other_on_doomed.id)
        self.p_doomed = create_post(self.doomed, 'Doomed post', 'x', tags=['b'])
        add_comment(self.p_doomed.id, self.other, 'comment on doomed post')
        like_post(self.p_doomed.id, self.other)

        # The doomed user's activity on the other user's content
        self.q_other = create_question(self.other, 'Surviving question', 'y', [])
        self.a_doomed_on_other = create_answer(self.q_other.id, self.doomed, 'Doomed answers other')
        accept_answer(self.q_other.id, self.a_doomed_on_other.id)
        cast_vote(self.doomed, 'down', question_id=self.q_other.id)
        self.p_other = create_post(self.other, 'Surviving post', 'y')
        add_comment(self.p_other.id, self.doomed, 'doomed comments')
        like_post(self.p_other.id, self.doomed)

        admin_delete_post(self.doomed, create_post(self.other, 'Spam', 'spam').id)

    def test_no_references_remain(self):
        delete_user(self.doomed.id)

        self.assertFalse(User.objects.filter(id=self.doomed.id).exists())
        self.assertFalse(Question.objects.filter(author_id=self.doomed.id).exists())
        self.assertFalse(Answer.objects.filter(author_id=self.doomed.id).exists())
        self.assertFalse(Answer.objects.filter(question_id=self.q_doomed.id).exists())
        self.assertFalse(Vote.objects.filter(user_id=self.doomed.id).exists())
        self.assertFalse(Vote.objects.filter(question_id=self.q_doomed.id).exists())
        self.assertFalse(Notification.objects.filter(user_id=self.doomed.id).exists())
        self.assertFalse(Notification.objects.filter(answer_id=self.a_doomed_on_other.id).exists())
        self.assertFalse(Post.objects.filter(author_id=self.doomed.id).exists())
        self.assertFalse(PostLike.objects.filter(user_id=self.doomed.id).exists())
        self.assertFalse(PostComment.objects.filter(author_id=self.doomed.id).exists())
        self.assertFalse(PostComment.objects.filter(post_id=self.p_doomed.id).exists())

    def test_other_users_content_survives(self):
        delete_user(self.doomed.id)

        self.q_other.refresh_from_db()
        self.assertIsNone(self.q_other.accepted_answer_id)
        self.assertEqual(self.q_other.votes, 0)
        self.p_other.refresh_from_db()
        self.assertEqual(self.p_other.likes, 0)
        self.assertTrue(User.objects.filter(id=self.other.id).exists())

    def test_admin_log_outlives_its_admin(self):
        log_id = AdminLog.objects.get(admin=self.doomed).id

        delete_user(self.doomed.id)

        log = AdminLog.objects.get(id=log_id)
        self.assertIsNone(log.admin_id)
        self.assertEqual(log.action, 'delete_post')

    def test_delete_missing_user(self):
        with self.assertRaises(NotFoundError):
            delete_user(999999)


class AdminActionsTestCase(TestCase):

    def setUp(self):
        self.admin = User.objects.create_user('admin', 'admin@test.com', name='Admin', is_admin=True)
        self.member = User.objects.create_user('member', 'member@test.com', name='Member')

    def test_grant_and_revoke_are_logged(self):
        set_admin_status(self.admin, self.member.id, True)
        set_admin_status(self.admin, self.member.id, False)

        logs = list_admin_logs(admin_id=self.admin.id)
        self.assertEqual([log.action for log in logs], ['remove_admin', 'make_admin'])
        self.assertEqual(logs[1].details, f"Granted admin privileges to user ID: {self.member.id}")
        self.assertEqual(logs[0].target_id, str(self.member.id))
        self.member.refresh_from_db()
        self.assertFalse(self.member.is_admin)

    def test_cannot_revoke_own_admin(self):
        with self.assertRaises(InvalidInputError):
            set_admin_status(self.admin, self.admin.id, False)
        with self.assertRaises(InvalidInputError):
            admin_update_user(self.admin, self.admin.id, {'is_admin': False})

        self.admin.refresh_from_db()
        self.assertTrue(self.admin.is_admin)
        self.assertFalse(AdminLog.objects.exists())

    def test_cannot_delete_self(self):
        with self.assertRaises(InvalidInputError):
            admin_delete_user(self.admin, self.admin.id)
        self.assertTrue(User.objects.filter(id=self.admin.id).exists())

    def test_admin_update_user_hides_password(self):
        admin_update_user(self.admin, self.member.id, {'name': 'Renamed', 'password': 'hunter22'})

        log = AdminLog.objects.get()
        self.assertEqual(log.action, 'update_user')
        self.assertIn('Renamed', log.details)
        self.assertNotIn('hunter22', log.details)

    def test_admin_delete_user(self):
        admin_delete_user(self.admin, self.member.id)

        self.assertFalse(User.objects.filter(id=self.member.id).exists())
        self.assertEqual(AdminLog.objects.get().details, f"Deleted user with ID: {self.member.id}")

    def test_admin_delete_content(self):
        question = create_question(self.member, 'Off topic', 'x', [])
        answer = create_answer(question.id, self.member, 'self answer')
        other_question = create_question(self.member, 'On topic', 'y', [])
        post = create_post(self.member, 'Spam', 'spam')

        admin_delete_answer(self.admin, answer.id)
        admin_delete_question(self.admin, question.id)
        admin_delete_post(self.admin, post.id)

        self.assertEqual(
            [log.action for log in list_admin_logs()],
            ['delete_post', 'delete_question', 'delete_answer'],
        )
        self.assertEqual(list(Question.objects.values_list('id', flat=True)), [other_question.id])

    def test_failed_action_writes_no_log(self):
        with self.assertRaises(NotFoundError):
            admin_delete_question(self.admin, 424242)
        self.assertFalse(AdminLog.objects.exists())


class AnalyticsTestCase(TestCase):

    def test_totals_and_recent_activity(self):
        author = User.objects.create_user('author', 'author@test.com', name='Author')
        fresh = create_question(author, 'Fresh', 'x', [])
        stale = create_question(author, 'Stale', 'y', [])
        Question.objects.filter(id=stale.id).update(created_at=timezone.now() - timedelta(days=45))
        create_answer(fresh.id, author, 'answer')
        cast_vote(author, 'up', question_id=fresh.id)
        create_post(author, 'Post', 'z')

        stats = get_analytics()

        self.assertEqual(stats['totalUsers'], 1)
        self.assertEqual(stats['totalQuestions'], 2)
        self.assertEqual(stats['totalAnswers'], 1)
        self.assertEqual(stats['totalPosts'], 1)
        self.assertEqual(stats['totalVotes'], 1)
        self.assertEqual(
            stats['recentActivity'],
            {'questions': 1, 'answers': 1, 'posts': 1, 'users': 1},
        )


class CascadeRollbackTestCase(TransactionTestCase):
    """
    Runs outside the per-test transaction so a failure mid-way exercises a
    real rollback.
    """

    def setUp(self):
        self.admin = User.objects.create_user('admin', 'admin@test.com', name='Admin', is_admin=True)
        self.user = User.objects.create_user('user', 'user@test.com', name='User')
        self.question = create_question(self.user, 'Keep me', 'x', ['a'])
        self.post = create_post(self.user, 'Keep me too', 'y')

    def test_delete_user_is_all_or_nothing(self):
        with mock.patch('forum.accounts.purge_posts', side_effect=DatabaseError('disk full')):
            with self.assertRaises(DatabaseError):
                delete_user(self.user.id)

        self.assertTrue(User.objects.filter(id=self.user.id).exists())
        self.assertTrue(Question.objects.filter(id=self.question.id).exists())
        self.assertTrue(Post.objects.filter(id=self.post.id).exists())

    def test_admin_action_rolls_back_without_its_log(self):
        with mock.patch('forum.accounts.create_admin_log', side_effect=DatabaseError('log table locked')):
            with self.assertRaises(DatabaseError):
                admin_delete_question(self.admin, self.question.id)

        self.assertTrue(Question.objects.filter(id=self.question.id).exists())
        self.assertFalse(AdminLog.objects.exists())
