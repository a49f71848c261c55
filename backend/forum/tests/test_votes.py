"""
Tests for the vote state machine.

CRITICAL: these tests verify that:
1. A user holds at most one vote per target
2. The same vote twice cancels out (toggle)
3. The opposite vote flips in place
4. The stored tally always equals ups - downs from the Vote rows
"""

from unittest import mock

from django.db import IntegrityError, transaction
from django.db.models.query import QuerySet
from django.test import TestCase, TransactionTestCase

from ..exceptions import ConflictError, InvalidInputError, NotFoundError
from ..models import Answer, Question, User, Vote
from ..queries import get_vote
from ..services import cast_vote, create_answer, create_question


class VoteStateMachineTestCase(TestCase):

    def setUp(self):
        self.author = User.objects.create_user('author', 'author@test.com', name='Author')
        self.voter = User.objects.create_user('voter', 'voter@test.com', name='Voter')
        self.other = User.objects.create_user('other', 'other@test.com', name='Other')
        self.question = create_question(self.author, 'Vote on me', 'Please', [])
        self.answer = create_answer(self.question.id, self.other, 'An answer')

    def assertTally(self, model, target_id):
        field = 'question_id' if model is Question else 'answer_id'
        ups = Vote.objects.filter(vote_type='up', **{field: target_id}).count()
        downs = Vote.objects.filter(vote_type='down', **{field: target_id}).count()
        stored = model.objects.get(id=target_id).votes
        self.assertEqual(stored, ups - downs)
        return stored

    def test_first_vote_creates(self):
        result = cast_vote(self.voter, 'up', question_id=self.question.id)

        self.assertEqual(result.action, 'created')
        self.assertEqual(result.votes, 1)
        self.assertEqual(result.vote.vote_type, 'up')
        self.assertEqual(self.assertTally(Question, self.question.id), 1)

    def test_same_vote_twice_is_a_no_op(self):
        """Toggle: the second identical vote removes the first."""
        cast_vote(self.voter, 'up', question_id=self.question.id)
        result = cast_vote(self.voter, 'up', question_id=self.question.id)

        self.assertEqual(result.action, 'removed')
        self.assertIsNone(result.vote)
        self.assertEqual(result.votes, 0)
        self.assertFalse(Vote.objects.filter(user=self.voter).exists())
        self.assertEqual(self.assertTally(Question, self.question.id), 0)

    def test_opposite_vote_flips(self):
        first = cast_vote(self.voter, 'up', answer_id=self.answer.id)
        result = cast_vote(self.voter, 'down', answer_id=self.answer.id)

        self.assertEqual(result.action, 'changed')
        self.assertEqual(result.vote.id, first.vote.id)
        self.assertEqual(result.votes, -1)
        self.assertEqual(Vote.objects.filter(user=self.voter, answer=self.answer).count(), 1)
        self.assertEqual(self.assertTally(Answer, self.answer.id), -1)

    def test_tally_across_users(self):
        cast_vote(self.voter, 'up', question_id=self.question.id)
        cast_vote(self.other, 'up', question_id=self.question.id)
        cast_vote(self.author, 'down', question_id=self.question.id)

        self.assertEqual(self.assertTally(Question, self.question.id), 1)

    def test_question_and_answer_votes_are_independent(self):
        cast_vote(self.voter, 'up', question_id=self.question.id)
        cast_vote(self.voter, 'down', answer_id=self.answer.id)

        self.assertEqual(get_vote(self.voter.id, question_id=self.question.id).vote_type, 'up')
        self.assertEqual(get_vote(self.voter.id, answer_id=self.answer.id).vote_type, 'down')
        self.assertIsNone(get_vote(self.other.id, question_id=self.question.id))

    def test_vote_needs_exactly_one_target(self):
        with self.assertRaises(InvalidInputError):
            cast_vote(self.voter, 'up')
        with self.assertRaises(InvalidInputError):
            cast_vote(self.voter, 'up', question_id=self.question.id, answer_id=self.answer.id)
        with self.assertRaises(InvalidInputError):
            get_vote(self.voter.id)

        self.assertFalse(Vote.objects.exists())

    def test_invalid_vote_type(self):
        with self.assertRaises(InvalidInputError):
            cast_vote(self.voter, 'sideways', question_id=self.question.id)

    def test_missing_target(self):
        with self.assertRaises(NotFoundError):
            cast_vote(self.voter, 'up', answer_id=987654)
        self.assertFalse(Vote.objects.exists())

    def test_failed_tally_rolls_back_vote(self):
        """Vote row and tally commit together or not at all."""
        with mock.patch('forum.services.recompute_tally', side_effect=RuntimeError('boom')):
            with self.assertRaises(RuntimeError):
                cast_vote(self.voter, 'up', question_id=self.question.id)

        self.assertFalse(Vote.objects.exists())
        self.assertEqual(Question.objects.get(id=self.question.id).votes, 0)


class VoteConcurrencyTestCase(TransactionTestCase):
    """
    Test vote race protection.

    These tests verify that:
    1. A lost first-vote race surfaces as ConflictError
    2. The database constraints hold without the service layer
    """

    def setUp(self):
        self.author = User.objects.create_user('author', 'author@test.com', name='Author')
        self.voter = User.objects.create_user('voter', 'voter@test.com', name='Voter')
        self.question = create_question(self.author, 'Race me', 'Please', [])
        self.answer = create_answer(self.question.id, self.author, 'An answer')

    def test_duplicate_insert_becomes_conflict(self):
        cast_vote(self.voter, 'up', question_id=self.question.id)

        # The existing-vote lookup misses, as if the other request had not committed yet
        with mock.patch.object(QuerySet, 'first', return_value=None):
            with self.assertRaises(ConflictError):
                cast_vote(self.voter, 'up', question_id=self.question.id)

        self.assertEqual(Vote.objects.filter(user=self.voter).count(), 1)
        self.assertEqual(Question.objects.get(id=self.question.id).votes, 1)

    def test_one_vote_per_user_per_target(self):
        Vote.objects.create(user=self.voter, vote_type='up', answer=self.answer)

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Vote.objects.create(user=self.voter, vote_type='down', answer=self.answer)

    def test_check_constraint_requires_one_target(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Vote.objects.create(
                    user=self.voter, vote_type='up', question=self.question, answer=self.answer
                )
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Vote.objects.create(user=self.voter, vote_type='up')

        self.assertFalse(Vote.objects.exists())
