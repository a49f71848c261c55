"""
Tests for questions, answers and the accepted-answer state machine.

Focus areas:
1. Listing: search, tag match, unanswered filter, newest first
2. Answer presentation order on the detail read
3. Accept-answer exclusivity and its notification
4. Explicit delete cascade
5. Query counts (no N+1)
"""

from django.db import connection
from django.test import TestCase
from django.test.utils import CaptureQueriesContext

from ..exceptions import InvalidInputError, NotFoundError
from ..models import Answer, Notification, Question, User, Vote
from ..queries import get_answers_for_question, get_question, list_questions
from ..serializers import QuestionSerializer
from ..services import (
    accept_answer,
    cast_vote,
    create_answer,
    create_question,
    delete_answer,
    delete_question,
    increment_view_count,
    update_question,
)


class QuestionListingTestCase(TestCase):

    def setUp(self):
        self.alice = User.objects.create_user('alice', 'alice@test.com', name='Alice')
        self.bob = User.objects.create_user('bob', 'bob@test.com', name='Bob')

        self.q_ts = create_question(self.alice, 'Learning TypeScript generics', 'How do they work?', ['typescript'])
        self.q_py = create_question(self.alice, 'Django signals', 'When to use them?', ['python', 'django'])
        self.q_desc = create_question(self.bob, 'Build tooling', 'My TYPESCRIPT build is slow', ['tooling'])

    def test_newest_first(self):
        ids = [q.id for q in list_questions()]
        self.assertEqual(ids, [self.q_desc.id, self.q_py.id, self.q_ts.id])

    def test_search_matches_title_or_description_case_insensitive(self):
        results = list_questions(search='typescript')

        self.assertEqual([q.id for q in results], [self.q_desc.id, self.q_ts.id])
        for question in results:
            haystack = (question.title + question.description).lower()
            self.assertIn('typescript', haystack)

    def test_blank_search_is_ignored(self):
        self.assertEqual(len(list_questions(search='   ')), 3)

    def test_tag_filter_matches_any_given_tag(self):
        results = list_questions(tags=['django', 'tooling'])
        self.assertEqual({q.id for q in results}, {self.q_py.id, self.q_desc.id})

    def test_tag_filter_does_not_duplicate_rows(self):
        results = list_questions(tags=['python', 'django'])
        self.assertEqual([q.id for q in results], [self.q_py.id])

    def test_unanswered_filter(self):
        create_answer(self.q_ts.id, self.bob, 'Use constraints.')

        results = list_questions(filter='unanswered')

        self.assertNotIn(self.q_ts.id, [q.id for q in results])
        for question in results:
            self.assertEqual(question.answer_count, 0)
            self.assertFalse(Answer.objects.filter(question=question).exists())

    def test_unknown_filter_rejected(self):
        with self.assertRaises(InvalidInputError):
            list_questions(filter='popular')

    def test_limit_and_offset(self):
        page = list_questions(limit=1, offset=1)
        self.assertEqual([q.id for q in page], [self.q_py.id])

    def test_answer_count_annotation(self):
        create_answer(self.q_py.id, self.bob, 'One')
        create_answer(self.q_py.id, self.bob, 'Two')

        by_id = {q.id: q for q in list_questions()}
        self.assertEqual(by_id[self.q_py.id].answer_count, 2)
        self.assertEqual(by_id[self.q_ts.id].answer_count, 0)

    def test_tags_keep_their_order(self):
        question = create_question(self.bob, 'Order', 'Tags', ['b', 'a', ' ', 'c'])
        self.assertEqual(get_question(question.id).tags, ['b', 'a', 'c'])

    def test_listing_query_count(self):
        for i in range(10):
            create_question(self.bob, f'Q{i}', 'D', ['x', 'y'])

        with CaptureQueriesContext(connection) as context:
            data = QuestionSerializer(list_questions(), many=True).data

        self.assertEqual(len(data), 13)
        self.assertLessEqual(len(context), 2,
            f"Expected <=2 queries, got {len(context)}")


class QuestionDetailTestCase(TestCase):

    def setUp(self):
        self.author = User.objects.create_user('author', 'a@test.com', name='Author')
        self.u1 = User.objects.create_user('u1', 'u1@test.com', name='U1')
        self.u2 = User.objects.create_user('u2', 'u2@test.com', name='U2')
        self.question = create_question(self.author, 'How to X?', 'Details', ['x'])

    def test_missing_question_is_none(self):
        self.assertIsNone(get_question(999999))

    def test_answer_presentation_order(self):
        """Accepted first, then by votes descending, then oldest first."""
        old_low = create_answer(self.question.id, self.u1, 'old, no votes')
        new_low = create_answer(self.question.id, self.u2, 'new, no votes')
        popular = create_answer(self.question.id, self.u1, 'popular')
        accepted = create_answer(self.question.id, self.u2, 'accepted')

        cast_vote(self.u2, 'up', answer_id=popular.id)
        accept_answer(self.question.id, accepted.id)

        question = get_question(self.question.id)
        expected = [accepted.id, popular.id, old_low.id, new_low.id]
        self.assertEqual([a.id for a in question.ordered_answers], expected)
        self.assertEqual([a.id for a in get_answers_for_question(self.question.id)], expected)
        self.assertEqual(question.answer_count, 4)

    def test_detail_query_count(self):
        for i in range(20):
            create_answer(self.question.id, self.u1 if i % 2 else self.u2, f'Answer {i}')

        with CaptureQueriesContext(connection) as context:
            data = QuestionSerializer(get_question(self.question.id)).data

        self.assertEqual(len(data['answers']), 20)
        self.assertEqual(data['_count'], {'answers': 20})
        self.assertLessEqual(len(context), 3,
            f"Expected <=3 queries, got {len(context)}")

    def test_increment_view_count(self):
        increment_view_count(self.question.id)
        increment_view_count(self.question.id)

        self.question.refresh_from_db()
        self.assertEqual(self.question.views, 2)

    def test_update_question_partial(self):
        update_question(self.question.id, title='How to Y?', tags=['y', 'z'])

        question = get_question(self.question.id)
        self.assertEqual(question.title, 'How to Y?')
        self.assertEqual(question.description, 'Details')
        self.assertEqual(question.tags, ['y', 'z'])

    def test_update_missing_question(self):
        with self.assertRaises(NotFoundError):
            update_question(424242, title='nope')


class AcceptAnswerTestCase(TestCase):
    """
    CRITICAL: after any accept, exactly one answer of the question is
    accepted and the question points at it.
    """

    def setUp(self):
        self.a = User.objects.create_user('a', 'a@test.com', name='A')
        self.b = User.objects.create_user('b', 'b@test.com', name='B')
        self.question = create_question(self.a, 'How to X?', 'Please help', [])

    def assertExactlyOneAccepted(self, answer):
        accepted = Answer.objects.filter(question=self.question, is_accepted=True)
        self.assertEqual([x.id for x in accepted], [answer.id])
        self.question.refresh_from_db()
        self.assertEqual(self.question.accepted_answer_id, answer.id)

    def test_answer_then_accept_scenario(self):
        answer = create_answer(self.question.id, self.b, 'Do Y')

        answered = Notification.objects.get(user=self.a, type=Notification.Type.QUESTION_ANSWERED)
        self.assertEqual(answered.question_id, self.question.id)
        self.assertEqual(answered.answer_id, answer.id)
        self.assertEqual(answered.message, 'Someone answered your question: How to X?')

        accept_answer(self.question.id, answer.id, acting_user=self.a)

        accepted = Notification.objects.get(user=self.b, type=Notification.Type.ANSWER_ACCEPTED)
        self.assertEqual(accepted.answer_id, answer.id)
        self.assertExactlyOneAccepted(answer)

    def test_self_answer_is_not_notified(self):
        answer = create_answer(self.question.id, self.a, 'Answering myself')
        accept_answer(self.question.id, answer.id, acting_user=self.a)

        self.assertFalse(Notification.objects.filter(user=self.a).exists())

    def test_reaccept_moves_the_flag(self):
        first = create_answer(self.question.id, self.b, 'First')
        second = create_answer(self.question.id, self.b, 'Second')

        accept_answer(self.question.id, first.id)
        accept_answer(self.question.id, second.id)

        self.assertExactlyOneAccepted(second)

    def test_answer_from_other_question_rejected(self):
        other = create_question(self.b, 'Other', 'Other', [])
        foreign = create_answer(other.id, self.a, 'Elsewhere')
        mine = create_answer(self.question.id, self.b, 'Here')
        accept_answer(self.question.id, mine.id)

        with self.assertRaises(InvalidInputError):
            accept_answer(self.question.id, foreign.id)

        self.assertExactlyOneAccepted(mine)
        foreign.refresh_from_db()
        self.assertFalse(foreign.is_accepted)

    def test_missing_answer(self):
        with self.assertRaises(NotFoundError):
            accept_answer(self.question.id, 999999)

    def test_deleting_accepted_answer_clears_pointer(self):
        answer = create_answer(self.question.id, self.b, 'Accepted then removed')
        accept_answer(self.question.id, answer.id)

        delete_answer(answer.id)

        self.question.refresh_from_db()
        self.assertIsNone(self.question.accepted_answer_id)


class DeleteQuestionTestCase(TestCase):

    def setUp(self):
        self.a = User.objects.create_user('a', 'a@test.com', name='A')
        self.b = User.objects.create_user('b', 'b@test.com', name='B')
        self.question = create_question(self.a, 'Doomed', 'Will be deleted', ['tag'])
        self.answer = create_answer(self.question.id, self.b, 'Answer')
        cast_vote(self.b, 'up', question_id=self.question.id)
        cast_vote(self.a, 'down', answer_id=self.answer.id)
        accept_answer(self.question.id, self.answer.id)

    def test_cascade_removes_dependents(self):
        delete_question(self.question.id)

        self.assertFalse(Question.objects.filter(id=self.question.id).exists())
        self.assertFalse(Answer.objects.filter(id=self.answer.id).exists())
        self.assertFalse(Vote.objects.exists())
        self.assertFalse(Notification.objects.exists())

    def test_delete_missing_question(self):
        with self.assertRaises(NotFoundError):
            delete_question(123456)
