"""
Product reviews and comment threads.

Verifies:
- One review per user and product; rating must be 1-5
- Rating statistics (average to one decimal, per-star distribution)
- Ownership rules for editing and deleting
- Replies stay one level deep and notify the right people
"""

import pytest

from bookstore.errors import AppError, ErrorCode
from bookstore.models import Notification, ProductComment
from bookstore.services import comment_service, review_service

from conftest import auth_headers


def _notes(db_session, user, notification_type):
    return db_session.query(Notification).filter_by(user_id=user.id, notification_type=notification_type).count()


class TestReviews:

    def test_create_and_notify_staff(self, db_session, customer, manager, product):
        review = review_service.create_review(user=customer, product_id=product.id, rating=4, content="  Gripping  ")

        assert review.rating == 4
        assert review.content == "Gripping"
        assert review_service.get_user_review(product.id, customer.id).id == review.id
        assert _notes(db_session, manager, "REVIEW") == 1

    def test_one_review_per_product(self, db_session, customer, product):
        review_service.create_review(user=customer, product_id=product.id, rating=5)
        with pytest.raises(AppError) as exc:
            review_service.create_review(user=customer, product_id=product.id, rating=1)
        assert exc.value.error_code == ErrorCode.REVIEW_ALREADY_EXISTS

    @pytest.mark.parametrize("rating", [0, 6, 4.5, "5", True, None])
    def test_invalid_rating(self, db_session, customer, product, rating):
        with pytest.raises(AppError) as exc:
            review_service.create_review(user=customer, product_id=product.id, rating=rating)
        assert exc.value.error_code == ErrorCode.INVALID_RATING

    def test_unknown_product(self, db_session, customer):
        with pytest.raises(AppError) as exc:
            review_service.create_review(user=customer, product_id=999, rating=3)
        assert exc.value.error_code == ErrorCode.PRODUCT_NOT_FOUND

    def test_stats(self, db_session, customer, other_customer, manager, product):
        empty = review_service.review_stats(product.id)
        assert empty["total_reviews"] == 0
        assert empty["average_rating"] == 0.0

        review_service.create_review(user=customer, product_id=product.id, rating=5)
        review_service.create_review(user=other_customer, product_id=product.id, rating=4)
        review_service.create_review(user=manager, product_id=product.id, rating=4)

        stats = review_service.review_stats(product.id)
        assert stats["total_reviews"] == 3
        assert stats["average_rating"] == 4.3
        assert stats["distribution"] == {"1": 0, "2": 0, "3": 0, "4": 2, "5": 1}
        assert [r.rating for r in review_service.list_product_reviews(product.id, rating=4)] == [4, 4]

    def test_only_author_edits(self, db_session, customer, other_customer, product):
        review = review_service.create_review(user=customer, product_id=product.id, rating=2)

        with pytest.raises(AppError) as exc:
            review_service.update_review(user=other_customer, review_id=review.id, rating=5)
        assert exc.value.error_code == ErrorCode.UNAUTHORIZED

        updated = review_service.update_review(user=customer, review_id=review.id, rating=3, content="Grew on me")
        assert (updated.rating, updated.content) == (3, "Grew on me")

    def test_staff_can_delete_any_review(self, db_session, customer, other_customer, manager, product):
        review = review_service.create_review(user=customer, product_id=product.id, rating=1)

        with pytest.raises(AppError):
            review_service.delete_review(user=other_customer, review_id=review.id)
        review_service.delete_review(user=manager, review_id=review.id)

        with pytest.raises(AppError) as exc:
            review_service.get_review(review.id)
        assert exc.value.error_code == ErrorCode.REVIEW_NOT_FOUND


class TestComments:

    def test_reply_notifies_parent_author_and_staff(self, db_session, customer, other_customer, manager, product):
        question = comment_service.create_comment(user=customer, product_id=product.id, content="Hardcover?")
        assert _notes(db_session, manager, "COMMENT") == 1

        comment_service.create_comment(
            user=other_customer, product_id=product.id, content="Yes", parent_id=question.id
        )

        assert _notes(db_session, customer, "COMMENT") == 1
        assert _notes(db_session, manager, "COMMENT") == 2

    def test_self_reply_and_staff_reply(self, db_session, customer, manager, product):
        question = comment_service.create_comment(user=customer, product_id=product.id, content="Signed copy?")
        comment_service.create_comment(user=customer, product_id=product.id, content="Anyone?", parent_id=question.id)
        comment_service.create_comment(user=manager, product_id=product.id, content="Sadly no", parent_id=question.id)

        # only the staff answer reaches the customer
        assert _notes(db_session, customer, "COMMENT") == 1
        assert _notes(db_session, manager, "COMMENT") == 2

    def test_reply_to_reply_attaches_to_root(self, db_session, customer, other_customer, product):
        root = comment_service.create_comment(user=customer, product_id=product.id, content="Root")
        reply = comment_service.create_comment(user=other_customer, product_id=product.id, content="A", parent_id=root.id)
        nested = comment_service.create_comment(user=customer, product_id=product.id, content="B", parent_id=reply.id)

        assert nested.parent_id == root.id
        assert [c.content for c in comment_service.list_replies(root.id)] == ["A", "B"]
        assert comment_service.comment_counts(product.id) == {
            "product_id": product.id, "total": 3, "roots": 1, "replies": 2,
        }

    def test_parent_must_exist_on_same_product(self, db_session, customer, make_product, product):
        other_book = make_product()
        foreign = comment_service.create_comment(user=customer, product_id=other_book.id, content="Elsewhere")

        for parent_id in (foreign.id, 999):
            with pytest.raises(AppError) as exc:
                comment_service.create_comment(user=customer, product_id=product.id, content="x", parent_id=parent_id)
            assert exc.value.error_code == ErrorCode.COMMENT_NOT_FOUND

    def test_blank_content(self, db_session, customer, product):
        with pytest.raises(AppError) as exc:
            comment_service.create_comment(user=customer, product_id=product.id, content="   ")
        assert exc.value.error_code == ErrorCode.VALIDATION_ERROR

    def test_deleting_root_removes_thread(self, db_session, customer, other_customer, product):
        root = comment_service.create_comment(user=customer, product_id=product.id, content="Root")
        comment_service.create_comment(user=other_customer, product_id=product.id, content="Reply", parent_id=root.id)

        with pytest.raises(AppError) as exc:
            comment_service.delete_comment(user=other_customer, comment_id=root.id)
        assert exc.value.error_code == ErrorCode.UNAUTHORIZED

        assert comment_service.delete_comment(user=customer, comment_id=root.id) == 2
        assert db_session.query(ProductComment).count() == 0


class TestFeedbackApi:

    def test_review_endpoints(self, client, db_session, customer, product):
        headers = auth_headers(customer)

        created = client.post('/api/reviews', headers=headers, json={
            'product_id': product.id, 'rating': 5, 'content': 'Loved it',
        })
        assert created.status_code == 201
        assert created.json['data']['username'] == 'alice'

        duplicate = client.post('/api/reviews', headers=headers, json={'product_id': product.id, 'rating': 3})
        assert duplicate.status_code == 409
        assert duplicate.json['error']['name'] == 'REVIEW_ALREADY_EXISTS'

        bad = client.post('/api/reviews', headers=headers, json={'product_id': product.id, 'rating': 9})
        assert bad.json['error']['name'] == 'INVALID_RATING'

        stats = client.get(f'/api/reviews/stats?product_id={product.id}').json['data']
        assert stats['average_rating'] == 5.0

        mine = client.get(f'/api/reviews/mine?product_id={product.id}', headers=headers).json['data']
        assert mine['rating'] == 5

        assert client.get('/api/reviews').status_code == 400

    def test_comment_endpoints(self, client, db_session, customer, other_customer, product):
        root = client.post('/api/comments', headers=auth_headers(customer), json={
            'product_id': product.id, 'content': 'Is there an audiobook?',
        })
        assert root.status_code == 201
        root_id = root.json['data']['id']

        reply = client.post('/api/comments', headers=auth_headers(other_customer), json={
            'product_id': product.id, 'content': 'Yes', 'parent_id': root_id,
        })
        assert reply.status_code == 201

        listing = client.get(f'/api/comments?product_id={product.id}&threads=true').json['data']
        assert [c['id'] for c in listing['items']] == [root_id]
        assert listing['items'][0]['replies'][0]['content'] == 'Yes'
        assert listing['counts']['total'] == 2

        anonymous = client.post('/api/comments', json={'product_id': product.id, 'content': 'hi'})
        assert anonymous.status_code == 401
