"""Tests for the owner-scoped store accessors."""

from datetime import date, timedelta

import pytest

from models import Category, User
from utils.inventory_store import (
    coerce_quantity,
    consume_food_item,
    count_receipts,
    create_community_post,
    create_feedback_item,
    create_food_item,
    create_receipt,
    create_shopping_item,
    delete_food_item,
    delete_shopping_item,
    ensure_default_categories,
    ensure_user,
    get_expiring_items,
    get_food_item,
    list_community_posts,
    list_food_items,
    list_receipts,
    list_shopping_items,
    parse_date,
    update_food_item,
    update_shopping_item,
)

from conftest import OWNER_A, OWNER_B


class TestValueHelpers:
    @pytest.mark.parametrize('value,expected', [
        (None, 1), ('', 1), (3, 3), ('4', 4), (2.7, 2), ('abc', 1), (0, 1), (-5, 1),
        ('inf', 1), ('Infinity', 1), ('nan', 1), (float('inf'), 1),
    ])
    def test_coerce_quantity_lenient(self, value, expected):
        assert coerce_quantity(value) == expected

    @pytest.mark.parametrize('value', ['abc', 0, -1, 'inf', '-Infinity', 'nan', float('inf'), 1e308 * 10])
    def test_coerce_quantity_strict(self, value):
        with pytest.raises(ValueError):
            coerce_quantity(value, strict=True)

    def test_parse_date(self):
        assert parse_date('2024-05-01') == date(2024, 5, 1)
        assert parse_date('2024-05-01T10:00:00Z') == date(2024, 5, 1)
        assert parse_date(None) is None
        with pytest.raises(ValueError):
            parse_date('tomorrow')


class TestCategories:
    def test_default_categories_created_once(self, session):
        first = ensure_default_categories(session, OWNER_A)
        second = ensure_default_categories(session, OWNER_A)
        session.commit()

        assert [c.name for c in first] == ['Refrigerator', 'Vegetable Drawer', 'Freezer', 'Chilled']
        assert [c.id for c in second] == [c.id for c in first]
        assert session.query(Category).filter(Category.owner_id == OWNER_A).count() == 4

    def test_each_owner_gets_their_own(self, session):
        ensure_default_categories(session, OWNER_A)
        ensure_default_categories(session, OWNER_B)
        assert session.query(Category).count() == 8

    def test_ensure_user_creates_guest(self, session):
        user = ensure_user(session, OWNER_A)
        assert user.first_name == 'Guest'
        assert ensure_user(session, OWNER_A) is user
        assert session.query(User).count() == 1


class TestFoodItems:
    @pytest.fixture
    def fridge(self, session):
        return ensure_default_categories(session, OWNER_A)[0]

    def test_create_and_list(self, session, fridge):
        create_food_item(session, OWNER_A, 'Milk', fridge.id, quantity=2, expiry_date='2030-01-02')
        create_food_item(session, OWNER_A, 'Salt', fridge.id)

        items = list_food_items(session, OWNER_A)
        # dated items first, undated last
        assert [i.name for i in items] == ['Milk', 'Salt']
        assert items[0].quantity == 2
        assert items[1].unit == 'piece'

    def test_filter_by_category(self, session, fridge):
        freezer = ensure_default_categories(session, OWNER_A)[2]
        create_food_item(session, OWNER_A, 'Milk', fridge.id)
        create_food_item(session, OWNER_A, 'Peas', freezer.id)

        assert [i.name for i in list_food_items(session, OWNER_A, freezer.id)] == ['Peas']

    def test_rejects_foreign_category(self, session, fridge):
        foreign = ensure_default_categories(session, OWNER_B)[0]
        with pytest.raises(ValueError):
            create_food_item(session, OWNER_A, 'Milk', foreign.id)

    def test_rejects_blank_name(self, session, fridge):
        with pytest.raises(ValueError):
            create_food_item(session, OWNER_A, '   ', fridge.id)

    def test_other_owner_cannot_touch_items(self, session, fridge):
        item = create_food_item(session, OWNER_A, 'Milk', fridge.id)

        assert get_food_item(session, OWNER_B, item.id) is None
        assert update_food_item(session, OWNER_B, item.id, {'name': 'Stolen'}) is None
        assert delete_food_item(session, OWNER_B, item.id) is False
        assert get_food_item(session, OWNER_A, item.id).name == 'Milk'

    def test_update(self, session, fridge):
        item = create_food_item(session, OWNER_A, 'Milk', fridge.id)
        update_food_item(session, OWNER_A, item.id, {
            'name': 'Oat Milk', 'quantity': '3', 'expiry_date': '2030-02-01', 'protein': '1.5', 'bogus': 1,
        })

        assert item.name == 'Oat Milk'
        assert item.quantity == 3
        assert item.expiry_date == date(2030, 2, 1)
        assert item.protein == 1.5

    def test_consume_partially_then_fully(self, session, fridge):
        item = create_food_item(session, OWNER_A, 'Eggs', fridge.id, quantity=6)

        item, deleted = consume_food_item(session, OWNER_A, item.id, 2)
        assert not deleted
        assert item.quantity == 4

        _, deleted = consume_food_item(session, OWNER_A, item.id, 10)
        assert deleted
        assert list_food_items(session, OWNER_A) == []

    def test_consume_all_by_default(self, session, fridge):
        item = create_food_item(session, OWNER_A, 'Eggs', fridge.id, quantity=6)
        _, deleted = consume_food_item(session, OWNER_A, item.id)
        assert deleted

    def test_expiring_items(self, session, fridge):
        today = date(2030, 1, 10)
        create_food_item(session, OWNER_A, 'Overdue', fridge.id, expiry_date=today - timedelta(days=1))
        create_food_item(session, OWNER_A, 'Soon', fridge.id, expiry_date=today + timedelta(days=3))
        create_food_item(session, OWNER_A, 'Later', fridge.id, expiry_date=today + timedelta(days=4))
        create_food_item(session, OWNER_A, 'Undated', fridge.id)

        names = [i.name for i in get_expiring_items(session, OWNER_A, days=3, today=today)]
        assert names == ['Overdue', 'Soon']


class TestShoppingAndFeeds:
    def test_shopping_list(self, session):
        ensure_user(session, OWNER_A)
        item = create_shopping_item(session, OWNER_A, 'Bread', 'Bakery')

        update_shopping_item(session, OWNER_A, item.id, {'completed': True})
        assert list_shopping_items(session, OWNER_A)[0].completed is True
        assert update_shopping_item(session, OWNER_B, item.id, {'completed': False}) is None

        assert delete_shopping_item(session, OWNER_B, item.id) is False
        assert delete_shopping_item(session, OWNER_A, item.id) is True
        assert list_shopping_items(session, OWNER_A) == []

    def test_receipts(self, session):
        ensure_user(session, OWNER_A)
        create_receipt(session, OWNER_A, 'data:image/jpeg;base64,AAAA', 'raw', [{'name': 'Milk'}])

        assert count_receipts(session, OWNER_A) == 1
        assert count_receipts(session, OWNER_B) == 0
        receipt = list_receipts(session, OWNER_A)[0]
        assert receipt.to_dict()['extractedItems'] == [{'name': 'Milk'}]
        assert 'imageUrl' not in receipt.to_dict()

    def test_community_and_feedback(self, session):
        post = create_community_post(session, OWNER_A, 'Freeze bread in slices', username='')
        assert post.username == 'Anonymous'
        assert post.post_type == 'tip'
        assert list_community_posts(session)[0].id == post.id

        feedback = create_feedback_item(session, OWNER_A, 'Dark mode', 'Please add it')
        assert feedback.status == 'submitted'

        with pytest.raises(ValueError):
            create_feedback_item(session, OWNER_A, '', 'no title')
