"""
utils/inventory_store.py

Owner-scoped accessors for every persisted entity.
Used by the api_routes blueprints and by utils/reconciliation.py.

None of these functions commit; the caller owns the session and is responsible
for session.commit() / session.rollback(). Lookups always filter by owner_id,
so an id belonging to someone else behaves exactly like a missing id.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func

from models import (
    User, Category, FoodItem, ShoppingItem, Receipt, CommunityPost, FeedbackItem
)

logger = logging.getLogger(__name__)

DEFAULT_UNIT = 'piece'

# Canonical storage locations created for every new owner
DEFAULT_CATEGORIES = [
    {'name': 'Refrigerator', 'icon': 'fas fa-snowflake', 'color': '#2196F3'},
    {'name': 'Vegetable Drawer', 'icon': 'fas fa-leaf', 'color': '#4CAF50'},
    {'name': 'Freezer', 'icon': 'fas fa-icicles', 'color': '#6366f1'},
    {'name': 'Chilled', 'icon': 'fas fa-thermometer-half', 'color': '#9C27B0'},
]

_FOOD_ITEM_FIELDS = {
    'name', 'category_id', 'expiry_date', 'quantity', 'unit', 'image_url',
    'protein', 'carbs', 'fats', 'calories',
}
_NUTRITION_FIELDS = ('protein', 'carbs', 'fats', 'calories')


# ============================================================
# VALUE HELPERS
# ============================================================

def parse_date(value) -> Optional[date]:
    """Accept a date, a datetime, an ISO date string or None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValueError(f"Invalid date: {value!r}")
    raise ValueError(f"Invalid date: {value!r}")


def coerce_quantity(value, default: int = 1, strict: bool = False) -> int:
    """
    Integer quantity >= 1.

    Missing values fall back to default. Non-numeric, non-finite or
    non-positive values fall back to default too, unless strict is set, in
    which case ValueError.
    """
    if value is None or value == '':
        return default
    try:
        quantity = int(float(value))
    except (TypeError, ValueError, OverflowError):
        if strict:
            raise ValueError(f"Invalid quantity: {value!r}")
        return default
    if quantity < 1:
        if strict:
            raise ValueError(f"Quantity must be at least 1, got {value!r}")
        return default
    return quantity


def _clean_name(value, field='name') -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} is required")
    return value.strip()


# ============================================================
# USERS
# ============================================================

def get_user(session, owner_id: str) -> Optional[User]:
    return session.get(User, owner_id)


def ensure_user(session, owner_id: str) -> User:
    """Return the guest user row, creating it on first sight."""
    user = session.get(User, owner_id)
    if user:
        return user

    user = User(
        id=owner_id,
        email=f"{owner_id}@example.com",
        first_name='Guest',
        last_name='User',
    )
    session.add(user)
    session.flush()
    logger.info("Created guest user %s", owner_id)
    return user


# ============================================================
# CATEGORIES
# ============================================================

def get_user_categories(session, owner_id: str) -> list:
    return session.query(Category).filter(
        Category.owner_id == owner_id
    ).order_by(Category.id.asc()).all()


def get_owned_category(session, owner_id: str, category_id) -> Optional[Category]:
    try:
        category_id = int(category_id)
    except (TypeError, ValueError):
        return None
    return session.query(Category).filter(
        Category.id == category_id,
        Category.owner_id == owner_id
    ).first()


def create_category(session, owner_id: str, name: str, icon: str = 'fas fa-box',
                    color: str = '#A9A9A9') -> Category:
    category = Category(
        name=_clean_name(name),
        icon=(icon or 'fas fa-box').strip(),
        color=(color or '#A9A9A9').strip(),
        owner_id=owner_id,
    )
    session.add(category)
    session.flush()
    return category


def ensure_default_categories(session, owner_id: str) -> list:
    """
    Return the owner's categories, creating the canonical four when the owner
    has none. Calling it again never creates more.
    """
    ensure_user(session, owner_id)
    existing = get_user_categories(session, owner_id)
    if existing:
        return existing

    created = [
        create_category(session, owner_id, c['name'], c['icon'], c['color'])
        for c in DEFAULT_CATEGORIES
    ]
    logger.info("Initialized %d default categories for %s", len(created), owner_id)
    return created


# ============================================================
# FOOD ITEMS (inventory)
# ============================================================

def list_food_items(session, owner_id: str, category_id=None) -> list:
    query = session.query(FoodItem).filter(FoodItem.owner_id == owner_id)
    if category_id is not None:
        query = query.filter(FoodItem.category_id == int(category_id))
    return query.order_by(
        FoodItem.expiry_date.is_(None),
        FoodItem.expiry_date.asc(),
        FoodItem.id.asc()
    ).all()


def get_food_item(session, owner_id: str, item_id) -> Optional[FoodItem]:
    try:
        item_id = int(item_id)
    except (TypeError, ValueError):
        return None
    return session.query(FoodItem).filter(
        FoodItem.id == item_id,
        FoodItem.owner_id == owner_id
    ).first()


def create_food_item(session, owner_id: str, name: str, category_id, quantity=1,
                     unit: str = DEFAULT_UNIT, expiry_date=None, image_url=None,
                     protein=0, carbs=0, fats=0, calories=0) -> FoodItem:
    """
    Insert one inventory row.

    Raises:
        ValueError: blank name, bad quantity/date, or a category that does not
                    belong to owner_id.
    """
    clean_name = _clean_name(name)
    category = get_owned_category(session, owner_id, category_id)
    if category is None:
        raise ValueError(f"Category {category_id!r} does not exist for this user")

    item = FoodItem(
        name=clean_name,
        category_id=category.id,
        owner_id=owner_id,
        quantity=coerce_quantity(quantity, strict=True),
        unit=(unit or DEFAULT_UNIT).strip() or DEFAULT_UNIT,
        expiry_date=parse_date(expiry_date),
        image_url=image_url or None,
        protein=float(protein or 0),
        carbs=float(carbs or 0),
        fats=float(fats or 0),
        calories=float(calories or 0),
    )
    session.add(item)
    session.flush()
    return item


def update_food_item(session, owner_id: str, item_id, updates: dict) -> Optional[FoodItem]:
    """Apply a partial update. Returns None when the item is not the owner's."""
    item = get_food_item(session, owner_id, item_id)
    if item is None:
        return None

    for field, value in updates.items():
        if field not in _FOOD_ITEM_FIELDS:
            continue
        if field == 'name':
            item.name = _clean_name(value)
        elif field == 'category_id':
            category = get_owned_category(session, owner_id, value)
            if category is None:
                raise ValueError(f"Category {value!r} does not exist for this user")
            item.category_id = category.id
        elif field == 'quantity':
            item.quantity = coerce_quantity(value, strict=True)
        elif field == 'unit':
            item.unit = (value or DEFAULT_UNIT).strip() or DEFAULT_UNIT
        elif field == 'expiry_date':
            item.expiry_date = parse_date(value)
        elif field in _NUTRITION_FIELDS:
            try:
                setattr(item, field, float(value or 0))
            except (TypeError, ValueError):
                raise ValueError(f"Invalid {field}: {value!r}")
        else:
            setattr(item, field, value)

    session.flush()
    return item


def delete_food_item(session, owner_id: str, item_id) -> bool:
    item = get_food_item(session, owner_id, item_id)
    if item is None:
        return False
    session.delete(item)
    session.flush()
    return True


def consume_food_item(session, owner_id: str, item_id, amount=None):
    """
    Mark an item as (partially) consumed.

    amount=None consumes everything. The row is deleted once nothing is left.
    Returns (item, deleted); item is None when the id is not the owner's.
    """
    item = get_food_item(session, owner_id, item_id)
    if item is None:
        return None, False

    remaining = 0 if amount is None else (item.quantity or 1) - coerce_quantity(amount, strict=True)
    if remaining <= 0:
        session.delete(item)
        session.flush()
        return item, True

    item.quantity = remaining
    session.flush()
    return item, False


def get_expiring_items(session, owner_id: str, days: int = 3, today: Optional[date] = None) -> list:
    """Items whose expiry date falls on or before today + days (overdue included)."""
    today = today or date.today()
    cutoff = today + timedelta(days=days)
    return session.query(FoodItem).filter(
        FoodItem.owner_id == owner_id,
        FoodItem.expiry_date.isnot(None),
        FoodItem.expiry_date <= cutoff
    ).order_by(FoodItem.expiry_date.asc(), FoodItem.id.asc()).all()


# ============================================================
# SHOPPING LIST
# ============================================================

def list_shopping_items(session, owner_id: str) -> list:
    return session.query(ShoppingItem).filter(
        ShoppingItem.owner_id == owner_id
    ).order_by(
        ShoppingItem.completed.asc(),
        ShoppingItem.created_at.desc(),
        ShoppingItem.id.desc()
    ).all()


def create_shopping_item(session, owner_id: str, name: str, category_name=None) -> ShoppingItem:
    item = ShoppingItem(
        name=_clean_name(name),
        owner_id=owner_id,
        category_name=(category_name or '').strip() or None,
        completed=False,
    )
    session.add(item)
    session.flush()
    return item


def update_shopping_item(session, owner_id: str, item_id, updates: dict) -> Optional[ShoppingItem]:
    try:
        item_id = int(item_id)
    except (TypeError, ValueError):
        return None
    item = session.query(ShoppingItem).filter(
        ShoppingItem.id == item_id,
        ShoppingItem.owner_id == owner_id
    ).first()
    if item is None:
        return None

    if 'name' in updates:
        item.name = _clean_name(updates['name'])
    if 'category_name' in updates:
        item.category_name = (updates['category_name'] or '').strip() or None
    if 'completed' in updates:
        item.completed = bool(updates['completed'])
    session.flush()
    return item


def delete_shopping_item(session, owner_id: str, item_id) -> bool:
    try:
        item_id = int(item_id)
    except (TypeError, ValueError):
        return False
    deleted = session.query(ShoppingItem).filter(
        ShoppingItem.id == item_id,
        ShoppingItem.owner_id == owner_id
    ).delete(synchronize_session=False)
    return deleted > 0


# ============================================================
# RECEIPTS (write-once)
# ============================================================

def create_receipt(session, owner_id: str, image_reference: str, raw_text: str,
                   extracted_items: list) -> Receipt:
    receipt = Receipt(
        owner_id=owner_id,
        image_reference=image_reference,
        raw_extracted_text=raw_text,
        extracted_items=list(extracted_items or []),
    )
    session.add(receipt)
    session.flush()
    return receipt


def list_receipts(session, owner_id: str, page: int = 0, page_size: int = 10) -> list:
    return session.query(Receipt).filter(
        Receipt.owner_id == owner_id
    ).order_by(
        Receipt.created_at.desc(), Receipt.id.desc()
    ).offset(page * page_size).limit(page_size).all()


def count_receipts(session, owner_id: str) -> int:
    return session.query(func.count(Receipt.id)).filter(Receipt.owner_id == owner_id).scalar() or 0


# ============================================================
# COMMUNITY & FEEDBACK (global feeds)
# ============================================================

def list_community_posts(session, limit: int = 50) -> list:
    return session.query(CommunityPost).order_by(
        CommunityPost.created_at.desc(), CommunityPost.id.desc()
    ).limit(limit).all()


def create_community_post(session, owner_id: str, content: str, post_type: str = 'tip',
                          username: str = 'Anonymous', tags=None) -> CommunityPost:
    post = CommunityPost(
        owner_id=owner_id,
        username=(username or '').strip() or 'Anonymous',
        content=_clean_name(content, 'content'),
        post_type=(post_type or '').strip() or 'tip',
        likes=0,
        replies=0,
        tags=[str(t) for t in (tags or [])],
    )
    session.add(post)
    session.flush()
    return post


def list_feedback_items(session, limit: int = 50) -> list:
    return session.query(FeedbackItem).order_by(
        FeedbackItem.created_at.desc(), FeedbackItem.id.desc()
    ).limit(limit).all()


def create_feedback_item(session, owner_id: str, title: str, description: str) -> FeedbackItem:
    feedback = FeedbackItem(
        owner_id=owner_id,
        title=_clean_name(title, 'title'),
        description=_clean_name(description, 'description'),
        status='submitted',
        votes=0,
    )
    session.add(feedback)
    session.flush()
    return feedback
