"""
SQLAlchemy Models for the Pantry Tracker
All owner data is partitioned by the guest identifier in users.id
"""

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, Date, DateTime, Text,
    ForeignKey, Index, JSON
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ============================================
# USER MODEL
# ============================================
class User(Base):
    __tablename__ = 'users'

    id = Column(String(64), primary_key=True)  # guest_<millis>_<random>
    email = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    profile_image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    categories = relationship('Category', back_populates='owner', cascade='all, delete-orphan')
    food_items = relationship('FoodItem', back_populates='owner', cascade='all, delete-orphan')
    shopping_items = relationship('ShoppingItem', back_populates='owner', cascade='all, delete-orphan')
    receipts = relationship('Receipt', back_populates='owner', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'profileImageUrl': self.profile_image_url,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<User(id='{self.id}')>"


# ============================================
# CATEGORY MODEL (storage locations)
# ============================================
class Category(Base):
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    icon = Column(String(50), nullable=False)
    color = Column(String(20), nullable=False)
    owner_id = Column(String(64), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    owner = relationship('User', back_populates='categories')
    food_items = relationship('FoodItem', back_populates='category')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'icon': self.icon,
            'color': self.color,
            'userId': self.owner_id,
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"


# ============================================
# FOOD ITEM MODEL (Inventory)
# ============================================
class FoodItem(Base):
    __tablename__ = 'food_items'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    category_id = Column(Integer, ForeignKey('categories.id'), nullable=False, index=True)
    owner_id = Column(String(64), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    expiry_date = Column(Date, nullable=True)
    quantity = Column(Integer, default=1)
    unit = Column(String(20), default='piece')
    image_url = Column(String(500), nullable=True)
    # Nutrition per declared quantity
    protein = Column(Float, default=0)   # grams
    carbs = Column(Float, default=0)     # grams
    fats = Column(Float, default=0)      # grams
    calories = Column(Float, default=0)  # kcal
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    owner = relationship('User', back_populates='food_items')
    category = relationship('Category', back_populates='food_items')

    __table_args__ = (
        Index('idx_food_item_owner_category', 'owner_id', 'category_id'),
        Index('idx_food_item_owner_expiry', 'owner_id', 'expiry_date'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'categoryId': self.category_id,
            'userId': self.owner_id,
            'expiryDate': _iso(self.expiry_date),
            'quantity': self.quantity,
            'unit': self.unit,
            'imageUrl': self.image_url,
            'protein': self.protein or 0,
            'carbs': self.carbs or 0,
            'fats': self.fats or 0,
            'calories': self.calories or 0,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<FoodItem(id={self.id}, name='{self.name}', quantity={self.quantity})>"


# ============================================
# SHOPPING ITEM MODEL
# ============================================
class ShoppingItem(Base):
    __tablename__ = 'shopping_items'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    owner_id = Column(String(64), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    category_name = Column(String(50), nullable=True)
    completed = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    owner = relationship('User', back_populates='shopping_items')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'userId': self.owner_id,
            'categoryName': self.category_name,
            'completed': bool(self.completed),
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f"<ShoppingItem(id={self.id}, name='{self.name}', completed={self.completed})>"


# ============================================
# RECEIPT MODEL (write-once audit trail)
# ============================================
class Receipt(Base):
    __tablename__ = 'receipts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(64), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    image_reference = Column(Text, nullable=False)  # data URI
    raw_extracted_text = Column(Text, nullable=True)
    extracted_items = Column(JSON, nullable=False, default=list)  # list of candidate dicts
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    owner = relationship('User', back_populates='receipts')

    def to_dict(self, include_image=False):
        data = {
            'id': self.id,
            'userId': self.owner_id,
            'rawText': self.raw_extracted_text,
            'extractedItems': self.extracted_items or [],
            'createdAt': _iso(self.created_at),
        }
        if include_image:
            data['imageUrl'] = self.image_reference
        return data

    def __repr__(self):
        return f"<Receipt(id={self.id}, owner_id='{self.owner_id}')>"


# ============================================
# COMMUNITY POST MODEL
# ============================================
class CommunityPost(Base):
    __tablename__ = 'community_posts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(64), nullable=False, index=True)
    username = Column(String(100), nullable=False, default='Anonymous')
    content = Column(Text, nullable=False)
    post_type = Column(String(20), nullable=False, default='tip')  # 'tip', 'recipe', 'question'
    likes = Column(Integer, default=0)
    replies = Column(Integer, default=0)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.owner_id,
            'username': self.username,
            'content': self.content,
            'type': self.post_type,
            'likes': self.likes or 0,
            'replies': self.replies or 0,
            'tags': self.tags or [],
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f"<CommunityPost(id={self.id}, type='{self.post_type}')>"


# ============================================
# FEEDBACK MODEL
# ============================================
class FeedbackItem(Base):
    __tablename__ = 'feedback_items'

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default='submitted')  # 'submitted', 'planned', 'done'
    votes = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.owner_id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'votes': self.votes or 0,
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f"<FeedbackItem(id={self.id}, status='{self.status}')>"
