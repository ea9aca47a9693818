# ledger/services/categories.py
#
# Category maintenance: create / rename / delete, plus seeding of the default set.
#
# Deletion rules:
#   - a default category can be deleted unless it is the last default one
#   - a category that still has transactions cannot be deleted
#   - merchant mappings pointing at the category are deleted with it

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.errors import ConstraintError, ValidationError
from ledger.services.categorization import get_category_or_404
from models import Category, MerchantMapping, Transaction

logger = logging.getLogger(__name__)

# (name, icon, description)
DEFAULT_CATEGORIES = [
    ("Groceries", "🛒", "Supermarkets and food stores"),
    ("Restaurants & Cafés", "🍽️", "Eating out, takeaway and coffee"),
    ("Transport", "🚗", "Fuel, public transport, parking and taxis"),
    ("Housing", "🏠", "Rent, mortgage, utilities and home insurance"),
    ("Entertainment", "🎬", "Streaming, events, hobbies and leisure"),
    ("Shopping", "🛍️", "Clothes, electronics and other purchases"),
    ("Health & Beauty", "❤️", "Pharmacy, healthcare, gym and personal care"),
    ("Travel", "✈️", "Flights, hotels and holidays"),
    ("Kids & Family", "👶", "Childcare, school and family expenses"),
    ("Income", "💰", "Salary, refunds and other incoming money"),
    ("Other", "📦", "Everything else"),
]


def _clean_name(name) -> str:
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError("Category name is required", field="name")
    return name


def _ensure_unique_name(db: Session, name: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(Category.id).filter(Category.name == name)
    if exclude_id:
        query = query.filter(Category.id != exclude_id)
    if query.first() is not None:
        raise ValidationError(f"A category named {name!r} already exists", field="name")


def create_category(
    db: Session,
    name: str,
    icon: Optional[str] = None,
    description: Optional[str] = None,
) -> Category:
    name = _clean_name(name)
    try:
        _ensure_unique_name(db, name)
        category = Category(name=name, icon=icon or None, description=description or None, is_default=False)
        db.add(category)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError(f"A category named {name!r} already exists", field="name") from e
    except Exception:
        db.rollback()
        raise

    db.refresh(category)
    logger.info("Created category %r (%s)", name, category.id)
    return category


def update_category(
    db: Session,
    category_id: str,
    name: Optional[str] = None,
    icon: Optional[str] = None,
    description: Optional[str] = None,
) -> Category:
    """Only the supplied fields change."""
    try:
        category = get_category_or_404(db, category_id)
        if name is not None:
            name = _clean_name(name)
            _ensure_unique_name(db, name, exclude_id=category_id)
            category.name = name
        if icon is not None:
            category.icon = icon or None
        if description is not None:
            category.description = description or None
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(category)
    return category


def delete_category(db: Session, category_id: str) -> None:
    try:
        category = get_category_or_404(db, category_id)

        if category.is_default:
            defaults = db.query(Category.id).filter(Category.is_default.is_(True)).count()
            if defaults <= 1:
                raise ConstraintError("Cannot delete the last default category", constraint="is_default")

        in_use = db.query(Transaction.id).filter(Transaction.category_id == category_id).count()
        if in_use:
            raise ConstraintError(
                f"Cannot delete category with {in_use} transaction(s). Reassign them first.",
                constraint="has_transactions",
            )

        removed = (
            db.query(MerchantMapping)
            .filter(MerchantMapping.category_id == category_id)
            .delete(synchronize_session=False)
        )
        db.delete(category)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Deleted category %s (%d merchant mapping(s) removed)", category_id, removed)


def seed_default_categories(db: Session) -> List[Category]:
    """
    Insert the default categories, or refresh icon/description of the ones
    that already exist. Safe to run on every startup.
    """
    existing = {c.name: c for c in db.query(Category).all()}
    created = 0
    try:
        for name, icon, description in DEFAULT_CATEGORIES:
            category = existing.get(name)
            if category is None:
                db.add(Category(name=name, icon=icon, description=description, is_default=True))
                created += 1
            else:
                category.icon = icon
                category.description = description
                category.is_default = True
        db.commit()
    except Exception:
        db.rollback()
        raise

    if created:
        logger.info("Seeded %d default categories", created)
    names = [n for n, _, _ in DEFAULT_CATEGORIES]
    return db.query(Category).filter(Category.name.in_(names)).order_by(Category.name).all()
