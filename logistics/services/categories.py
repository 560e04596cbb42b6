"""Stock categories. Stock items refer to a category by name."""

from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from logistics.error import CategoryInUse, DuplicateCategory, NotFound
from logistics.logging_config import get_logger
from logistics.models import Category, StockItem, utcnow
from logistics.schemas import CategoryCreate, CategoryUpdate

logger = get_logger("categories")


class CategoryCatalogue:
    def __init__(self, session: Session):
        self.session = session

    def search(self) -> list[Category]:
        return list(self.session.exec(select(Category).order_by(Category.name.asc())).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if category is None:
            raise NotFound("category", category_id)
        return category

    def find(self, name: str) -> Optional[Category]:
        return self.session.exec(select(Category).where(Category.name == name)).first()

    def in_use(self, name: str) -> int:
        return self.session.exec(
            select(func.count()).select_from(StockItem).where(StockItem.category == name)
        ).one()

    def create(self, data: CategoryCreate) -> Category:
        name = data.name.strip()
        if self.find(name) is not None:
            raise DuplicateCategory(name)
        category = Category(name=name, description=data.description)
        self.session.add(category)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateCategory(name)
        self.session.refresh(category)
        logger.info("category_created", extra={"category": name})
        return category

    def edit(self, category_id: int, data: CategoryUpdate) -> Category:
        """Renaming carries every stock item in the category along with it."""
        category = self.get(category_id)
        old_name = category.name
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        new_name = changes.pop("name", old_name).strip()

        if new_name != old_name:
            if self.find(new_name) is not None:
                raise DuplicateCategory(new_name)
            category.name = new_name
            self.session.exec(
                update(StockItem).where(StockItem.category == old_name).values(category=new_name)
            )
        for key, value in changes.items():
            setattr(category, key, value)
        category.updated_at = utcnow()
        self.session.add(category)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateCategory(new_name)
        self.session.refresh(category)
        return category

    def remove(self, category_id: int) -> Category:
        category = self.get(category_id)
        count = self.in_use(category.name)
        if count:
            raise CategoryInUse(category.name, count)
        self.session.delete(category)
        self.session.commit()
        logger.info("category_deleted", extra={"category": category.name})
        return category
