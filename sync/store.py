"""
Product Store — SQLAlchemy persistence for Product records.

Each write commits on its own and relies on the database's single-row
atomicity; no cross-record locking is used.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.models.db_models import Product
from sync.errors import NotFound, StoreError

logger = logging.getLogger(__name__)


class ProductStore:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, **fields: Any) -> Product:
        product = Product(**fields)
        try:
            self.db.add(product)
            self.db.commit()
            self.db.refresh(product)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to insert product: %s", e)
            raise StoreError(f"Product insert failed: {e}") from e
        return product

    def get(self, product_id: str) -> Optional[Product]:
        try:
            return self.db.query(Product).filter(Product.id == product_id).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to read product %s: %s", product_id, e)
            raise StoreError(f"Product read failed: {e}") from e

    def update_fields(self, product_id: str, fields: Dict[str, Any]) -> Product:
        """Atomically update one record by id and return the fresh row."""
        try:
            count = (
                self.db.query(Product)
                .filter(Product.id == product_id)
                .update(fields, synchronize_session="fetch")
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to update product %s: %s", product_id, e)
            raise StoreError(f"Product update failed: {e}") from e

        if count == 0:
            raise NotFound(product_id)
        product = self.get(product_id)
        if product is None:
            raise NotFound(product_id)
        try:
            self.db.refresh(product)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Product reload failed: {e}") from e
        return product

    def delete(self, product_id: str) -> bool:
        try:
            count = self.db.query(Product).filter(Product.id == product_id).delete()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to delete product %s: %s", product_id, e)
            raise StoreError(f"Product delete failed: {e}") from e
        return count > 0

    def list_recent(self) -> List[Product]:
        try:
            return self.db.query(Product).order_by(desc(Product.created_at)).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to list products: %s", e)
            raise StoreError(f"Product listing failed: {e}") from e
