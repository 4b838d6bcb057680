"""SQLAlchemy repository for the product catalog and its stock.

The schema is a single ``products`` table keyed by SKU. Stock changes go
through :meth:`CatalogRepo.adjust`, which applies the delta and reads the
committed value back in one ``UPDATE ... RETURNING`` statement, so
concurrent adjustments of the same product never lose an update.

Connection settings come from ``DATABASE_URL`` or, when unset, from the
``DB_*`` environment variables.
"""

import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import Integer, String, create_engine, func, select, update
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "inventory-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "inventory")
DB_USER = os.getenv("DB_USER", "inventory_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "inventory-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)


class Base(DeclarativeBase):
    pass


class Product(Base):
    """A sellable product and its current stock.

    Attributes:
        sku: Product SKU, primary key.
        name: Display name.
        price_cents: Unit price in minor units.
        image: Optional image URL.
        stock: Units on hand. May go below zero when orders outrun stock.
    """

    __tablename__ = "products"
    sku = mapped_column(String(64), primary_key=True)
    name = mapped_column(String(200), nullable=False)
    price_cents = mapped_column(Integer, nullable=False)
    image = mapped_column(String(500), nullable=False, default="")
    stock = mapped_column(Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "image": self.image,
            "stock": self.stock,
        }


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    with Session(engine) as s:
        yield s


class CatalogRepo:
    def get(self, sku: str) -> Optional[dict]:
        with get_session() as s:
            obj = s.get(Product, sku)
            return obj.to_dict() if obj else None

    def upsert(self, sku: str, name: str, price_cents: int, image: str = "", stock: int = 0) -> dict:
        """Create or overwrite a product; used to seed the catalog."""
        with get_session() as s:
            obj = s.get(Product, sku) or Product(sku=sku)
            obj.name = name
            obj.price_cents = price_cents
            obj.image = image
            obj.stock = stock
            s.merge(obj)
            s.commit()
        return self.get(sku)

    def adjust(self, sku: str, delta: int) -> Optional[int]:
        """Add ``delta`` to the stock of ``sku`` and return the new value.

        Returns:
            Optional[int]: The committed stock, or None if ``sku`` is unknown.
        """
        stmt = (
            update(Product)
            .where(Product.sku == sku)
            .values(stock=Product.stock + delta)
            .returning(Product.stock)
        )
        with get_session() as s:
            stock = s.execute(stmt).scalar_one_or_none()
            s.commit()
            return stock

    def count_below(self, threshold: int) -> int:
        with get_session() as s:
            return s.scalar(select(func.count()).select_from(Product).where(Product.stock < threshold)) or 0
