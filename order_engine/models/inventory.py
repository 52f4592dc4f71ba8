from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from order_engine.core.database import Base

MOVEMENT_TYPES = ("opening", "manual_add", "manual_remove", "adjustment", "destock")
POSITIVE_MOVEMENT_TYPES = frozenset({"opening", "manual_add"})

_movement_types_sql = ", ".join(f"'{value}'" for value in MOVEMENT_TYPES)


class Ingredient(Base):
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    name = Column(String, nullable=False)
    unit = Column(String(20), nullable=False)
    # Projeção de stock_movements; só alterado pelos procedimentos de estoque.
    current_stock = Column(Numeric(12, 3), nullable=False, default=0)
    min_stock_alert = Column(Numeric(12, 3), nullable=False, default=0)
    cost_per_unit = Column(Numeric(10, 2), nullable=False, default=0)
    category = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Recipe(Base):
    __tablename__ = "recipes"
    __table_args__ = (
        UniqueConstraint("menu_item_id", "ingredient_id", name="uq_recipes_item_ingredient"),
        CheckConstraint("quantity_needed > 0", name="ck_recipes_quantity_positive"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), index=True, nullable=False)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id"), index=True, nullable=False)
    quantity_needed = Column(Numeric(12, 3), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    ingredient = relationship("Ingredient")


class StockMovement(Base):
    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint(f"movement_type IN ({_movement_types_sql})", name="ck_stock_movements_type"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id"), index=True, nullable=False)
    movement_type = Column(String(20), nullable=False)
    # Delta com sinal: positivo entra, negativo sai.
    quantity = Column(Numeric(12, 3), nullable=False)
    reference_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    ingredient = relationship("Ingredient")
