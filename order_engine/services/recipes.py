from __future__ import annotations

from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from order_engine.core.errors import ErrorKind, ServiceError, internal_error
from order_engine.models.inventory import Ingredient, Recipe
from order_engine.services.catalog import get_menu_item


def get_recipes_for_item(db: Session, menu_item_id: int, tenant_id: int) -> list[Recipe]:
    try:
        return (
            db.query(Recipe)
            .options(joinedload(Recipe.ingredient))
            .filter(Recipe.menu_item_id == menu_item_id, Recipe.tenant_id == tenant_id)
            .order_by(Recipe.id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise internal_error("Erro ao carregar a ficha técnica", exc) from exc


def _validate_lines(db: Session, tenant_id: int, lines: Sequence[Any]) -> None:
    ingredient_ids = [int(line.ingredient_id) for line in lines]
    if len(set(ingredient_ids)) != len(ingredient_ids):
        raise ServiceError("Ingrediente repetido na ficha técnica", ErrorKind.VALIDATION)
    for line in lines:
        if Decimal(str(line.quantity_needed)) <= 0:
            raise ServiceError("Quantidade deve ser maior que zero", ErrorKind.VALIDATION)

    if not ingredient_ids:
        return
    known = {
        row.id
        for row in db.query(Ingredient.id)
        .filter(Ingredient.tenant_id == tenant_id, Ingredient.id.in_(ingredient_ids))
        .all()
    }
    missing = sorted(set(ingredient_ids) - known)
    if missing:
        raise ServiceError(
            "Ingrediente não encontrado",
            ErrorKind.VALIDATION,
            details=[f"ingredient_id={ingredient_id}" for ingredient_id in missing],
        )


def set_recipe(db: Session, tenant_id: int, menu_item_id: int, lines: Sequence[Any]) -> list[Recipe]:
    """Substitui a ficha técnica inteira do item (apaga e insere na mesma transação)."""
    if get_menu_item(db, tenant_id, menu_item_id) is None:
        raise ServiceError("Item do cardápio não encontrado", ErrorKind.NOT_FOUND)
    _validate_lines(db, tenant_id, lines)

    try:
        db.query(Recipe).filter(
            Recipe.menu_item_id == menu_item_id,
            Recipe.tenant_id == tenant_id,
        ).delete(synchronize_session=False)

        rows = [
            Recipe(
                tenant_id=tenant_id,
                menu_item_id=menu_item_id,
                ingredient_id=line.ingredient_id,
                quantity_needed=line.quantity_needed,
                notes=getattr(line, "notes", None) or None,
            )
            for line in lines
        ]
        db.add_all(rows)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error("Erro ao salvar a ficha técnica", exc) from exc

    return get_recipes_for_item(db, menu_item_id, tenant_id)
