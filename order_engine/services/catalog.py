from __future__ import annotations

from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_engine.core.errors import internal_error
from order_engine.models.menu_item import MenuItem


def get_menu_items_by_ids(db: Session, tenant_id: int, menu_item_ids: Iterable[int]) -> dict[int, MenuItem]:
    """Uma única leitura em lote, sempre filtrada pelo tenant."""
    ids = {int(menu_item_id) for menu_item_id in menu_item_ids}
    if not ids:
        return {}
    try:
        rows = (
            db.query(MenuItem)
            .filter(MenuItem.tenant_id == tenant_id, MenuItem.id.in_(ids))
            .all()
        )
    except SQLAlchemyError as exc:
        raise internal_error("Erro ao verificar o cardápio", exc) from exc
    return {row.id: row for row in rows}


def get_menu_item(db: Session, tenant_id: int, menu_item_id: int) -> MenuItem | None:
    return get_menu_items_by_ids(db, tenant_id, [menu_item_id]).get(int(menu_item_id))
