# backend/bodega/services/warehouse_service.py
"""
Warehouse and cost-center service.

COST CENTER LAYOUT:
    Bodega Principal <cc>          (main)
    ├── Bodega UM2 <cc>            (sub, um2)
    ├── Bodega Plataforma <cc>     (sub, plataforma)
    ├── Bodega PEM <cc>            (sub, pem)
    └── Bodega Integrador <cc>     (sub, integrador)

ensure_principal_warehouse() creates the whole set in one transaction the
first time a cost center is used and is a no-op afterwards.
"""
from __future__ import annotations

import logging
from collections import OrderedDict

from ..extensions import db
from ..models import Warehouse, SUB_WAREHOUSE_TYPES
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

WAREHOUSE_MUTABLE_FIELDS = {
    "name",
    "location",
    "cost_center",
    "warehouse_type",
    "sub_warehouse_type",
    "parent_warehouse_id",
    "is_active",
}

MAIN_WAREHOUSE_NAME = "Bodega Principal {cost_center}"

SUB_WAREHOUSE_LABELS = {
    "um2": "UM2",
    "plataforma": "Plataforma",
    "pem": "PEM",
    "integrador": "Integrador",
}


def sub_warehouse_name(sub_type: str, cost_center: str) -> str:
    return f"Bodega {SUB_WAREHOUSE_LABELS[sub_type]} {cost_center}"


def get_warehouse(warehouse_id: int, *, require_active: bool = False) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError("Warehouse not found")
    if require_active and not warehouse.is_active:
        raise ValidationError(f"Warehouse {warehouse.name} is inactive")
    return warehouse


def list_warehouses(*, cost_center: str | None = None, include_inactive: bool = False) -> list[Warehouse]:
    query = db.session.query(Warehouse)
    if not include_inactive:
        query = query.filter(Warehouse.is_active.is_(True))
    if cost_center:
        query = query.filter(Warehouse.cost_center == cost_center)
    return query.order_by(Warehouse.name.asc(), Warehouse.id.asc()).all()


def find_main_warehouse(cost_center: str) -> Warehouse | None:
    return (
        db.session.query(Warehouse)
        .filter(
            Warehouse.cost_center == cost_center,
            Warehouse.warehouse_type == "main",
            Warehouse.is_active.is_(True),
        )
        .order_by(Warehouse.id.asc())
        .first()
    )


def _other_active_warehouses(cost_center: str, *, exclude_id: int) -> int:
    return (
        db.session.query(Warehouse)
        .filter(
            Warehouse.cost_center == cost_center,
            Warehouse.is_active.is_(True),
            Warehouse.id != exclude_id,
        )
        .count()
    )


def _check_hierarchy(patch: dict, *, exclude_id: int | None = None) -> None:
    warehouse_type = patch.get("warehouse_type") or "sub"
    cost_center = patch.get("cost_center")

    if warehouse_type == "main":
        existing = find_main_warehouse(cost_center)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(f"Cost center {cost_center} already has a main warehouse")
    else:
        main = find_main_warehouse(cost_center)
        if main is None or main.id == exclude_id:
            raise ValidationError(
                f"Cost center {cost_center} has no active main warehouse; provision the cost center first"
            )

    parent_id = patch.get("parent_warehouse_id")
    if parent_id is not None:
        if parent_id == exclude_id:
            raise ValidationError("A warehouse cannot be its own parent")
        parent = get_warehouse(parent_id)
        if parent.warehouse_type != "main":
            raise ValidationError("parent_warehouse_id must reference a main warehouse")
        if parent.cost_center != cost_center:
            raise ValidationError("parent warehouse belongs to a different cost center")
        if not parent.is_active:
            raise ValidationError(f"Parent warehouse {parent.name} is inactive")


def _check_main_release(w: Warehouse, merged: dict) -> None:
    """
    An active main warehouse stays main, active and in its cost center while
    any other active warehouse of that cost center remains.
    """
    if w.warehouse_type != "main" or not w.is_active:
        return
    if merged["warehouse_type"] == "main" and merged["cost_center"] == w.cost_center and merged["is_active"]:
        return
    remaining = _other_active_warehouses(w.cost_center, exclude_id=w.id)
    if remaining:
        raise ConflictError(
            f"{w.name} is the main warehouse of cost center {w.cost_center} "
            f"and {remaining} active warehouse(s) still depend on it"
        )


def create_warehouse(*, patch: dict) -> Warehouse:
    patch.setdefault("warehouse_type", "sub")
    _check_hierarchy(patch)

    w = Warehouse()
    for k, v in patch.items():
        if k in WAREHOUSE_MUTABLE_FIELDS:
            setattr(w, k, v)
    db.session.add(w)
    db.session.commit()

    logger.info("Created warehouse id=%s name=%s cost_center=%s", w.id, w.name, w.cost_center)
    return w


def update_warehouse(*, warehouse_id: int, patch: dict) -> Warehouse:
    w = get_warehouse(warehouse_id)

    merged = {k: getattr(w, k) for k in WAREHOUSE_MUTABLE_FIELDS}
    merged.update(patch)
    _check_main_release(w, merged)
    if {"warehouse_type", "cost_center", "parent_warehouse_id", "is_active"} & patch.keys() and merged["is_active"]:
        _check_hierarchy(merged, exclude_id=w.id)

    for k, v in patch.items():
        if k in WAREHOUSE_MUTABLE_FIELDS:
            setattr(w, k, v)
    db.session.commit()
    return w


def delete_warehouse(*, warehouse_id: int) -> Warehouse:
    """
    Soft delete; stock and movement history stay attached.

    Raises:
        ConflictError: main warehouse whose cost center still has active warehouses
    """
    w = get_warehouse(warehouse_id)
    merged = {k: getattr(w, k) for k in WAREHOUSE_MUTABLE_FIELDS}
    merged["is_active"] = False
    _check_main_release(w, merged)

    w.is_active = False
    db.session.commit()
    logger.info("Deactivated warehouse id=%s name=%s", w.id, w.name)
    return w


def ensure_principal_warehouse(cost_center: str, location: str | None = None) -> tuple[Warehouse, bool]:
    """
    Return the main warehouse of a cost center, creating the full set if needed.

    A cost center whose main warehouse was deactivated is restored rather
    than provisioned twice: the most recent inactive main is reactivated and
    each sub type reuses its existing warehouse. Only missing pieces are
    created.

    Returns:
        (main_warehouse, created) where created is True when this call
        provisioned or restored the main warehouse and its four subs.
    """
    cost_center = (cost_center or "").strip()
    if not cost_center:
        raise ValidationError("cost_center is required")
    if len(cost_center) > Warehouse.__table__.c.cost_center.type.length:
        raise ValidationError("cost_center is too long")

    def _op():
        main = find_main_warehouse(cost_center)
        if main is not None:
            return main, False

        main = (
            db.session.query(Warehouse)
            .filter(Warehouse.cost_center == cost_center, Warehouse.warehouse_type == "main")
            .order_by(Warehouse.id.desc())
            .first()
        )
        if main is None:
            main = Warehouse(
                name=MAIN_WAREHOUSE_NAME.format(cost_center=cost_center),
                location=location,
                cost_center=cost_center,
                warehouse_type="main",
            )
            db.session.add(main)
        else:
            logger.info("Restoring main warehouse id=%s for cost center %s", main.id, cost_center)
        main.is_active = True
        if location and not main.location:
            main.location = location
        db.session.flush()

        for sub_type in SUB_WAREHOUSE_TYPES:
            _attach_sub(main, sub_type, location)

        db.session.commit()
        logger.info("Bootstrapped cost center %s (main warehouse id=%s)", cost_center, main.id)
        return main, True

    return run_with_retry(_op)


def _attach_sub(main: Warehouse, sub_type: str, location: str | None) -> Warehouse:
    # Prefer an active warehouse of this type, then one already under this main
    candidates = (
        db.session.query(Warehouse)
        .filter(
            Warehouse.cost_center == main.cost_center,
            Warehouse.warehouse_type == "sub",
            Warehouse.sub_warehouse_type == sub_type,
        )
        .all()
    )
    candidates.sort(key=lambda w: (not w.is_active, w.parent_warehouse_id != main.id, w.id))

    if candidates:
        sub = candidates[0]
    else:
        sub = Warehouse(
            name=sub_warehouse_name(sub_type, main.cost_center),
            location=location,
            cost_center=main.cost_center,
            warehouse_type="sub",
            sub_warehouse_type=sub_type,
        )
        db.session.add(sub)

    sub.parent_warehouse_id = main.id
    sub.is_active = True
    if location and not sub.location:
        sub.location = location
    return sub


def list_cost_centers() -> list[dict]:
    """Active warehouses grouped by cost center, main warehouse first."""
    warehouses = (
        db.session.query(Warehouse)
        .filter(Warehouse.is_active.is_(True))
        .order_by(Warehouse.cost_center.asc(), Warehouse.warehouse_type.asc(), Warehouse.id.asc())
        .all()
    )

    grouped: "OrderedDict[str, list[Warehouse]]" = OrderedDict()
    for w in warehouses:
        grouped.setdefault(w.cost_center, []).append(w)

    result = []
    for cost_center, items in grouped.items():
        main = next((w for w in items if w.warehouse_type == "main"), None)
        result.append({
            "cost_center": cost_center,
            "main_warehouse": main.to_dict() if main else None,
            "warehouses": [w.to_dict() for w in items],
            "count": len(items),
        })
    return result
