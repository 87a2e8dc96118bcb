import uuid
from typing import Any

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session

from cafedesk.core.errors import DuplicateKey, NotFound
from cafedesk.core.money import to_money
from cafedesk.models.invoice import InvoiceItem
from cafedesk.models.product import Product
from cafedesk.models.sales import SaleItem

MONEY_FIELDS = ("price", "cost", "stock_quantity", "minimum_stock")


def is_low_stock(product: Product) -> bool:
    return product.stock_quantity <= product.minimum_stock


def get_product(db: Session, *, owner_id: str, product_id: str) -> Product:
    product = db.execute(
        select(Product).where(Product.id == product_id, Product.owner_id == owner_id)
    ).scalar_one_or_none()
    if not product:
        raise NotFound("Product not found")
    return product


def ensure_code_available(
    db: Session, *, owner_id: str, code: str, exclude_id: str | None = None
) -> None:
    stmt = select(Product.id).where(
        Product.owner_id == owner_id,
        func.lower(Product.code) == code.lower(),
    )
    if exclude_id:
        stmt = stmt.where(Product.id != exclude_id)
    if db.execute(stmt).first():
        raise DuplicateKey(f"Product code already exists: {code}")


def _normalize(values: dict[str, Any]) -> dict[str, Any]:
    cleaned = dict(values)
    for key in MONEY_FIELDS:
        if cleaned.get(key) is not None:
            cleaned[key] = to_money(cleaned[key])
    return cleaned


def create_product(db: Session, *, owner_id: str, values: dict[str, Any]) -> Product:
    ensure_code_available(db, owner_id=owner_id, code=values["code"])
    product = Product(id=str(uuid.uuid4()), owner_id=owner_id, **_normalize(values))
    db.add(product)
    return product


def update_product(
    db: Session, *, owner_id: str, product_id: str, changes: dict[str, Any]
) -> Product:
    product = get_product(db, owner_id=owner_id, product_id=product_id)
    if changes.get("code") and changes["code"] != product.code:
        ensure_code_available(db, owner_id=owner_id, code=changes["code"], exclude_id=product.id)
    for key, value in _normalize(changes).items():
        setattr(product, key, value)
    return product


def is_referenced(db: Session, product_id: str) -> bool:
    in_sales = db.execute(select(exists().where(SaleItem.product_id == product_id))).scalar()
    in_invoices = db.execute(select(exists().where(InvoiceItem.product_id == product_id))).scalar()
    return bool(in_sales or in_invoices)


def delete_product(db: Session, *, owner_id: str, product_id: str) -> str:
    """Delete a product, or deactivate it when sales or invoices still point at it.

    Returns ``"deleted"`` or ``"deactivated"``.
    """
    product = get_product(db, owner_id=owner_id, product_id=product_id)
    if is_referenced(db, product.id):
        product.is_active = False
        return "deactivated"
    db.delete(product)
    return "deleted"


def product_filters(
    *,
    owner_id: str,
    q: str | None = None,
    category: str | None = None,
    is_active: bool | None = None,
) -> list:
    filters = [Product.owner_id == owner_id]
    if q:
        pattern = f"%{q.strip().lower()}%"
        filters.append(
            or_(
                func.lower(Product.name).like(pattern),
                func.lower(Product.code).like(pattern),
                func.lower(func.coalesce(Product.description, "")).like(pattern),
            )
        )
    if category:
        filters.append(func.lower(Product.category) == category.strip().lower())
    if is_active is not None:
        filters.append(Product.is_active == is_active)
    return filters


def low_stock_products(db: Session, *, owner_id: str) -> list[Product]:
    return list(
        db.execute(
            select(Product)
            .where(
                Product.owner_id == owner_id,
                Product.is_active.is_(True),
                Product.stock_quantity <= Product.minimum_stock,
            )
            .order_by(Product.stock_quantity.asc(), Product.name.asc())
        ).scalars()
    )

