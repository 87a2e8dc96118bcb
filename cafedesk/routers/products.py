from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cafedesk.core.api_docs import error_responses
from cafedesk.core.deps import get_db
from cafedesk.core.permissions import require_permission
from cafedesk.core.security_current import Principal
from cafedesk.models.product import Product
from cafedesk.schemas.common import MessageOut, build_pagination
from cafedesk.schemas.product import (
    ProductCreate,
    ProductListOut,
    ProductMutationOut,
    ProductOut,
    ProductUpdate,
)
from cafedesk.services import catalog_service
from cafedesk.services.audit_service import log_audit_event

router = APIRouter(prefix="/products", tags=["products"])
MAX_PRODUCT_PAGE_SIZE = 500

manage_products = require_permission("manage_products")
NULLABLE_FIELDS = {"category", "description", "supplier"}


def product_out(product: Product) -> ProductOut:
    return ProductOut(
        id=product.id,
        code=product.code,
        name=product.name,
        price=float(product.price),
        cost=float(product.cost),
        category=product.category,
        description=product.description,
        unit=product.unit,
        stock_quantity=float(product.stock_quantity),
        minimum_stock=float(product.minimum_stock),
        is_low_stock=catalog_service.is_low_stock(product),
        tags=list(product.tags or []),
        supplier=product.supplier,
        is_active=bool(product.is_active),
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def _page(db: Session, filters: list, *, limit: int, offset: int) -> ProductListOut:
    total = int(db.execute(select(func.count(Product.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(Product)
        .where(*filters)
        .order_by(Product.name.asc(), Product.id.asc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return ProductListOut(
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(rows)),
        items=[product_out(p) for p in rows],
    )


@router.get(
    "",
    response_model=ProductListOut,
    summary="List products",
    responses=error_responses(401, 403, 422, 500),
)
def list_products(
    category: str | None = Query(None, max_length=100),
    is_active: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=MAX_PRODUCT_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_products),
):
    filters = catalog_service.product_filters(
        owner_id=principal.owner_id, category=category, is_active=is_active
    )
    return _page(db, filters, limit=limit, offset=offset)


@router.get(
    "/search",
    response_model=ProductListOut,
    summary="Search products",
    description="Case-insensitive match on name, code and description.",
    responses=error_responses(401, 403, 422, 500),
)
def search_products(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=MAX_PRODUCT_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_products),
):
    filters = catalog_service.product_filters(owner_id=principal.owner_id, q=q)
    return _page(db, filters, limit=limit, offset=offset)


@router.get(
    "/low-stock",
    response_model=list[ProductOut],
    summary="Low-stock products",
    description="Active products whose stock is at or below their minimum stock.",
    responses=error_responses(401, 403, 500),
)
def low_stock(
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_products),
):
    return [product_out(p) for p in catalog_service.low_stock_products(db, owner_id=principal.owner_id)]


@router.get(
    "/{product_id}",
    response_model=ProductOut,
    summary="Get product",
    responses=error_responses(401, 403, 404, 500),
)
def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_products),
):
    return product_out(
        catalog_service.get_product(db, owner_id=principal.owner_id, product_id=product_id)
    )


@router.post(
    "",
    response_model=ProductMutationOut,
    status_code=201,
    summary="Create product",
    responses=error_responses(401, 403, 409, 422, 500),
)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_products),
):
    product = catalog_service.create_product(
        db, owner_id=principal.owner_id, values=payload.model_dump()
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="product.create",
        target_type="product",
        target_id=product.id,
        metadata_json={"code": product.code, "name": product.name},
    )
    db.commit()
    db.refresh(product)
    return ProductMutationOut(message="Product created successfully", product=product_out(product))


@router.put(
    "/{product_id}",
    response_model=ProductMutationOut,
    summary="Update product",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_products),
):
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }
    product = catalog_service.update_product(
        db, owner_id=principal.owner_id, product_id=product_id, changes=changes
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="product.update",
        target_type="product",
        target_id=product.id,
        metadata_json={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(product)
    return ProductMutationOut(message="Product updated successfully", product=product_out(product))


@router.delete(
    "/{product_id}",
    response_model=MessageOut,
    summary="Delete product",
    description="Products already used on a sale or invoice are deactivated instead of deleted.",
    responses=error_responses(401, 403, 404, 500),
)
def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_products),
):
    outcome = catalog_service.delete_product(
        db, owner_id=principal.owner_id, product_id=product_id
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action=f"product.{'delete' if outcome == 'deleted' else 'deactivate'}",
        target_type="product",
        target_id=product_id,
    )
    db.commit()
    return MessageOut(message=f"Product {outcome} successfully")
