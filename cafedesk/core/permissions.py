from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from cafedesk.core.security_current import Principal, get_current_principal

ROLES: tuple[str, ...] = (
    "super_admin",
    "admin",
    "editor",
    "staff",
    "customer",
    "cafe_owner",
    "content_admin",
)

PERMISSIONS: tuple[str, ...] = (
    "manage_users",
    "manage_products",
    "manage_sales",
    "manage_invoices",
    "manage_expenses",
    "manage_cash_register",
    "manage_blog",
)

BLOG_EDITOR_ROLES: tuple[str, ...] = ("super_admin", "admin", "editor", "content_admin")
BLOG_DELETE_ROLES: tuple[str, ...] = ("super_admin", "admin")

DEFAULT_ROLE_PERMISSIONS: dict[str, set[str]] = {
    "super_admin": {"*"},
    "admin": set(PERMISSIONS),
    "cafe_owner": {
        "manage_products",
        "manage_sales",
        "manage_invoices",
        "manage_expenses",
        "manage_cash_register",
    },
    "staff": {
        "manage_sales",
    },
    "editor": {"manage_blog"},
    "content_admin": {"manage_blog"},
    "customer": set(),
}


def default_permissions(role: str) -> list[str]:
    normalized = (role or "").strip().lower()
    return sorted(DEFAULT_ROLE_PERMISSIONS.get(normalized, set()))


def has_permission(*, permissions: set[str] | list[str], permission: str) -> bool:
    granted = set(permissions or [])
    if "*" in granted:
        return True
    return permission in granted


def require_roles(*allowed_roles: str) -> Callable[[Principal], Principal]:
    normalized_allowed = {role.strip().lower() for role in allowed_roles if role.strip()}
    if not normalized_allowed:
        raise ValueError("At least one allowed role is required")

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in normalized_allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied",
            )
        return principal

    return dependency


def require_permission(*required: str) -> Callable[[Principal], Principal]:
    normalized_required = [p.strip().lower() for p in required if p.strip()]
    if not normalized_required:
        raise ValueError("Permission key is required")

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not all(
            has_permission(permissions=principal.permissions, permission=p)
            for p in normalized_required
        ):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return dependency
