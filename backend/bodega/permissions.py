# Overview: Capability codes and per-role defaults.
# Each permission is defined as: (code, label, category)

USERS_PERMISSIONS = [
    ("manage_users", "Manage users", "users"),
    ("view_users", "View users", "users"),
]

PRODUCTS_PERMISSIONS = [
    ("create_products", "Create products", "products"),
    ("edit_products", "Edit products", "products"),
    ("delete_products", "Delete products", "products"),
    ("view_products", "View products", "products"),
]

INVENTORY_PERMISSIONS = [
    ("create_inventory", "Record stock entries and movements", "inventory"),
    ("edit_inventory", "Edit inventory", "inventory"),
    ("view_inventory", "View inventory", "inventory"),
]

WAREHOUSES_PERMISSIONS = [
    ("create_warehouses", "Create warehouses and cost centers", "warehouses"),
    ("edit_warehouses", "Edit warehouses", "warehouses"),
    ("delete_warehouses", "Delete warehouses", "warehouses"),
    ("view_warehouses", "View warehouses", "warehouses"),
]

TRANSFER_ORDERS_PERMISSIONS = [
    ("create_transfer_orders", "Create transfer orders", "transfer_orders"),
    ("approve_transfer_orders", "Approve or reject transfer orders", "transfer_orders"),
    ("view_transfer_orders", "View transfer orders", "transfer_orders"),
]

REPORTS_PERMISSIONS = [
    ("view_dashboard", "View dashboard", "reports"),
    ("view_reports", "View reports", "reports"),
]

PERMISSION_DEFINITIONS = (
    USERS_PERMISSIONS
    + PRODUCTS_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + WAREHOUSES_PERMISSIONS
    + TRANSFER_ORDERS_PERMISSIONS
    + REPORTS_PERMISSIONS
)

ALL_PERMISSIONS = frozenset(code for code, _, _ in PERMISSION_DEFINITIONS)


# admin is not listed: it implicitly holds every permission
DEFAULT_ROLE_PERMISSIONS = {
    "project_manager": [
        "view_products",
        "view_inventory",
        "view_warehouses",
        "create_transfer_orders",
        "approve_transfer_orders",
        "view_transfer_orders",
        "view_dashboard",
        "view_reports",
    ],
    "warehouse_operator": [
        "view_products",
        "create_products",
        "edit_products",
        "view_inventory",
        "create_inventory",
        "view_warehouses",
        "create_transfer_orders",
        "view_transfer_orders",
        "view_dashboard",
    ],
    "user": [
        "view_products",
        "view_inventory",
        "view_warehouses",
        "view_dashboard",
    ],
}


def get_effective_permissions(user) -> set[str]:
    """Role defaults plus explicit grants. Admins get everything."""
    if user is None or not user.is_active:
        return set()
    if user.role == "admin":
        return set(ALL_PERMISSIONS)
    granted = set(DEFAULT_ROLE_PERMISSIONS.get(user.role, []))
    granted.update(p for p in (user.permissions or []) if p in ALL_PERMISSIONS)
    return granted


def has_permission(user, permission_code: str) -> bool:
    return permission_code in get_effective_permissions(user)
