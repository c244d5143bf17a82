"""Central role matrix: which roles may perform which actions on which resources.

Permission strings take the form ``resource:action``. Extend cautiously; never rename
codes silently since they are embedded in issued tokens and audit metadata.
"""
from __future__ import annotations
from typing import Dict, List, Optional, Tuple

SUPER_ADMIN = 'SUPER_ADMIN'
ADMIN = 'ADMIN'
MANAGER = 'MANAGER'
ACCOUNTANT = 'ACCOUNTANT'
OPERATOR = 'OPERATOR'
VIEWER = 'VIEWER'
ROLES = (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT, OPERATOR, VIEWER)
ADMIN_ROLES = (SUPER_ADMIN, ADMIN)

RESOURCES = {
    'DASHBOARD': 'dashboard',
    'USERS': 'users',
    'COMPANIES': 'companies',
    'CLIENTS': 'clients',
    'SUPPLIERS': 'suppliers',
    'SERVICES': 'services',
    'LOADING_ORDERS': 'loading_orders',
    'INVOICES': 'invoices',
    'REPORTS': 'reports',
    'SETTINGS': 'settings',
    'AUDIT_LOGS': 'audit_logs',
    'DOCUMENTS': 'documents',
    'PAYMENTS': 'payments',
    'NOTIFICATIONS': 'notifications',
}

ACTIONS = {
    'VIEW': 'view',
    'CREATE': 'create',
    'EDIT': 'edit',
    'DELETE': 'delete',
    'CANCEL': 'cancel',
    'EXPORT': 'export',
    'IMPORT': 'import',
    'ARCHIVE': 'archive',
    'APPROVE': 'approve',
    'SEND': 'send',
    'MARK_COMPLETED': 'mark_completed',
    'MARK_BILLED': 'mark_billed',
    'EDIT_COMPLETED': 'edit_completed',
    'DELETE_COMPLETED': 'delete_completed',
    'MANAGE': 'manage',
}

_ALL = ROLES
_STAFF = (SUPER_ADMIN, ADMIN, MANAGER)
_ADMINS = ADMIN_ROLES

PERMISSION_MATRIX: Dict[str, Dict[str, Tuple[str, ...]]] = {
    'dashboard': {
        'view': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR, VIEWER),
    },
    'users': {
        'view': _ADMINS,
        'create': _ADMINS,
        'edit': _ADMINS,
        'delete': (SUPER_ADMIN,),
        'manage': _ADMINS,
    },
    'companies': {
        'view': _STAFF,
        'create': _ADMINS,
        'edit': _ADMINS,
        'delete': (SUPER_ADMIN,),
        'manage': _ADMINS,
    },
    'clients': {
        'view': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR, VIEWER),
        'create': _STAFF,
        'edit': _STAFF,
        'delete': _ADMINS,
        'export': _STAFF,
        'import': _ADMINS,
    },
    'suppliers': {
        'view': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR, VIEWER),
        'create': _STAFF,
        'edit': _STAFF,
        'delete': _ADMINS,
        'export': _STAFF,
        'import': _ADMINS,
    },
    'services': {
        'view': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR, VIEWER),
        'create': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR),
        'edit': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR),
        'delete': _STAFF,
        'cancel': _STAFF,
        'mark_completed': _STAFF,
        'mark_billed': _STAFF,
        'edit_completed': _ADMINS,
        'delete_completed': _ADMINS,
        'export': _STAFF,
        'approve': _STAFF,
        'archive': _STAFF,
    },
    'loading_orders': {
        'view': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR, VIEWER),
        'create': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR),
        'edit': _STAFF,
        'delete': _ADMINS,
        'send': _STAFF,
        'export': _STAFF,
    },
    'invoices': {
        'view': (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT, VIEWER),
        'create': (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT),
        'edit': (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT),
        'delete': _ADMINS,
        'approve': _STAFF,
        'send': (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT),
        'export': (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT),
    },
    'reports': {
        'view': (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT, VIEWER),
        'create': _STAFF,
        'export': (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT),
    },
    'settings': {
        'view': _STAFF,
        'edit': _ADMINS,
        'manage': _ADMINS,
    },
    'audit_logs': {
        'view': _ADMINS,
        'export': _ADMINS,
    },
    'documents': {
        'view': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR, VIEWER),
        'create': (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR),
        'delete': _STAFF,
        'send': _STAFF,
    },
    'payments': {
        'view': (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT),
        'create': (SUPER_ADMIN, ADMIN, ACCOUNTANT),
        'edit': (SUPER_ADMIN, ADMIN, ACCOUNTANT),
        'delete': _ADMINS,
        'approve': _STAFF,
    },
    'notifications': {
        'view': _ALL,
        'manage': _ALL,
    },
}

# Order matters: the first matching prefix wins, so nested paths go first.
ROUTE_PERMISSIONS: List[Tuple[str, Tuple[str, ...]]] = [
    ('/settings/users', _ADMINS),
    ('/settings/company', _ADMINS),
    ('/dashboard', _ALL),
    ('/services', (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR, VIEWER)),
    ('/clients', (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR, VIEWER)),
    ('/suppliers', (SUPER_ADMIN, ADMIN, MANAGER, OPERATOR, VIEWER)),
    ('/invoices', (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT, VIEWER)),
    ('/reports', (SUPER_ADMIN, ADMIN, MANAGER, ACCOUNTANT, VIEWER)),
    ('/settings', _STAFF),
    ('/audit-logs', _ADMINS),
]

ROLE_DISPLAY_NAMES = {
    SUPER_ADMIN: 'Super Admin',
    ADMIN: 'Administrator',
    MANAGER: 'Manager',
    ACCOUNTANT: 'Accountant',
    OPERATOR: 'Operator',
    VIEWER: 'Viewer',
}

PERMISSION_DESCRIPTIONS = {
    'dashboard': 'Access to main dashboard and analytics',
    'users': 'Manage system users and their permissions',
    'companies': 'Manage company settings and information',
    'clients': 'Manage client accounts and information',
    'suppliers': 'Manage supplier accounts and information',
    'services': 'Manage transport and logistics services',
    'loading_orders': 'Create and manage loading orders',
    'invoices': 'Manage invoices and billing',
    'reports': 'View and generate reports',
    'settings': 'Access system settings',
    'audit_logs': 'View system audit logs',
    'documents': 'Manage documents and files',
    'payments': 'Process and manage payments',
    'notifications': 'View and manage notifications',
}


def permission_code(resource: str, action: str) -> str:
    return f"{resource}:{action}"


def has_permission(role: Optional[str], resource: str, action: str) -> bool:
    if not role:
        return False
    if role == SUPER_ADMIN:
        return True
    allowed = PERMISSION_MATRIX.get(resource, {}).get(action)
    if not allowed:
        return False
    return role in allowed


def can_access_route(role: Optional[str], path: str) -> bool:
    if not role:
        return False
    if role == SUPER_ADMIN:
        return True
    for prefix, allowed in ROUTE_PERMISSIONS:
        if path.startswith(prefix):
            return role in allowed
    return False


def role_permissions(role: Optional[str]) -> List[str]:
    """All ``resource:action`` codes granted to role, in matrix order."""
    codes: List[str] = []
    for resource, actions in PERMISSION_MATRIX.items():
        for action in actions:
            if has_permission(role, resource, action):
                codes.append(permission_code(resource, action))
    return codes


def accessible_resources(role: Optional[str]) -> List[str]:
    seen: List[str] = []
    for code in role_permissions(role):
        resource = code.split(':', 1)[0]
        if resource not in seen:
            seen.append(resource)
    return seen


def role_display_name(role: str) -> str:
    return ROLE_DISPLAY_NAMES.get(role, role)


def build_matrix_table() -> Dict[str, Dict[str, List[str]]]:
    """JSON-friendly copy of the matrix (tuples become sorted lists)."""
    return {
        resource: {action: list(roles) for action, roles in actions.items()}
        for resource, actions in PERMISSION_MATRIX.items()
    }
