# Overview: Role groups used by the transition table.

from ..models.organization import Role


# Holding-level administrators act across every unit
HOLDING_ADMINS = frozenset({Role.SUPER_ADMIN, Role.ADMIN_HOLDING})

# Anyone who administers assets, at holding or unit level
ASSET_ADMINS = HOLDING_ADMINS | {Role.ADMIN_UNIT}

# Roles allowed to run inventory audits
AUDITORS = HOLDING_ADMINS | {Role.AUDITOR, Role.ADMIN_UNIT}

ALL_ROLES = frozenset(Role)

# Roles whose authority is limited to their own unit
UNIT_SCOPED_ROLES = frozenset({Role.ADMIN_UNIT, Role.USER})
