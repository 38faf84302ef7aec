from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z
from .types import enum_column_type, enum_value


class Role(str, Enum):
    """Closed set of actor roles. Values match the stored user role strings."""
    SUPER_ADMIN = "Super Admin"
    ADMIN_HOLDING = "Admin Holding"
    ADMIN_UNIT = "Admin Unit"
    AUDITOR = "Auditor"
    USER = "User"


class Unit(db.Model):
    """
    Organizational unit that owns assets and has its own staff/admin.

    Holding-level users have no unit; everyone else belongs to exactly one.
    """
    __tablename__ = "units"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code for lookups

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Unit id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Actor issuing workflow commands.

    Identity and role are resolved by the transport layer; the engine only
    reads role and unit_id for approval checks.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    role = db.Column(enum_column_type(Role), nullable=False, default=Role.USER, index=True)

    # Nullable for holding-level actors (Super Admin / Admin Holding / Auditor)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    unit = db.relationship("Unit", backref=db.backref("users", lazy=True))

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={enum_value(self.role)!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "role": enum_value(self.role),
            "unit_id": self.unit_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
