# Overview: Column type helpers shared by the model modules.

from __future__ import annotations

from enum import Enum

from ..extensions import db


def enum_column_type(enum_cls: type[Enum], length: int = 32):
    """
    Store a str-valued Enum by its value (the wire string), not its member name.

    Loaded rows come back as enum members, so status comparisons in services
    are against closed variants rather than loose strings.
    """
    return db.Enum(
        enum_cls,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
        length=length,
    )


def enum_value(member: Enum | None) -> str | None:
    return member.value if member is not None else None
