"""
Declarative base shared by every ORM model.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    # Models use plain ``Column`` attributes with ordinary annotations.
    __allow_unmapped__ = True
