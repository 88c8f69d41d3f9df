"""Declarative base for studycore tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
