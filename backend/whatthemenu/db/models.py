from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, func, text

from .core import Base


class DishRecordRow(Base):
    __tablename__ = "dishes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    display_language = Column("language", String(8), nullable=False, index=True)
    menu_language = Column(String(8), nullable=False, default="en", server_default=text("'en'"))
    explanation = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False, default=list, server_default=text("'[]'"))
    allergens = Column(JSON, nullable=False, default=list, server_default=text("'[]'"))
    cuisine = Column(String(128), nullable=True)
    restaurant_id = Column(Integer, nullable=True, index=True)
    restaurant_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_dishes_language_created", "language", "created_at"),)


class RestaurantRow(Base):
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    cuisine = Column(String(128), nullable=True)
    location = Column(JSON, nullable=True)
    total_dishes_scanned = Column(Integer, nullable=False, default=0, server_default=text("0"))
    total_explanations = Column(Integer, nullable=False, default=0, server_default=text("0"))
    first_scanned_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_scanned_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
