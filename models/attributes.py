from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Index, Integer, Text

from models import Base


class Attribute(Base):
    """One sparse fact for an entity.

    Keys are deliberately not unique per entity: the store keeps every row and
    the pivot step decides which one wins (the later one by row id).
    """

    __tablename__ = "attributes"
    __table_args__ = (
        Index("ix_attributes_entity_id_id", "entity_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(Text)
    value = Column(Text)
    entity_id = Column(
        Integer,
        ForeignKey("entities.id", ondelete="CASCADE", onupdate="CASCADE"),
    )
