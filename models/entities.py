from models import Base
from sqlalchemy import Column, Integer, Text


class Entity(Base):
    __tablename__ = "entities"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Natural key. Uniqueness is what makes select-or-create idempotent.
    value = Column(Text, unique=True)
