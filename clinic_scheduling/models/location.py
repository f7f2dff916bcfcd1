"""Location model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String

from clinic_scheduling.database import Base
from clinic_scheduling.models.ids import new_id


class Location(Base):
    """A site where appointments take place."""
    __tablename__ = "locations"
    __table_args__ = (CheckConstraint("capacity >= 1", name="ck_locations_capacity_positive"),)

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    capacity = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
