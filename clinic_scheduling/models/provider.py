"""Provider model definitions."""

from sqlalchemy import JSON, Boolean, Column, String

from clinic_scheduling.database import Base
from clinic_scheduling.models.ids import new_id


class Provider(Base):
    """A clinician whose time can be booked."""
    __tablename__ = "providers"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    # weekday name -> ["HH:MM - HH:MM", ...]
    availability = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
