# worksmart/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date, Float,
    Enum as SQLAlchemyEnum, Index,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum


class ClientStatus(str, enum.Enum):
    active = "Active"
    iit = "IIT"  # interruption in treatment
    defaulter = "Defaulter"
    dead = "Dead"
    transfer_out = "Transfer Out"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Facility(Base):
    """A named site that exclusively owns its client collection."""
    __tablename__ = "facilities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    clients = relationship(
        "Client",
        back_populates="facility",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Client(Base):
    """A person enrolled in the treatment program at one facility."""
    __tablename__ = "clients"
    __table_args__ = (
        Index('idx_clients_facility_due', 'facility_id', 'next_pharmacy_due_date'),
        Index('idx_clients_facility_status', 'facility_id', 'status'),
        Index('idx_clients_art_number', 'art_number'),
    )

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False)

    # Identifying fields, free text
    art_number = Column(String(50), nullable=True)
    name = Column(String(200), nullable=False)
    age = Column(Integer, nullable=True)
    address = Column(Text, nullable=True)
    contact = Column(String(100), nullable=True)

    # Observed events
    last_drug_pickup = Column(Date, nullable=True)
    last_vl_collection = Column(Date, nullable=True)

    # Derived from the events above (or an explicit override)
    next_pharmacy_due_date = Column(Date, nullable=True)
    next_vl_due_date = Column(Date, nullable=True)

    status = Column(
        SQLAlchemyEnum(ClientStatus, name='client_status', values_callable=_enum_values),
        default=ClientStatus.active,
        nullable=False,
    )
    status_details = Column(Text, nullable=True)
    status_date = Column(DateTime(timezone=True), nullable=True)

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Compare-and-swap guard: concurrent writers on the same row lose with StaleDataError
    version_id = Column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    facility = relationship("Facility", back_populates="clients")
    tracking_history = relationship(
        "TrackingEntry",
        back_populates="client",
        order_by="TrackingEntry.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @hybrid_property
    def is_active(self):
        return self.status == ClientStatus.active

    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {"latitude": self.latitude, "longitude": self.longitude}


class TrackingEntry(Base):
    """One outreach attempt. Rows are only ever inserted."""
    __tablename__ = "tracking_entries"
    __table_args__ = (
        Index('idx_tracking_client_recorded', 'client_id', 'recorded_at'),
    )

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    intervention = Column(Text, nullable=False)
    finding = Column(Text, nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)
    tracker = Column(String(255), nullable=True)

    client = relationship("Client", back_populates="tracking_history")
