from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, Date, Time, Text, ForeignKey,
    Numeric, Float, JSON, CheckConstraint, event
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from src.database import Base

# SQLite only autoincrements INTEGER primary keys
IdType = BigInteger().with_variant(Integer, "sqlite")

# ================================
# Staff Users
# ================================
class StaffUser(Base):
    __tablename__ = "staff_users"

    id = Column(IdType, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="REGISTRATION_STAFF", index=True)
    is_active = Column(Boolean, default=True, index=True)
    last_login = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    activity_logs = relationship("ActivityLog", back_populates="staff_user")

# ================================
# Locations, Routes & Pricing Reference Data
# ================================
class Location(Base):
    __tablename__ = "locations"

    id = Column(IdType, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    code = Column(String(20), unique=True, nullable=False)
    address = Column(Text)
    location_url = Column(String(500))
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    routes_from = relationship("TransportRoute", foreign_keys="TransportRoute.from_location_id", back_populates="from_location")
    routes_to = relationship("TransportRoute", foreign_keys="TransportRoute.to_location_id", back_populates="to_location")

class ServiceConfig(Base):
    __tablename__ = "service_configs"

    id = Column(String(20), primary_key=True, default="global")
    registration_price = Column(Numeric(12, 2), nullable=False, default=0)
    exam_change_fee = Column(Numeric(12, 2), nullable=False, default=0)
    max_free_changes = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    updated_by = Column(IdType, ForeignKey("staff_users.id"))

class TransportRoute(Base):
    __tablename__ = "transport_routes"

    id = Column(IdType, primary_key=True, index=True)
    from_location_id = Column(IdType, ForeignKey("locations.id"), nullable=False, index=True)
    to_location_id = Column(IdType, ForeignKey("locations.id"), nullable=False, index=True)
    one_way_price = Column(Numeric(12, 2), nullable=False)
    round_trip_price = Column(Numeric(12, 2), nullable=False)
    departure_time = Column(Time)
    arrival_time = Column(Time)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    from_location = relationship("Location", foreign_keys=[from_location_id], back_populates="routes_from")
    to_location = relationship("Location", foreign_keys=[to_location_id], back_populates="routes_to")

    @property
    def from_location_name(self):
        return self.from_location.name if self.from_location else None

    @property
    def to_location_name(self):
        return self.to_location.name if self.to_location else None

class CancellationPolicy(Base):
    __tablename__ = "cancellation_policies"

    id = Column(IdType, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(30), nullable=False, index=True)
    hours_trigger = Column(Float)
    condition = Column(String(20))
    fee_amount = Column(Numeric(12, 2), nullable=False, default=0)
    description = Column(Text)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())

# ================================
# Applicants
# ================================
class Applicant(Base):
    __tablename__ = "applicants"
    __table_args__ = (
        CheckConstraint("amount_paid >= 0", name="ck_applicant_amount_paid"),
    )

    id = Column(IdType, primary_key=True, index=True)
    applicant_code = Column(String(6), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    phone = Column(String(30), nullable=False)
    whatsapp_number = Column(String(30))
    passport_number = Column(String(50))
    national_id = Column(String(50))
    profession = Column(String(100))
    notes = Column(Text)

    location_id = Column(IdType, ForeignKey("locations.id"), index=True)
    transport_from_id = Column(IdType, ForeignKey("locations.id"))
    transport_selection = Column(String(20), nullable=False, default="NONE")
    travel_date = Column(Date)

    exam_date = Column(Date, index=True)
    exam_time = Column(String(5))
    exam_location = Column(String(255))
    status = Column(String(30), nullable=False, default="NEW_REGISTRATION", index=True)

    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    remaining_balance = Column(Numeric(12, 2), nullable=False, default=0)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, server_default=func.now(), index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    location = relationship("Location", foreign_keys=[location_id])
    transport_from = relationship("Location", foreign_keys=[transport_from_id])
    tickets = relationship("Ticket", back_populates="applicant", order_by="Ticket.id")
    vouchers = relationship("Voucher", back_populates="applicant", foreign_keys="Voucher.applicant_id")
    transactions = relationship("Transaction", back_populates="applicant")
    activity_logs = relationship("ActivityLog", back_populates="applicant")

# ================================
# Vouchers
# ================================
class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (
        CheckConstraint("usage_count <= max_uses", name="ck_voucher_usage_cap"),
        CheckConstraint(
            "(kind = 'DISCOUNT' AND discount_percent IS NOT NULL) OR (kind = 'CREDIT' AND balance IS NOT NULL)",
            name="ck_voucher_kind_value"
        ),
    )

    id = Column(IdType, primary_key=True, index=True)
    kind = Column(String(20), nullable=False)
    category = Column(String(20), nullable=False, index=True)
    purpose = Column(String(20), nullable=False, index=True)
    code = Column(String(50), unique=True, index=True)
    discount_percent = Column(Numeric(5, 2))
    balance = Column(Numeric(12, 2))
    max_uses = Column(Integer, nullable=False, default=1)
    usage_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime)
    is_used = Column(Boolean, nullable=False, default=False, index=True)
    used_at = Column(DateTime)
    applicant_id = Column(IdType, ForeignKey("applicants.id"), index=True)
    location_id = Column(IdType, ForeignKey("locations.id"))
    source_ticket_id = Column(IdType, ForeignKey("tickets.id"))
    notes = Column(Text)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    applicant = relationship("Applicant", back_populates="vouchers", foreign_keys=[applicant_id])
    source_ticket = relationship("Ticket", foreign_keys=[source_ticket_id])

# ================================
# Financial Transactions (append-only)
# ================================
class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(IdType, primary_key=True, index=True)
    type = Column(String(20), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(String(50))
    description = Column(String(255))
    notes = Column(Text)
    applicant_id = Column(IdType, ForeignKey("applicants.id"), index=True)
    location_id = Column(IdType, ForeignKey("locations.id"), index=True)
    voucher_id = Column(IdType, ForeignKey("vouchers.id"))
    created_by = Column(IdType, ForeignKey("staff_users.id"))
    date = Column(DateTime, server_default=func.now(), index=True)

    # Relationships
    applicant = relationship("Applicant", back_populates="transactions")
    location = relationship("Location")

@event.listens_for(Transaction, "before_update")
def _reject_transaction_update(mapper, connection, target):
    raise ValueError("Transactions are immutable once recorded")

# ================================
# Tickets
# ================================
class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(IdType, primary_key=True, index=True)
    ticket_number = Column(String(20), unique=True, nullable=False, index=True)
    applicant_id = Column(IdType, ForeignKey("applicants.id"), nullable=False, index=True)
    from_location_id = Column(IdType, ForeignKey("locations.id"), nullable=False)
    to_location_id = Column(IdType, ForeignKey("locations.id"), nullable=False)
    trip_type = Column(String(20), nullable=False, default="ONE_WAY")
    departure_at = Column(DateTime, nullable=False, index=True)
    bus_number = Column(String(30))
    seat_number = Column(String(10))
    transport_company = Column(String(255))
    status = Column(String(20), nullable=False, default="ISSUED", index=True)
    booked_fare = Column(Numeric(12, 2))
    cancelled_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    applicant = relationship("Applicant", back_populates="tickets")
    from_location = relationship("Location", foreign_keys=[from_location_id])
    to_location = relationship("Location", foreign_keys=[to_location_id])

# ================================
# Audit Trail
# ================================
class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(IdType, primary_key=True, index=True)
    applicant_id = Column(IdType, ForeignKey("applicants.id"), index=True)
    staff_user_id = Column(IdType, ForeignKey("staff_users.id"), index=True)
    action = Column(String(50), nullable=False, index=True)
    details = Column(Text)
    data = Column(JSON, default=dict)
    timestamp = Column(DateTime, server_default=func.now(), index=True)

    # Relationships
    applicant = relationship("Applicant", back_populates="activity_logs")
    staff_user = relationship("StaffUser", back_populates="activity_logs")
