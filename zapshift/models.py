import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, Numeric, String
from zapshift.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_id():
    return uuid.uuid4().hex


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class ParcelPaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class SessionPaymentStatus(str, enum.Enum):
    PAID = "paid"
    UNPAID = "unpaid"
    NO_PAYMENT_REQUIRED = "no_payment_required"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"

    email = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    role = Column(Enum(UserRole, values_callable=_values), nullable=False, default=UserRole.USER)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "email": self.email,
            "name": self.name,
            "photoURL": self.photo_url,
            "role": self.role.value,
            "createdAt": self.created_at.isoformat(),
        }


class Parcel(Base):
    __tablename__ = "parcels"

    id = Column(String(32), primary_key=True, default=new_id)
    sender_email = Column(String, index=True, nullable=False)
    cost = Column(Numeric(12, 2), nullable=False)
    parcel_name = Column(String, nullable=False)
    payment_status = Column(
        Enum(ParcelPaymentStatus, values_callable=_values),
        nullable=False,
        default=ParcelPaymentStatus.UNPAID,
    )
    tracking_id = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "senderEmail": self.sender_email,
            "cost": float(self.cost),
            "parcelName": self.parcel_name,
            "paymentStatus": self.payment_status.value,
            "trackingId": self.tracking_id,
            "createdAt": self.created_at.isoformat(),
        }


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(32), primary_key=True, default=new_id)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False)
    customer_email = Column(String, index=True)
    parcel_id = Column(String(32), index=True, nullable=False)    # parcels.id; survives parcel deletion
    parcel_name = Column(String)
    transaction_id = Column(String, unique=True, index=True, nullable=False)   # Stripe PaymentIntent ID
    payment_status = Column(String, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "amount": float(self.amount),
            "currency": self.currency,
            "customerEmail": self.customer_email,
            "parcelId": self.parcel_id,
            "parcelName": self.parcel_name,
            "transactionId": self.transaction_id,
            "paymentStatus": self.payment_status,
            "paidAt": self.paid_at.isoformat(),
        }
