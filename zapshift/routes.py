import re
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from zapshift.auth import ensure_same_email, verify_token
from zapshift.config import settings
from zapshift.database import get_db
from zapshift.errors import ValidationError
from zapshift.models import UserRole
from zapshift.reconciliation import PaymentReconciler
from zapshift.repository import Repository
from zapshift.schemas import CheckoutRequest, ParcelCreate, UserCreate
from zapshift.stripe_service import LineItem, StripeGateway, to_minor_units

router = APIRouter()

PARCEL_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def get_repository(db: Session = Depends(get_db)) -> Repository:
    return Repository(db)


def get_gateway() -> StripeGateway:
    return StripeGateway()


def parcel_filter(parcel_id: str) -> dict:
    if not PARCEL_ID_RE.match(parcel_id):
        raise ValidationError("Invalid parcel id")
    return {"id": parcel_id}


@router.post("/users")
def create_user(user: UserCreate, repo: Repository = Depends(get_repository)):
    if repo.find_one("users", {"email": user.email}):
        return {"message": "User Exists"}

    result = repo.insert_one("users", {
        "email": user.email,
        "name": user.name,
        "photo_url": user.photoURL,
        "role": UserRole.USER,
    })
    return result.to_dict()


@router.post("/parcels")
def create_parcel(parcel: ParcelCreate, repo: Repository = Depends(get_repository)):
    result = repo.insert_one("parcels", {
        "parcel_name": parcel.parcelName,
        "cost": parcel.cost,
        "sender_email": parcel.senderEmail,
    })
    return result.to_dict()


@router.get("/parcels")
def list_parcels(email: Optional[str] = None, repo: Repository = Depends(get_repository)):
    query = {"sender_email": email} if email else {}
    parcels = repo.find("parcels", query, sort=("created_at", -1))
    return [p.to_dict() for p in parcels]


@router.get("/parcels/{parcel_id}")
def get_parcel(parcel_id: str, repo: Repository = Depends(get_repository)):
    parcel = repo.find_one("parcels", parcel_filter(parcel_id))
    return parcel.to_dict() if parcel else None


@router.delete("/parcels/{parcel_id}")
def delete_parcel(parcel_id: str, repo: Repository = Depends(get_repository)):
    return repo.delete_one("parcels", parcel_filter(parcel_id)).to_dict()


@router.post("/create-checkout-session")
def create_checkout_session(request: CheckoutRequest, gateway: StripeGateway = Depends(get_gateway)):
    line_item = LineItem(name=request.parcelName, unit_amount=to_minor_units(request.cost))
    url = gateway.create_checkout_session(
        line_item,
        buyer_email=request.senderEmail,
        metadata={"parcelId": request.parcelId, "parcelName": request.parcelName},
        success_url=f"{settings.site_domain}/dashboard/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.site_domain}/dashboard/payment-cancelled",
    )
    return {"url": url}


@router.get("/payments")
def list_payments(
    email: Optional[str] = None,
    verified_email: str = Depends(verify_token),
    repo: Repository = Depends(get_repository),
):
    if email:
        ensure_same_email(email, verified_email)
        query = {"customer_email": email}
    else:
        user = repo.find_one("users", {"email": verified_email})
        is_admin = user is not None and user.role is UserRole.ADMIN
        query = {} if is_admin else {"customer_email": verified_email}

    payments = repo.find("payments", query, sort=("paid_at", -1))
    return [p.to_dict() for p in payments]


@router.patch("/payment-success")
def payment_success(
    session_id: str,
    repo: Repository = Depends(get_repository),
    gateway: StripeGateway = Depends(get_gateway),
):
    return PaymentReconciler(repo, gateway).reconcile(session_id)
