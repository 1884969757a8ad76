"""
Payment reconciliation.

Reads the authoritative state of a Stripe checkout session and applies
it to the local records exactly once. The payment intent id is the
idempotency key: ``find_one`` is the fast path, the unique index on
``payments.transaction_id`` is the real guard when two reconciliations
race. The payment insert and the parcel update share one transaction.
"""
import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from zapshift.errors import UpstreamGatewayError, ValidationError
from zapshift.models import ParcelPaymentStatus, SessionPaymentStatus, utcnow
from zapshift.repository import Repository
from zapshift.stripe_service import StripeGateway
from zapshift.tracking import generate_tracking_id

logger = logging.getLogger("zapshift")

# fresh tracking ids to try when one collides with another process's
TRACKING_ID_ATTEMPTS = 2


class PaymentReconciler:
    def __init__(self, repository: Repository, gateway: StripeGateway, tracking_ids=generate_tracking_id):
        self.repository = repository
        self.gateway = gateway
        self.tracking_ids = tracking_ids

    def reconcile(self, session_id: str) -> dict:
        checkout = self.gateway.retrieve_session(session_id)
        transaction_id = checkout.payment_intent_id

        if transaction_id and self.repository.find_one("payments", {"transaction_id": transaction_id}):
            logger.info(f"Payment {transaction_id} already recorded (session {session_id})")
            return self._already_recorded(transaction_id)

        if checkout.payment_status is not SessionPaymentStatus.PAID:
            logger.info(f"Session {session_id} not paid ({checkout.payment_status.value}); nothing recorded")
            return {"success": False}

        if not transaction_id:
            raise UpstreamGatewayError("Paid session has no payment intent")
        parcel_id = checkout.metadata.get("parcelId")
        if not parcel_id:
            raise ValidationError("Checkout session is missing parcelId metadata")

        result = self._apply(checkout, transaction_id, parcel_id)
        if result is None:
            return self._already_recorded(transaction_id)
        return result

    def _apply(self, checkout, transaction_id, parcel_id):
        """Write payment and parcel in one transaction; None if the payment is already recorded."""
        db = self.repository.db

        for attempt in range(1, TRACKING_ID_ATTEMPTS + 1):
            tracking_id = self.tracking_ids()
            try:
                # payment row first: the insert is what claims the transaction id
                payment_result = self.repository.insert_one("payments", {
                    "amount": Decimal(checkout.amount_total) / 100,
                    "currency": checkout.currency,
                    "customer_email": checkout.customer_email,
                    "parcel_id": parcel_id,
                    "parcel_name": checkout.metadata.get("parcelName"),
                    "transaction_id": transaction_id,
                    "payment_status": checkout.payment_status.value,
                    "paid_at": utcnow(),
                })
                parcel_result = self.repository.update_one(
                    "parcels",
                    {"id": parcel_id, "payment_status": ParcelPaymentStatus.UNPAID},
                    {"payment_status": ParcelPaymentStatus.PAID, "tracking_id": tracking_id},
                )
                db.commit()
                break
            except IntegrityError:
                db.rollback()
                if self.repository.find_one("payments", {"transaction_id": transaction_id}) is not None:
                    logger.info(f"Payment {transaction_id} recorded concurrently; rolled back")
                    return None
                if attempt == TRACKING_ID_ATTEMPTS:
                    raise
                logger.warning(f"Tracking id {tracking_id} already taken; retrying payment {transaction_id}")
            except Exception:
                db.rollback()
                raise

        if parcel_result.modified_count:
            logger.info(f"Payment {transaction_id} recorded; parcel {parcel_id} paid, tracking {tracking_id}")
        else:
            parcel = self.repository.find_one("parcels", {"id": parcel_id})
            tracking_id = parcel.tracking_id if parcel else None
            logger.warning(
                f"Payment {transaction_id} recorded but parcel {parcel_id} "
                f"{'was already paid' if parcel else 'does not exist'}; parcel left unchanged"
            )

        return {
            "success": True,
            "modifyParcel": parcel_result.to_dict(),
            "trackingId": tracking_id,
            "transactionId": transaction_id,
            "paymentInfo": payment_result.to_dict(),
        }

    def _already_recorded(self, transaction_id) -> dict:
        # TODO: return the parcel's stored tracking id once clients stop relying on a fresh one
        return {
            "message": "already exists",
            "transactionId": transaction_id,
            "trackingId": self.tracking_ids(),
        }
