import pytest
import stripe
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from zapshift.main import app as fastapi_app
from zapshift.config import settings
from zapshift.database import Base, get_db
from zapshift.models import Payment, User, UserRole

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

JWT_SECRET = "test-secret"


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def token_for(email):
    return jwt.encode({"email": email}, JWT_SECRET, algorithm="HS256")


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "jwt_secret", JWT_SECRET)
    monkeypatch.setattr(settings, "site_domain", "https://zapshift.test")
    fastapi_app.dependency_overrides[get_db] = override_get_db
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


def add_payment(**fields):
    db = TestingSessionLocal()
    db.add(Payment(amount=50, currency="usd", parcel_id="a" * 32,
                   parcel_name="Box", payment_status="paid", **fields))
    db.commit()
    db.close()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "ZapShift server running"


def test_create_user_then_duplicate(client):
    response = client.post("/users", json={"email": "s@x.com", "name": "Sam"})
    assert response.status_code == 200
    assert response.json()["insertedId"] == "s@x.com"

    response = client.post("/users", json={"email": "s@x.com"})
    assert response.json() == {"message": "User Exists"}

    db = TestingSessionLocal()
    user = db.get(User, "s@x.com")
    assert user.role is UserRole.USER
    assert user.created_at is not None
    db.close()


def test_parcels_listed_newest_first_and_filtered(client):
    first = client.post("/parcels", json={"parcelName": "Box", "cost": 50, "senderEmail": "s@x.com"}).json()
    second = client.post("/parcels", json={"parcelName": "Crate", "cost": 12.5, "senderEmail": "s@x.com"}).json()
    client.post("/parcels", json={"parcelName": "Bag", "cost": 5, "senderEmail": "o@x.com"})

    response = client.get("/parcels", params={"email": "s@x.com"})
    assert response.status_code == 200
    ids = [p["id"] for p in response.json()]
    assert ids == [second["insertedId"], first["insertedId"]]
    assert response.json()[0]["paymentStatus"] == "unpaid"
    assert response.json()[0]["trackingId"] is None

    assert len(client.get("/parcels").json()) == 3


def test_get_and_delete_parcel(client):
    parcel_id = client.post(
        "/parcels", json={"parcelName": "Box", "cost": 50, "senderEmail": "s@x.com"}).json()["insertedId"]

    response = client.get(f"/parcels/{parcel_id}")
    assert response.json()["parcelName"] == "Box"
    assert response.json()["cost"] == 50

    assert client.delete(f"/parcels/{parcel_id}").json() == {"deletedCount": 1}
    assert client.get(f"/parcels/{parcel_id}").json() is None
    assert client.delete(f"/parcels/{parcel_id}").json() == {"deletedCount": 0}


def test_parcel_cost_with_fractional_cents_is_rejected(client):
    response = client.post("/parcels", json={"parcelName": "Box", "cost": 19.999, "senderEmail": "s@x.com"})

    assert response.status_code == 422
    assert client.get("/parcels").json() == []


def test_malformed_parcel_id(client):
    assert client.get("/parcels/not-an-id").status_code == 400
    assert client.delete("/parcels/not-an-id").status_code == 400


def test_create_checkout_session_converts_cost(client, mocker):
    create = mocker.patch("stripe.checkout.Session.create",
                          return_value=stripe.checkout.Session.construct_from(
                              {"id": "cs_1", "object": "checkout.session",
                               "url": "https://checkout.stripe.com/c/pay/cs_1"}, "sk_test"))

    response = client.post("/create-checkout-session", json={
        "cost": 19.99, "parcelName": "Box", "senderEmail": "s@x.com", "parcelId": "a" * 32,
    })

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.com/c/pay/cs_1"}
    kwargs = create.call_args.kwargs
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 1999
    assert kwargs["line_items"][0]["quantity"] == 1
    assert kwargs["customer_email"] == "s@x.com"
    assert kwargs["metadata"] == {"parcelId": "a" * 32, "parcelName": "Box"}
    assert kwargs["success_url"] == \
        "https://zapshift.test/dashboard/payment-success?session_id={CHECKOUT_SESSION_ID}"
    assert kwargs["cancel_url"] == "https://zapshift.test/dashboard/payment-cancelled"


def test_create_checkout_session_rejects_fractional_cents(client, mocker):
    create = mocker.patch("stripe.checkout.Session.create")

    response = client.post("/create-checkout-session", json={
        "cost": 19.999, "parcelName": "Box", "senderEmail": "s@x.com", "parcelId": "a" * 32,
    })

    assert response.status_code == 400
    create.assert_not_called()


def test_create_checkout_session_gateway_error(client, mocker):
    mocker.patch("stripe.checkout.Session.create",
                 side_effect=stripe.error.APIConnectionError("network down"))

    response = client.post("/create-checkout-session", json={
        "cost": 50, "parcelName": "Box", "senderEmail": "s@x.com", "parcelId": "a" * 32,
    })

    assert response.status_code == 502
    assert response.json()["detail"] == "Payment provider unavailable"


def test_payments_requires_token(client):
    add_payment(customer_email="a@x.com", transaction_id="pi_a")

    response = client.get("/payments", params={"email": "a@x.com"})
    assert response.status_code == 401

    response = client.get("/payments", params={"email": "a@x.com"},
                          headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert "pi_a" not in response.text


def test_payments_forbidden_for_other_email(client):
    add_payment(customer_email="a@x.com", transaction_id="pi_a")

    response = client.get("/payments", params={"email": "a@x.com"},
                          headers={"Authorization": f"Bearer {token_for('b@x.com')}"})

    assert response.status_code == 403
    assert "pi_a" not in response.text


def test_payments_own_history(client):
    add_payment(customer_email="a@x.com", transaction_id="pi_a")
    add_payment(customer_email="b@x.com", transaction_id="pi_b")
    headers = {"Authorization": f"Bearer {token_for('a@x.com')}"}

    response = client.get("/payments", params={"email": "a@x.com"}, headers=headers)
    assert response.status_code == 200
    assert [p["transactionId"] for p in response.json()] == ["pi_a"]

    # no email: non-admins only ever see their own
    response = client.get("/payments", headers=headers)
    assert [p["transactionId"] for p in response.json()] == ["pi_a"]


def test_payments_admin_sees_all(client):
    db = TestingSessionLocal()
    db.add(User(email="admin@x.com", role=UserRole.ADMIN))
    db.commit()
    db.close()
    add_payment(customer_email="a@x.com", transaction_id="pi_a")
    add_payment(customer_email="b@x.com", transaction_id="pi_b")

    response = client.get("/payments", headers={"Authorization": f"Bearer {token_for('admin@x.com')}"})

    assert response.status_code == 200
    assert {p["transactionId"] for p in response.json()} == {"pi_a", "pi_b"}


def test_stripe_webhook_invalid_signature(client, mocker):
    mocker.patch("stripe.Webhook.construct_event",
                 side_effect=stripe.error.SignatureVerificationError("Invalid", "sig"))

    response = client.post(
        "/webhook",
        headers={"stripe-signature": "invalid_sig"}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"
