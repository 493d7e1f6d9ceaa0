"""Admin endpoints for the manual Stripe platform keys."""

from _helpers import ADMIN_TOKEN
import pytest

from bookpay.models import AppConfig

KEYS_URL = "/api/apps/stripe/keys"


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}


def _keys(**overrides):
    keys = {
        "client_secret": "sk_test_1234567890abcdef",
        "public_key": "pk_test_1234567890abcdef",
        "webhook_secret": "whsec_1234567890abcdef",
        "payment_fee_percentage": 0.05,
        "payment_fee_fixed": 25,
    }
    keys.update(overrides)
    return keys


def test_requires_admin_token(client):
    assert client.get(KEYS_URL).status_code == 401
    assert client.put(KEYS_URL, json=_keys(), headers={"X-Admin-Token": "wrong"}).status_code == 401


def test_get_before_configuration_is_not_found(client, admin_headers):
    response = client.get(KEYS_URL, headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "APP_KEYS_NOT_FOUND"


def test_save_keys_returns_masked_secrets(client, admin_headers, db):
    response = client.put(KEYS_URL, json=_keys(), headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["enabled"] is True
    assert body["client_secret"] == "sk_...cdef"
    assert body["webhook_secret"] == "whs...cdef"
    assert body["public_key"] == "pk_test_1234567890abcdef"
    assert body["payment_fee_fixed"] == 25

    stored = db.query(AppConfig).one()
    assert stored.keys["client_secret"] == "sk_test_1234567890abcdef"


def test_save_keys_twice_updates_in_place(client, admin_headers, db):
    client.put(KEYS_URL, json=_keys(), headers=admin_headers)
    client.put(KEYS_URL, json=_keys(payment_fee_fixed=50), headers=admin_headers)

    response = client.get(KEYS_URL, headers=admin_headers)

    assert response.json()["payment_fee_fixed"] == 50
    assert db.query(AppConfig).count() == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"client_secret": "pk_live_wrong"},
        {"public_key": "sk_test_wrong"},
        {"webhook_secret": "secret"},
        {"client_id": "acct_123"},
        {"payment_fee_percentage": 1.5},
        {"payment_fee_fixed": -1},
    ],
)
def test_invalid_keys_are_rejected(client, admin_headers, overrides):
    response = client.put(KEYS_URL, json=_keys(**overrides), headers=admin_headers)

    assert response.status_code == 422


def test_disable_keys(client, admin_headers, db):
    client.put(KEYS_URL, json=_keys(), headers=admin_headers)

    response = client.delete(KEYS_URL, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["enabled"] is False
    db.expire_all()
    assert db.query(AppConfig).one().enabled is False


def test_disable_before_configuration_is_not_found(client, admin_headers):
    response = client.delete(KEYS_URL, headers=admin_headers)

    assert response.status_code == 404
