"""
Pytest fixtures for PrintShop backend tests.

Provides the test app and database, customer/admin accounts with bearer
headers, a seeded catalog, and a fake upstream gateway (slicer, shipping
rates, payments) built on httpx.MockTransport.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from printshop import create_app
from printshop.extensions import db
from printshop.services import address_service, http_client, pricing_service, session_service
from printshop.services.auth_service import create_user
from printshop.models import FilamentType, FilamentColor

PASSWORD = "Password123"
MIDTRANS_SERVER_KEY = "SB-Mid-server-test"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MIDTRANS_SERVER_KEY': MIDTRANS_SERVER_KEY,
        'MIDTRANS_IS_PRODUCTION': False,
        'RAJAONGKIR_API_KEY': 'test-rajaongkir-key',
        'RAJAONGKIR_BASE_URL': 'https://rajaongkir.test/api/v1',
        'RAJAONGKIR_ORIGIN_ID': 73633,
        'CRON_SECRET': 'cron-secret',
        'PUBLIC_BASE_URL': 'https://shop.test',
        'FINALIZE_FILES_INLINE': True,
        'FINALIZE_MAX_ATTEMPTS': 3,
        'FINALIZE_BACKOFF_SECONDS': 30,
        'MAX_UPLOAD_BYTES': 1024 * 1024,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# ACCOUNTS
# =============================================================================


@pytest.fixture(scope='function')
def customer(db_session):
    return create_user("customer@example.com", "Ayu Customer", PASSWORD, phone_number="081234567890")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return create_user("other@example.com", "Budi Other", PASSWORD)


@pytest.fixture(scope='function')
def admin(db_session):
    return create_user("admin@example.com", "Admin", PASSWORD, role="admin")


def get_auth_token(user):
    """Open a session for user and return its plaintext bearer token."""
    _, token = session_service.create_session(user.id)
    return token


def auth_headers(user):
    return {"Authorization": f"Bearer {get_auth_token(user)}"}


@pytest.fixture(scope='function')
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture(scope='function')
def other_headers(other_customer):
    return auth_headers(other_customer)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


# =============================================================================
# CATALOG / ADDRESSES
# =============================================================================


@pytest.fixture(scope='function')
def catalog(db_session):
    """PLA (0.1/0.2/0.3 mm) and PETG (0.2 mm) with price tables."""
    pla = FilamentType(name="PLA", description="Everyday prints")
    pla.colors = [FilamentColor(position=0, name="White", hex_code="#FFFFFF")]
    petg = FilamentType(name="PETG")
    db_session.add_all([pla, petg])
    db_session.commit()

    pricing_service.upsert_pricing_table(pla.id, [
        {"layerHeight": 0.1, "pricePerGram": 1200},
        {"layerHeight": 0.2, "pricePerGram": 800},
        {"layerHeight": 0.3, "pricePerGram": 700},
    ])
    pricing_service.upsert_pricing_table(petg.id, [
        {"layerHeight": 0.2, "pricePerGram": 1100},
    ])
    return {"PLA": pla, "PETG": petg}


ADDRESS_PAYLOAD = {
    "recipientName": "Ayu Customer",
    "phoneNumber": "081234567890",
    "addressLine1": "Jl. Merdeka No. 1",
    "provinceCode": "32",
    "regencyCode": "32.73",
    "districtCode": "32.73.01",
    "provinceName": "Jawa Barat",
    "regencyName": "Kota Bandung",
    "districtName": "Sukasari",
    "postalCode": "40151",
}


@pytest.fixture(scope='function')
def address(customer):
    return address_service.create_address(customer, {
        **ADDRESS_PAYLOAD,
        "rajaOngkir": {"destinationId": 12345, "locationLabel": "SUKASARI, BANDUNG, JAWA BARAT"},
    })


# =============================================================================
# FAKE UPSTREAM GATEWAY
# =============================================================================


class FakeGateway:
    """
    Routes outbound httpx requests by (method, path) to canned handlers.

    A handler is either a dict (returned as 200 JSON), an httpx.Response,
    or a callable taking the request. Unrouted requests get a 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, handler):
        self.routes[(method.upper(), path)] = handler

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def __call__(self, request):
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "not found"})
        if isinstance(handler, httpx.Response):
            # Fresh copy per call; a response object can only be consumed once
            return httpx.Response(handler.status_code, headers=handler.headers, content=handler.content)
        if callable(handler):
            result = handler(request)
            return result if isinstance(result, httpx.Response) else httpx.Response(200, json=result)
        return httpx.Response(200, json=handler)


@pytest.fixture(scope='function')
def gateway(monkeypatch):
    """Send every gateway-bound build_client() call to a FakeGateway."""
    fake = FakeGateway()

    def build_client(base_url="", *, timeout=None, headers=None, auth=None):
        return httpx.Client(
            base_url=base_url,
            headers=headers,
            auth=auth,
            transport=httpx.MockTransport(fake),
        )

    monkeypatch.setattr(http_client, "build_client", build_client)
    return fake


def form_fields(request):
    """Decode an application/x-www-form-urlencoded request body."""
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def json_body(request):
    return json.loads(request.content.decode())


def rate_handler(rates_by_courier):
    """Domestic-cost handler answering per courier from a {courier: [rows]} dict."""
    def handler(request):
        courier = form_fields(request).get("courier")
        return {"meta": {"code": 200}, "data": rates_by_courier.get(courier, [])}
    return handler


JNE_RATES = [
    {"name": "Jalur Nugraha Ekakurir (JNE)", "code": "jne", "service": "REG",
     "description": "Layanan Reguler", "cost": 15000, "etd": "2-3 day"},
    {"name": "Jalur Nugraha Ekakurir (JNE)", "code": "jne", "service": "JTR",
     "description": "JNE Trucking", "cost": 40000, "etd": "5-7 day"},
]


# =============================================================================
# ORDERS
# =============================================================================


def order_item(file_ref, *, file_name="bracket.stl", quantity=2, weight=50, layer_height="0.2", material="PLA"):
    return {
        "file": file_ref,
        "fileName": file_name,
        "fileSize": 2048,
        "quantity": quantity,
        "configuration": {
            "material": material,
            "color": "White",
            "layerHeight": layer_height,
            "infill": "20%",
            "wallCount": "2",
        },
        "statistics": {"printTime": 95, "filamentWeight": weight},
    }


def order_payload(items, address_id, *, cost=15000, **extra):
    payload = {
        "items": items,
        "shipping": {
            "addressId": address_id,
            "courier": "jne",
            "courierName": "JNE",
            "service": "REG",
            "serviceDescription": "Layanan Reguler",
            "cost": cost,
            "etd": "2-3 day",
        },
    }
    payload.update(extra)
    return payload


@pytest.fixture(scope='function')
def temp_upload(db_session):
    """Factory storing a temp upload and returning its token."""
    from printshop.services import temp_file_service

    def make(file_name="bracket.stl", content=b"solid bracket\nendsolid bracket\n"):
        return temp_file_service.store_temp_file(file_name, content).id
    return make


@pytest.fixture(scope='function')
def placed_order(customer, catalog, address, temp_upload):
    """An unpaid order for customer: 2 x 50 g PLA at 0.2 mm + 15000 shipping."""
    from printshop.services import order_service

    return order_service.create_order(customer, order_payload([order_item(temp_upload())], address.id))
