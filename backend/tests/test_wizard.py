"""
Order wizard tests (client side, against the real API over WSGI).

Verifies:
- Upload -> Summary needs sliced files and a session; without one the
  state is saved and replayed after sign-in
- Only print-affecting configuration changes trigger re-slicing
- 2 x 50 g PLA at 800/g + 15000 shipping = 95000 end to end
- A failed payment start keeps the order; retrying does not create another
- Payment verification runs once
- Unexpected slicer failures mark the file as errored; progress tracks
  upload and slicing
"""

from dataclasses import replace

import httpx
import pytest

from conftest import JNE_RATES, PASSWORD, rate_handler
from printshop.client import (
    ApiError,
    AuthenticationRequired,
    MemorySessionStorage,
    OrderWizard,
    PrintConfiguration,
    SessionStore,
    StorefrontClient,
    WizardError,
    WizardStep,
    fetcher_for,
)
from printshop.client.wizard import (
    FILE_COMPLETED,
    FILE_ERROR,
    FILE_PENDING,
    FILE_UPLOADING,
    PENDING_STATE_KEY,
    WizardFile,
)
from printshop.models import Order
from printshop.services.slicing_service import SlicerClient

COST_PATH = "/api/v1/calculate/domestic-cost"
SNAP_PATH = "/snap/v1/transactions"
STL = b"solid bracket\nendsolid bracket\n"


class FakeSlicer:
    """Slicer endpoint answering 50 g / 95 min unless told to fail."""

    def __init__(self):
        self.requests = []
        self.fail_with = None
        self.raise_error = None

    def __call__(self, request):
        self.requests.append(request)
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="slicer exploded")
        return httpx.Response(200, json={"print_time_minutes": 95, "filament_weight_g": 50})


@pytest.fixture
def api(app, db_session):
    http = httpx.Client(transport=httpx.WSGITransport(app=app), base_url="http://testserver")
    client = StorefrontClient(http=http)
    yield client
    client.close()


@pytest.fixture
def fake_slicer():
    return FakeSlicer()


@pytest.fixture
def make_wizard(api, fake_slicer):
    slicer = SlicerClient("http://slicer.test", http=httpx.Client(transport=httpx.MockTransport(fake_slicer)))
    storage = MemorySessionStorage()

    def make():
        return OrderWizard(api, slicer, SessionStore(fetcher_for(api)), storage)
    return make


@pytest.fixture
def summary_wizard(make_wizard, api, customer, catalog, address, gateway):
    """Signed-in wizard on the summary step with one 2 x 50 g PLA file and JNE REG selected."""
    gateway.on("POST", COST_PATH, rate_handler({"jne": JNE_RATES}))
    api.login(customer.email, PASSWORD)

    wizard = make_wizard()
    wizard.add_file("bracket.stl", STL, PrintConfiguration(color="White", quantity=2))
    wizard.slice_pending_files()
    wizard.next_step()
    wizard.select_address(api.list_addresses()[0])
    wizard.load_shipping_options()
    return wizard


# =============================================================================
# UPLOAD STEP
# =============================================================================


class TestUploadStep:

    def test_add_and_slice(self, make_wizard, fake_slicer, db_session):
        wizard = make_wizard()

        f = wizard.add_file("bracket.stl", STL)
        assert f.temp_id.startswith("tmp_")
        assert f.status == FILE_PENDING

        wizard.slice_pending_files()

        assert f.status == FILE_COMPLETED
        assert f.statistics.filament_weight_g == 50
        assert len(fake_slicer.requests) == 1

    def test_slices_files_in_parallel_batch(self, make_wizard, fake_slicer, db_session):
        wizard = make_wizard()
        for i in range(3):
            wizard.add_file(f"part-{i}.stl", STL)

        sliced = wizard.slice_pending_files()

        assert len(sliced) == 3
        assert all(f.status == FILE_COMPLETED for f in wizard.files)
        assert len(fake_slicer.requests) == 3

    def test_only_print_affecting_changes_reslice(self, make_wizard, fake_slicer, db_session):
        wizard = make_wizard()
        f = wizard.add_file("bracket.stl", STL)
        wizard.slice_pending_files()

        wizard.update_configuration(f.key, color="Red", quantity=5)
        assert f.status == FILE_COMPLETED
        assert wizard.slice_pending_files() == []

        wizard.update_configuration(f.key, layer_height="0.1")
        assert f.status == FILE_PENDING
        assert f.statistics is None
        wizard.slice_pending_files()

        assert len(fake_slicer.requests) == 2

    def test_unknown_configuration_field(self, make_wizard, db_session):
        wizard = make_wizard()
        f = wizard.add_file("bracket.stl", STL)
        with pytest.raises(WizardError):
            wizard.update_configuration(f.key, supports=True)

    def test_slicer_failure_blocks_next_step(self, make_wizard, fake_slicer, db_session):
        fake_slicer.fail_with = 500
        wizard = make_wizard()
        f = wizard.add_file("bracket.stl", STL)

        wizard.slice_pending_files()

        assert f.status == FILE_ERROR
        assert "500" in f.error
        with pytest.raises(WizardError):
            wizard.next_step()

    def test_non_sliceable_file_cannot_check_out(self, make_wizard, fake_slicer, db_session):
        wizard = make_wizard()
        f = wizard.add_file("model.obj", b"o cube\nv 0 0 0\n")

        assert f.status == FILE_COMPLETED
        assert f.statistics is None
        assert fake_slicer.requests == []
        with pytest.raises(WizardError, match="STL or 3MF"):
            wizard.next_step()

    def test_unexpected_slicer_error_marks_file_failed(self, make_wizard, fake_slicer, db_session):
        fake_slicer.raise_error = RuntimeError("socket closed")
        wizard = make_wizard()
        f = wizard.add_file("bracket.stl", STL)

        wizard.slice_pending_files()

        assert f.status == FILE_ERROR
        assert f.error == "RuntimeError: socket closed"
        with pytest.raises(WizardError, match="could not be sliced"):
            wizard.next_step()

    def test_progress_follows_upload_and_slice(self, make_wizard, db_session):
        wizard = make_wizard()
        f = wizard.add_file("bracket.stl", STL)
        assert f.progress == 50

        wizard.slice_pending_files()
        assert f.progress == 100

        wizard.update_configuration(f.key, material="PETG")
        assert f.progress == 50
        assert wizard.add_file("model.obj", b"o cube\n").progress == 100

    def test_interrupted_slice_restores_as_pending(self, make_wizard, db_session):
        f = make_wizard().add_file("bracket.stl", STL)
        state = f.to_state()
        state["status"] = FILE_UPLOADING
        state["progress"] = 75

        restored = WizardFile.from_state(state)

        assert restored.status == FILE_PENDING
        assert restored.progress == 50

    def test_no_files(self, make_wizard, db_session):
        with pytest.raises(WizardError):
            make_wizard().next_step()

    def test_remove_file(self, make_wizard, db_session):
        wizard = make_wizard()
        keep = wizard.add_file("keep.stl", STL)
        drop = wizard.add_file("drop.stl", STL)

        wizard.remove_file(drop.key)

        assert [f.key for f in wizard.files] == [keep.key]

    def test_invalid_configuration(self, make_wizard, db_session):
        wizard = make_wizard()
        f = wizard.add_file("bracket.stl", STL)
        wizard.slice_pending_files()
        wizard.update_configuration(f.key, color="Red", quantity=0)

        with pytest.raises(WizardError):
            wizard.next_step()


# =============================================================================
# SIGN-IN REDIRECT
# =============================================================================


class TestSignInRedirect:

    def test_state_saved_and_replayed(self, make_wizard, api, customer, fake_slicer, db_session):
        wizard = make_wizard()
        wizard.add_file("bracket.stl", STL, PrintConfiguration(quantity=2))
        wizard.slice_pending_files()

        with pytest.raises(AuthenticationRequired):
            wizard.next_step()
        assert wizard.step == WizardStep.UPLOAD
        assert wizard.storage.get_item(PENDING_STATE_KEY) is not None

        api.login(customer.email, PASSWORD)
        resumed = make_wizard()
        step = resumed.resume_after_sign_in()

        assert step == WizardStep.SUMMARY
        assert resumed.files[0].statistics.filament_weight_g == 50
        assert resumed.files[0].configuration.quantity == 2
        assert resumed.files[0].content == STL
        assert resumed.storage.get_item(PENDING_STATE_KEY) is None
        # Completed files are not sliced again
        assert len(fake_slicer.requests) == 1

    def test_resume_while_still_signed_out(self, make_wizard, db_session):
        wizard = make_wizard()
        wizard.add_file("bracket.stl", STL)
        wizard.slice_pending_files()
        with pytest.raises(AuthenticationRequired):
            wizard.next_step()

        with pytest.raises(AuthenticationRequired):
            make_wizard().resume_after_sign_in()

    def test_nothing_saved_is_a_noop(self, make_wizard, db_session):
        assert make_wizard().resume_after_sign_in() == WizardStep.UPLOAD


# =============================================================================
# SUMMARY / PAYMENT
# =============================================================================


class TestCheckout:

    def test_quote_and_shipping(self, summary_wizard):
        assert summary_wizard.step == WizardStep.SUMMARY
        assert [o.service for o in summary_wizard.shipping_options] == ["REG"]
        assert summary_wizard.selected_shipping.cost == 15000

        quote = summary_wizard.quote()
        assert quote["subtotal"] == 80000
        assert quote["totalWeight"] == 100
        assert quote["totalAmount"] == 95000

    def test_submit_creates_order_and_payment(self, summary_wizard, gateway, db_session):
        gateway.on("POST", SNAP_PATH, {"token": "snap-1", "redirect_url": "https://pay.test/snap-1"})

        payment = summary_wizard.submit_order("bank_transfer")

        assert payment["snapToken"] == "snap-1"
        assert summary_wizard.step == WizardStep.PAYMENT
        assert summary_wizard.order["summary"]["totalAmount"] == 95000
        item = summary_wizard.order["items"][0]
        assert item["pricing"] == {"pricePerGram": 800}
        assert item["fileFinalized"] is True
        assert db_session.query(Order).count() == 1

    def test_payment_failure_keeps_order_and_retry_reuses_it(self, summary_wizard, gateway, db_session):
        gateway.on("POST", SNAP_PATH, httpx.Response(500, json={"error_messages": ["Gateway down"]}))

        assert summary_wizard.submit_order() is None
        assert summary_wizard.step == WizardStep.SUMMARY
        assert summary_wizard.order is not None
        assert "was created" in summary_wizard.error

        gateway.on("POST", SNAP_PATH, {"token": "snap-2", "redirect_url": "https://pay.test/snap-2"})
        assert summary_wizard.next_step() == WizardStep.PAYMENT
        assert summary_wizard.error is None
        assert db_session.query(Order).count() == 1

    def test_verify_runs_once(self, summary_wizard, gateway):
        gateway.on("POST", SNAP_PATH, {"token": "snap-3", "redirect_url": "https://pay.test/snap-3"})
        summary_wizard.submit_order()
        status_path = f"/v2/{summary_wizard.order['orderNumber']}/status"
        gateway.on("GET", status_path, {
            "status_code": "200",
            "transaction_status": "settlement",
            "payment_type": "qris",
            "order_id": summary_wizard.order["orderNumber"],
            "gross_amount": "95000.00",
        })

        first = summary_wizard.verify_payment()
        second = summary_wizard.verify_payment()

        assert first["paymentStatus"] == "paid"
        assert first["orderStatus"] == "in-review"
        assert second is first
        assert len(gateway.calls("GET", status_path)) == 1

    def test_shipping_requires_destination(self, summary_wizard):
        summary_wizard.select_address(replace(summary_wizard.address, destination_id=None))

        with pytest.raises(WizardError):
            summary_wizard.load_shipping_options()
        with pytest.raises(WizardError):
            summary_wizard.build_order_payload()

    def test_previous_step_returns_to_upload(self, summary_wizard):
        assert summary_wizard.previous_step() == WizardStep.UPLOAD
        assert summary_wizard.previous_step() == WizardStep.UPLOAD

    def test_incomplete_address_rejected(self, summary_wizard, api):
        address = api.list_addresses()[0]
        address["phoneNumber"] = ""

        with pytest.raises(WizardError, match="phoneNumber"):
            summary_wizard.select_address(address)

    def test_unknown_shipping_selection(self, summary_wizard):
        with pytest.raises(WizardError):
            summary_wizard.select_shipping("jne", "YES")


class TestStorefrontClient:

    def test_errors_carry_status(self, api):
        with pytest.raises(ApiError) as exc:
            api.get_order(9999)
        assert exc.value.status_code == 401

    def test_me_is_none_when_signed_out(self, api):
        assert api.me() is None

    def test_login_and_me(self, api, customer):
        api.login(customer.email, PASSWORD)
        assert api.me()["email"] == customer.email
