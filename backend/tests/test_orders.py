"""
Order tests.

Verifies:
- Server-side pricing: 2 x 50 g PLA at 800/g + 15000 shipping = 95000
- Price echoes that disagree with the table are rejected (409)
- Items without slicing statistics or without a price cannot be ordered
- Items may only reference temp uploads or the customer's own files
- Status transitions follow the fulfillment graph and append history
- Admin edits are version-checked
- Customers only see their own orders
"""

import re

import pytest

from conftest import order_item, order_payload
from printshop.models import Order, OrderStatusHistory
from printshop.services import order_service, user_file_service
from printshop.services.order_service import OrderTransitionError
from printshop.services.pricing_service import PricingError, PricingMismatchError
from printshop.validation import ValidationError


# =============================================================================
# CREATE
# =============================================================================


class TestCreateOrder:

    def test_totals_computed_from_price_table(self, placed_order):
        assert placed_order.subtotal == 80000
        assert placed_order.shipping_cost == 15000
        assert placed_order.total_amount == 95000
        assert placed_order.total_weight == 100
        assert placed_order.items[0].price_per_gram == 800
        assert placed_order.items[0].total_price == 80000

    def test_new_order_is_unpaid_with_one_history_entry(self, placed_order):
        assert placed_order.status == "unpaid"
        assert placed_order.payment_status == "pending"
        assert [h.status for h in placed_order.status_history] == ["unpaid"]

    def test_order_number_format(self, placed_order):
        assert re.fullmatch(r"ORD-\d{13}-\d{3}", placed_order.order_number)

    def test_shipping_snapshot_copied_from_address(self, placed_order, address):
        assert placed_order.recipient_name == address.recipient_name
        assert placed_order.destination_id == 12345
        assert placed_order.courier == "jne"
        assert placed_order.courier_service == "REG"

    def test_finalization_job_enqueued(self, placed_order):
        assert placed_order.finalize_job is not None
        assert placed_order.finalize_job.status == "pending"

    def test_configuration_snapshot_round_trips(self, client, customer_headers, catalog, address, temp_upload):
        item = order_item(temp_upload(), layer_height="0.1")
        item["configuration"].update({"color": "Galaxy Black", "infill": "35%", "wallCount": "4"})

        resp = client.post("/api/orders", json=order_payload([item], address.id), headers=customer_headers)

        assert resp.status_code == 201
        stored = resp.get_json()["order"]["items"][0]
        assert stored["configuration"] == {
            "material": "PLA",
            "color": "Galaxy Black",
            "layerHeight": "0.1",
            "infill": "35%",
            "wallCount": "4",
        }
        assert stored["statistics"] == {"printTime": 95, "filamentWeight": 50}
        assert stored["pricing"] == {"pricePerGram": 1200}

    def test_matching_echo_accepted(self, customer, catalog, address, temp_upload):
        item = order_item(temp_upload())
        item["pricing"] = {"pricePerGram": 800}
        item["totalPrice"] = 80000

        order = order_service.create_order(
            customer, order_payload([item], address.id, summary={"totalAmount": 95000})
        )
        assert order.total_amount == 95000

    def test_stale_price_echo_rejected(self, customer, catalog, address, temp_upload):
        item = order_item(temp_upload())
        item["pricing"] = {"pricePerGram": 750}

        with pytest.raises(PricingMismatchError):
            order_service.create_order(customer, order_payload([item], address.id))

    def test_wrong_total_echo_returns_409(self, client, customer_headers, catalog, address, temp_upload, db_session):
        payload = order_payload([order_item(temp_upload())], address.id, summary={"totalAmount": 90000})

        resp = client.post("/api/orders", json=payload, headers=customer_headers)

        assert resp.status_code == 409
        assert db_session.query(Order).count() == 0

    def test_unpriced_layer_height_rejected(self, customer, catalog, address, temp_upload):
        with pytest.raises(PricingError):
            order_service.create_order(
                customer, order_payload([order_item(temp_upload(), layer_height="0.25")], address.id)
            )

    def test_missing_statistics_rejected(self, client, customer_headers, catalog, address, temp_upload):
        item = order_item(temp_upload(file_name="model.obj"), file_name="model.obj")
        del item["statistics"]

        resp = client.post("/api/orders", json=order_payload([item], address.id), headers=customer_headers)

        assert resp.status_code == 400
        assert "filamentWeight" in resp.get_json()["error"]

    def test_empty_items_rejected(self, customer, catalog, address):
        with pytest.raises(ValidationError):
            order_service.create_order(customer, order_payload([], address.id))

    def test_unknown_payment_method_rejected(self, customer, catalog, address, temp_upload):
        with pytest.raises(ValidationError):
            order_service.create_order(
                customer,
                order_payload([order_item(temp_upload())], address.id, paymentMethod="cash"),
            )

    def test_someone_elses_address_is_not_found(self, client, other_headers, catalog, address, temp_upload):
        resp = client.post(
            "/api/orders",
            json=order_payload([order_item(temp_upload())], address.id),
            headers=other_headers,
        )
        assert resp.status_code == 404

    def test_duplicate_order_number_conflicts(self, client, customer_headers, catalog, address, temp_upload):
        payload = order_payload([order_item(temp_upload())], address.id, orderNumber="ORD-CUSTOM-001")

        first = client.post("/api/orders", json=payload, headers=customer_headers)
        second = client.post("/api/orders", json=payload, headers=customer_headers)

        assert first.status_code == 201
        assert second.status_code == 409

    def test_own_user_file_is_accepted_as_finalized(self, customer, catalog, address):
        owned = user_file_service.create_user_file(owner_id=customer.id, file_name="kept.stl", content=b"solid")

        order = order_service.create_order(customer, order_payload([order_item(str(owned.id))], address.id))

        assert order.items[0].file_ref == str(owned.id)
        assert order.items[0].file_finalized is True

    def test_someone_elses_user_file_rejected(
        self, client, customer_headers, other_customer, catalog, address, db_session
    ):
        foreign = user_file_service.create_user_file(
            owner_id=other_customer.id, file_name="theirs.stl", content=b"solid"
        )

        resp = client.post(
            "/api/orders",
            json=order_payload([order_item(str(foreign.id))], address.id),
            headers=customer_headers,
        )

        assert resp.status_code == 400
        assert db_session.query(Order).count() == 0

    @pytest.mark.parametrize("ref", ["999999", "not-a-token"])
    def test_unknown_file_ref_rejected(self, customer, catalog, address, ref):
        with pytest.raises(ValidationError):
            order_service.create_order(customer, order_payload([order_item(ref)], address.id))

    def test_requires_auth(self, client, db_session):
        assert client.post("/api/orders", json={}).status_code == 401


# =============================================================================
# STATUS LIFECYCLE
# =============================================================================


class TestStatusLifecycle:

    @pytest.mark.parametrize("source,target", [
        ("unpaid", "in-review"),
        ("unpaid", "printing"),
        ("unpaid", "canceled"),
        ("in-review", "needs-discussion"),
        ("needs-discussion", "in-review"),
        ("printing", "shipping"),
        ("delivered", "completed"),
    ])
    def test_allowed(self, source, target):
        assert order_service.can_transition(source, target)

    @pytest.mark.parametrize("source,target", [
        ("unpaid", "completed"),
        ("unpaid", "shipping"),
        ("printing", "canceled"),
        ("completed", "unpaid"),
        ("canceled", "in-review"),
    ])
    def test_not_allowed(self, source, target):
        assert not order_service.can_transition(source, target)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            order_service.validate_status("lost")

    def test_full_path_appends_history_in_order(self, placed_order, admin):
        path = ["in-review", "printing", "shipping", "in-delivery", "delivered", "completed"]
        for status in path:
            order_service.update_order(placed_order.id, admin, {"status": status})

        history = [h.status for h in placed_order.status_history]
        assert history == ["unpaid"] + path
        assert placed_order.shipped_at is not None
        assert [step["state"] for step in placed_order.timeline()][-1] == "current"

    def test_same_status_is_a_noop(self, placed_order, admin, db_session):
        order_service.update_order(placed_order.id, admin, {"status": "unpaid"})

        count = db_session.query(OrderStatusHistory).filter_by(order_id=placed_order.id).count()
        assert count == 1

    def test_skipped_states_are_not_backfilled(self, placed_order, admin):
        order_service.update_order(placed_order.id, admin, {"status": "printing"})

        assert [h.status for h in placed_order.status_history] == ["unpaid", "printing"]
        states = {s["status"]: s["state"] for s in placed_order.timeline()}
        assert states["in-review"] == "upcoming"
        assert states["printing"] == "current"

    def test_illegal_jump_returns_409(self, client, admin_headers, placed_order):
        resp = client.patch(
            f"/api/orders/{placed_order.id}",
            json={"status": "completed"},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert placed_order.status == "unpaid"

    def test_illegal_jump_raises_transition_error(self, placed_order, admin):
        with pytest.raises(OrderTransitionError):
            order_service.update_order(placed_order.id, admin, {"status": "shipping"})

    def test_unknown_status_patch_returns_400(self, client, admin_headers, placed_order):
        resp = client.patch(f"/api/orders/{placed_order.id}", json={"status": "lost"}, headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# ADMIN UPDATES / ACCESS
# =============================================================================


class TestAdminUpdates:

    def test_stale_version_conflicts(self, client, admin_headers, placed_order):
        url = f"/api/orders/{placed_order.id}"
        version = placed_order.version_id

        first = client.patch(url, json={"status": "in-review", "version": version}, headers=admin_headers)
        second = client.patch(url, json={"adminNotes": "late edit", "version": version}, headers=admin_headers)

        assert first.status_code == 200
        assert first.get_json()["order"]["version"] == version + 1
        assert second.status_code == 409

    def test_customer_cannot_patch(self, client, customer_headers, placed_order):
        resp = client.patch(
            f"/api/orders/{placed_order.id}",
            json={"status": "in-review"},
            headers=customer_headers,
        )
        assert resp.status_code == 403

    def test_snapshot_fields_are_not_editable(self, client, admin_headers, placed_order):
        resp = client.patch(
            f"/api/orders/{placed_order.id}",
            json={"totalAmount": 1},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_tracking_number_and_notes(self, placed_order, admin):
        order = order_service.update_order(placed_order.id, admin, {
            "trackingNumber": " JNE123 ",
            "adminNotes": "Fragile",
            "shippedAt": "2026-01-02T03:04:05Z",
        })
        assert order.tracking_number == "JNE123"
        assert order.admin_notes == "Fragile"
        assert order.to_dict()["shipping"]["shippedAt"] == "2026-01-02T03:04:05Z"


class TestOrderAccess:

    def test_owner_can_read(self, client, customer_headers, placed_order):
        resp = client.get(f"/api/orders/{placed_order.id}", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["orderNumber"] == placed_order.order_number

    def test_other_customer_gets_404(self, client, other_headers, placed_order):
        resp = client.get(f"/api/orders/{placed_order.id}", headers=other_headers)
        assert resp.status_code == 404

    def test_list_is_scoped_to_owner(self, client, customer_headers, other_headers, admin_headers, placed_order):
        mine = client.get("/api/orders", headers=customer_headers).get_json()
        theirs = client.get("/api/orders", headers=other_headers).get_json()
        everyone = client.get("/api/orders", headers=admin_headers).get_json()

        assert mine["total"] == 1
        assert theirs["total"] == 0
        assert everyone["total"] == 1

    def test_list_rejects_unknown_status_filter(self, client, customer_headers, placed_order):
        resp = client.get("/api/orders?status=lost", headers=customer_headers)
        assert resp.status_code == 400

    def test_admin_delete(self, client, admin_headers, placed_order, db_session):
        resp = client.delete(f"/api/orders/{placed_order.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert db_session.query(Order).count() == 0
