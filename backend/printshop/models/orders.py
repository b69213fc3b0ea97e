from __future__ import annotations

from ..extensions import db
from printshop.time_utils import to_utc_z

# Fulfillment states in forward order; "canceled" is terminal and off the main path.
FORWARD_STATUSES = (
    "unpaid",
    "in-review",
    "needs-discussion",
    "printing",
    "shipping",
    "in-delivery",
    "delivered",
    "completed",
)
ORDER_STATUSES = FORWARD_STATUSES + ("canceled",)

PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
PAYMENT_METHODS = ("bank_transfer", "credit_card", "e_wallet")

JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_SUCCEEDED = "succeeded"
JOB_NEEDS_RECONCILIATION = "needs_reconciliation"
JOB_STATUSES = (JOB_PENDING, JOB_RUNNING, JOB_SUCCEEDED, JOB_NEEDS_RECONCILIATION)


class Order(db.Model):
    """
    One checkout: line items, shipping and payment snapshots, status history.

    Summary amounts are computed once at creation and are never recomputed
    from items afterwards. version_id guards concurrent admin edits.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(db.String(24), nullable=False, default="unpaid", index=True)

    # Payment snapshot
    payment_method = db.Column(db.String(32), nullable=True)
    payment_gateway_method = db.Column(db.String(32), nullable=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    transaction_id = db.Column(db.String(64), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    midtrans_order_id = db.Column(db.String(64), nullable=True)
    snap_token = db.Column(db.String(255), nullable=True)
    snap_url = db.Column(db.String(512), nullable=True)
    payment_expiry = db.Column(db.DateTime(timezone=True), nullable=True)

    # Summary snapshot
    subtotal = db.Column(db.Float, nullable=False, default=0)
    shipping_cost = db.Column(db.Float, nullable=False, default=0)
    total_amount = db.Column(db.Float, nullable=False, default=0)
    total_weight = db.Column(db.Float, nullable=False, default=0)
    total_print_time = db.Column(db.Float, nullable=False, default=0)

    # Shipping snapshot
    recipient_name = db.Column(db.String(120), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    address_line1 = db.Column(db.String(255), nullable=True)
    address_line2 = db.Column(db.String(255), nullable=True)
    province_name = db.Column(db.String(120), nullable=True)
    regency_name = db.Column(db.String(120), nullable=True)
    district_name = db.Column(db.String(120), nullable=True)
    village_name = db.Column(db.String(120), nullable=True)
    postal_code = db.Column(db.String(5), nullable=True)
    destination_id = db.Column(db.Integer, nullable=True)
    courier = db.Column(db.String(32), nullable=True)
    courier_name = db.Column(db.String(120), nullable=True)
    courier_service = db.Column(db.String(64), nullable=True)
    service_description = db.Column(db.String(255), nullable=True)
    estimated_delivery = db.Column(db.String(64), nullable=True)
    tracking_number = db.Column(db.String(64), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)

    admin_notes = db.Column(db.Text, nullable=True)
    customer_notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def history_dicts(self) -> list[dict]:
        if self.status_history:
            return [h.to_dict() for h in self.status_history]
        # Orders created before history rows existed read back their current state
        return [{
            "status": self.status,
            "changedAt": to_utc_z(self.created_at),
            "changedBy": self.user_id,
        }]

    def timeline(self) -> list[dict]:
        """Each forward state tagged reached / current / upcoming for the tracking view."""
        seen = {entry["status"] for entry in self.history_dicts()}
        steps = []
        for status in FORWARD_STATUSES:
            if status == self.status:
                state = "current"
            elif status in seen:
                state = "reached"
            else:
                state = "upcoming"
            steps.append({"status": status, "state": state})
        if self.status == "canceled":
            steps.append({"status": "canceled", "state": "current"})
        return steps

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "user": self.user_id,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "paymentInfo": {
                "paymentMethod": self.payment_method,
                "gatewayMethod": self.payment_gateway_method,
                "paymentStatus": self.payment_status,
                "transactionId": self.transaction_id,
                "paidAt": to_utc_z(self.paid_at),
                "midtransOrderId": self.midtrans_order_id,
                "snapToken": self.snap_token,
                "snapUrl": self.snap_url,
                "paymentExpiry": to_utc_z(self.payment_expiry),
            },
            "summary": {
                "subtotal": self.subtotal,
                "shippingCost": self.shipping_cost,
                "totalAmount": self.total_amount,
                "totalWeight": self.total_weight,
                "totalPrintTime": self.total_print_time,
            },
            "shipping": {
                "recipientName": self.recipient_name,
                "phoneNumber": self.phone_number,
                "addressLine1": self.address_line1,
                "addressLine2": self.address_line2,
                "province": self.province_name,
                "regency": self.regency_name,
                "district": self.district_name,
                "village": self.village_name,
                "postalCode": self.postal_code,
                "destinationId": self.destination_id,
                "courier": self.courier,
                "courierName": self.courier_name,
                "service": self.courier_service,
                "serviceDescription": self.service_description,
                "cost": self.shipping_cost,
                "etd": self.estimated_delivery,
                "trackingNumber": self.tracking_number,
                "shippedAt": to_utc_z(self.shipped_at),
            },
            "adminNotes": self.admin_notes,
            "customerNotes": self.customer_notes,
            "statusHistory": self.history_dicts(),
            "timeline": self.timeline(),
            "version": self.version_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    One uploaded model in an order.

    configuration/statistics/pricing columns are snapshots taken at
    submission; nothing writes to them after the order exists. file_ref
    holds a temp token until finalization swaps in a permanent file id.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    file_ref = db.Column(db.String(40), nullable=False)
    file_finalized = db.Column(db.Boolean, nullable=False, default=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    material = db.Column(db.String(64), nullable=False)
    color = db.Column(db.String(64), nullable=True)
    layer_height = db.Column(db.String(16), nullable=False)
    infill = db.Column(db.String(8), nullable=False)
    wall_count = db.Column(db.String(8), nullable=False)

    print_time = db.Column(db.Float, nullable=True)
    filament_weight = db.Column(db.Float, nullable=False)

    price_per_gram = db.Column(db.Float, nullable=False)
    total_price = db.Column(db.Float, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "file": self.file_ref,
            "fileFinalized": self.file_finalized,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "quantity": self.quantity,
            "configuration": {
                "material": self.material,
                "color": self.color,
                "layerHeight": self.layer_height,
                "infill": self.infill,
                "wallCount": self.wall_count,
            },
            "statistics": {
                "printTime": self.print_time,
                "filamentWeight": self.filament_weight,
            },
            "pricing": {"pricePerGram": self.price_per_gram},
            "totalPrice": self.total_price,
        }


class OrderStatusHistory(db.Model):
    """Append-only log of status changes. Rows are never updated or deleted."""
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(24), nullable=False)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "changedAt": to_utc_z(self.changed_at),
            "changedBy": self.changed_by_user_id,
        }


class FinalizeFilesJob(db.Model):
    """
    Outbox row: move an order's temp uploads into permanent user files.

    Inserted in the same transaction as the order. Terminal states are
    succeeded and needs_reconciliation; pending rows are retried once
    next_attempt_at has passed.
    """
    __tablename__ = "finalize_files_jobs"
    __table_args__ = (
        db.Index("ix_finalize_jobs_due", "status", "next_attempt_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)
    status = db.Column(db.String(24), nullable=False, default=JOB_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    next_attempt_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_error = db.Column(db.Text, nullable=True)
    finalized_count = db.Column(db.Integer, nullable=False, default=0)
    missing_count = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order = db.relationship("Order", backref=db.backref("finalize_job", uselist=False, cascade="all, delete-orphan"))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "status": self.status,
            "attempts": self.attempts,
            "nextAttemptAt": to_utc_z(self.next_attempt_at),
            "lastError": self.last_error,
            "finalizedCount": self.finalized_count,
            "missingCount": self.missing_count,
            "createdAt": to_utc_z(self.created_at),
            "completedAt": to_utc_z(self.completed_at),
        }
