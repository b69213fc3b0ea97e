# Overview: Client-side three-step order wizard (Upload -> Summary -> Payment).

"""
Order Wizard

================================================================================
STEPS: UPLOAD (1) -> SUMMARY (2) -> PAYMENT (3)
================================================================================

UPLOAD:
- add_file uploads to temp storage and queues the file for slicing.
- update_configuration re-queues slicing only when a print-affecting
  field changes (material, layer height, infill, wall count).
- slice_pending_files slices every queued file in parallel and returns once
  all of them have settled. A file being sliced is `uploading`; a failed
  file is marked `error` and there is no automatic retry. `progress` reads
  50 once the file is in temp storage and 100 once it is sliced.

UPLOAD -> SUMMARY requires every file sliced and fully configured, and a
signed-in session. Without one, the wizard state is written to session
storage and AuthenticationRequired is raised; resume_after_sign_in
restores it and replays the transition.

SUMMARY:
- select_address, load_shipping_options (first service auto-selected),
  select_shipping, quote.

SUMMARY -> PAYMENT (submit_order) creates the order, then initializes
payment. If payment initialization fails the order stays created, the
wizard stays on SUMMARY with `error` set, and a later submit only retries
the payment step.

verify_payment runs at most once per wizard.
================================================================================
"""

from __future__ import annotations

import base64
import json
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Dict, List, Optional

from ..services.pricing_service import PricingInput, Quote, calculate_quote, rows_from_tables
from ..services.shipping_service import ShippingService
from ..services.slicing_service import SliceRequest, SliceStatistics, SlicerClient, SlicingError, is_sliceable
from ..validation import ValidationError, parse_infill, parse_layer_height, parse_quantity, parse_wall_count
from .api import ApiError, StorefrontClient
from .session_store import SessionStore

logger = logging.getLogger(__name__)

PENDING_STATE_KEY = "pendingOrderState"
PENDING_NEXT_STEP_KEY = "pendingOrderNextStep"

PRINT_AFFECTING_FIELDS = ("material", "layer_height", "infill", "wall_count")

FILE_PENDING = "pending"
FILE_UPLOADING = "uploading"
FILE_COMPLETED = "completed"
FILE_ERROR = "error"

PROGRESS_UPLOADED = 50
PROGRESS_DONE = 100


class WizardStep(IntEnum):
    UPLOAD = 1
    SUMMARY = 2
    PAYMENT = 3


class WizardError(Exception):
    """A step precondition is not met; raised before any network call."""


class AuthenticationRequired(WizardError):
    """Sign-in needed to continue; wizard state has been saved to session storage."""


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class PrintConfiguration:
    material: str = "PLA"
    color: Optional[str] = None
    layer_height: str = "0.2"
    infill: str = "20%"
    wall_count: str = "2"
    quantity: int = 1

    def validate(self) -> None:
        """Raises WizardError naming the first invalid field."""
        if not (self.material or "").strip():
            raise WizardError("Choose a material")
        try:
            parse_layer_height(self.layer_height)
            parse_infill(self.infill)
            parse_wall_count(self.wall_count)
            parse_quantity(self.quantity)
        except ValidationError as exc:
            raise WizardError(str(exc))

    def slice_request(self) -> SliceRequest:
        return SliceRequest(
            layer_height=str(self.layer_height),
            infill=self.infill,
            wall_count=str(self.wall_count),
            material=self.material,
        )

    def to_wire(self) -> dict:
        return {
            "material": self.material,
            "color": self.color,
            "layerHeight": str(self.layer_height),
            "infill": self.infill,
            "wallCount": str(self.wall_count),
        }


@dataclass
class WizardFile:
    key: str
    file_name: str
    file_size: int
    temp_id: str
    content: bytes = field(repr=False)
    configuration: PrintConfiguration = field(default_factory=PrintConfiguration)
    status: str = FILE_PENDING
    statistics: Optional[SliceStatistics] = None
    error: Optional[str] = None
    # 50 once stored in temp storage, 100 once sliced
    progress: Optional[int] = None

    @property
    def sliceable(self) -> bool:
        return is_sliceable(self.file_name)

    def to_state(self) -> dict:
        config = self.configuration
        return {
            "key": self.key,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "tempId": self.temp_id,
            "content": base64.b64encode(self.content).decode("ascii"),
            "configuration": {**config.to_wire(), "quantity": config.quantity},
            "status": self.status,
            "statistics": _stats_to_state(self.statistics),
            "error": self.error,
            "progress": self.progress,
        }

    @classmethod
    def from_state(cls, data: dict) -> "WizardFile":
        config = data.get("configuration") or {}
        stats = data.get("statistics")
        status = data.get("status") or FILE_PENDING
        return cls(
            key=data["key"],
            file_name=data["fileName"],
            file_size=int(data.get("fileSize") or 0),
            temp_id=data["tempId"],
            content=base64.b64decode(data.get("content") or ""),
            configuration=PrintConfiguration(
                material=config.get("material") or "PLA",
                color=config.get("color"),
                layer_height=str(config.get("layerHeight") or "0.2"),
                infill=config.get("infill") or "20%",
                wall_count=str(config.get("wallCount") or "2"),
                quantity=int(config.get("quantity") or 1),
            ),
            # An in-flight slice did not survive the redirect
            status=FILE_PENDING if status == FILE_UPLOADING else status,
            statistics=SliceStatistics(**stats) if stats else None,
            error=data.get("error"),
            progress=PROGRESS_UPLOADED if status == FILE_UPLOADING else data.get("progress"),
        )


@dataclass(frozen=True)
class AddressSnapshot:
    """The parts of a saved address that checkout needs."""
    id: int
    recipient_name: str
    phone_number: str
    address_line1: str
    postal_code: str
    address_line2: Optional[str] = None
    destination_id: Optional[int] = None
    location_label: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "AddressSnapshot":
        for key in ("id", "recipientName", "phoneNumber", "addressLine1", "postalCode"):
            if not data.get(key):
                raise WizardError(f"Address is missing {key}")
        raja = data.get("rajaOngkir") or {}
        return cls(
            id=int(data["id"]),
            recipient_name=data["recipientName"],
            phone_number=data["phoneNumber"],
            address_line1=data["addressLine1"],
            postal_code=data["postalCode"],
            address_line2=data.get("addressLine2"),
            destination_id=raja.get("destinationId"),
            location_label=raja.get("locationLabel"),
        )


def _shipping_option(data: dict) -> ShippingService:
    try:
        return ShippingService(
            name=data.get("name") or data["code"],
            code=data["code"],
            service=data["service"],
            description=data.get("description") or "",
            cost=float(data["cost"]),
            etd=data.get("etd") or "",
        )
    except (KeyError, TypeError, ValueError):
        raise WizardError(f"Malformed shipping option: {data!r}")


def _stats_to_state(stats: Optional[SliceStatistics]) -> Optional[dict]:
    if stats is None:
        return None
    return {
        "print_time_minutes": stats.print_time_minutes,
        "filament_weight_g": stats.filament_weight_g,
        "print_time_formatted": stats.print_time_formatted,
        "filament_length_mm": stats.filament_length_mm,
        "filament_volume_cm3": stats.filament_volume_cm3,
        "filament_type": stats.filament_type,
        "layer_height": stats.layer_height,
        "infill_density": stats.infill_density,
        "wall_count": stats.wall_count,
    }


class MemorySessionStorage:
    """Dict-backed stand-in for browser sessionStorage."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


# =============================================================================
# WIZARD
# =============================================================================

class OrderWizard:
    def __init__(
        self,
        api: StorefrontClient,
        slicer: SlicerClient,
        session_store: SessionStore,
        storage: Optional[MemorySessionStorage] = None,
        *,
        max_workers: int = 4,
    ):
        self.api = api
        self.slicer = slicer
        self.session_store = session_store
        self.storage = storage or MemorySessionStorage()
        self.max_workers = max_workers

        self.step = WizardStep.UPLOAD
        self.files: List[WizardFile] = []
        self.address: Optional[AddressSnapshot] = None
        self.shipping_options: List[ShippingService] = []
        self.selected_shipping: Optional[ShippingService] = None
        self.customer_notes: Optional[str] = None
        self.order: Optional[dict] = None
        self.payment: Optional[dict] = None
        self.error: Optional[str] = None
        self._price_rows = None
        self._verification: Optional[dict] = None

    @property
    def order_id(self) -> Optional[int]:
        return self.order["id"] if self.order else None

    # =========================================================================
    # STEP 1: UPLOAD
    # =========================================================================

    def _file(self, key: str) -> WizardFile:
        for f in self.files:
            if f.key == key:
                return f
        raise WizardError(f"Unknown file {key}")

    def add_file(self, file_name: str, content: bytes, configuration: Optional[PrintConfiguration] = None) -> WizardFile:
        """Upload to temp storage; sliceable files are queued for slicing."""
        if self.step != WizardStep.UPLOAD:
            raise WizardError("Files can only be added while uploading")
        if not content:
            raise WizardError(f"{file_name} is empty")

        uploaded = self.api.upload_temp_file(file_name, content)
        wizard_file = WizardFile(
            key=uuid.uuid4().hex[:12],
            file_name=uploaded.get("fileName") or file_name,
            file_size=int(uploaded.get("fileSize") or len(content)),
            temp_id=uploaded["id"],
            content=content,
            configuration=configuration or PrintConfiguration(),
            progress=PROGRESS_UPLOADED,
        )
        if not wizard_file.sliceable:
            # Nothing to slice; next_step will refuse it for lack of statistics
            wizard_file.status = FILE_COMPLETED
            wizard_file.progress = PROGRESS_DONE
        self.files.append(wizard_file)
        return wizard_file

    def remove_file(self, key: str) -> None:
        self.files = [f for f in self.files if f.key != key]

    def update_configuration(self, key: str, **changes) -> WizardFile:
        """Apply changes; re-queue slicing only if a print-affecting field changed."""
        wizard_file = self._file(key)
        unknown = set(changes) - set(PrintConfiguration.__dataclass_fields__)
        if unknown:
            raise WizardError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        before = wizard_file.configuration
        after = replace(before, **changes)
        wizard_file.configuration = after

        reslice = any(str(getattr(before, f)) != str(getattr(after, f)) for f in PRINT_AFFECTING_FIELDS)
        if reslice and wizard_file.sliceable:
            wizard_file.status = FILE_PENDING
            wizard_file.statistics = None
            wizard_file.error = None
            wizard_file.progress = PROGRESS_UPLOADED
        return wizard_file

    def _slice_one(self, wizard_file: WizardFile) -> None:
        try:
            wizard_file.statistics = self.slicer.slice(
                wizard_file.file_name,
                wizard_file.content,
                wizard_file.configuration.slice_request(),
            )
            wizard_file.status = FILE_COMPLETED
            wizard_file.progress = PROGRESS_DONE
            wizard_file.error = None
        except (SlicingError, ValidationError) as exc:
            logger.warning("Slicing %s failed: %s", wizard_file.file_name, exc)
            self._mark_failed(wizard_file, str(exc))
        except Exception as exc:
            # A worker thread must not leave the file stuck in uploading
            logger.exception("Unexpected error slicing %s", wizard_file.file_name)
            self._mark_failed(wizard_file, f"{type(exc).__name__}: {exc}")

    @staticmethod
    def _mark_failed(wizard_file: WizardFile, message: str) -> None:
        wizard_file.statistics = None
        wizard_file.status = FILE_ERROR
        wizard_file.error = message

    def slice_pending_files(self) -> List[WizardFile]:
        """Slice every pending file concurrently and wait for all of them."""
        pending = [f for f in self.files if f.status == FILE_PENDING and f.sliceable]
        if not pending:
            return []
        for f in pending:
            f.status = FILE_UPLOADING
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pending))) as pool:
            list(pool.map(self._slice_one, pending))
        return pending

    def _check_upload_step(self) -> None:
        if not self.files:
            raise WizardError("Upload at least one file")
        for f in self.files:
            if f.status in (FILE_PENDING, FILE_UPLOADING):
                raise WizardError(f"{f.file_name} is still being sliced")
            if f.status == FILE_ERROR:
                raise WizardError(f"{f.file_name} could not be sliced: {f.error}")
            if f.statistics is None:
                raise WizardError(f"{f.file_name} cannot be priced automatically; upload an STL or 3MF file")
            f.configuration.validate()

    # =========================================================================
    # TRANSITIONS / SIGN-IN
    # =========================================================================

    def next_step(self) -> WizardStep:
        if self.step == WizardStep.UPLOAD:
            self._check_upload_step()
            if self.session_store.get() is None:
                self.save_pending_state(WizardStep.SUMMARY)
                raise AuthenticationRequired("Sign in to continue to checkout")
            self.step = WizardStep.SUMMARY
            self.error = None
            return self.step
        if self.step == WizardStep.SUMMARY:
            self.submit_order()
            return self.step
        raise WizardError("Already on the last step")

    def previous_step(self) -> WizardStep:
        if self.step == WizardStep.SUMMARY:
            self.step = WizardStep.UPLOAD
        return self.step

    def save_pending_state(self, next_step: WizardStep) -> None:
        state = {
            "step": int(self.step),
            "files": [f.to_state() for f in self.files],
            "customerNotes": self.customer_notes,
        }
        self.storage.set_item(PENDING_STATE_KEY, json.dumps(state))
        self.storage.set_item(PENDING_NEXT_STEP_KEY, str(int(next_step)))

    def resume_after_sign_in(self) -> WizardStep:
        """Restore saved state after sign-in and replay the interrupted transition."""
        raw_state = self.storage.get_item(PENDING_STATE_KEY)
        raw_next = self.storage.get_item(PENDING_NEXT_STEP_KEY)
        if raw_state is None:
            return self.step

        if self.session_store.get(force=True) is None:
            raise AuthenticationRequired("Sign in to continue to checkout")

        state = json.loads(raw_state)
        self.storage.remove_item(PENDING_STATE_KEY)
        self.storage.remove_item(PENDING_NEXT_STEP_KEY)

        self.files = [WizardFile.from_state(f) for f in state.get("files") or []]
        self.customer_notes = state.get("customerNotes")
        self.step = WizardStep(int(state.get("step") or WizardStep.UPLOAD))

        if raw_next and int(raw_next) > self.step:
            self.slice_pending_files()
            self.next_step()
        return self.step

    # =========================================================================
    # STEP 2: SUMMARY
    # =========================================================================

    def select_address(self, address) -> AddressSnapshot:
        """Accepts an AddressSnapshot or an address dict as returned by the API."""
        if not isinstance(address, AddressSnapshot):
            address = AddressSnapshot.from_api(address)
        self.address = address
        self.shipping_options = []
        self.selected_shipping = None
        return address

    def _price_table_rows(self):
        if self._price_rows is None:
            self._price_rows = rows_from_tables(self.api.list_pricing())
        return self._price_rows

    def quote(self) -> dict:
        """Price every file against the published table and add the selected shipping."""
        items = [
            PricingInput(
                key=f.key,
                material=f.configuration.material,
                layer_height=f.configuration.layer_height,
                quantity=f.configuration.quantity,
                filament_weight=f.statistics.filament_weight_g if f.statistics else 0,
            )
            for f in self.files
        ]
        result: Quote = calculate_quote(items, self._price_table_rows())
        shipping_cost = self.selected_shipping.cost if self.selected_shipping else 0.0
        return {
            **result.to_dict(),
            "shippingCost": shipping_cost,
            "totalAmount": round(result.subtotal + shipping_cost, 2),
        }

    def load_shipping_options(self) -> List[ShippingService]:
        """Fetch services for the selected address and pre-select the first."""
        if self.step != WizardStep.SUMMARY:
            raise WizardError("Shipping is chosen on the summary step")
        if self.address is None:
            raise WizardError("Select a shipping address first")
        if not self.address.destination_id:
            raise WizardError("This address has no shipping destination; edit the address to pick one")

        weight = self.quote()["totalWeight"]
        try:
            result = self.api.calculate_shipping(address_id=self.address.id, weight=weight)
        except ApiError as exc:
            self.shipping_options = []
            self.selected_shipping = None
            self.error = str(exc)
            raise WizardError(f"Could not load shipping options: {exc}")

        self.shipping_options = [_shipping_option(s) for s in result.get("services") or []]
        self.selected_shipping = self.shipping_options[0] if self.shipping_options else None
        if not self.shipping_options:
            self.error = "No shipping services are available for this address"
        return self.shipping_options

    def select_shipping(self, code: str, service: str) -> ShippingService:
        for option in self.shipping_options:
            if option.code == code and option.service == service:
                self.selected_shipping = option
                return option
        raise WizardError(f"Shipping service {code} {service} is not available")

    def build_order_payload(self, payment_method: Optional[str] = None) -> dict:
        if self.address is None:
            raise WizardError("Select a shipping address first")
        if self.selected_shipping is None:
            raise WizardError("Select a shipping service first")

        quote = self.quote()
        if quote["unpriced"]:
            raise WizardError("Some files use a material or layer height without a price")
        lines = {line["key"]: line for line in quote["lines"]}

        items = []
        for f in self.files:
            line = lines[f.key]
            items.append({
                "file": f.temp_id,
                "fileName": f.file_name,
                "fileSize": f.file_size,
                "quantity": f.configuration.quantity,
                "configuration": f.configuration.to_wire(),
                "statistics": f.statistics.snapshot(),
                "pricing": {"pricePerGram": line["pricePerGram"]},
                "totalPrice": line["totalPrice"],
            })

        shipping = self.selected_shipping
        payload = {
            "items": items,
            "shipping": {
                "addressId": self.address.id,
                "courier": shipping.code,
                "courierName": shipping.name,
                "service": shipping.service,
                "serviceDescription": shipping.description,
                "cost": shipping.cost,
                "etd": shipping.etd,
            },
            "summary": {
                "subtotal": quote["subtotal"],
                "shippingCost": quote["shippingCost"],
                "totalAmount": quote["totalAmount"],
            },
        }
        if self.customer_notes:
            payload["customerNotes"] = self.customer_notes
        if payment_method:
            payload["paymentMethod"] = payment_method
        return payload

    def submit_order(self, payment_method: Optional[str] = None) -> Optional[dict]:
        """
        Create the order (once) and start payment.

        Returns the payment session on success. On failure returns None with
        `error` set and the wizard left on SUMMARY.
        """
        if self.step != WizardStep.SUMMARY:
            raise WizardError("Orders are submitted from the summary step")

        if self.order is None:
            payload = self.build_order_payload(payment_method)
            try:
                self.order = self.api.create_order(payload)
            except ApiError as exc:
                self.error = f"Could not create order: {exc}"
                return None

        try:
            self.payment = self.api.initialize_payment(self.order["id"], payment_method)
        except ApiError as exc:
            logger.warning("Payment initialization failed for order %s: %s", self.order_id, exc)
            self.error = f"Order {self.order['orderNumber']} was created but payment could not start: {exc}"
            return None

        self.error = None
        self.step = WizardStep.PAYMENT
        return self.payment

    # =========================================================================
    # STEP 3: PAYMENT
    # =========================================================================

    def verify_payment(self) -> Optional[dict]:
        """Reconcile with the gateway once; later calls return the first result."""
        if self._verification is not None:
            return self._verification
        if self.order is None:
            raise WizardError("No order to verify")
        try:
            self._verification = self.api.verify_payment(self.order["id"])
        except ApiError as exc:
            self.error = f"Could not verify payment: {exc}"
            self._verification = {"error": str(exc)}
        return self._verification
