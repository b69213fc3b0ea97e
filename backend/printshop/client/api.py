# Overview: httpx client for the storefront REST API, used by the order wizard.

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response from the storefront API."""

    def __init__(self, message: str, status_code: int, response: Optional[httpx.Response] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class StorefrontClient:
    """
    HTTP client wrapper with authentication and convenience methods.

    Pass `http` to reuse a configured httpx.Client (e.g. one built on a
    MockTransport in tests); its base_url must point at the API host.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        http: Optional[httpx.Client] = None,
        token: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = http or httpx.Client(base_url=self.base_url, timeout=timeout)
        self.token = token
        self.current_user: Optional[Dict] = None

    def _headers(self, extra: Optional[Dict] = None) -> Dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self.client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise ApiError(f"Could not reach the storefront API: {exc}", status_code=0)

        if response.status_code >= 400:
            try:
                message = response.json().get("error") or response.text
            except ValueError:
                message = response.text
            raise ApiError(message or f"HTTP {response.status_code}", response.status_code, response)
        if not response.content:
            return None
        return response.json()

    # =========================================================================
    # AUTH
    # =========================================================================

    def login(self, email: str, password: str) -> Dict:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data.get("token")
        self.current_user = data.get("user")
        return data

    def register(self, email: str, name: str, password: str, phone_number: Optional[str] = None) -> Dict:
        data = self._request("POST", "/api/auth/register", json={
            "email": email,
            "name": name,
            "password": password,
            "phoneNumber": phone_number,
        })
        self.token = data.get("token")
        self.current_user = data.get("user")
        return data

    def logout(self) -> None:
        if not self.token:
            return
        try:
            self._request("POST", "/api/auth/logout")
        finally:
            self.token = None
            self.current_user = None

    def me(self) -> Optional[Dict]:
        """Current user, or None when signed out or the token expired."""
        if not self.token:
            return None
        try:
            return self._request("GET", "/api/auth/me")["user"]
        except ApiError as exc:
            if exc.status_code == 401:
                return None
            raise

    # =========================================================================
    # CATALOG
    # =========================================================================

    def list_filaments(self) -> List[Dict]:
        return self._request("GET", "/api/catalog/filaments")["filaments"]

    def list_printing_options(self) -> List[Dict]:
        return self._request("GET", "/api/catalog/printing-options")["printingOptions"]

    def list_pricing(self) -> List[Dict]:
        return self._request("GET", "/api/catalog/pricing")["pricing"]

    # =========================================================================
    # FILES
    # =========================================================================

    def upload_temp_file(self, file_name: str, content: bytes) -> Dict:
        files = {"file": (file_name, content, "application/octet-stream")}
        return self._request("POST", "/api/files/temp", files=files)["file"]

    def retrieve_temp_files(self, file_ids: List[str]) -> List[Dict]:
        return self._request("POST", "/api/files/temp/retrieve", json={"fileIds": file_ids})["files"]

    # =========================================================================
    # ADDRESSES / SHIPPING
    # =========================================================================

    def list_addresses(self) -> List[Dict]:
        return self._request("GET", "/api/addresses")["addresses"]

    def calculate_shipping(self, *, address_id: int, weight: float, courier: Optional[str] = None) -> Dict:
        body: Dict[str, Any] = {"addressId": address_id, "weight": weight}
        if courier:
            body["courier"] = courier
        return self._request("POST", "/api/shipping/calculate-cost", json=body)

    # =========================================================================
    # ORDERS / PAYMENT
    # =========================================================================

    def create_order(self, payload: Dict) -> Dict:
        return self._request("POST", "/api/orders", json=payload)["order"]

    def get_order(self, order_id: int) -> Dict:
        return self._request("GET", f"/api/orders/{order_id}")["order"]

    def list_orders(self, **params) -> Dict:
        return self._request("GET", "/api/orders", params=params)

    def initialize_payment(self, order_id: int, payment_method: Optional[str] = None) -> Dict:
        body: Dict[str, Any] = {"orderId": order_id}
        if payment_method:
            body["paymentMethod"] = payment_method
        return self._request("POST", "/api/payment/initialize", json=body)

    def verify_payment(self, order_id: int) -> Dict:
        return self._request("POST", "/api/payment/verify", json={"orderId": order_id})

    def close(self):
        self.client.close()
