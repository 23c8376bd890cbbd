# Overview: HTTP client for the field orders API (sign-in, catalog, drafts, orders, exports).

"""
Python client for the field orders backend.

Configuration comes from two required environment variables:

    FIELD_ORDERS_URL       base URL of the backend
    FIELD_ORDERS_API_KEY   public API key sent as the `apikey` header

`FieldOrdersClient.from_env()` raises ConfigError when either is missing.
Server errors are raised as ApiError carrying the server's message verbatim.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from .config import ConfigError
from .services.order_draft import OrderDraft

ENV_URL = "FIELD_ORDERS_URL"
ENV_API_KEY = "FIELD_ORDERS_API_KEY"


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}")


class FieldOrdersClient:
    """
    Thin wrapper over httpx.Client: adds the apikey and bearer headers,
    unwraps JSON bodies and turns error responses into ApiError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not base_url or not api_key:
            raise ConfigError(f"Missing {ENV_URL} or {ENV_API_KEY}")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.token = token
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_env(cls, **kwargs) -> "FieldOrdersClient":
        url = (os.environ.get(ENV_URL) or "").strip()
        key = (os.environ.get(ENV_API_KEY) or "").strip()
        missing = [name for name, value in ((ENV_URL, url), (ENV_API_KEY, key)) if not value]
        if missing:
            raise ConfigError(
                f"Missing {' or '.join(missing)}. Set them in your environment before starting."
            )
        return cls(url, key, **kwargs)

    # ---- plumbing ----

    def _headers(self) -> Dict[str, str]:
        headers = {"apikey": self.api_key}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = self.client.request(method, path, headers=self._headers(), **kwargs)
        if response.status_code >= 400:
            try:
                message = response.json().get("error") or response.text
            except ValueError:
                message = response.text
            raise ApiError(response.status_code, message)
        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        return self.request(method, path, **kwargs).json()

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "FieldOrdersClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- auth ----

    def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> Dict:
        data = self._json("POST", "/api/auth/signup", json={
            "email": email, "password": password, "full_name": full_name,
        })
        self.token = data["token"]
        return data

    def sign_in(self, email: str, password: str) -> Dict:
        data = self._json("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data

    def sign_out(self) -> None:
        if self.token:
            self.request("POST", "/api/auth/logout")
        self.token = None

    def me(self) -> Dict:
        return self._json("GET", "/api/auth/me")

    # ---- catalog ----

    def list_customers(self, **params) -> list:
        return self._json("GET", "/api/customers", params=params)["items"]

    def create_customer(self, **fields) -> Dict:
        return self._json("POST", "/api/customers", json=fields)

    def list_products(self, **params) -> list:
        return self._json("GET", "/api/products", params=params)["items"]

    def search_products(self, q: str) -> list:
        return self._json("GET", "/api/products/search", params={"q": q})["items"]

    def catalog(self) -> Dict[int, Dict]:
        """Active products keyed by id, the shape OrderDraft expects."""
        return {p["id"]: p for p in self.list_products(is_active="eq.true")}

    # ---- orders ----

    def new_draft(self, customer_id: Optional[int] = None, **kwargs) -> OrderDraft:
        return OrderDraft(catalog=self.catalog(), customer_id=customer_id, **kwargs)

    def submit_draft(self, draft: OrderDraft) -> Dict:
        """Validate locally (DraftError), then save. Clears the draft on success."""
        detail = self._json("POST", "/api/orders", json=draft.to_payload())
        draft.clear()
        return detail

    def list_orders(self, **params) -> Dict:
        return self._json("GET", "/api/orders/view", params=params)

    def get_order(self, order_id: int) -> Dict:
        return self._json("GET", f"/api/orders/{order_id}")

    def change_status(self, order_id: int, status: str) -> Dict:
        return self._json("POST", f"/api/orders/{order_id}/status", json={"status": status})

    def bulk_change_status(self, order_ids, status: str) -> Dict:
        return self._json("POST", "/api/orders/status", json={"ids": list(order_ids), "status": status})

    def update_items(self, order_id: int, items: list) -> Dict:
        return self._json("PATCH", f"/api/orders/{order_id}/items", json={"items": items})

    # ---- bulk ----

    def import_file(self, kind: str, path) -> Dict:
        """kind is 'products' or 'customers'."""
        file_path = Path(path)
        with file_path.open("rb") as fh:
            return self._json("POST", f"/api/imports/{kind}", files={"file": (file_path.name, fh)})

    def export_order_items(self, order_ids=None, status: Optional[str] = None, fmt: str = "xlsx") -> tuple[bytes, str]:
        """Returns (content, filename)."""
        params: Dict[str, Any] = {"format": fmt}
        if order_ids:
            params["ids"] = ",".join(str(i) for i in order_ids)
        if status:
            params["status"] = status
        response = self.request("GET", "/api/exports/order-items", params=params)
        disposition = response.headers.get("Content-Disposition", "")
        filename = disposition.split("filename=", 1)[-1].strip('"') if "filename=" in disposition else ""
        return response.content, filename
