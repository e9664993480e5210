# Overview: HTTP client the staff console uses to read and drive orders.

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx


class ApiError(Exception):
    """Non-2xx reply or transport failure from the order API."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class OrdersApiClient:
    """
    HTTP client wrapper with a staff token and one method per order action.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.client = http_client or httpx.Client(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.client.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(),
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise ApiError(f"{method} {path} failed: {exc}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            raise ApiError(
                body.get("error") or f"HTTP {response.status_code}",
                status_code=response.status_code,
                code=body.get("code"),
            )
        return body

    def login(self, role: str, password: str) -> str:
        """Staff login ("admin" or "chef"); keeps and returns the token."""
        if role not in ("admin", "chef"):
            raise ValueError("role must be 'admin' or 'chef'")
        body = self._request("POST", f"/api/auth/{role}-login", json={"password": password})
        self.token = body["token"]
        return self.token

    def list_all(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/orders", params={"all": "true"})["orders"]

    def _action(self, order_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/orders/{order_id}", json=payload)["order"]

    def accept(self, order_id: str, prep_time_minutes: Optional[int] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": "accept"}
        if prep_time_minutes is not None:
            payload["prep_time_minutes"] = prep_time_minutes
        return self._action(order_id, payload)

    def reject(self, order_id: str, note: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": "reject"}
        if note:
            payload["note"] = note
        return self._action(order_id, payload)

    def advance(self, order_id: str, to_status: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": "advance"}
        if to_status:
            payload["to_status"] = to_status
        return self._action(order_id, payload)

    def set_prep_time(self, order_id: str, prep_time_minutes: int) -> Dict[str, Any]:
        return self._action(order_id, {"action": "set_prep_time", "prep_time_minutes": prep_time_minutes})

    def close(self):
        self.client.close()
