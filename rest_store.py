"""
rest_store.py
Customer store backed by the membership REST API (JSON over HTTP, Bearer auth).
"""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from errors import BackendError, NotFoundError
from models import Customer, CustomerFormData, Page, Stats
from query import check_membership_filter, check_page_size
from stores import CustomerStore

logger = logging.getLogger(__name__)


class RestCustomerStore(CustomerStore):
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        token_provider: Callable[[], str | None] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__()
        self.token_provider = token_provider
        self.client = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self.client.close()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, endpoint: str, *, missing_ok: bool = False, **kwargs):
        """
        Returns the decoded JSON body. A 404 returns None when missing_ok,
        otherwise raises NotFoundError; other failures raise BackendError.
        """
        logger.debug("API call: %s %s", method, endpoint)
        try:
            response = self.client.request(method, endpoint, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {endpoint} failed: {e}") from e

        if response.status_code == 404:
            if missing_ok:
                return None
            raise NotFoundError(_error_message(response))
        if response.is_error:
            raise BackendError(_error_message(response))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"{method} {endpoint} returned invalid JSON") from e

    def _decode(self, endpoint: str, build, data):
        """Builds a model from a response body; a body of the wrong shape is a BackendError."""
        if data is None:
            raise BackendError(f"{endpoint} returned an empty body")
        try:
            return build(data)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise BackendError(f"Unexpected response from {endpoint}: {e!r}") from e

    def list(self, sort: bool = True) -> list[Customer]:
        data = self._request("GET", "/customers", params={"sort": "true" if sort else "false"})
        return self._decode("/customers", lambda items: [Customer.from_dict(item) for item in items], data or [])

    def paginated_list(self, page, page_size, search="", membership_filter="all") -> Page:
        check_page_size(page_size)
        check_membership_filter(membership_filter)
        data = self._request(
            "GET",
            "/customers/paginated",
            params={
                "page": str(page),
                "itemsPerPage": str(page_size),
                "searchTerm": search,
                "membershipFilter": membership_filter,
            },
        )
        return self._decode("/customers/paginated", lambda body: _page_from_dict(body, page), data)

    def get_by_id(self, customer_id):
        endpoint = f"/customers/{customer_id}"
        data = self._request("GET", endpoint, missing_ok=True)
        return self._decode(endpoint, Customer.from_dict, data) if data else None

    def get_by_membership_number(self, membership_number):
        endpoint = f"/customers/membership/{membership_number}"
        data = self._request("GET", endpoint, missing_ok=True)
        return self._decode(endpoint, Customer.from_dict, data) if data else None

    def create(self, data: CustomerFormData) -> Customer:
        data.validate()
        body = self._request("POST", "/customers", json=data.to_dict())
        created = self._decode("/customers", Customer.from_dict, body)
        logger.info("Created customer %s via API", created.id)
        return created

    def update(self, customer_id: str, data: CustomerFormData) -> Customer:
        data.validate()
        endpoint = f"/customers/{customer_id}"
        updated = self._decode(endpoint, Customer.from_dict, self._request("PUT", endpoint, json=data.to_dict()))
        logger.info("Updated customer %s via API", customer_id)
        return updated

    def delete(self, customer_id: str) -> None:
        self._request("DELETE", f"/customers/{customer_id}")
        logger.info("Deleted customer %s via API", customer_id)

    def stats(self) -> Stats:
        return self._decode("/customers/stats", Stats.from_dict, self._request("GET", "/customers/stats"))

    def decrement_visits(self, customer_id: str) -> Customer | None:
        endpoint = f"/customers/{customer_id}/decrement-visits"
        data = self._request("PATCH", endpoint, missing_ok=True)
        return self._decode(endpoint, Customer.from_dict, data) if data else None

    def qr_payload(self, customer_id: str) -> str:
        endpoint = f"/customers/{customer_id}/qr"
        return self._decode(endpoint, lambda body: str(body["qrValue"]), self._request("GET", endpoint))


def _page_from_dict(data: dict, requested: int) -> Page:
    total_pages = int(data.get("totalPages", 0))
    return Page(
        customers=[Customer.from_dict(item) for item in data.get("customers", [])],
        total_pages=total_pages,
        total_items=int(data.get("totalItems", 0)),
        page=int(data.get("page", min(max(requested, 1), max(total_pages, 1)))),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}: {response.reason_phrase}"
