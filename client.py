"""
HTTP client for the finance API.

Failures never raise: lists come back empty, single records come back as
None and deletes as False, with the cause logged.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

import requests

logger = logging.getLogger("finance-api.client")


class FinanceClient:
    def __init__(self, base_url: str = "http://localhost:8000", session: Optional[requests.Session] = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Optional[requests.Response]:
        url = self.base_url + path
        try:
            response = self.session.request(method, url, json=json, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method, path, e)
            return None
        return response

    def _json(self, method: str, path: str, json: Optional[Dict[str, Any]] = None):
        response = self._request(method, path, json=json)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError:
            logger.error("%s %s returned a non-JSON body", method, path)
            return None

    def _list(self, path: str) -> List[dict]:
        data = self._json("GET", path)
        return data if isinstance(data, list) else []

    # Transactions
    def fetch_transactions(self) -> List[dict]:
        return self._list("/api/transactions")

    def create_transaction(self, data: Dict[str, Any]) -> Optional[dict]:
        return self._json("POST", "/api/transactions", json=data)

    def update_transaction(self, transaction_id: str, data: Dict[str, Any]) -> Optional[dict]:
        return self._json("PUT", f"/api/transactions/{transaction_id}", json=data)

    def delete_transaction(self, transaction_id: str) -> bool:
        return self._request("DELETE", f"/api/transactions/{transaction_id}") is not None

    # Budgets
    def fetch_budgets(self) -> List[dict]:
        return self._list("/api/budgets")

    def create_budget(self, data: Dict[str, Any]) -> Optional[dict]:
        return self._json("POST", "/api/budgets", json=data)

    def update_budget(self, budget_id: str, data: Dict[str, Any]) -> Optional[dict]:
        return self._json("PUT", f"/api/budgets/{budget_id}", json=data)

    def delete_budget(self, budget_id: str) -> bool:
        return self._request("DELETE", f"/api/budgets/{budget_id}") is not None

    def load_dashboard(self) -> Tuple[List[dict], List[dict]]:
        """Fetch transactions and budgets in parallel; both finish before returning."""
        with ThreadPoolExecutor(max_workers=2) as pool:
            transactions = pool.submit(self.fetch_transactions)
            budgets = pool.submit(self.fetch_budgets)
            return transactions.result(), budgets.result()
