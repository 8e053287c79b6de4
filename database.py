"""
MongoDB access for transactions and budgets.

A ``Database`` wraps an explicitly constructed ``MongoClient``; the app
creates one at startup, calls ``connect()``, and ``close()``s it on shutdown.
Documents leave this module through ``serialize`` so callers only ever see
plain JSON-friendly dicts with a string ``id``.
"""

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from config import Settings
from schemas import TransactionIn, TransactionUpdate

logger = logging.getLogger("finance-api.db")

TRANSACTIONS = "transactions"
BUDGETS = "budgets"


def serialize(doc: Optional[Dict[str, Any]]):
    if not doc:
        return doc
    d = dict(doc)
    _id = d.get("_id")
    if _id is not None:
        d["id"] = str(_id)
        del d["_id"]
    # Convert datetime/date to isoformat strings for JSON
    for k, v in list(d.items()):
        if isinstance(v, (datetime, date)):
            d[k] = v.isoformat()
    return d


def to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Database:
    def __init__(self, client: MongoClient, name: str):
        self.client = client
        self.name = name
        self.db = client[name]

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000)
        return cls(client, settings.database_name)

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def connect(self) -> None:
        """Create indexes; this is the first round trip to the server."""
        self.ensure_indexes()
        logger.info("Connected to database %r", self.name)

    def ensure_indexes(self) -> None:
        self.db[BUDGETS].create_index([("category", ASCENDING)], unique=True)
        self.db[TRANSACTIONS].create_index([("date", DESCENDING), ("createdAt", DESCENDING)])

    def close(self) -> None:
        self.client.close()
        logger.info("Closed connection to database %r", self.name)

    def collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    # -----------------------------
    # Generic helpers
    # -----------------------------
    def get_documents(self, collection: str, filter_dict: Optional[Dict[str, Any]] = None, sort=None) -> List[dict]:
        cursor = self.db[collection].find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        return [serialize(doc) for doc in cursor]

    def create_document(self, collection: str, data: Dict[str, Any]) -> dict:
        doc = dict(data)
        doc["createdAt"] = utcnow()
        result = self.db[collection].insert_one(doc)
        # read back so createdAt carries the precision the server stored
        return serialize(self.db[collection].find_one({"_id": result.inserted_id}))

    def update_document(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> Optional[dict]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        if not changes:
            return serialize(self.db[collection].find_one({"_id": oid}))
        doc = self.db[collection].find_one_and_update(
            {"_id": oid},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return serialize(doc)

    def delete_document(self, collection: str, doc_id: str) -> bool:
        oid = to_object_id(doc_id)
        if oid is None:
            return False
        return self.db[collection].delete_one({"_id": oid}).deleted_count == 1

    # -----------------------------
    # Transactions
    # -----------------------------
    def list_transactions(
        self,
        month: Optional[str] = None,
        type_: Optional[str] = None,
        search: Optional[str] = None,
        sort: str = "date",
    ) -> List[dict]:
        query: Dict[str, Any] = {}
        if month:
            # dates are stored as YYYY-MM-DD strings
            query["date"] = {"$regex": f"^{month}-"}
        if type_:
            query["type"] = type_
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"description": pattern}, {"category": pattern}]
        order = [("date", DESCENDING), ("createdAt", DESCENDING)]
        if sort == "amount":
            order.insert(0, ("amount", DESCENDING))
        return self.get_documents(TRANSACTIONS, query, sort=order)

    def create_transaction(self, payload: TransactionIn) -> dict:
        return self.create_document(TRANSACTIONS, payload.model_dump(by_alias=True, mode="json"))

    def update_transaction(self, transaction_id: str, payload: TransactionUpdate) -> Optional[dict]:
        changes = payload.model_dump(by_alias=True, mode="json", exclude_unset=True, exclude_none=True)
        return self.update_document(TRANSACTIONS, transaction_id, changes)

    def delete_transaction(self, transaction_id: str) -> bool:
        return self.delete_document(TRANSACTIONS, transaction_id)

    # -----------------------------
    # Budgets
    # -----------------------------
    def list_budgets(self) -> List[dict]:
        return self.get_documents(BUDGETS, sort=[("createdAt", DESCENDING)])

    def find_budget_by_category(self, category: str) -> Optional[dict]:
        return serialize(self.db[BUDGETS].find_one({"category": category}))

    def upsert_budget(self, category: str, monthly_limit: float) -> Tuple[dict, bool]:
        """Set the limit for ``category``, creating the budget if needed.

        Returns the stored budget and whether it was newly created. The unique
        index on ``category`` guarantees one budget per category even when two
        upserts race; the loser of the race falls back to a plain update.
        """
        budgets = self.db[BUDGETS]
        try:
            result = budgets.update_one(
                {"category": category},
                {"$set": {"monthlyLimit": monthly_limit}, "$setOnInsert": {"createdAt": utcnow()}},
                upsert=True,
            )
            created = result.upserted_id is not None
        except DuplicateKeyError:
            logger.info("Concurrent budget insert for %r, updating instead", category)
            budgets.update_one({"category": category}, {"$set": {"monthlyLimit": monthly_limit}})
            created = False
        return self.find_budget_by_category(category), created

    def update_budget(self, budget_id: str, monthly_limit: float) -> Optional[dict]:
        return self.update_document(BUDGETS, budget_id, {"monthlyLimit": monthly_limit})

    def delete_budget(self, budget_id: str) -> bool:
        return self.delete_document(BUDGETS, budget_id)
