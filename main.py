import logging
import os
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import analytics
from config import Settings, get_settings
from database import Database
from schemas import (
    Budget,
    BudgetComparison,
    BudgetIn,
    BudgetOverview,
    BudgetUpdate,
    CategoryTotal,
    FinanceSummary,
    MonthlyExpense,
    MonthlyOverview,
    SpendingInsights,
    Transaction,
    TransactionIn,
    TransactionSort,
    TransactionType,
    TransactionUpdate,
)

logger = logging.getLogger("finance-api")

router = APIRouter()


# -----------------------------
# Dependencies / helpers
# -----------------------------
def get_db(request: Request) -> Database:
    return request.app.state.db


def get_now() -> datetime:
    """Evaluation instant for the derived views; overridden in tests."""
    return datetime.now()


@contextmanager
def store_errors(action: str):
    try:
        yield
    except PyMongoError:
        logger.exception("Failed to %s", action)
        raise HTTPException(status_code=500, detail=f"Failed to {action}")


def load_transactions(db: Database) -> List[Transaction]:
    with store_errors("fetch transactions"):
        docs = db.list_transactions()
    return [Transaction.model_validate(d) for d in docs]


def load_budgets(db: Database) -> List[Budget]:
    with store_errors("fetch budgets"):
        docs = db.list_budgets()
    return [Budget.model_validate(d) for d in docs]


# -----------------------------
# Base routes
# -----------------------------
@router.get("/")
def root():
    return {"message": "Personal Finance Tracker API is running"}


@router.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": db.name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = db.collection_names()
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    return response


# -----------------------------
# Transactions
# -----------------------------
@router.get("/api/transactions")
def list_transactions(
    month: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$"),
    type_: Optional[TransactionType] = Query(None, alias="type"),
    search: Optional[str] = Query(None, max_length=100),
    sort: TransactionSort = "date",
    db: Database = Depends(get_db),
):
    with store_errors("fetch transactions"):
        return db.list_transactions(month=month, type_=type_, search=search, sort=sort)


@router.post("/api/transactions", status_code=status.HTTP_201_CREATED)
def create_transaction(payload: TransactionIn, db: Database = Depends(get_db)):
    with store_errors("create transaction"):
        return db.create_transaction(payload)


@router.put("/api/transactions/{transaction_id}")
def update_transaction(transaction_id: str, payload: TransactionUpdate, db: Database = Depends(get_db)):
    with store_errors("update transaction"):
        updated = db.update_transaction(transaction_id, payload)
    if not updated:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return updated


@router.delete("/api/transactions/{transaction_id}")
def delete_transaction(transaction_id: str, db: Database = Depends(get_db)):
    with store_errors("delete transaction"):
        deleted = db.delete_transaction(transaction_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"message": "Transaction deleted successfully"}


# -----------------------------
# Budgets
# -----------------------------
@router.get("/api/budgets")
def list_budgets(db: Database = Depends(get_db)):
    with store_errors("fetch budgets"):
        return db.list_budgets()


@router.post("/api/budgets")
def create_budget(payload: BudgetIn, response: Response, db: Database = Depends(get_db)):
    # one budget per category: an existing one just gets the new limit
    with store_errors("create/update budget"):
        budget, created = db.upsert_budget(payload.category, payload.monthly_limit)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return budget


@router.put("/api/budgets/{budget_id}")
def update_budget(budget_id: str, payload: BudgetUpdate, db: Database = Depends(get_db)):
    with store_errors("update budget"):
        updated = db.update_budget(budget_id, payload.monthly_limit)
    if not updated:
        raise HTTPException(status_code=404, detail="Budget not found")
    return updated


@router.delete("/api/budgets/{budget_id}")
def delete_budget(budget_id: str, db: Database = Depends(get_db)):
    with store_errors("delete budget"):
        deleted = db.delete_budget(budget_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Budget not found")
    return {"message": "Budget deleted successfully"}


# -----------------------------
# Summary and analytics
# -----------------------------
@router.get("/api/summary", response_model=FinanceSummary)
def summary(db: Database = Depends(get_db)):
    return analytics.finance_summary(load_transactions(db))


@router.get("/api/analytics/categories", response_model=List[CategoryTotal])
def category_breakdown(db: Database = Depends(get_db)):
    return analytics.category_totals(load_transactions(db))


@router.get("/api/analytics/monthly", response_model=List[MonthlyExpense])
def monthly_expenses(db: Database = Depends(get_db), now: datetime = Depends(get_now)):
    return analytics.monthly_expenses(load_transactions(db), now)


@router.get("/api/analytics/budgets", response_model=List[BudgetComparison])
def budget_comparison(db: Database = Depends(get_db), now: datetime = Depends(get_now)):
    return analytics.budget_comparisons(load_transactions(db), load_budgets(db), now)


@router.get("/api/analytics/monthly/overview", response_model=MonthlyOverview)
def monthly_overview(db: Database = Depends(get_db), now: datetime = Depends(get_now)):
    return analytics.monthly_overview(load_transactions(db), now)


@router.get("/api/analytics/budgets/overview", response_model=BudgetOverview)
def budget_overview(db: Database = Depends(get_db), now: datetime = Depends(get_now)):
    return analytics.budget_overview(load_transactions(db), load_budgets(db), now)


@router.get("/api/analytics/insights", response_model=SpendingInsights)
def spending_insights(db: Database = Depends(get_db), now: datetime = Depends(get_now)):
    return analytics.spending_insights(load_transactions(db), load_budgets(db), now)


# -----------------------------
# App factory
# -----------------------------
def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(database: Optional[Database] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)
    db = database or Database.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db.connect()
        try:
            yield
        finally:
            db.close()

    app = FastAPI(title="Personal Finance Tracker API", lifespan=lifespan)
    app.state.db = db
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(create_app(settings=settings), host="0.0.0.0", port=settings.port)
