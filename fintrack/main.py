import logging
import os
import uuid
from datetime import date, datetime
from decimal import Decimal

import bcrypt
from fastapi import FastAPI, HTTPException, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError

from fintrack.aggregation import Summary, percentage_of_total, summarize
from fintrack.formatting import format_currency, format_date, format_percentage
from fintrack.records import FinancialRecord, RecordKind
from fintrack.time_window import DEFAULT_WINDOW, TimeWindow, filter_by_window

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

database_url = os.getenv("DATABASE_URL", "sqlite:///./fintrack.db")
connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(database_url, connect_args=connect_args)
metadata = MetaData()

DEFAULT_LOCALE = os.getenv("DEFAULT_LOCALE", "en-US")
CURRENCY_SYMBOL = os.getenv("DEFAULT_CURRENCY_SYMBOL", "$")

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), unique=True, nullable=False),
    Column("hashed_password", String(255), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

records = Table(
    "records",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("kind", String(20), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("category", String(255), nullable=False),
    Column("occurred_at", DateTime, nullable=False),
    Column("notes", String(500)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


class CredentialsPayload(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    created_at: datetime | None = None


class IncomePayload(BaseModel):
    amount: Decimal
    source: str
    date: datetime | None = None

    @classmethod
    def validate_payload(cls, payload: "IncomePayload") -> "IncomePayload":
        payload.source = payload.source.strip()
        if not payload.source:
            raise ValueError("Income source required.")
        payload.amount = validate_amount(payload.amount)
        payload.date = normalize_occurred_at(payload.date)
        return payload


class ExpensePayload(BaseModel):
    amount: Decimal
    category: str
    date: datetime | None = None
    notes: str | None = None

    @classmethod
    def validate_payload(cls, payload: "ExpensePayload") -> "ExpensePayload":
        payload.category = payload.category.strip()
        if not payload.category:
            raise ValueError("Expense category required.")
        payload.amount = validate_amount(payload.amount)
        payload.notes = payload.notes.strip() if payload.notes else None
        payload.date = normalize_occurred_at(payload.date)
        return payload


class RecordResponse(BaseModel):
    id: str
    user_id: int | None = None
    kind: str
    amount: Decimal
    category: str
    occurred_at: datetime | None = None
    notes: str | None = None
    formatted_amount: str
    formatted_date: str | None = None


class BucketResponse(BaseModel):
    category: str
    total_amount: Decimal
    formatted_amount: str
    percentage_of_total: Decimal
    formatted_percentage: str


class SummaryResponse(BaseModel):
    kind: str
    grouping: str
    window: str
    as_of: date
    total: Decimal
    formatted_total: str
    record_count: int
    buckets: list[BucketResponse]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def validate_amount(amount: Decimal) -> Decimal:
    if amount <= 0:
        raise ValueError("Amount must be greater than zero.")
    if amount.normalize().as_tuple().exponent < -2:
        raise ValueError("Amount must have at most two decimal places.")
    return amount


def normalize_occurred_at(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now()
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def get_user_id(x_user_id: str | None) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        user_id = int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc
    with engine.begin() as conn:
        result = conn.execute(select(users.c.id).where(users.c.id == user_id))
        if not result.first():
            raise HTTPException(status_code=404, detail="User not found.")
    return user_id


def validate_window(window: str | None) -> str:
    try:
        return TimeWindow.validate(window)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def fetch_records(user_id: int, kind: str) -> list[FinancialRecord]:
    stmt = (
        select(records)
        .where(records.c.user_id == user_id, records.c.kind == kind)
        .order_by(records.c.occurred_at.desc(), records.c.created_at.desc())
    )
    with engine.begin() as conn:
        rows = conn.execute(stmt).mappings().all()
    return [FinancialRecord.from_mapping(kind, row) for row in rows]


def to_record_response(record: FinancialRecord, locale: str | None) -> RecordResponse:
    return RecordResponse(
        id=record.id,
        user_id=record.owner_id,
        kind=record.kind,
        amount=record.amount,
        category=record.category,
        occurred_at=record.occurred_at,
        notes=record.notes,
        formatted_amount=format_currency(record.amount, CURRENCY_SYMBOL),
        formatted_date=format_date(record.occurred_at, locale) if record.occurred_at else None,
    )


def to_summary_response(summary: Summary) -> SummaryResponse:
    aggregation = summary.aggregation
    buckets = []
    for bucket in aggregation.buckets:
        percentage = percentage_of_total(bucket.total_amount, aggregation.total)
        buckets.append(
            BucketResponse(
                category=bucket.category,
                total_amount=bucket.total_amount,
                formatted_amount=format_currency(bucket.total_amount, CURRENCY_SYMBOL),
                percentage_of_total=percentage,
                formatted_percentage=format_percentage(percentage),
            )
        )
    return SummaryResponse(
        kind=summary.kind,
        grouping=RecordKind.grouping_label(summary.kind),
        window=summary.window,
        as_of=summary.as_of,
        total=aggregation.total,
        formatted_total=format_currency(aggregation.total, CURRENCY_SYMBOL),
        record_count=aggregation.record_count,
        buckets=buckets,
    )


def list_records(
    kind: str, user_id: int, window: str, as_of: date | None, locale: str | None
) -> list[RecordResponse]:
    normalized_window = validate_window(window)
    filtered = filter_by_window(
        fetch_records(user_id, kind),
        now=as_of,
        window=normalized_window,
    )
    return [to_record_response(record, locale or DEFAULT_LOCALE) for record in filtered]


def summarize_records(
    kind: str, user_id: int, window: str, as_of: date | None
) -> SummaryResponse:
    normalized_window = validate_window(window)
    summary = summarize(
        fetch_records(user_id, kind),
        window=normalized_window,
        now=as_of,
        kind=kind,
    )
    logger.debug(
        "Summarized %d %s records for user %s over window %s.",
        summary.aggregation.record_count,
        kind,
        user_id,
        normalized_window,
    )
    return to_summary_response(summary)


def create_record(
    kind: str,
    user_id: int,
    amount: Decimal,
    category: str,
    occurred_at: datetime,
    notes: str | None = None,
) -> RecordResponse:
    stmt = (
        insert(records)
        .values(
            id=str(uuid.uuid4()),
            user_id=user_id,
            kind=kind,
            amount=amount,
            category=category,
            occurred_at=occurred_at,
            notes=notes,
        )
        .returning(*records.c)
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail=f"Failed to create {kind}.")
    logger.info("Created %s record %s for user %s.", kind, row["id"], user_id)
    return to_record_response(FinancialRecord.from_mapping(kind, row), DEFAULT_LOCALE)


def update_record(
    kind: str,
    record_id: str,
    user_id: int,
    amount: Decimal,
    category: str,
    occurred_at: datetime,
    notes: str | None = None,
) -> RecordResponse:
    stmt = (
        update(records)
        .where(
            records.c.id == record_id,
            records.c.user_id == user_id,
            records.c.kind == kind,
        )
        .values(amount=amount, category=category, occurred_at=occurred_at, notes=notes)
        .returning(*records.c)
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail=f"{kind.capitalize()} not found.")
    logger.info("Updated %s record %s for user %s.", kind, record_id, user_id)
    return to_record_response(FinancialRecord.from_mapping(kind, row), DEFAULT_LOCALE)


def delete_record(kind: str, record_id: str, user_id: int) -> dict:
    stmt = records.delete().where(
        records.c.id == record_id,
        records.c.user_id == user_id,
        records.c.kind == kind,
    )
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail=f"{kind.capitalize()} not found.")
    logger.info("Deleted %s record %s for user %s.", kind, record_id, user_id)
    return {"status": "deleted"}


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/auth/signup", response_model=UserResponse)
def signup(payload: CredentialsPayload) -> UserResponse:
    email = payload.email.strip().lower()
    if not email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password required.")
    hashed_password = hash_password(payload.password)

    stmt = (
        insert(users)
        .values(email=email, hashed_password=hashed_password)
        .returning(users.c.id, users.c.email, users.c.created_at)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Email already exists.") from exc

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create user.")
    return UserResponse(id=row["id"], email=row["email"], created_at=row["created_at"])


@app.post("/auth/login", response_model=UserResponse)
def login(payload: CredentialsPayload) -> UserResponse:
    email = payload.email.strip().lower()
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.email == email)).mappings().first()

    if not row or not verify_password(payload.password, row["hashed_password"]):
        logger.info("Rejected login for %s.", email)
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    return UserResponse(id=row["id"], email=row["email"], created_at=row["created_at"])


@app.get("/incomes", response_model=list[RecordResponse])
def list_incomes(
    window: str = Query(DEFAULT_WINDOW),
    as_of: date | None = Query(None),
    locale: str | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[RecordResponse]:
    user_id = get_user_id(x_user_id)
    return list_records("income", user_id, window, as_of, locale)


@app.get("/incomes/summary", response_model=SummaryResponse)
def income_summary(
    window: str = Query(DEFAULT_WINDOW),
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> SummaryResponse:
    user_id = get_user_id(x_user_id)
    return summarize_records("income", user_id, window, as_of)


@app.post("/incomes", response_model=RecordResponse)
def create_income(
    payload: IncomePayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> RecordResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = IncomePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return create_record("income", user_id, payload.amount, payload.source, payload.date)


@app.put("/incomes/{record_id}", response_model=RecordResponse)
def update_income(
    record_id: str,
    payload: IncomePayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> RecordResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = IncomePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return update_record("income", record_id, user_id, payload.amount, payload.source, payload.date)


@app.delete("/incomes/{record_id}")
def delete_income(record_id: str, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    return delete_record("income", record_id, user_id)


@app.get("/expenses", response_model=list[RecordResponse])
def list_expenses(
    window: str = Query(DEFAULT_WINDOW),
    as_of: date | None = Query(None),
    locale: str | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[RecordResponse]:
    user_id = get_user_id(x_user_id)
    return list_records("expense", user_id, window, as_of, locale)


@app.get("/expenses/summary", response_model=SummaryResponse)
def expense_summary(
    window: str = Query(DEFAULT_WINDOW),
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> SummaryResponse:
    user_id = get_user_id(x_user_id)
    return summarize_records("expense", user_id, window, as_of)


@app.post("/expenses", response_model=RecordResponse)
def create_expense(
    payload: ExpensePayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> RecordResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = ExpensePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return create_record(
        "expense", user_id, payload.amount, payload.category, payload.date, payload.notes
    )


@app.put("/expenses/{record_id}", response_model=RecordResponse)
def update_expense(
    record_id: str,
    payload: ExpensePayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> RecordResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = ExpensePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return update_record(
        "expense",
        record_id,
        user_id,
        payload.amount,
        payload.category,
        payload.date,
        payload.notes,
    )


@app.delete("/expenses/{record_id}")
def delete_expense(record_id: str, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    return delete_record("expense", record_id, user_id)
