import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from feedback_tracker.core.auth import CurrentUser, get_current_user
from feedback_tracker.core.dependencies import commit_or_conflict, get_db
from feedback_tracker.models.tracker import Customer
from feedback_tracker.schemas.reference import CustomerCreate, CustomerOut, CustomerUpdate, MessageOut
from feedback_tracker.services.request_service import contains_text

logger = logging.getLogger(__name__)

router = APIRouter()

DUPLICATE_EMAIL = "Customer with this email already exists"


def _customer_to_out(customer: Customer) -> CustomerOut:
    return CustomerOut(
        id=str(customer.id),
        name=customer.name,
        company=customer.company,
        email=customer.email,
        phone=customer.phone,
        created_at=customer.created_at,
        updated_at=customer.updated_at,
    )


def _get_customer_or_404(db: Session, customer_id: str) -> Customer:
    try:
        key = uuid.UUID(customer_id)
    except ValueError:
        raise HTTPException(404, "Customer not found") from None
    customer = db.get(Customer, key)
    if customer is None:
        raise HTTPException(404, "Customer not found")
    return customer


def _email_taken(db: Session, email: str) -> bool:
    return db.execute(select(Customer.id).where(Customer.email == email)).first() is not None


@router.get("/customers", response_model=list[CustomerOut])
def list_customers(
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    customers = db.execute(select(Customer).order_by(Customer.name, Customer.email)).scalars().all()
    return [_customer_to_out(customer) for customer in customers]


@router.get("/customers/search", response_model=list[CustomerOut])
def search_customers(
    query: str = Query("", max_length=200),
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    term = query.strip()
    if not term:
        return []
    stmt = (
        select(Customer)
        .where(
            or_(
                contains_text(Customer.name, term),
                contains_text(Customer.company, term),
                contains_text(Customer.email, term),
            )
        )
        .order_by(Customer.name, Customer.email)
    )
    return [_customer_to_out(customer) for customer in db.execute(stmt).scalars().all()]


@router.post("/customers", response_model=CustomerOut, status_code=201)
def create_customer(
    payload: CustomerCreate,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    email = payload.email.strip().lower()
    if _email_taken(db, email):
        raise HTTPException(400, DUPLICATE_EMAIL)

    customer = Customer(
        name=payload.name.strip(),
        company=payload.company.strip(),
        email=email,
        phone=payload.phone,
    )
    db.add(customer)
    commit_or_conflict(db, DUPLICATE_EMAIL)
    db.refresh(customer)
    logger.info("Customer %s created", customer.id)
    return _customer_to_out(customer)


@router.get("/customers/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: str,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _customer_to_out(_get_customer_or_404(db, customer_id))


@router.put("/customers/{customer_id}", response_model=CustomerOut)
def update_customer(
    customer_id: str,
    payload: CustomerUpdate,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    customer = _get_customer_or_404(db, customer_id)

    if payload.email:
        email = payload.email.strip().lower()
        if email != customer.email:
            if _email_taken(db, email):
                raise HTTPException(400, DUPLICATE_EMAIL)
            customer.email = email
    if payload.name and payload.name.strip():
        customer.name = payload.name.strip()
    if payload.company and payload.company.strip():
        customer.company = payload.company.strip()
    if payload.phone:
        customer.phone = payload.phone

    commit_or_conflict(db, DUPLICATE_EMAIL)
    db.refresh(customer)
    return _customer_to_out(customer)


@router.delete("/customers/{customer_id}", response_model=MessageOut)
def delete_customer(
    customer_id: str,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    customer = _get_customer_or_404(db, customer_id)
    db.delete(customer)
    db.commit()
    logger.info("Customer %s deleted", customer_id)
    return MessageOut(message="Customer removed")
