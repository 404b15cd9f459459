"""Supplier service."""
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from inventory.exceptions import NotFoundError, ValidationError
from inventory.models import Supplier

logger = logging.getLogger(__name__)


def create_supplier(
    session,
    name: str,
    contact_person: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    address: Optional[str] = None,
    payment_terms: Optional[str] = None,
    lead_time_days: int = 7
) -> Supplier:
    name = (name or '').strip()
    if not name:
        raise ValidationError('Supplier name is required')
    email = (email or '').strip().lower() or None
    if email and '@' not in email:
        raise ValidationError('Supplier email is invalid')
    try:
        lead_time_days = int(lead_time_days)
    except (TypeError, ValueError):
        raise ValidationError('lead_time_days must be an integer')
    if lead_time_days < 0:
        raise ValidationError('lead_time_days cannot be negative')

    supplier = Supplier(
        name=name,
        contact_person=contact_person,
        email=email,
        phone=phone,
        address=address,
        payment_terms=payment_terms,
        lead_time_days=lead_time_days,
    )
    try:
        session.add(supplier)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    logger.info(f"Supplier created: id={supplier.id} name={supplier.name}")
    return supplier


def get_supplier(session, supplier_id: int) -> Supplier:
    supplier = session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError(f'Supplier {supplier_id} not found')
    return supplier


def list_suppliers(session) -> List[Supplier]:
    return session.query(Supplier).order_by(Supplier.name).all()
