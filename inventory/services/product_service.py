"""
Product catalog service.

Products never have their ``current_stock`` written here: the opening
balance and every later change go through the stock engine.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from inventory.exceptions import ValidationError, ProductNotFoundError
from inventory.models import Product, Supplier
from inventory.services.stock_status import StockStatus, classify_stock, critical_ratio
from inventory.services.stock_service import MAX_ID, MAX_QUANTITY, MAX_UNIT_PRICE

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    'name': Product.name,
    'sku': Product.sku,
    'category': Product.category,
    'current_stock': Product.current_stock,
    'unit_price': Product.unit_price,
    'created_at': Product.created_at,
}
EDITABLE_FIELDS = ('sku', 'name', 'category', 'description', 'min_stock', 'max_stock',
                   'unit_price', 'supplier_id', 'active')
MAX_PAGE_SIZE = 100


def create_product(
    session,
    sku: str,
    name: str,
    category: str,
    unit_price=0,
    min_stock: int = 0,
    max_stock: Optional[int] = None,
    description: Optional[str] = None,
    supplier_id: Optional[int] = None,
    initial_stock: int = 0,
    user_id: Optional[int] = None
) -> Product:
    """
    Create a product.

    A positive ``initial_stock`` is booked as an opening-balance adjustment,
    so the ledger explains the first balance like any other.

    Raises:
        ValidationError: missing fields, duplicate SKU, bad stock limits
    """
    data = _clean_fields(session, {
        'sku': sku,
        'name': name,
        'category': category,
        'unit_price': unit_price,
        'min_stock': min_stock,
        'max_stock': max_stock,
        'description': description,
        'supplier_id': supplier_id,
    })
    for field in ('sku', 'name', 'category'):
        if not data.get(field):
            raise ValidationError(f'{field} is required')
    _check_stock_limits(data['min_stock'], data['max_stock'])

    initial_stock = _non_negative_int(initial_stock, 'initial_stock')

    if sku_exists(session, data['sku']):
        raise ValidationError(f'SKU "{data["sku"]}" already exists')

    product = Product(current_stock=0, active=True, **data)
    try:
        session.add(product)
        session.commit()
    except IntegrityError:
        # Race condition: another request took the SKU
        session.rollback()
        raise ValidationError(f'SKU "{data["sku"]}" already exists')

    logger.info(f"Product created: id={product.id} sku={product.sku}")

    if initial_stock > 0:
        from inventory.services.stock_service import record_adjustment
        record_adjustment(session, product.id, initial_stock, 'Opening balance', user_id=user_id)
        session.refresh(product)
    else:
        _invalidate_dashboard_cache()

    return product


def update_product(session, product_id: int, **fields) -> Product:
    """Update catalog fields; the stock balance is read-only here."""
    if 'current_stock' in fields:
        raise ValidationError('current_stock can only change through stock movements')
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f'Unknown product fields: {", ".join(sorted(unknown))}')

    product = get_product(session, product_id, include_inactive=True)
    data = _clean_fields(session, fields)

    for field in ('sku', 'name', 'category'):
        if field in data and not data[field]:
            raise ValidationError(f'{field} cannot be empty')
    if 'sku' in data and sku_exists(session, data['sku'], exclude_id=product.id):
        raise ValidationError(f'SKU "{data["sku"]}" already exists')

    _check_stock_limits(
        data.get('min_stock', product.min_stock),
        data.get('max_stock', product.max_stock)
    )

    for field, value in data.items():
        setattr(product, field, value)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError('Product could not be updated (duplicate SKU or invalid values)')

    _invalidate_dashboard_cache()
    return product


def delete_product(session, product_id: int) -> Product:
    """Soft delete: the product keeps its ledger but stops taking movements."""
    product = get_product(session, product_id)
    product.active = False
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    logger.info(f"Product deactivated: id={product.id} sku={product.sku}")
    _invalidate_dashboard_cache()
    return product


def get_product(session, product_id: int, include_inactive: bool = False) -> Product:
    product = session.get(Product, product_id)
    if product is None or (not product.active and not include_inactive):
        raise ProductNotFoundError(product_id)
    session.refresh(product)
    return product


def list_products(
    session,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort_by: str = 'name',
    sort_order: str = 'asc'
) -> dict:
    """
    Paginated listing of active products.

    Returns:
        dict with keys: items (list of Product), count (total matches),
        page, limit
    """
    if page < 1:
        raise ValidationError('page must be 1 or greater')
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f'limit must be between 1 and {MAX_PAGE_SIZE}')
    if (page - 1) * limit > MAX_ID:
        raise ValidationError('page is out of range')
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f'Cannot sort by "{sort_by}"')
    if sort_order not in ('asc', 'desc'):
        raise ValidationError('sort_order must be "asc" or "desc"')

    query = session.query(Product).filter(Product.active == True)  # noqa: E712
    if search:
        query = query.filter(_search_filter(search))
    if category:
        query = query.filter(Product.category == category)

    count = query.count()

    column = SORTABLE_FIELDS[sort_by]
    ordering = column.desc() if sort_order == 'desc' else column.asc()
    items = query.order_by(ordering, Product.id.asc()).offset((page - 1) * limit).limit(limit).all()

    return {'items': items, 'count': count, 'page': page, 'limit': limit}


def search_products(session, term: str, limit: int = 20) -> List[Product]:
    """Case-insensitive match on name, SKU or category."""
    term = (term or '').strip()
    if not term:
        return []
    return session.query(Product).filter(
        Product.active == True,  # noqa: E712
        _search_filter(term)
    ).order_by(Product.name).limit(limit).all()


def get_low_stock_products(session) -> List[Product]:
    """Active products below normal, most severe first."""
    ratio = critical_ratio()
    candidates = session.query(Product).filter(
        Product.active == True,  # noqa: E712
        Product.current_stock <= Product.min_stock
    ).all()

    flagged = []
    for product in candidates:
        status = classify_stock(product.current_stock, product.min_stock, ratio)
        if status != StockStatus.NORMAL:
            flagged.append((status, product))

    flagged.sort(key=lambda pair: (-pair[0].severity, pair[1].current_stock, pair[1].name))
    return [product for _, product in flagged]


def get_out_of_stock_products(session) -> List[Product]:
    return session.query(Product).filter(
        Product.active == True,  # noqa: E712
        Product.current_stock == 0
    ).order_by(Product.name).all()


def get_product_count_by_category(session) -> Dict[str, int]:
    rows = session.query(
        Product.category,
        func.count(Product.id)
    ).filter(
        Product.active == True  # noqa: E712
    ).group_by(Product.category).order_by(Product.category).all()
    return {category: count for category, count in rows}


def sku_exists(session, sku: str, exclude_id: Optional[int] = None) -> bool:
    query = session.query(Product.id).filter(Product.sku == _text(sku, 'sku'))
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def _search_filter(term: str):
    pattern = f'%{term.strip().lower()}%'
    return or_(
        func.lower(Product.name).like(pattern),
        func.lower(Product.sku).like(pattern),
        func.lower(Product.category).like(pattern)
    )


def _clean_fields(session, fields: dict) -> dict:
    """Normalise the editable fields present in ``fields``."""
    data = {}
    for field, value in fields.items():
        if field in ('sku', 'name', 'category'):
            data[field] = _text(value, field)
        elif field == 'description':
            data[field] = _text(value, field) or None
        elif field == 'min_stock':
            data[field] = _non_negative_int(value, 'min_stock')
        elif field == 'max_stock':
            data[field] = None if value in (None, '') else _non_negative_int(value, 'max_stock')
        elif field == 'unit_price':
            data[field] = _price(value)
        elif field == 'supplier_id':
            data[field] = _supplier_id(session, value)
        elif field == 'active':
            data[field] = bool(value)
    return data


def _check_stock_limits(min_stock: int, max_stock: Optional[int]) -> None:
    if max_stock is not None and max_stock < min_stock:
        raise ValidationError('max_stock must be greater than or equal to min_stock')


def _non_negative_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')
    if number != value and str(number) != str(value).strip():
        raise ValidationError(f'{field} must be an integer')
    if number < 0:
        raise ValidationError(f'{field} cannot be negative')
    if number > MAX_QUANTITY:
        raise ValidationError(f'{field} must be at most {MAX_QUANTITY}')
    return number


def _text(value, field: str) -> str:
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string')
    return value.strip()


def _price(value) -> Decimal:
    try:
        price = Decimal(str(value if value is not None else 0).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError('unit_price must be a number')
    if not price.is_finite() or price < 0:
        raise ValidationError('unit_price cannot be negative')
    if price > MAX_UNIT_PRICE:
        raise ValidationError(f'unit_price must be at most {MAX_UNIT_PRICE}')
    return price.quantize(Decimal('0.01'))


def _supplier_id(session, value) -> Optional[int]:
    if value in (None, ''):
        return None
    try:
        supplier_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError('supplier_id is invalid')
    if not 0 < supplier_id <= MAX_ID:
        raise ValidationError('supplier_id is invalid')
    if session.get(Supplier, supplier_id) is None:
        raise ValidationError(f'Supplier {supplier_id} not found')
    return supplier_id


def _invalidate_dashboard_cache():
    from inventory.services.dashboard_service import invalidate_dashboard_cache
    invalidate_dashboard_cache()
