"""Request parsing helpers shared by the JSON blueprints."""
from typing import Optional

from flask import request
from werkzeug.routing import IntegerConverter

from inventory.exceptions import ValidationError
from inventory.services.stock_service import MAX_ID


class IdConverter(IntegerConverter):
    """``<int:...>`` limited to the BIGINT key range; larger values do not match (404)."""

    def __init__(self, map, *args, **kwargs):
        kwargs.setdefault('max', MAX_ID)
        super().__init__(map, *args, **kwargs)


def json_body() -> dict:
    """Return the request's JSON object, or raise ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError('Request body must be JSON')
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def require_fields(data: dict, *fields: str) -> None:
    missing = [field for field in fields if data.get(field) in (None, '')]
    if missing:
        raise ValidationError(f'Missing required fields: {", ".join(missing)}')


def arg_int(name: str, default: Optional[int] = None) -> Optional[int]:
    """Integer query parameter; ValidationError when it is not a number."""
    value = request.args.get(name, '').strip()
    if not value:
        return default
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f'{name} must be an integer')
    if abs(number) > MAX_ID:
        raise ValidationError(f'{name} is out of range')
    return number


def arg_bool(name: str, default: bool = False) -> bool:
    value = request.args.get(name, '').strip().lower()
    if not value:
        return default
    return value in ('1', 'true', 'yes', 'on')
