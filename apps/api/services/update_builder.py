"""
Typed partial-update builder.

Each updatable resource declares the fixed set of fields a PATCH may touch
and how each maps onto a column. Only fields the caller explicitly sent
contribute a (column, value) pair; anything else is ignored, so no user
value ever reaches the statement except as a bound parameter.
"""
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel

from core.exceptions import InvalidInputError

# field name -> converter returning {column: value}; None means "same column, value as is"
FieldMap = Mapping[str, Optional[Callable[[Any, BaseModel], Dict[str, Any]]]]


def build_update_values(payload: BaseModel, fields: FieldMap, non_nullable=()) -> Dict[str, Any]:
    """
    Collect column values for the explicitly-set fields of `payload`.

    Raises InvalidInputError when nothing updatable was sent or when a
    non-nullable field is explicitly set to null.
    """
    sent = payload.model_fields_set
    values: Dict[str, Any] = {}
    for name, convert in fields.items():
        if name not in sent:
            continue
        value = getattr(payload, name)
        if value is None and name in non_nullable:
            raise InvalidInputError(f"{name} cannot be null", field=name)
        if convert is None:
            values[name] = value
        else:
            values.update(convert(value, payload))
    if not values:
        raise InvalidInputError("No updatable fields provided")
    return values
