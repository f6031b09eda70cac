from enum import Enum
from typing import Any, Dict, Iterable

from pydantic import BaseModel


def column_changes(payload: BaseModel, exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """Explicitly provided fields of a partial update, ready to set on a model."""
    changes = payload.model_dump(exclude_unset=True, exclude=set(exclude))
    return {
        field: value.value if isinstance(value, Enum) else value
        for field, value in changes.items()
    }
