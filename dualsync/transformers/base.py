"""
Entity Transformer Foundations

A transformer maps one source document to the column values of its target
row. Each entity type has its own typed subclass that names every field it
extracts and the default it falls back to; nothing is copied by reflection,
so the handling of missing or invalid values stays auditable per field.

Field policy:
- pass-through values get a type-appropriate default when absent or null,
  never None for a non-nullable column
- enum values are coerced into the column's valid set with a declared default
- nested sub-documents are flattened into prefixed scalar columns
- required references raise UnresolvedReference (the record is deferred),
  optional references resolve to None
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from dualsync.services.id_translation import IdTranslator, normalize_source_id


# ============================================================================
# Field coercion helpers
# ============================================================================

def text(value: Any, default: str = '') -> str:
    """Required text column: None becomes ``default``, anything else is stringified."""
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def optional_text(value: Any) -> Optional[str]:
    """Nullable text column: empty values become None."""
    if value is None or value == '':
        return None
    return value if isinstance(value, str) else str(value)


def integer(value: Any, default: Optional[int] = 0) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return int(number)


def number(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return default if math.isnan(result) else result


def flag(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    return bool(value)


def choice(value: Any, allowed: Iterable[str], default: Optional[str]) -> Optional[str]:
    """Coerce ``value`` into ``allowed``, falling back to ``default``."""
    return value if isinstance(value, str) and value in allowed else default


def timestamp(value: Any) -> Optional[datetime]:
    """
    Normalize a source timestamp to a naive UTC datetime.

    Accepts datetimes, ISO-8601 strings, extended-JSON ``{"$date": ...}``
    values and epoch milliseconds. Unparseable values map to None.
    """
    if value is None or value == '':
        return None
    if isinstance(value, dict) and '$date' in value:
        value = value['$date']
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
        return timestamp(parsed)
    return None


def string_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None]


def jsonable(value: Any) -> Any:
    """Recursively convert a document fragment into JSON-serializable values."""
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, Mapping):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [jsonable(item) for item in value]
    if isinstance(value, datetime):
        return timestamp(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return str(value)


def json_list(value: Any) -> list:
    return jsonable(value) if isinstance(value, (list, tuple)) else []


def json_object(value: Any, default: Any = None) -> Any:
    return jsonable(value) if isinstance(value, Mapping) else default


def nested(document: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    """Return the sub-document at ``key``, or an empty mapping."""
    value = document.get(key)
    return value if isinstance(value, Mapping) else {}


# ============================================================================
# Transformer base
# ============================================================================

@dataclass
class TransformResult:
    """
    Output of a transformer.

    ``children`` maps a child collection name to its replacement rows; it is
    None for entity types without child collections.
    """
    source_id: str
    fields: Dict[str, Any]
    children: Optional[Dict[str, List[Dict[str, Any]]]] = None
    dropped_children: List[str] = field(default_factory=list)


class EntityTransformer:
    """
    Base class for per-entity transformers.

    Subclasses set the class attributes and implement ``build_fields``; those
    with child collections also implement ``build_children``.
    """

    entity_type: str = None
    collection: str = None
    model = None
    # Unique columns tried in order when an insert hits a unique violation.
    natural_keys: Tuple[str, ...] = ()
    # Child collection name -> (child model, foreign key attribute to parent).
    child_models: Dict[str, Tuple[Any, str]] = {}

    def source_id(self, document: Mapping[str, Any]) -> Optional[str]:
        return normalize_source_id(document.get('_id'))

    def transform(self, document: Mapping[str, Any], refs: IdTranslator) -> TransformResult:
        source_id = self.source_id(document)
        if source_id is None:
            raise ValueError(f"{self.entity_type} document has no _id")

        fields = self.build_fields(document, refs)
        created_at = timestamp(document.get('createdAt'))
        if created_at is not None:
            fields['created_at'] = created_at

        result = TransformResult(source_id=source_id, fields=fields)
        if self.child_models:
            result.children = self.build_children(document, refs, result)
        return result

    def build_fields(self, document: Mapping[str, Any], refs: IdTranslator) -> Dict[str, Any]:
        raise NotImplementedError

    def build_children(self, document: Mapping[str, Any], refs: IdTranslator,
                       result: TransformResult) -> Dict[str, List[Dict[str, Any]]]:
        return {}

    def require(self, refs: IdTranslator, document: Mapping[str, Any], key: str, model):
        return refs.require(self.entity_type, key, model, document.get(key))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.entity_type}>"
