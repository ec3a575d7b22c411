"""
Segment Query Compiler

Compiles a segment rule tree into a membership predicate over contacts:
a SQLAlchemy clause for listing and counting, and an equivalent in-memory
check for a single contact. The reference time used by relative date
conditions is captured once per compile so every query issued from one
compiled segment sees the same cut-off.

Rule format:
{
    "logic": "AND" | "OR",
    "conditions": [
        {"field": "avgRating", "operator": "lessThan", "value": 3},
        {"field": "tags", "operator": "in", "value": "vip,beta"},
        {"field": "lastActivity", "operator": "before", "value": 30}
    ]
}

A numeric ``before``/``after`` value means that many days before the
reference time.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import String, and_, cast, false, or_, true

from app.exceptions import SegmentRuleInvalid
from app.models.feedback import Contact
from app.schemas.feedback import SegmentField, SegmentLogic, SegmentOperator, SegmentRule

logger = logging.getLogger(__name__)


STRING = "string"
NUMBER = "number"
TIMESTAMP = "timestamp"
TAGS = "tags"

# Rule field -> (Contact attribute, value kind)
FIELD_MAPPING: dict[SegmentField, tuple[str, str]] = {
    SegmentField.EMAIL: ("email", STRING),
    SegmentField.PHONE: ("phone", STRING),
    SegmentField.NAME: ("name", STRING),
    SegmentField.COMPANY: ("company", STRING),
    SegmentField.TAGS: ("tags", TAGS),
    SegmentField.LAST_ACTIVITY: ("last_activity", TIMESTAMP),
    SegmentField.STATUS: ("status", STRING),
    SegmentField.SEGMENT: ("segment", STRING),
    SegmentField.RESPONSE_COUNT: ("response_count", NUMBER),
    SegmentField.AVG_RATING: ("avg_rating", NUMBER),
    SegmentField.CREATED_AT: ("created_at", TIMESTAMP),
}

_Op = SegmentOperator

SUPPORTED_OPERATORS: dict[str, frozenset] = {
    STRING: frozenset({_Op.EQUALS, _Op.NOT_EQUALS, _Op.CONTAINS, _Op.NOT_CONTAINS, _Op.EXISTS, _Op.IN, _Op.NOT_IN}),
    TAGS: frozenset({_Op.EQUALS, _Op.NOT_EQUALS, _Op.CONTAINS, _Op.NOT_CONTAINS, _Op.EXISTS, _Op.IN, _Op.NOT_IN}),
    NUMBER: frozenset({_Op.EQUALS, _Op.NOT_EQUALS, _Op.EXISTS, _Op.GREATER_THAN, _Op.LESS_THAN, _Op.IN, _Op.NOT_IN}),
    TIMESTAMP: frozenset({_Op.EXISTS, _Op.GREATER_THAN, _Op.LESS_THAN, _Op.BEFORE, _Op.AFTER}),
}

_FALSE_STRINGS = {"false", "0", "no", "off"}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _get(contact: Any, attr: str, field_name: str) -> Any:
    if isinstance(contact, Mapping):
        return contact.get(attr, contact.get(field_name))
    return getattr(contact, attr, None)


@dataclass
class CompiledCondition:
    field: SegmentField
    operator: SegmentOperator
    value: Any
    attr: str
    kind: str

    def clause(self):
        column = getattr(Contact, self.attr)
        op, v = self.operator, self.value

        if self.kind == TAGS:
            return self._tags_clause(column, op, v)

        if op == _Op.EXISTS:
            return column.isnot(None) if v else column.is_(None)
        if op == _Op.EQUALS:
            return column == v
        if op == _Op.NOT_EQUALS:
            return column != v
        if op == _Op.CONTAINS:
            return column.icontains(v, autoescape=True)
        if op == _Op.NOT_CONTAINS:
            return ~column.icontains(v, autoescape=True)
        if op in (_Op.GREATER_THAN, _Op.AFTER):
            return column > v
        if op in (_Op.LESS_THAN, _Op.BEFORE):
            return column < v
        if op == _Op.IN:
            return column.in_(v)
        if op == _Op.NOT_IN:
            return column.not_in(v)
        raise SegmentRuleInvalid(f"Unsupported operator '{op.value}'")

    @staticmethod
    def _tags_clause(column, op: SegmentOperator, v: Any):
        text = cast(column, String)

        def has(tag: str):
            # Match the column's serialized form, so non-ASCII and quotes are escaped the same way
            return text.contains(json.dumps(tag), autoescape=True)

        def lacks(tags: list[str]):
            return or_(column.is_(None), and_(*[~has(t) for t in tags]))

        if op == _Op.EXISTS:
            non_empty = and_(column.isnot(None), text.not_in(["[]", "null"]))
            return non_empty if v else ~non_empty
        if op in (_Op.EQUALS, _Op.CONTAINS):
            return has(v)
        if op in (_Op.NOT_EQUALS, _Op.NOT_CONTAINS):
            return lacks([v])
        if op == _Op.IN:
            return or_(*[has(t) for t in v]) if v else false()
        if op == _Op.NOT_IN:
            return lacks(v) if v else true()
        raise SegmentRuleInvalid(f"Unsupported operator '{op.value}' for tags")

    def matches(self, contact: Any) -> bool:
        actual = _get(contact, self.attr, self.field.value)
        op, v = self.operator, self.value

        if self.kind == TAGS:
            tags = list(actual or [])
            if op == _Op.EXISTS:
                return bool(tags) == v
            if op in (_Op.EQUALS, _Op.CONTAINS):
                return v in tags
            if op in (_Op.NOT_EQUALS, _Op.NOT_CONTAINS):
                return v not in tags
            if op == _Op.IN:
                return any(t in tags for t in v)
            if op == _Op.NOT_IN:
                return not any(t in tags for t in v)
            return False

        if op == _Op.EXISTS:
            return (actual is not None) == v
        # SQL NULL semantics: a missing value never satisfies a comparison
        if actual is None:
            return False
        if self.kind == TIMESTAMP and isinstance(actual, datetime):
            actual = _as_utc(actual)

        if op == _Op.EQUALS:
            return actual == v
        if op == _Op.NOT_EQUALS:
            return actual != v
        if op == _Op.CONTAINS:
            return v.lower() in str(actual).lower()
        if op == _Op.NOT_CONTAINS:
            return v.lower() not in str(actual).lower()
        if op in (_Op.GREATER_THAN, _Op.AFTER):
            return actual > v
        if op in (_Op.LESS_THAN, _Op.BEFORE):
            return actual < v
        if op == _Op.IN:
            return actual in v
        if op == _Op.NOT_IN:
            return actual not in v
        return False


@dataclass
class CompiledSegment:
    """Membership predicate produced by SegmentQueryCompiler.compile."""
    logic: SegmentLogic
    conditions: list[CompiledCondition]
    now: datetime
    clause: Any = field(init=False)

    def __post_init__(self):
        if not self.conditions:
            self.clause = true()
        else:
            clauses = [c.clause() for c in self.conditions]
            self.clause = or_(*clauses) if self.logic == SegmentLogic.OR else and_(*clauses)

    def matches(self, contact: Any) -> bool:
        if not self.conditions:
            return True
        results = (c.matches(contact) for c in self.conditions)
        return any(results) if self.logic == SegmentLogic.OR else all(results)


class SegmentQueryCompiler:
    """
    Compiles segment rules against a fixed reference time.

    Usage:
        compiled = SegmentQueryCompiler().compile(segment.rules)
        stmt = select(Contact).where(Contact.tenant_id == tenant_id, compiled.clause)
    """

    def __init__(self, now: Optional[datetime] = None):
        self._now = _as_utc(now) if now else None

    def compile(self, rule: Union[SegmentRule, Mapping[str, Any]]) -> CompiledSegment:
        rule = self._validate(rule)
        now = self._now or datetime.now(timezone.utc)

        conditions = []
        for position, cond in enumerate(rule.conditions, start=1):
            attr, kind = FIELD_MAPPING[cond.field]
            if cond.operator not in SUPPORTED_OPERATORS[kind]:
                raise SegmentRuleInvalid(
                    f"Condition {position}: operator '{cond.operator.value}' is not supported "
                    f"for field '{cond.field.value}'"
                )
            try:
                value = self._coerce(cond.operator, kind, cond.value, now)
            except (TypeError, ValueError) as e:
                raise SegmentRuleInvalid(
                    f"Condition {position}: invalid value for '{cond.field.value} {cond.operator.value}': {e}"
                )
            conditions.append(
                CompiledCondition(field=cond.field, operator=cond.operator, value=value, attr=attr, kind=kind)
            )

        logger.debug(f"Compiled segment rule: logic={rule.logic.value}, conditions={len(conditions)}")
        return CompiledSegment(logic=rule.logic, conditions=conditions, now=now)

    @staticmethod
    def _validate(rule: Union[SegmentRule, Mapping[str, Any]]) -> SegmentRule:
        if isinstance(rule, SegmentRule):
            return rule
        if rule is None:
            return SegmentRule()
        try:
            return SegmentRule.model_validate(rule)
        except PydanticValidationError as e:
            messages = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors(include_url=False)
            )
            raise SegmentRuleInvalid(f"Invalid segment rule: {messages}")

    def _coerce(self, op: SegmentOperator, kind: str, value: Any, now: datetime) -> Any:
        if op == _Op.EXISTS:
            return self._to_bool(value)
        if op in (_Op.IN, _Op.NOT_IN):
            return [self._scalar(kind, v, now) for v in self._to_list(value)]
        if op in (_Op.BEFORE, _Op.AFTER):
            return self._to_timestamp(value, now, numeric_days=True)
        return self._scalar(kind, value, now)

    def _scalar(self, kind: str, value: Any, now: datetime) -> Any:
        if value is None:
            raise ValueError("a value is required")
        if kind == NUMBER:
            return self._to_number(value)
        if kind == TIMESTAMP:
            return self._to_timestamp(value, now, numeric_days=False)
        return str(value)

    @staticmethod
    def _to_bool(value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, str):
            return value.strip().lower() not in _FALSE_STRINGS
        return bool(value)

    @staticmethod
    def _to_list(value: Any) -> list:
        if value is None:
            raise ValueError("a list of values is required")
        if isinstance(value, (list, tuple, set)):
            return list(value)
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return [value]

    @staticmethod
    def _to_number(value: Any) -> float:
        if isinstance(value, bool):
            raise ValueError("expected a number")
        return float(value)

    @staticmethod
    def _to_timestamp(value: Any, now: datetime, numeric_days: bool) -> datetime:
        if isinstance(value, datetime):
            return _as_utc(value)
        if isinstance(value, date):
            return datetime.combine(value, time.min, tzinfo=timezone.utc)
        if isinstance(value, bool) or value is None:
            raise ValueError("expected a timestamp")
        if isinstance(value, (int, float)):
            if not numeric_days:
                raise ValueError("expected a timestamp")
            return now - timedelta(days=value)
        if isinstance(value, str):
            text = value.strip()
            try:
                return _as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
            except ValueError:
                if numeric_days:
                    return now - timedelta(days=float(text))
                raise
        raise ValueError("expected a timestamp")


def compile_segment(rule: Union[SegmentRule, Mapping[str, Any]], now: Optional[datetime] = None) -> CompiledSegment:
    return SegmentQueryCompiler(now=now).compile(rule)

