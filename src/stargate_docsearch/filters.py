"""
Filter predicates for Document API searches.

A Filter pairs a field name with a FilterCondition and a value, and renders
itself as a JSON object fragment: "<field>": {"<token>": <value>}.
"""

import json
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from stargate_docsearch.exceptions import QueryValidationError


class FilterCondition(str, Enum):
    """Comparison operators supported by the Document API, valued by their token."""
    LESS_THAN = "$lt"
    LESS_THAN_OR_EQUALS_TO = "$lte"
    GREATER_THAN = "$gt"
    GREATER_THAN_OR_EQUALS_TO = "$gte"
    EQUALS_TO = "$eq"
    NOT_EQUALS_TO = "$ne"
    EXISTS = "$exists"
    IN = "$in"

    @property
    def token(self) -> str:
        return self.value


@dataclass(frozen=True)
class Filter:
    """
    A single predicate on a document field.

    Invariants checked on creation:
    - field_name is a non-empty string
    - value is None only for EXISTS, and EXISTS never carries a value
    - IN takes a non-string collection, stored as a tuple
    - value is JSON serializable (NaN and infinities rejected)

    Filters compare by value but are not hashable, IN values and arbitrary
    JSON payloads may not be.
    """

    field_name: str
    condition: FilterCondition
    value: Any = None

    __hash__ = None

    def __post_init__(self):
        if not isinstance(self.field_name, str) or not self.field_name:
            raise QueryValidationError("must be a non-empty string", field="field_name", value=self.field_name)

        if not isinstance(self.condition, FilterCondition):
            raise QueryValidationError("unknown filter condition", field="condition", value=self.condition)

        if self.condition is FilterCondition.EXISTS:
            if self.value is not None:
                raise QueryValidationError("EXISTS does not take a value", field=self.field_name, value=self.value)
            return

        if self.value is None:
            raise QueryValidationError(
                f"a value is required for {self.condition.name}",
                field=self.field_name
            )

        if self.condition is FilterCondition.IN:
            if isinstance(self.value, (str, bytes, dict)) or not isinstance(self.value, Iterable):
                raise QueryValidationError("IN expects a collection of values", field=self.field_name, value=self.value)
            # frozen dataclass
            object.__setattr__(self, "value", tuple(self.value))

        try:
            self._encode_value()
        except (TypeError, ValueError) as e:
            raise QueryValidationError(
                f"value is not JSON serializable ({e})",
                field=self.field_name,
                value=self.value
            ) from e

    def _encode_value(self) -> str:
        if self.condition is FilterCondition.EXISTS:
            return "true"
        if self.condition is FilterCondition.IN:
            return json.dumps(list(self.value), allow_nan=False)
        return json.dumps(self.value, allow_nan=False)

    def to_json_fragment(self) -> str:
        """
        Render the filter as a where-clause fragment.

        Returns:
            String like '"age": {"$gt": 10}'
        """
        return f'{json.dumps(self.field_name)}: {{"{self.condition.token}": {self._encode_value()}}}'

    def __str__(self) -> str:
        return self.to_json_fragment()


def serialize_filters(filters: Iterable[Filter]) -> str:
    """
    Join filter fragments into a where clause, preserving order.

    Returns "{}" when there are no filters.
    """
    return "{" + ",".join(f.to_json_fragment() for f in filters) + "}"
