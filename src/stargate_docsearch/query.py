"""
Fluent search query builder for the Stargate Document API.

Example:
    query = (
        SearchDocumentQuery.builder()
        .with_page_size(10)
        .where("age").is_greater_than(10)
        .and_("age").is_less_than(50)
        .build()
    )
    query.where  # '{"age": {"$gt": 10},"age": {"$lt": 50}}'

A where clause is built either from structured filters (where/and_) or
supplied verbatim with with_where_clause_json(), never both.
"""

import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any, Optional

from stargate_docsearch.exceptions import QuerySequencingError, QueryValidationError
from stargate_docsearch.filters import Filter, FilterCondition, serialize_filters

logger = logging.getLogger(__name__)

# Limit set by the Document API
PAGING_SIZE_MAX = 20
DEFAULT_PAGING_SIZE = 20


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value:
        raise QueryValidationError("must be a non-empty string", field=field, value=value)
    return value


class WhereState(str, Enum):
    """How the where clause of a builder is being constructed."""
    EMPTY = "empty"
    HAS_FILTERS = "has_filters"
    HAS_RAW_CLAUSE = "has_raw_clause"


class SearchDocumentQuery:
    """
    Immutable search query produced by SearchDocumentQueryBuilder.

    page_state is the only attribute that can change after build(): the
    server returns the cursor of the next page in each response and the
    caller feeds it back before requesting that page.
    """

    __slots__ = ("_page_size", "_page_state", "_returned_fields", "_where", "_filters")

    def __init__(
        self,
        page_size: int,
        page_state: Optional[str],
        returned_fields: Optional[frozenset[str]],
        where: str,
        filters: tuple[Filter, ...] = (),
    ):
        self._page_size = page_size
        self._page_state = page_state
        self._returned_fields = returned_fields
        self._where = where
        self._filters = filters

    @staticmethod
    def builder() -> "SearchDocumentQueryBuilder":
        """Return a fresh builder."""
        return SearchDocumentQueryBuilder()

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def page_state(self) -> Optional[str]:
        return self._page_state

    @page_state.setter
    def page_state(self, value: Optional[str]) -> None:
        if value is not None:
            _require_text(value, "page_state")
        self._page_state = value

    @property
    def returned_fields(self) -> Optional[frozenset[str]]:
        return self._returned_fields

    @property
    def where(self) -> str:
        return self._where

    @property
    def filters(self) -> tuple[Filter, ...]:
        return self._filters

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchDocumentQuery):
            return NotImplemented
        return (
            self._page_size == other._page_size
            and self._page_state == other._page_state
            and self._returned_fields == other._returned_fields
            and self._where == other._where
        )

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"SearchDocumentQuery(page_size={self._page_size}, page_state={self._page_state!r}, "
            f"returned_fields={self._returned_fields!r}, where={self._where!r})"
        )


class SearchDocumentQueryBuilder:
    """
    Mutable builder for SearchDocumentQuery.

    Not thread safe; create one builder per query. The builder tracks an
    explicit WhereState and checks it on every mutating call:

        EMPTY          --where().<op>()-->          HAS_FILTERS
        HAS_FILTERS    --and_().<op>()-->           HAS_FILTERS
        EMPTY          --with_where_clause_json()--> HAS_RAW_CLAUSE

    Every other transition raises QuerySequencingError.
    """

    def __init__(self):
        self._page_size = DEFAULT_PAGING_SIZE
        self._page_state: Optional[str] = None
        self._fields: Optional[frozenset[str]] = None
        self._where_clause: Optional[str] = None
        self._filters: list[Filter] = []
        self._state = WhereState.EMPTY
        self._built = False

    @property
    def state(self) -> WhereState:
        return self._state

    @property
    def filters(self) -> tuple[Filter, ...]:
        return tuple(self._filters)

    def _check_open(self) -> None:
        if self._built:
            raise QuerySequencingError("Builder already consumed by build(), create a new one")

    # ------------------------------------------------------------------
    # Paging and projection
    # ------------------------------------------------------------------

    def with_page_size(self, page_size: int) -> "SearchDocumentQueryBuilder":
        """
        Set the number of documents per page.

        Raises:
            QueryValidationError: If page_size is not an int in [1, 20]
        """
        self._check_open()
        if isinstance(page_size, bool) or not isinstance(page_size, int):
            raise QueryValidationError("must be an integer", field="page_size", value=page_size)
        if page_size < 1 or page_size > PAGING_SIZE_MAX:
            raise QueryValidationError(
                f"must be between 1 and {PAGING_SIZE_MAX}",
                field="page_size",
                value=page_size
            )
        self._page_size = page_size
        return self

    def with_page_state(self, page_state: str) -> "SearchDocumentQueryBuilder":
        """Resume from the cursor returned with a previous page."""
        self._check_open()
        self._page_state = _require_text(page_state, "page_state")
        return self

    def with_returned_fields(self, *fields: str) -> "SearchDocumentQueryBuilder":
        """
        Only return these fields, replacing any previous projection.

        Raises:
            QueryValidationError: If no field is given or a name is empty
        """
        self._check_open()
        if not fields:
            raise QueryValidationError("at least one field is required", field="fields")
        for name in fields:
            _require_text(name, "fields")
        self._fields = frozenset(fields)
        return self

    def select(self, *fields: str) -> "SearchDocumentQueryBuilder":
        """Alias of with_returned_fields()."""
        return self.with_returned_fields(*fields)

    # ------------------------------------------------------------------
    # Where clause
    # ------------------------------------------------------------------

    def with_where_clause_json(self, where: str) -> "SearchDocumentQueryBuilder":
        """
        Provide the full where clause as a JSON string, used verbatim.

        Raises:
            QuerySequencingError: If a where clause or filters are already set
            QueryValidationError: If where is empty
        """
        self._check_open()
        if self._state is WhereState.HAS_RAW_CLAUSE:
            raise QuerySequencingError("Only a single where clause is allowed in a query")
        if self._state is WhereState.HAS_FILTERS:
            raise QuerySequencingError(
                "Cannot set a JSON where clause, filters were already added with where()"
            )
        self._where_clause = _require_text(where, "where")
        self._state = WhereState.HAS_RAW_CLAUSE
        return self

    def where(self, field_name: str) -> "SearchDocumentWhere":
        """
        Start the first condition of the where clause.

        Raises:
            QuerySequencingError: If a condition or a JSON where clause exists
        """
        self._check_open()
        _require_text(field_name, "field_name")
        if self._state is WhereState.HAS_RAW_CLAUSE:
            raise QuerySequencingError("Invalid query, a JSON where clause has already been provided")
        if self._state is WhereState.HAS_FILTERS:
            raise QuerySequencingError("Invalid query, use and_() as a where clause has been provided")
        return SearchDocumentWhere(self, field_name)

    def and_(self, field_name: str) -> "SearchDocumentWhere":
        """
        Add another condition after where().

        Raises:
            QuerySequencingError: If no condition exists yet
        """
        self._check_open()
        _require_text(field_name, "field_name")
        if self._state is WhereState.HAS_RAW_CLAUSE:
            raise QuerySequencingError("Invalid query, a JSON where clause has already been provided")
        if self._state is WhereState.EMPTY:
            raise QuerySequencingError("Invalid query, use where() for your first condition")
        return SearchDocumentWhere(self, field_name)

    def _add_filter(self, filter: Filter) -> "SearchDocumentQueryBuilder":
        self._check_open()
        if self._state is WhereState.HAS_RAW_CLAUSE:
            raise QuerySequencingError("Invalid query, a JSON where clause has already been provided")
        self._filters.append(filter)
        self._state = WhereState.HAS_FILTERS
        return self

    def get_where_clause(self) -> str:
        """Where clause as it would be built now."""
        if self._where_clause:
            return self._where_clause
        return serialize_filters(self._filters)

    def build(self) -> SearchDocumentQuery:
        """
        Build the immutable query. The builder cannot be used afterwards.

        Returns:
            SearchDocumentQuery
        """
        self._check_open()
        query = SearchDocumentQuery(
            page_size=self._page_size,
            page_state=self._page_state,
            returned_fields=self._fields,
            where=self.get_where_clause(),
            filters=tuple(self._filters),
        )
        self._built = True
        logger.debug(f"Built search query: {query!r}")
        return query


class SearchDocumentWhere:
    """
    Predicate scope for one field, returned by where() and and_().

    Exposes only comparison operations. Each one appends a single filter to
    the parent builder and hands the builder back; the scope is then spent.
    """

    __slots__ = ("_builder", "_field_name", "_used")

    def __init__(self, builder: SearchDocumentQueryBuilder, field_name: str):
        self._builder = builder
        self._field_name = field_name
        self._used = False

    @property
    def field_name(self) -> str:
        return self._field_name

    def _add(self, condition: FilterCondition, value: Any) -> SearchDocumentQueryBuilder:
        if self._used:
            raise QuerySequencingError(
                f"A condition was already set on '{self._field_name}', use and_() to add another"
            )
        builder = self._builder._add_filter(Filter(self._field_name, condition, value))
        self._used = True
        return builder

    def is_less_than(self, value: Any) -> SearchDocumentQueryBuilder:
        return self._add(FilterCondition.LESS_THAN, value)

    def is_less_or_equals_than(self, value: Any) -> SearchDocumentQueryBuilder:
        return self._add(FilterCondition.LESS_THAN_OR_EQUALS_TO, value)

    def is_greater_than(self, value: Any) -> SearchDocumentQueryBuilder:
        return self._add(FilterCondition.GREATER_THAN, value)

    def is_greater_or_equals_than(self, value: Any) -> SearchDocumentQueryBuilder:
        return self._add(FilterCondition.GREATER_THAN_OR_EQUALS_TO, value)

    def is_equals_to(self, value: Any) -> SearchDocumentQueryBuilder:
        return self._add(FilterCondition.EQUALS_TO, value)

    def is_not_equals_to(self, value: Any) -> SearchDocumentQueryBuilder:
        return self._add(FilterCondition.NOT_EQUALS_TO, value)

    def exists(self) -> SearchDocumentQueryBuilder:
        return self._add(FilterCondition.EXISTS, None)

    def is_in(self, values: Iterable[Any]) -> SearchDocumentQueryBuilder:
        """Match documents whose field is one of values."""
        return self._add(FilterCondition.IN, values)
