"""CQL mapping table.

Maps logical CQL indexes onto physical engine fields. The mapping
document looks like::

    default_index: all
    default_relation: "="
    indexes:
      title:
        field: title
        op:
          any: true
          all: true
          "=": true
          exact:
            field: [title.exact]
        sort: true
      isbn:
        op: ["=", exact]
        filter: [lowercase]
        cb: mypackage.isbn:normalize
"""

from __future__ import annotations

import inspect
from typing import Any, Callable

from pydantic import ConfigDict

from cqlstore.core import DataModel, Loader
from cqlstore.core.exceptions import (
    ConfigError,
    NotSortableError,
    TranslationError,
    UnmappedFieldError,
    UnsupportedOperatorError,
)
from cqlstore.cql import CQLOperator

FILTERS: dict[str, Callable[[str], str]] = {
    "lowercase": str.lower,
}


class CQLOperatorConfig(DataModel):
    """Allowed operator with optional overrides.

    Attributes:
        fields: Physical fields replacing the index field.
        cb: Normalization callback for this operator.
        filter: Filters applied before the callback.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    fields: list[str] | None = None
    cb: Callable[..., Any] | None = None
    filter: list[str] | None = None


class CQLIndex(DataModel):
    """Logical CQL index.

    Attributes:
        name: Logical name used in queries.
        field: Default physical field.
        ops: Allowed operators. Empty means no operator is allowed.
        sort: A value indicating whether the index is sortable.
        sort_field: Physical field used for sorting.
        cb: Normalization callback.
        filter: Filters applied before the callback.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    field: str
    ops: dict[CQLOperator, CQLOperatorConfig] = {}
    sort: bool = False
    sort_field: str | None = None
    cb: Callable[..., Any] | None = None
    filter: list[str] | None = None


class FieldResolution(DataModel):
    """Resolved logical field.

    Attributes:
        physical_fields: Fields to search, more than one fans out.
        sortable: A value indicating whether the index is sortable.
        index: Matched index.
        operator: Resolved operator.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    physical_fields: list[str]
    sortable: bool
    index: CQLIndex
    operator: CQLOperator

    @property
    def cb(self) -> Callable[..., Any] | None:
        override = self.index.ops[self.operator].cb
        return override if override is not None else self.index.cb

    @property
    def filter(self) -> list[str] | None:
        override = self.index.ops[self.operator].filter
        return override if override is not None else self.index.filter


class CQLMapping:
    """Field mapping table of one bag."""

    indexes: dict[str, CQLIndex]
    default_index: str | None
    default_relation: CQLOperator

    def __init__(
        self,
        indexes: dict[str, CQLIndex],
        default_index: str | None = None,
        default_relation: CQLOperator = CQLOperator.EQ,
    ):
        self.indexes = indexes
        self.default_index = default_index
        self.default_relation = default_relation

    @staticmethod
    def from_config(config: dict[str, Any] | None) -> CQLMapping:
        """Build a mapping table from a mapping document.

        Args:
            config: CQL mapping document.

        Returns:
            Mapping table.

        Raises:
            ConfigError: The document is malformed.
        """
        config = config or {}
        if not isinstance(config, dict):
            raise ConfigError("CQL mapping must be a mapping")
        raw_indexes = config.get("indexes") or {}
        if not isinstance(raw_indexes, dict):
            raise ConfigError("CQL mapping indexes must be a mapping")
        indexes = {
            name: _build_index(name, index_config)
            for name, index_config in raw_indexes.items()
        }
        default_index = config.get("default_index")
        if default_index is not None and default_index not in indexes:
            raise ConfigError(
                f"Default index {default_index} is not a mapped index"
            )
        try:
            default_relation = CQLOperator.parse(
                config.get("default_relation") or CQLOperator.EQ
            )
        except ValueError:
            raise ConfigError(
                f"Unknown default relation {config.get('default_relation')}"
            ) from None
        return CQLMapping(
            indexes=indexes,
            default_index=default_index,
            default_relation=default_relation,
        )

    def get_index(self, field: str) -> CQLIndex:
        index = self.indexes.get(field)
        if index is None:
            raise UnmappedFieldError(field)
        return index

    def resolve(
        self, field: str, operator: CQLOperator | str
    ) -> FieldResolution:
        """Resolve a logical field for an operator.

        Args:
            field: Logical field.
            operator: CQL relation.

        Returns:
            Physical fields to search. An operator override
            replaces the index field.

        Raises:
            UnmappedFieldError: The field is not mapped.
            UnsupportedOperatorError: The operator is not allowed.
        """
        index = self.get_index(field)
        try:
            operator = CQLOperator.parse(operator)
        except ValueError:
            raise UnsupportedOperatorError(field, str(operator)) from None
        op_config = index.ops.get(operator)
        if op_config is None:
            raise UnsupportedOperatorError(field, operator.value)
        return FieldResolution(
            physical_fields=list(op_config.fields or [index.field]),
            sortable=index.sort,
            index=index,
            operator=operator,
        )

    def resolve_sort(self, field: str) -> str:
        """Resolve the physical sort field of a logical field.

        Raises:
            NotSortableError: The field is unmapped or not sortable.
        """
        index = self.indexes.get(field)
        if index is None or not index.sort:
            raise NotSortableError(field)
        return index.sort_field or index.field

    def normalize(self, resolution: FieldResolution, value: str) -> list[str]:
        """Run filters and the callback over a search term.

        Returns:
            One or more values. Several values are searched with OR.

        Raises:
            TranslationError: The callback returned nothing usable.
        """
        for name in resolution.filter or []:
            value = FILTERS[name](value)
        cb = resolution.cb
        if cb is None:
            return [value]
        result = cb(value)
        if isinstance(result, str):
            return [result]
        if (
            isinstance(result, (list, tuple))
            and result
            and all(isinstance(v, str) for v in result)
        ):
            return list(result)
        raise TranslationError(
            "Normalization callback returned an invalid value",
            resolution.index.name,
        )


def _build_index(name: str, config: Any) -> CQLIndex:
    if config is None or config is True:
        config = {}
    if not isinstance(config, dict):
        raise ConfigError(f"CQL index {name} must be a mapping")
    field = config.get("field", name)
    if not isinstance(field, str) or not field:
        raise ConfigError(f"CQL index {name} has an invalid field")
    sort, sort_field = _parse_sort(name, config.get("sort", False))
    return CQLIndex(
        name=name,
        field=field,
        ops=_parse_ops(name, config.get("op")),
        sort=sort,
        sort_field=sort_field,
        cb=_load_cb(name, config.get("cb")),
        filter=_parse_filter(name, config.get("filter")),
    )


def _parse_ops(name: str, config: Any) -> dict[CQLOperator, CQLOperatorConfig]:
    if config is None:
        return {}
    if isinstance(config, (list, tuple, set)):
        config = {op: True for op in config}
    if not isinstance(config, dict):
        raise ConfigError(f"Operators of CQL index {name} must be a mapping")
    ops: dict[CQLOperator, CQLOperatorConfig] = {}
    for key, value in config.items():
        try:
            operator = CQLOperator.parse(key)
        except ValueError:
            raise ConfigError(
                f"Unknown operator {key} in CQL index {name}"
            ) from None
        if isinstance(value, dict):
            # An empty override allows the operator on the default field.
            ops[operator] = _parse_op_override(name, operator, value)
        elif value:
            ops[operator] = CQLOperatorConfig()
    return ops


def _parse_op_override(
    name: str, operator: CQLOperator, config: dict[str, Any]
) -> CQLOperatorConfig:
    fields = config.get("field", config.get("fields"))
    if fields is not None:
        if isinstance(fields, str):
            fields = [fields]
        if (
            not isinstance(fields, (list, tuple))
            or not fields
            or not all(isinstance(f, str) and f for f in fields)
        ):
            raise ConfigError(
                f"Operator {operator.value} of CQL index {name} "
                "must list at least one field"
            )
        fields = list(fields)
    return CQLOperatorConfig(
        fields=fields,
        cb=_load_cb(name, config.get("cb")),
        filter=_parse_filter(name, config.get("filter")),
    )


def _parse_sort(name: str, config: Any) -> tuple[bool, str | None]:
    if isinstance(config, dict):
        sort_field = config.get("field")
        if not isinstance(sort_field, str) or not sort_field:
            raise ConfigError(f"Sort of CQL index {name} needs a field")
        return True, sort_field
    return bool(config), None


def _parse_filter(name: str, config: Any) -> list[str] | None:
    if config is None:
        return None
    if isinstance(config, str):
        config = [config]
    if not isinstance(config, (list, tuple)):
        raise ConfigError(f"Filter of CQL index {name} must be a list")
    for filter_name in config:
        if filter_name not in FILTERS:
            raise ConfigError(f"Unknown filter {filter_name} in CQL index {name}")
    return list(config)


def _load_cb(name: str, ref: Any) -> Callable[..., Any] | None:
    if ref is None:
        return None
    cb = Loader.load_callable(ref)
    try:
        signature = inspect.signature(cb)
    except (TypeError, ValueError):
        # Some builtins expose no signature.
        return cb
    try:
        signature.bind("value")
    except TypeError as e:
        raise ConfigError(
            f"Callback of CQL index {name} must accept one value"
        ) from e
    return cb
