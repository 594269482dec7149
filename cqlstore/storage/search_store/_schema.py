from __future__ import annotations

import copy
from typing import Any

from pydantic import ConfigDict, ValidationError

from cqlstore.core import DataModel
from cqlstore.core.exceptions import ConfigError

from ._models import SearchFieldType

FIELD_TYPE_MAP = {
    SearchFieldType.STRING.value: "keyword",
    SearchFieldType.TEXT.value: "text",
    SearchFieldType.NUMBER.value: "double",
    SearchFieldType.INTEGER.value: "integer",
    SearchFieldType.LONG.value: "long",
    SearchFieldType.FLOAT.value: "float",
    SearchFieldType.DOUBLE.value: "double",
    SearchFieldType.BOOLEAN.value: "boolean",
    SearchFieldType.DATE.value: "date",
    SearchFieldType.OBJECT.value: "object",
}


class FieldSpec(DataModel):
    """Declares how a record field is stored in the engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str = SearchFieldType.TEXT.value
    """Field type, a SearchFieldType value or a native engine type."""

    indexed: bool = True
    """A value indicating whether the field is searchable."""

    fields: dict[str, FieldSpec] | None = None
    """Multi fields, e.g. an exact keyword variant of a text field."""

    nconfig: dict[str, Any] | None = None
    """Native mapping parameters merged over the generated ones."""

    def to_mapping(self) -> dict[str, Any]:
        config: dict[str, Any] = {
            "type": FIELD_TYPE_MAP.get(self.type, self.type)
        }
        if not self.indexed:
            config["index"] = False
        if self.fields:
            config["fields"] = {
                name: spec.to_mapping() for name, spec in self.fields.items()
            }
        if self.nconfig:
            config.update(self.nconfig)
        return config


class IndexSchema(DataModel):
    """Index settings and per bag field mappings.

    A bag mapping is either a native mapping document with a
    ``properties`` key or a shorthand of field name to FieldSpec.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    settings: dict[str, Any] = {}
    mappings: dict[str, dict[str, Any]] = {}
    bag_field: str = "_bag"

    @staticmethod
    def create(
        name: str,
        settings: dict[str, Any] | None,
        mappings: dict[str, dict[str, Any]] | None,
        bag_field: str,
    ) -> IndexSchema:
        if not name or not isinstance(name, str):
            raise ConfigError("index_name is required")
        if settings is not None and not isinstance(settings, dict):
            raise ConfigError("index_settings must be a mapping")
        if mappings is not None and not isinstance(mappings, dict):
            raise ConfigError("index_mappings must be a mapping of bags")
        try:
            schema = IndexSchema(
                name=name,
                settings=copy.deepcopy(settings or {}),
                mappings=copy.deepcopy(mappings or {}),
                bag_field=bag_field,
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid schema of index {name}: {e}") from e
        # Validate eagerly so bad mappings fail at construction.
        schema.to_body()
        return schema

    def to_body(self) -> dict[str, Any]:
        properties: dict[str, Any] = {self.bag_field: {"type": "keyword"}}
        for bag, mapping in self.mappings.items():
            for field, config in self._bag_properties(bag, mapping).items():
                if field in properties and properties[field] != config:
                    raise ConfigError(
                        f"Field {field} of bag {bag} conflicts with "
                        "another bag's definition"
                    )
                properties[field] = config
        body: dict[str, Any] = {"mappings": {"properties": properties}}
        if self.settings:
            body["settings"] = copy.deepcopy(self.settings)
        return body

    def _bag_properties(
        self, bag: str, mapping: dict[str, Any]
    ) -> dict[str, Any]:
        if not isinstance(mapping, dict):
            raise ConfigError(f"Mapping of bag {bag} must be a mapping")
        if "properties" in mapping:
            properties = mapping["properties"]
            if not isinstance(properties, dict):
                raise ConfigError(f"Properties of bag {bag} must be a mapping")
            return copy.deepcopy(properties)
        properties = {}
        for field, spec in mapping.items():
            try:
                if isinstance(spec, str):
                    field_spec = FieldSpec(type=spec)
                else:
                    field_spec = FieldSpec.model_validate(spec)
            except ValidationError as e:
                raise ConfigError(
                    f"Invalid field spec {field} in bag {bag}: {e}"
                ) from e
            properties[field] = field_spec.to_mapping()
        return properties
