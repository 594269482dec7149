from typing import Any

from cqlstore.core import DataModel
from cqlstore.core.exceptions import BadRequestError

from ._models import BatchOperation, SearchBatch, SearchKey


class Helper:
    @staticmethod
    def get_value(value: dict[str, Any] | DataModel) -> dict[str, Any]:
        if isinstance(value, DataModel):
            return value.to_dict()
        if isinstance(value, dict):
            return value
        raise BadRequestError("Record must be a mapping")

    @staticmethod
    def get_id(
        id_field: str,
        key: str | dict | SearchKey | None = None,
        value: dict[str, Any] | DataModel | None = None,
    ) -> str | None:
        if key is not None:
            if isinstance(key, SearchKey):
                return key.id
            if isinstance(key, dict):
                if "id" in key:
                    return str(key["id"])
                if id_field in key:
                    return str(key[id_field])
                raise BadRequestError("Key format error")
            return str(key)
        if value is not None:
            id = Helper.get_value(value).get(id_field)
            return None if id is None else str(id)
        return None

    @staticmethod
    def get_batch_operations(
        batch: SearchBatch | list | None,
    ) -> list[BatchOperation]:
        if batch is None:
            return []
        if isinstance(batch, SearchBatch):
            return list(batch.operations)
        if isinstance(batch, dict):
            return Helper.get_batch_operations(SearchBatch.from_dict(batch))
        if isinstance(batch, list):
            operations = []
            for op in batch:
                if isinstance(op, BatchOperation):
                    operations.append(op)
                elif isinstance(op, dict):
                    operations.append(BatchOperation.from_dict(op))
                else:
                    raise BadRequestError("Batch operation format error")
            return operations
        raise BadRequestError("Batch format error")
