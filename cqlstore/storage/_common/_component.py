from typing import Any

from cqlstore.core import Component
from cqlstore.core.exceptions import NotFoundError


class StoreComponent(Component):
    bag: str

    def __init__(self, bag: str = "data", **kwargs):
        self.bag = bag
        super().__init__(**kwargs)

    def __getitem__(self, key: Any) -> Any:
        try:
            response = self.get(key=key)
        except NotFoundError:
            return None
        result = response.result if hasattr(response, "result") else response
        return result.value if result is not None else None

    def __setitem__(self, key: Any, value: Any) -> None:
        self.put(value=value, key=key)

    def __delitem__(self, key: Any) -> None:
        self.delete(key=key)
