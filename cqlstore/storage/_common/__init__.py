from ._component import StoreComponent
from ._models import CollectionResult, CollectionStatus
from ._parameter_parser import ParameterParser
from ._provider import StoreProvider

__all__ = [
    "CollectionResult",
    "CollectionStatus",
    "ParameterParser",
    "StoreComponent",
    "StoreProvider",
]
