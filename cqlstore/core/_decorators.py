import inspect
from functools import wraps
from typing import Any, Callable, TypeVar, cast

from ._operation import Operation
from .exceptions import NotSupportedError

T = TypeVar("T", bound=Callable[..., Any])


def operation(**config: Any) -> Callable[[T], T]:
    """Mark a component method as an operation routed to its provider.

    The decorated body runs only when the component has no provider or the
    provider does not implement the operation.
    """

    def decorator(func: T) -> T:
        setattr(func, "__operation__", True)
        setattr(func, "__config__", config)

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            self = args[0]
            if not hasattr(self, "__provider__"):
                return func(*args, **kwargs)
            sig = inspect.signature(func)
            bound_args = sig.bind(*args, **kwargs)
            bound_args.apply_defaults()
            locals = dict(bound_args.arguments)
            locals.pop("self", None)
            operation = Operation.normalize(
                name=func.__name__,
                args=locals,
            )
            try:
                return self.__run__(operation)
            except NotSupportedError:
                return func(*args, **kwargs)

        return cast(T, wrapper)

    return decorator
