from __future__ import annotations

from typing import Any

from ._operation import Operation
from ._provider import Provider
from ._response import Response
from ._type_converter import TypeConverter
from .exceptions import NotSupportedError


class Component:
    __provider__: Provider
    __handle__: str | None
    __type__: str
    __unpack__: bool
    __native__: bool

    def __init__(
        self,
        **kwargs,
    ):
        self.__native__ = kwargs.pop("__native__", False)
        self.__unpack__ = kwargs.pop("__unpack__", False)
        self.__handle__ = kwargs.pop("__handle__", None)
        self.__type__ = kwargs.pop("__type__", self.__class__.__module__)
        if "__provider__" in kwargs:
            self.__bind__(kwargs.pop("__provider__"))

    def __bind__(
        self,
        provider: Provider | dict | str | None,
    ) -> None:
        if provider is None:
            return
        if isinstance(provider, Provider):
            provider.__component__ = self
            self.__provider__ = provider
            return
        if isinstance(provider, dict):
            provider = dict(provider)
            type = provider.pop("type")
            parameters = provider.pop("parameters", dict())
        else:
            type = provider
            parameters = dict()
        from ._loader import Loader

        module_name = self.__class__.__module__.rsplit(".", 1)[0]
        provider_instance = Loader.load_provider_instance(
            path=Loader.get_provider_path(module_name, type),
            parameters=parameters,
        )
        self.__bind__(provider=provider_instance)

    def __setup__(self) -> None:
        self.__provider__.__setup__()

    def __run__(
        self,
        operation: dict | str | Operation | None = None,
        **kwargs,
    ) -> Any:
        operation = self._convert_operation(operation)
        if hasattr(self, "__provider__"):
            response = self.__provider__.__run__(operation=operation)
        elif operation is not None and operation.name:
            func = getattr(self, operation.name, None)
            if not (func and callable(func)):
                raise NotSupportedError(operation.to_json())
            args = TypeConverter.convert_args(func, operation.args or {})
            response = func(**args)
        else:
            raise NotSupportedError()

        if not self.__native__ and isinstance(response, Response):
            response.native = None
        if self.__unpack__ and isinstance(response, Response):
            return response.result
        return response

    def _convert_operation(
        self,
        operation: dict | str | Operation | None,
    ) -> Operation | None:
        if isinstance(operation, dict):
            return Operation.from_dict(operation)
        elif isinstance(operation, str):
            return Operation(name=operation)
        return operation
