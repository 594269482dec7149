from __future__ import annotations

import importlib
import inspect
from typing import Any, Callable

from ._component import Component
from ._log_helper import get_logger
from ._provider import Provider
from ._type_converter import TypeConverter
from ._yaml_loader import YamlLoader
from .exceptions import ConfigError

logger = get_logger(__name__)


class Loader:
    """Loads components, providers and callables from references."""

    @staticmethod
    def load_component(path: str, handle: str) -> Component:
        """Load a component declared in a YAML manifest.

        The manifest maps handles to component declarations::

            search:
              type: cqlstore.storage.search_store
              parameters:
                bag: data
              provider:
                type: elasticsearch
                parameters:
                  hosts: http://localhost:9200
                  index_name: catalog

        Args:
            path:
                Manifest file path.
            handle:
                Component handle in the manifest.

        Returns:
            Component bound to its provider.
        """
        manifest = YamlLoader.load(path)
        components = manifest.get("components", manifest)
        if handle not in components:
            raise ConfigError(f"Component {handle} not found in {path}")
        config = components[handle]
        if not isinstance(config, dict) or "type" not in config:
            raise ConfigError(f"Component {handle} must declare a type")
        logger.debug("Loading component %s from %s", handle, path)
        component = Loader.load_component_instance(
            path=Loader.get_component_path(config["type"]),
            parameters=dict(config.get("parameters") or {}),
            provider=config.get("provider"),
        )
        component.__handle__ = handle
        return component

    @staticmethod
    def load_component_instance(
        path: str,
        parameters: dict,
        provider: Provider | dict | str | None,
    ) -> Component:
        component = Loader.load_class(path, Component)
        converted_parameters = TypeConverter.convert_args(
            component.__init__, parameters
        )
        return component(__provider__=provider, **converted_parameters)

    @staticmethod
    def load_provider_instance(
        path: str,
        parameters: dict[str, Any] | None = None,
    ) -> Provider:
        provider = Loader.load_class(path, Provider)
        converted_parameters = TypeConverter.convert_args(
            provider.__init__, parameters or {}
        )
        return provider(**converted_parameters)

    @staticmethod
    def get_component_path(component_type: str) -> str:
        if ":" in component_type:
            return component_type
        return f"{component_type}.component"

    @staticmethod
    def get_provider_path(component_module: str, provider_type: str) -> str:
        if ":" in provider_type or ".providers." in provider_type:
            return provider_type
        return f"{component_module}.providers.{provider_type}"

    @staticmethod
    def load_class(path: str, type: Any) -> Any:
        class_name = None
        if ":" in path:
            module_name, class_name = path.split(":", 1)
        else:
            module_name = path
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise ConfigError(f"Module {module_name} not found") from e
        if class_name is not None:
            cls = getattr(module, class_name, None)
            if inspect.isclass(cls) and issubclass(cls, type):
                return cls
        else:
            for _, cls in inspect.getmembers(module, inspect.isclass):
                if issubclass(cls, type) and cls.__module__ == module_name:
                    return cls
        raise ConfigError(f"{type.__name__} not found at {path}")

    @staticmethod
    def load_callable(ref: Any) -> Callable[..., Any]:
        """Resolve a callable reference.

        Accepts a callable, ``"package.module:name"``,
        ``"package.module.name"`` or ``["package.module", "name"]``.
        """
        if callable(ref):
            return ref
        if isinstance(ref, (list, tuple)) and len(ref) == 2:
            module_name, attr = ref
        elif isinstance(ref, str) and ":" in ref:
            module_name, attr = ref.split(":", 1)
        elif isinstance(ref, str) and "." in ref:
            module_name, attr = ref.rsplit(".", 1)
        else:
            raise ConfigError(f"Invalid callable reference {ref!r}")
        try:
            module = importlib.import_module(str(module_name))
        except ImportError as e:
            raise ConfigError(f"Module {module_name} not found") from e
        func = getattr(module, str(attr), None)
        if not callable(func):
            raise ConfigError(f"{attr} in {module_name} is not callable")
        return func
