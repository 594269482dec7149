import inspect
import types
from typing import Any, Union, get_args, get_origin, get_type_hints


class TypeConverter:
    """Coerce loosely typed operation arguments into annotated types."""

    @staticmethod
    def convert_value(value: Any, expected_type: Any) -> Any:
        if expected_type is None or value is None:
            return value
        origin = get_origin(expected_type)

        # Union: keep value if it already matches one member,
        # otherwise try members that know how to load dicts.
        if origin in (Union, types.UnionType):
            members = [t for t in get_args(expected_type) if t is not type(None)]
            if Any in members:
                return value
            for member in members:
                member_origin = get_origin(member) or member
                if isinstance(member_origin, type) and isinstance(
                    value, member_origin
                ):
                    return value
            for member in members:
                converted = TypeConverter.convert_value(value, member)
                if converted is not value:
                    return converted
            return value

        if isinstance(value, list) and origin in (list, tuple):
            elem_type = (
                get_args(expected_type)[0] if get_args(expected_type) else Any
            )
            return [TypeConverter.convert_value(v, elem_type) for v in value]

        if (
            isinstance(value, dict)
            and inspect.isclass(expected_type)
            and callable(getattr(expected_type, "from_dict", None))
        ):
            return expected_type.from_dict(value)

        try:
            if expected_type is int and isinstance(value, (str, float)):
                return int(value)
            if expected_type is float and isinstance(value, (str, int)):
                return float(value)
            if expected_type is bool and isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
        except ValueError:
            pass
        return value

    @staticmethod
    def convert_args(method, args: dict) -> dict:
        sig = inspect.signature(method)
        hints = get_type_hints(method)
        converted_args: dict = {}
        for param_name in sig.parameters:
            if param_name in args:
                converted_args[param_name] = TypeConverter.convert_value(
                    args[param_name], hints.get(param_name, None)
                )
        return args | converted_args
