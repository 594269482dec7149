from typing import Any


class ParameterParser:
    @staticmethod
    def get_bag_parameter(
        parameter: Any,
        bag: str | None,
        default: Any = None,
    ) -> Any:
        """Pick a per-bag value out of a store level parameter.

        A dict keyed by bag name selects the bag's entry; any other value
        applies to every bag.
        """
        if isinstance(parameter, dict):
            return parameter.get(bag, default)
        return default if parameter is None else parameter
