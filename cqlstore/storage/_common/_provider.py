from cqlstore.core import Provider

DEFAULT_BAG = "data"


class StoreProvider(Provider):
    def _get_bag_name(self, bag: str | None) -> str:
        if bag:
            return bag
        component = getattr(self, "__component__", None)
        return getattr(component, "bag", None) or DEFAULT_BAG
