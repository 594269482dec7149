from cqlstore.core import Loader, configure_logging

__all__ = ["Loader", "configure_logging"]
