# Export operational routers
from . import health

__all__ = ["health"]
