from .suppliers import router as suppliers_router
from .orders import router as orders_router

__all__ = [
     "suppliers_router",
     "orders_router",
]
