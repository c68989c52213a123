from .orders_repo import OrderRepository

__all__ = ["OrderRepository"]
