# packhouse/routes/orders/__init__.py

from .order_routes import orders_bp  # noqa: F401
