# packhouse/routes/root/__init__.py

# Public blueprint (health checks)
from .root_routes import root_bp  # noqa: F401
