# clinicq/routers/__init__.py
from . import health
from . import auth
from . import appointments
from . import staff
from . import admin
from . import realtime

__all__ = ["health", "auth", "appointments", "staff", "admin", "realtime"]
