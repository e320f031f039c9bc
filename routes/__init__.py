from .health import health_bp
from .auth import auth_bp
from .users import users_bp
from .locations import locations_bp
from .rooms import rooms_bp
from .booking import booking_bp
from .system_config import config_bp
from .payments import payments_bp
from .account import account_bp
from .admin import admin_bp
from .logs import logs_bp

BLUEPRINTS = (
    health_bp,
    auth_bp,
    users_bp,
    locations_bp,
    rooms_bp,
    booking_bp,
    config_bp,
    payments_bp,
    account_bp,
    admin_bp,
    logs_bp,
)
