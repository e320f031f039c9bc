from .db import db
from .user import User
from .session import Session
from .location import Location, LocationAvailability
from .room import Room, RoomAvailability
from .booking import Booking, BOOKING_STATUSES
from .system_config import SystemConfig
from .payment import Payment, PaymentEvent
from .system_log import SystemLog, SEVERITIES
