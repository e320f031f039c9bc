from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func

from models import db
from models.booking import Booking, BOOKING_STATUSES
from models.payment import Payment
from models.room import Room
from models.user import User

PAID_STATUSES = ("paid", "succeeded")
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def _pct(part, whole) -> float:
    return round(part * 100.0 / whole, 1) if whole else 0.0


def _opening_hours(room: Room, start: date, end: date):
    """Opening hours of the room's location over [start, end], None without a schedule."""
    location = room.location
    if location is None or not location.schedule:
        return None
    per_day = {
        s.day_of_week: (s.close_time.hour * 60 + s.close_time.minute
                        - s.open_time.hour * 60 - s.open_time.minute) / 60.0
        for s in location.schedule
    }
    total = 0.0
    day = start
    while day <= end:
        total += per_day.get(day.isoweekday(), 0.0)
        day += timedelta(days=1)
    return total


def build_report(start: date, end: date) -> dict:
    bookings = (
        Booking.query
        .filter(Booking.date >= start, Booking.date <= end)
        .order_by(Booking.date, Booking.start_time)
        .all()
    )

    by_status = Counter(b.status for b in bookings)
    live = [b for b in bookings if b.status != "cancelled"]
    live_hours = sum(b.duration_minutes for b in live) / 60.0

    room_hours = defaultdict(float)
    room_count = Counter()
    room_revenue = defaultdict(Decimal)
    per_weekday = Counter()
    per_user = Counter()
    for b in live:
        room_hours[b.room_id] += b.duration_minutes / 60.0
        room_count[b.room_id] += 1
        room_revenue[b.room_id] += Decimal(b.room.price) * b.duration_minutes / 60 / 100
        per_weekday[WEEKDAYS[b.date.weekday()]] += 1
        per_user[b.user_id] += 1

    rooms = []
    for room in Room.query.order_by(Room.id).all():
        available = _opening_hours(room, start, end)
        rooms.append({
            "roomId": room.id,
            "name": room.name,
            "locationId": room.location_id,
            "totalBookings": room_count[room.id],
            "bookedHours": round(room_hours[room.id], 2),
            "revenue": f"{room_revenue[room.id]:.2f}",
            "occupancyRate": _pct(room_hours[room.id], available) if available else None,
        })

    users = {u.id: u for u in User.query.filter(User.id.in_(list(per_user))).all()} if per_user else {}
    top_users = [
        {"userId": uid, "fullName": users[uid].full_name if uid in users else None, "bookings": n}
        for uid, n in per_user.most_common(5)
    ]

    paid = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(
            Payment.status.in_(PAID_STATUSES),
            Payment.created_at >= datetime.combine(start, time.min),
            Payment.created_at < datetime.combine(end + timedelta(days=1), time.min),
        )
        .scalar()
    )

    return {
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "totalBookings": len(bookings),
        "byStatus": {s: by_status.get(s, 0) for s in BOOKING_STATUSES},
        "cancellationRate": _pct(by_status.get("cancelled", 0), len(bookings)),
        "averageDurationHours": round(live_hours / len(live), 2) if live else 0.0,
        "bookedHours": round(live_hours, 2),
        "rooms": rooms,
        "bookingsByWeekday": {d: per_weekday.get(d, 0) for d in WEEKDAYS},
        "mostActiveUsers": top_users,
        "activeUsers": User.query.filter_by(is_active=True).count(),
        "totalPaidRevenue": f"{Decimal(paid or 0):.2f}",
    }
