def _iso(value):
    return value.isoformat() if value else None


def _hhmm(value):
    return value.strftime("%H:%M") if value else None


def user_to_dict(u):
    return {
        "id": u.id,
        "username": u.username,
        "fullName": u.full_name,
        "email": u.email,
        "phone": u.phone,
        "role": u.role,
        "professionalType": u.professional_type,
        "professionalTypeDetails": u.professional_type_details,
        "professionalLicense": u.professional_license,
        "specialty": u.specialty,
        "bio": u.bio,
        "profileImageUrl": u.profile_image_url,
        "identificationUrl": u.identification_url,
        "diplomaUrl": u.diploma_url,
        "documentationStatus": u.documentation_status,
        "isActive": u.is_active,
        "paymentStatus": u.payment_status,
        "lastPaymentDate": _iso(u.last_payment_date),
        "subscriptionEndDate": _iso(u.subscription_end_date),
        "bookingCount": u.booking_count,
        "createdAt": _iso(u.created_at),
        "updatedAt": _iso(u.updated_at),
    }


def location_to_dict(loc, with_schedule=False):
    out = {
        "id": loc.id,
        "name": loc.name,
        "description": loc.description,
        "address": loc.address,
        "imageUrl": loc.image_url,
        "isActive": loc.is_active,
        "createdAt": _iso(loc.created_at),
        "updatedAt": _iso(loc.updated_at),
    }
    if with_schedule:
        out["availability"] = [location_availability_to_dict(a) for a in loc.schedule]
    return out


def location_availability_to_dict(a):
    return {
        "id": a.id,
        "locationId": a.location_id,
        "dayOfWeek": a.day_of_week,
        "openTime": _hhmm(a.open_time),
        "closeTime": _hhmm(a.close_time),
    }


def room_to_dict(r):
    return {
        "id": r.id,
        "locationId": r.location_id,
        "name": r.name,
        "description": r.description,
        "price": r.price,
        "imageUrl": r.image_url,
        "features": list(r.features or []),
        "isActive": r.is_active,
    }


def room_availability_to_dict(a):
    return {
        "id": a.id,
        "roomId": a.room_id,
        "dayOfWeek": a.day_of_week,
        "openTime": _hhmm(a.open_time),
        "closeTime": _hhmm(a.close_time),
        "isClosed": a.is_closed,
    }


def booking_to_dict(b):
    return {
        "id": b.id,
        "roomId": b.room_id,
        "userId": b.user_id,
        "date": b.date.isoformat(),
        "startTime": _hhmm(b.start_time),
        "endTime": _hhmm(b.end_time),
        "notes": b.notes,
        "status": b.status,
        "createdAt": _iso(b.created_at),
        "cancelledAt": _iso(b.cancelled_at),
    }


def config_to_dict(c):
    return {
        "id": c.id,
        "key": c.key,
        "value": c.value,
        "description": c.description,
        "updatedAt": _iso(c.updated_at),
        "updatedBy": c.updated_by,
    }


def payment_to_dict(p):
    return {
        "id": p.id,
        "userId": p.user_id,
        "bookingId": p.booking_id,
        "amount": f"{p.amount:.2f}" if p.amount is not None else None,
        "currency": p.currency,
        "concept": p.concept,
        "status": p.status,
        "method": p.method,
        "payment_date": _iso(p.payment_date),
        "paymentIntentId": p.payment_intent_id,
        "idempotencyKey": p.idempotency_key,
        "createdAt": _iso(p.created_at),
    }


def public_payment_to_dict(p):
    """Fields safe to show a therapist about their own payments."""
    return {
        "id": p.id,
        "createdAt": _iso(p.created_at),
        "payment_date": _iso(p.payment_date),
        "amount": f"{p.amount:.2f}",
        "status": p.status,
        "method": p.method,
        "concept": (p.concept or "")[:200],
    }


def log_to_dict(r):
    return {
        "id": r.id,
        "createdAt": _iso(r.created_at),
        "severity": r.severity,
        "message": r.message,
        "stack": r.stack,
        "endpoint": r.endpoint,
        "userId": r.user_id,
        "userAgent": r.user_agent,
        "url": r.url,
    }
