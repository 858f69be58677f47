import re

from models.worker import Worker

# Display names used on the requirement form and the slugs workers register with
SERVICE_ALIASES = {
    "hotel / restaurant staff": ["hotel-restaurant-staff", "hotel-restaurant", "restaurant-staff"],
    "hospital staff": ["hospital-staff", "healthcare-staff"],
    "construction workers": ["construction-workers", "construction-staff"],
    "event staff": ["event-staff", "event-workers"],
}

_SEPARATORS = re.compile(r"[/\s]+")


def service_slug(value: str) -> str:
    return _SEPARATORS.sub("-", (value or "").strip().lower())


def service_slugs(service_type: str) -> set:
    key = (service_type or "").strip().lower()
    slugs = set(SERVICE_ALIASES.get(key, []))
    slugs.add(service_slug(service_type))
    return slugs


def is_eligible(worker: Worker, service_type: str) -> bool:
    if not worker.is_active:
        return False
    offered = {service_slug(s) for s in (worker.services or [])}
    return bool(offered & service_slugs(service_type))


def eligible_workers(booking):
    # services is a JSON list, so the match happens here rather than in SQL
    workers = Worker.query.filter_by(is_active=True).order_by(Worker.id.asc()).all()
    return [w for w in workers if is_eligible(w, booking.service_type)]
