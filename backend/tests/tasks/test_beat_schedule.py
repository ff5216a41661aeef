# backend/tests/tasks/test_beat_schedule.py
from datetime import timedelta

from app.core.config import settings
from app.tasks.beat_schedule import get_beat_schedule


def test_production_schedule_routes_to_maintenance_queue():
    entry = get_beat_schedule("production")["cleanup-expired-slot-locks"]

    assert entry["task"] == "slot_locks.cleanup_expired"
    assert entry["schedule"] == timedelta(seconds=settings.slot_lock_sweep_interval_seconds)
    assert entry["options"]["queue"] == "maintenance"


def test_development_schedule_uses_default_queue():
    entry = get_beat_schedule("development")["cleanup-expired-slot-locks"]
    assert entry["options"]["queue"] == "celery"
    assert entry["task"] == "slot_locks.cleanup_expired"


def test_unknown_environment_falls_back_to_base_schedule():
    assert get_beat_schedule("staging") == get_beat_schedule("production")
