import os
from celery import Celery


def make_celery() -> Celery:
    broker = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    backend = os.getenv("CELERY_RESULT_BACKEND", broker)
    app = Celery("handover", broker=broker, backend=backend, include=[
        "handover.tasks.jobs.expiration",
    ])
    app.conf.update(
        task_track_started=True,
        timezone="UTC",
        beat_schedule={
            "sweep-expired-matches": {
                "task": "handover.sweep_expired_matches",
                "schedule": float(os.getenv("EXPIRATION_SWEEP_SECONDS", "60")),
                # Drop stale ticks; reads compute expiry lazily until the next sweep runs
                "options": {"expires": float(os.getenv("EXPIRATION_SWEEP_SECONDS", "60"))},
            },
        },
    )
    return app

celery_app = make_celery()
