from celery import Celery, Task


def celery_init_app(app) -> Celery:
    """Bind a Celery app to Flask so tasks run inside an app context."""

    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery(app.name, task_cls=FlaskTask, include=["tasks"])
    celery_app.conf.update(
        broker_url=app.config.get("CELERY_BROKER_URL"),
        result_backend=app.config.get("CELERY_RESULT_BACKEND"),
        task_ignore_result=True,
        timezone="UTC",
    )

    # ============================================================
    # CELERY BEAT SCHEDULE (Periodic Tasks)
    # ============================================================
    interval = float(app.config.get("HOLD_SWEEP_INTERVAL_SECONDS", 60))
    celery_app.conf.beat_schedule = {
        # safety net for holds nobody touched since they expired
        "release-expired-holds": {
            "task": "holds.release_expired_holds",
            "schedule": interval,
            "options": {"expires": max(interval - 10, 1)},
        },
    }

    celery_app.set_default()
    app.extensions["celery"] = celery_app
    return celery_app
