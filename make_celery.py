# Entry point for workers: celery -A make_celery worker --beat
from app import create_app

flask_app = create_app()
celery_app = flask_app.extensions["celery"]
