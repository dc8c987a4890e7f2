"""
Celery application for the downstream propagation tasks.
"""
import logging

from celery import Celery, Task
from celery.exceptions import Retry
from flask import Flask, has_app_context

from models import db

logger = logging.getLogger(__name__)


def celery_init_app(app: Flask) -> Celery:
    """Create the Celery app bound to ``app`` and make it the current one.

    With ``PROPAGATION_MODE=inline`` tasks run eagerly in the caller's
    process and application context (tests, one-off scripts); retries are
    then replayed immediately.
    """

    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            if has_app_context():
                return self._run_in_session(args, kwargs)
            with app.app_context():
                return self._run_in_session(args, kwargs)

        def _run_in_session(self, args, kwargs):
            attempt = self.request.retries + 1
            try:
                return self.run(*args, **kwargs)
            except Retry as e:
                db.session.rollback()
                logger.warning(f"Task {self.name} attempt {attempt} failed, retrying: {e.exc}")
                raise
            except Exception as e:
                db.session.rollback()
                logger.error(f"Task {self.name} failed on attempt {attempt}: {e}")
                raise

    celery_app = Celery(app.name, task_cls=FlaskTask)
    celery_app.config_from_object(app.config['CELERY'])
    celery_app.conf.update(
        # Task settings
        task_serializer='json',
        accept_content=['json'],
        result_serializer='json',
        timezone='UTC',
        enable_utc=True,
        task_ignore_result=True,

        # Jobs are acknowledged after they finish, so a worker crash redelivers them
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        task_always_eager=app.config.get('PROPAGATION_MODE') == 'inline',
        task_eager_propagates=False,
    )
    celery_app.set_default()
    app.extensions['celery'] = celery_app
    return celery_app
