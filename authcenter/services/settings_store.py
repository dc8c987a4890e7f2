"""Versioned runtime settings backed by the ``system_settings`` table."""
import logging
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db
from models.system_setting import SystemSetting

logger = logging.getLogger(__name__)

ENFORCE_2FA_LOGIN = 'enforce_2fa_login'


def get_setting(key: str, default: Any = None) -> Any:
    # Read straight from the database on every call; other instances may have written it.
    setting = SystemSetting.query.filter_by(key=key).first()
    if setting is None:
        return default
    return setting.value


def set_setting(key: str, value: Any, updated_by: str = None) -> SystemSetting:
    setting = SystemSetting.query.filter_by(key=key).first()
    if setting is None:
        setting = SystemSetting(key=key, value=value, version=1, updated_by=updated_by)
        db.session.add(setting)
    else:
        setting.value = value
        setting.version = SystemSetting.version + 1
        setting.updated_by = updated_by
    try:
        db.session.commit()
    except IntegrityError:
        # Another instance created the row first; retry as an update.
        db.session.rollback()
        return set_setting(key, value, updated_by)
    db.session.refresh(setting)
    logger.info(f"Setting {key} set to {value!r} (v{setting.version}) by {updated_by}")
    return setting


def enforce_2fa_login() -> bool:
    default = current_app.config.get('ENFORCE_2FA_LOGIN_DEFAULT', False)
    return bool(get_setting(ENFORCE_2FA_LOGIN, default))
