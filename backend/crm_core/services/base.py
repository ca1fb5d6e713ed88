"""Shared plumbing for the write-path services."""

import logging
from functools import wraps
from typing import Callable

from sqlalchemy.orm import Session

from crm_core.exceptions import CRMError

logger = logging.getLogger(__name__)


def transactional(action: str):
    """
    Decorator for service methods that write.

    The wrapped method runs its statements on self.db; on success the session
    is committed once, on any error it is rolled back and the error is
    re-raised unchanged, so partial writes are never visible.

    Usage:
        @transactional("convert_lead")
        def convert_lead(self, lead_id, ...):
            ...
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            db: Session = self.db
            try:
                result = func(self, *args, **kwargs)
                db.commit()
            except CRMError as e:
                db.rollback()
                logger.warning(f"{action} rejected: {e}")
                raise
            except Exception as e:
                db.rollback()
                logger.error(f"{action} failed: {e}")
                raise
            return result
        return wrapper
    return decorator


class BaseService:
    def __init__(self, db: Session):
        self.db = db
