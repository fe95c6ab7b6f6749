from __future__ import annotations

import functools
import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable, Optional

from petdash.domain.errors import AppError, NotFoundError, ValidationError

log = logging.getLogger("petdash.services")


@dataclass(frozen=True)
class ServiceResult:
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ServiceResult":
        return cls(success=False, error=error)


def service_boundary(message: str, not_found: str | None = None) -> Callable:
    """Turn a service method into one that always returns a ServiceResult.

    Storage and unexpected errors are logged with their traceback and reported
    with the generic ``message``; ``NotFoundError`` maps to ``not_found`` and
    ``ValidationError`` keeps its own text.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args, **kwargs) -> ServiceResult:
            try:
                return ServiceResult.ok(fn(*args, **kwargs))
            except NotFoundError as e:
                log.info("not_found op=%s detail=%s", fn.__name__, e)
                return ServiceResult.fail(not_found or str(e) or message)
            except ValidationError as e:
                log.info("validation_failed op=%s detail=%s", fn.__name__, e)
                return ServiceResult.fail(str(e))
            except (sqlite3.Error, AppError):
                log.exception("service_failed op=%s", fn.__name__)
                return ServiceResult.fail(message)
            except Exception:
                log.exception("service_crashed op=%s", fn.__name__)
                return ServiceResult.fail(message)

        return wrapper

    return decorator
