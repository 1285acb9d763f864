# Overview: Request decorators for API routes; transaction boundary and error mapping.

from functools import wraps
from flask import current_app, jsonify

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from .extensions import db
from .services.concurrency import run_with_retry
from .validation import LedgerError


def transactional(action: str):
    """
    Run a route as one unit of work.

    - Success: the view body and the commit run together under run_with_retry.
      A lock or version conflict rolls back and re-runs the whole view, so a
      failed commit never answers 2xx.
    - LedgerError: rollback, respond with {"error": kind, "message": ...} and
      the error's HTTP status.
    - IntegrityError: rollback, respond 409 without leaking driver detail.
    - StaleDataError after the last retry: rollback, respond 409.
    - Anything else (including a storage error after the last retry):
      rollback, log with traceback, respond 500.

    action names the operation in logs, e.g. "create loan".
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            def _unit():
                result = f(*args, **kwargs)
                db.session.commit()
                return result

            try:
                return run_with_retry(_unit)
            except LedgerError as e:
                db.session.rollback()
                current_app.logger.info("Rejected %s: %s: %s", action, e.kind, e)
                return jsonify(e.to_dict()), e.http_status
            except IntegrityError:
                db.session.rollback()
                current_app.logger.warning("Integrity conflict during %s", action, exc_info=True)
                return jsonify({
                    "error": "ConflictError",
                    "message": f"Could not {action}: conflicts with existing data",
                }), 409
            except StaleDataError:
                db.session.rollback()
                current_app.logger.warning("Concurrent modification during %s", action)
                return jsonify({
                    "error": "ConflictError",
                    "message": f"Could not {action}: the record was modified concurrently, retry the request",
                }), 409
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "InternalError", "message": "Internal server error"}), 500

        return decorated_function

    return decorator
