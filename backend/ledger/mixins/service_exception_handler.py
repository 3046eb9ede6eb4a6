# ledger/mixins/service_exception_handler.py
"""
Translates ledger service exceptions into DRF responses.

Views never catch service errors themselves; they route every call through
``handle_service_call`` so the HTTP status and the log line are decided in
one place.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, OperationalError
from rest_framework.exceptions import APIException
from rest_framework.exceptions import PermissionDenied as DRFPermissionDenied
from rest_framework.exceptions import ValidationError as DRFValidationError

from ..exceptions import ConflictError

logger = logging.getLogger(__name__)

COMPONENT = "ServiceExceptionHandlerMixin"


class ServiceExceptionHandlerMixin:
    """
    Mapping applied by ``handle_service_call``:

    ==========================  ==========================================
    raised by the service       surfaced to the client
    ==========================  ==========================================
    Django ``ValidationError``  DRF ``ValidationError`` (400, fields kept)
    ``PermissionError``         ``PermissionDenied`` (403)
    ``OperationalError``        ``ConflictError`` (409, retryable)
    ``IntegrityError``          ``ConflictError`` (409, lost insert race)
    ``APIException``            unchanged (domain errors, DRF errors)
    anything else               generic 500, stack trace logged
    ==========================  ==========================================

    Usage:
        txn = self.handle_service_call(
            TransactionService.create_transaction, household, user, data
        )
    """

    def _service_log_context(self, service_call):
        request = getattr(self, "request", None)
        qualname = getattr(service_call, "__qualname__", str(service_call))
        return {
            "service_name": qualname.split(".")[0],
            "method_name": getattr(service_call, "__name__", qualname),
            "user_id": getattr(getattr(request, "user", None), "id", None),
            "household_id": getattr(getattr(request, "household", None), "id", None),
        }

    def _log_service_failure(self, level, message, context, action, severity, exc_info=False, **fields):
        getattr(logger, level)(
            message,
            extra={
                **context,
                **fields,
                "action": action,
                "component": COMPONENT,
                "severity": severity,
            },
            exc_info=exc_info,
        )

    def handle_service_call(self, service_call, *args, **kwargs):
        context = self._service_log_context(service_call)
        logger.debug(
            "Service call execution initiated",
            extra={
                **context,
                "args_count": len(args),
                "kwargs_keys": sorted(kwargs),
                "action": "service_call_start",
                "component": COMPONENT,
            },
        )

        try:
            result = service_call(*args, **kwargs)
        except DjangoValidationError as e:
            detail = e.message_dict if hasattr(e, "error_dict") else e.messages
            self._log_service_failure(
                "warning", "Service rejected input", context,
                "service_validation_error", "medium", error_messages=detail,
            )
            raise DRFValidationError(detail)
        except PermissionError as e:
            self._log_service_failure(
                "warning", "Service refused operation", context,
                "service_permission_denied", "high", error_message=str(e),
            )
            raise DRFPermissionDenied(str(e))
        except (OperationalError, IntegrityError) as e:
            self._log_service_failure(
                "error", "Service write conflict", context,
                "service_conflict", "high",
                error_type=type(e).__name__, error_message=str(e),
            )
            raise ConflictError()
        except APIException as e:
            server_side = e.status_code >= 500
            self._log_service_failure(
                "error" if server_side else "warning",
                "Service raised API exception", context,
                "service_api_exception", "high" if server_side else "medium",
                error_detail=e.detail, status_code=e.status_code,
            )
            raise
        except Exception as e:
            self._log_service_failure(
                "error", "Service operation failed unexpectedly", context,
                "service_unexpected_error", "critical", exc_info=True,
                error_type=type(e).__name__, error_message=str(e),
            )
            raise APIException(detail="Service operation failed", code="service_error")

        logger.debug(
            "Service call completed successfully",
            extra={
                **context,
                "result_type": type(result).__name__,
                "action": "service_call_success",
                "component": COMPONENT,
            },
        )
        return result
