from __future__ import annotations

from typing import Any, Dict


class AppError(Exception):
    default_code = "system_error"
    default_message = "The operation could not be completed."
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message = (message or self.default_message).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.message or self.code)

    def user_message(self) -> str:
        return self.message

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message = "The requested action is not valid."
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message = "The request contains invalid data."
    default_http_status = 400


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message = "The referenced record does not exist."
    default_http_status = 404


class ForbiddenError(UserActionError):
    default_code = "forbidden"
    default_message = "You are not allowed to perform this action."
    default_http_status = 403


class AuthenticationRequiredError(UserActionError):
    default_code = "auth_required"
    default_message = "An authenticated actor is required."
    default_http_status = 401


class InvalidStateError(UserActionError):
    default_code = "invalid_state"
    default_message = "The action is not allowed for the current status."
    default_http_status = 409


class ExpiredError(UserActionError):
    default_code = "expired"
    default_message = "The quote revision is no longer valid."
    default_http_status = 410


class ConflictError(UserActionError):
    default_code = "conflict"
    default_message = "The record was changed by a concurrent request."
    default_http_status = 409


class SystemError(AppError):
    default_code = "system_error"
    default_message = "The operation could not be completed."
    default_http_status = 500
    default_critical = True


def not_found(entity: str, entity_id: str | None) -> NotFoundError:
    return NotFoundError(
        code=f"{entity}_not_found",
        message=f"{entity.replace('_', ' ').capitalize()} not found.",
        payload={"entity": entity, "entity_id": entity_id},
    )


def invalid_state(entity: str, status: str | None, action: str) -> InvalidStateError:
    return InvalidStateError(
        code="action_not_allowed_for_status",
        message=f"Cannot {action.replace('_', ' ')} a {entity.replace('_', ' ')} with status {status}.",
        payload={"entity": entity, "status": status, "action": action},
    )
