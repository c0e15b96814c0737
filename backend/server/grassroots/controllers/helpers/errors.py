"""
Service error types shared by the location, idea, points and planning helpers.

Each error carries an HTTP status `code` and a stable `kind` that clients can
switch on. The `message` is safe to show to end users; anything internal
(ids, SQL, driver text) goes to the log instead.
"""

import logging

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    code = 500
    kind = "ServiceError"
    public_message = "Something went wrong. Please try again."
    retryable = False

    def __init__(self, message=None, **context):
        super().__init__(message or self.public_message)
        self.context = context


class NotFoundError(ServiceError):
    code = 404
    kind = "NotFound"
    public_message = "The requested item was not found."


class ValidationError(ServiceError):
    code = 400
    kind = "ValidationError"
    public_message = "The request was not valid."


class InvalidStageError(ValidationError):
    """A plan operation was attempted in a stage that does not allow it."""
    code = 409
    kind = "InvalidStage"
    public_message = "This action is not available at the plan's current stage."


class ConflictError(ServiceError):
    code = 409
    kind = "Conflict"
    public_message = "The request conflicts with existing data."


class UnauthenticatedError(ServiceError):
    code = 401
    kind = "Unauthenticated"
    public_message = "Authentication required."


class ForbiddenError(ServiceError):
    code = 403
    kind = "Forbidden"
    public_message = "You are not allowed to do that."


class RateLimitedError(ServiceError):
    code = 429
    kind = "RateLimited"
    public_message = "Too many requests. Please slow down."


class StoreError(ServiceError):
    code = 500
    kind = "StoreError"


class TransientStoreError(StoreError):
    code = 503
    kind = "TransientStoreError"
    public_message = "The service is temporarily unavailable. Please retry."
    retryable = True


def error_body(err):
    """Serialize a ServiceError into the response body clients receive.

    Validation, not-found and stage messages are written for users and are
    passed through; store errors only ever expose the generic text.
    """
    if isinstance(err, StoreError) or type(err) is ServiceError:
        message = err.public_message
    else:
        message = str(err)
    return {"code": err.code, "kind": err.kind, "message": message}


def error_response(err, operation, **context):
    """Log a failed operation and return a (body, status) pair for Connexion."""
    if isinstance(err, ServiceError):
        level = logging.ERROR if err.code >= 500 else logging.INFO
        logger.log(level, "%s failed (%s): %s context=%s",
                   operation, err.kind, err, {**err.context, **context})
        return error_body(err), err.code

    logger.error("%s failed with unexpected error: %s context=%s",
                 operation, err, context, exc_info=err)
    generic = ServiceError()
    return error_body(generic), generic.code
