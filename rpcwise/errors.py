from typing import Any, Callable


class RpcWiseError(Exception): ...


# registration time


class ActionRegistrationError(RpcWiseError): ...


class DuplicateActionError(ActionRegistrationError):
    def __init__(self, name: str, kind: str = "Action"):
        super().__init__(f"{kind} `{name}` is already registered")


class InvalidParameterSpecError(ActionRegistrationError):
    def __init__(self, entry: Any, reason: str):
        super().__init__(f"Invalid parameter spec {entry!r}: {reason}")


class RegistryFrozenError(ActionRegistrationError):
    def __init__(self, name: str):
        super().__init__(f"Can't register `{name}`, registry is frozen")


class NotSupportedHandlerTypeError(ActionRegistrationError):
    def __init__(self, handler: Any):
        super().__init__(f"{handler} of type {type(handler)} is not supported")


# dispatch time


class NoCommandSpecifiedError(RpcWiseError):
    def __init__(self):
        super().__init__("No command specified!")


class UnknownCommandError(RpcWiseError):
    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unknown command: {command}")


class UnknownHandlerError(RpcWiseError):
    def __init__(self, handler_ref: str):
        super().__init__(f"No handler bound to `{handler_ref}`")


class InvalidHttpMethodError(RpcWiseError):
    def __init__(self, method: Any):
        super().__init__(f"Invalid HTTP method: {method}")


class MissingParameterError(RpcWiseError):
    def __init__(self, name: str, *, is_file: bool = False):
        self.name = name
        label = "File" if is_file else "Parameter"
        super().__init__(f'{label} "{name}" not found!')


class InvalidParameterError(RpcWiseError):
    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f'Invalid value for parameter "{name}": {reason}')


class UploadError(RpcWiseError):
    def __init__(self, name: str, reason: str | None = None):
        self.name = name
        self.reason = reason
        if reason is None:
            msg = f'Error reading uploaded file "{name}"!'
        else:
            msg = f'Bad data encountered in upload "{name}" [{reason}]. Please try again.'
        super().__init__(msg)


class HandlerInvocationError(RpcWiseError):
    "wraps whatever the handler raised, the handler error is kept as __cause__"

    def __init__(self, command: str, handler: Callable[..., Any] | None, error: BaseException):
        self.command = command
        self.handler = handler
        self.error = error
        super().__init__(str(error))


class PermissionDeniedError(RpcWiseError):
    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class NotFoundError(RpcWiseError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message)


# client side


class TransportError(RpcWiseError):
    def __init__(self, method: str, url: str, reason: str):
        super().__init__(f"{method} {url} failed: {reason}")


class InvalidResponseError(RpcWiseError): ...


class RemoteError(RpcWiseError):
    def __init__(self, message: Any):
        self.remote_message = message
        super().__init__(f"Server error: {message}")
