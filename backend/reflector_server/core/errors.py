from __future__ import annotations
"""Error kinds raised or returned by the reflection engine.

ConfigurationError and PreconditionError signal caller misuse and are
always raised. The resolution and invocation errors are expected outcomes
of dynamic lookup; the session hands them back inside result objects so
the caller can retry with other locations, signatures or arguments.
"""


class ReflectorError(Exception):
    code: str = 'REFLECTOR_ERROR'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'code': self.code, 'message': self.message}


class ConfigurationError(ReflectorError, ValueError):
    code = 'CONFIGURATION_ERROR'


class PreconditionError(ReflectorError, RuntimeError):
    code = 'PRECONDITION_ERROR'


class TypeResolutionError(ReflectorError):
    code = 'TYPE_RESOLUTION_ERROR'

    def __init__(self, message: str, *, qualified_name: str | None = None):
        super().__init__(message)
        self.qualified_name = qualified_name


class MemberResolutionError(ReflectorError):
    code = 'MEMBER_RESOLUTION_ERROR'

    def __init__(self, message: str, *, member: str | None = None):
        super().__init__(message)
        self.member = member


class InvocationError(ReflectorError):
    code = 'INVOCATION_ERROR'

    def __init__(self, message: str, *, cause: BaseException | None = None, missing_receiver: bool = False):
        super().__init__(message)
        self.cause = cause
        self.missing_receiver = missing_receiver

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.cause is not None:
            payload['cause'] = f"{type(self.cause).__name__}: {self.cause}"
        if self.missing_receiver:
            payload['missing_receiver'] = True
        return payload
