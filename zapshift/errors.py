class ZapShiftError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ZapShiftError):
    status_code = 400


class Unauthorized(ZapShiftError):
    status_code = 401


class Forbidden(ZapShiftError):
    status_code = 403


class UpstreamGatewayError(ZapShiftError):
    status_code = 502

