class GatewayError(Exception):
    """Base de errores del gateway; lleva el status HTTP a devolver."""

    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class AuthenticationError(GatewayError):
    # firma/timestamp ausente, invalido o fuera de ventana
    status_code = 401


class ForbiddenSourceError(GatewayError):
    status_code = 403


class ValidationError(GatewayError):
    status_code = 400


class EmptyPayloadError(ValidationError):
    status_code = 400


class UnsupportedMediaTypeError(ValidationError):
    status_code = 415


class NoParsableRecordsError(ValidationError):
    status_code = 422


class RateLimitError(GatewayError):
    status_code = 429


class InternalError(GatewayError):
    # reintentable: el replay key se libera antes de responder
    status_code = 503
