class MetricServiceError(Exception):
    pass


class AuthorizationDenied(MetricServiceError):
    pass


class DecodeError(MetricServiceError):
    pass


class ConversionError(MetricServiceError):
    pass


class InvalidMetricType(ConversionError):
    def __init__(self, metric_type: int) -> None:
        super().__init__(f'Invalid metric type {metric_type}')
        self.metric_type = metric_type


class ValueKindMismatch(ConversionError):
    pass


class UnsupportedScheme(MetricServiceError):
    def __init__(self, scheme: str) -> None:
        super().__init__(f'Unsupported URL scheme {scheme!r}')
        self.scheme = scheme


class UnsupportedFormat(MetricServiceError):
    def __init__(self, metric_format: int) -> None:
        super().__init__(f'Unsupported metrics format {metric_format}')
        self.metric_format = metric_format


class ConfigurationUnavailable(MetricServiceError):
    pass


class DeliveryFailure(MetricServiceError):
    """Non-fatal: the snapshot is dropped and the connection keeps serving."""


class ConnectionInterrupted(MetricServiceError):
    pass
