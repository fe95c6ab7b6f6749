class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class ScheduleError(AppError):
    pass


class DeliveryError(AppError):
    pass
