class TrackerError(Exception):
    """Base error carrying the HTTP status it maps to"""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(TrackerError):
    """Missing or malformed fields"""
    status_code = 400


class NotFoundError(TrackerError):
    """Unknown record id"""
    status_code = 404
