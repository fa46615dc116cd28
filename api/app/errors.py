class RelayError(Exception):
    """Base class for request-scoped failures. Never fatal to the process."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(RelayError):
    status_code = 400


class MissingInput(InvalidInput):
    pass


class ResolverFailure(RelayError):
    status_code = 502


class JobNotFound(RelayError):
    status_code = 404

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found or expired: {job_id}")
        self.job_id = job_id


class FormatUnavailable(RelayError):
    status_code = 404


class StreamFailure(RelayError):
    status_code = 502
