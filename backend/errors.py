# backend/errors.py


class ConsensusAppError(Exception):
    """Base class for domain errors; `status_code` is what the API returns."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ConsensusAppError):
    status_code = 404


class WorkflowError(ConsensusAppError):
    """Navigation or transition that the flow state does not allow."""
    status_code = 409


class InvalidVoteError(ConsensusAppError):
    status_code = 400


class ConsentNotReachedError(ConsensusAppError):
    status_code = 409


class CanvasImportError(ConsensusAppError):
    """Upload rejected: wrong format, empty or unreadable document."""
    status_code = 400
