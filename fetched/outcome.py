from .model import Outcome, OutcomeKind, ResponseSnapshot


def is_ok(response) -> bool:
    """
    Whether the response counts as a success: a 2XX status or 304.
    """
    code = getattr(response, 'status_code', None) or 0
    return 200 <= code < 300 or code == 304


def classify(response) -> OutcomeKind:
    return OutcomeKind.OK if is_ok(response) else OutcomeKind.FAIL


def from_response(response: ResponseSnapshot) -> Outcome:
    return Outcome(kind=classify(response), response=response)


def from_error(error: BaseException) -> Outcome:
    return Outcome(kind=OutcomeKind.ERROR, error=error)
