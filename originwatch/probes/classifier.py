"""Maps probe errors onto the FailureReason taxonomy."""

import httpx

from originwatch.models.probe import FailureReason

# Checked in order, first match wins. Timeouts subclass TransportError and
# ReadError subclasses NetworkError, so the order matters.
_CLASSIFICATION: tuple[tuple[tuple[type[BaseException], ...], FailureReason], ...] = (
    ((httpx.TimeoutException, TimeoutError), FailureReason.REQUEST_TIMEOUT),
    ((httpx.TooManyRedirects,), FailureReason.REDIRECTION),
    (
        (httpx.InvalidURL, httpx.UnsupportedProtocol, httpx.LocalProtocolError),
        FailureReason.BAD_REQUEST,
    ),
    (
        (
            httpx.ConnectError,
            httpx.ProxyError,
            httpx.RemoteProtocolError,
            httpx.WriteError,
            httpx.CloseError,
        ),
        FailureReason.CONNECTION_FAILURE,
    ),
    ((httpx.DecodingError, httpx.ReadError, httpx.StreamError), FailureReason.INVALID_BODY),
)


def classify_failure(error: BaseException) -> FailureReason:
    """Classify the error raised by a failed probe.

    Args:
        error: Exception raised while sending the request or reading the response

    Returns:
        The matching FailureReason, UNKNOWN if nothing matches
    """
    for error_types, reason in _CLASSIFICATION:
        if isinstance(error, error_types):
            return reason
    return FailureReason.UNKNOWN
