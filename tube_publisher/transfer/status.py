"""
Response classification for the resumable upload protocol.

Every response of the upload endpoint, whether to a status probe or to a
chunk PUT, is reduced to one of three outcomes by a single table:

    Status                                  Outcome
    ------                                  -------
    201 Created                             COMPLETED
    200 OK on the request with final byte   COMPLETED
    200 OK otherwise                        RESUMABLE
    308 Resume Incomplete                   RESUMABLE
    500, 502, 503, 504                      RESUMABLE (server error)
    anything else                           PERMANENT_FAILURE

The provider answers the request that carries the last byte with the
created resource, usually as 201 but sometimes as 200. Anywhere else,
200 only confirms that the session is alive, so a probe answered with
200 is never taken as completion.
"""

from enum import Enum, auto


class TransferStatus(Enum):
    """Outcome of one response from the upload endpoint."""
    COMPLETED = auto()          # Resource exists, session is over
    RESUMABLE = auto()          # Session alive, keep sending bytes
    PERMANENT_FAILURE = auto()  # Session rejected, cannot continue


HTTP_OK = 200
HTTP_CREATED = 201
HTTP_RESUME_INCOMPLETE = 308

SERVER_ERROR_CODES = frozenset({500, 502, 503, 504})


def classify(status_code: int, final_chunk: bool = False) -> TransferStatus:
    """
    Classify an upload endpoint response.

    Args:
        status_code: HTTP status of the response.
        final_chunk: True if the request carried the last byte of the
                     content. Status probes always pass False.

    Returns:
        The TransferStatus for this response.

    Examples:
        classify(201)                    # COMPLETED
        classify(200, final_chunk=True)  # COMPLETED
        classify(200)                    # RESUMABLE
        classify(503)                    # RESUMABLE
        classify(403)                    # PERMANENT_FAILURE
    """
    if status_code == HTTP_CREATED:
        return TransferStatus.COMPLETED

    if status_code == HTTP_OK:
        return TransferStatus.COMPLETED if final_chunk else TransferStatus.RESUMABLE

    if status_code == HTTP_RESUME_INCOMPLETE or status_code in SERVER_ERROR_CODES:
        return TransferStatus.RESUMABLE

    return TransferStatus.PERMANENT_FAILURE


def is_server_error(status_code: int) -> bool:
    """True for the transient server errors that are still resumable."""
    return status_code in SERVER_ERROR_CODES
