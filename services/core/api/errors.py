"""
Domain exception → HTTP mapping.

Services raise BaseGovernanceException subclasses and know nothing about
transport; this is the only place status codes are chosen.
"""
from fastapi import HTTPException

from exceptions import BaseGovernanceException, status_for


def map_exception_to_http(exc: BaseGovernanceException) -> HTTPException:
    """
    Map domain exception to HTTP response.

    Args:
        exc: Domain exception from service layer

    Returns:
        HTTPException with proper status code and structured error payload
    """
    return HTTPException(status_code=status_for(exc), detail=exc.to_dict())
