from fastapi import HTTPException, status
from src.exceptions import LedgerError

def http_error(e: ValueError) -> HTTPException:
    """Translate a service error into the HTTP response routers raise"""
    if isinstance(e, LedgerError):
        return HTTPException(status_code=e.status_code, detail=e.to_dict())
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
