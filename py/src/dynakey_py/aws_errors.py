from __future__ import annotations

from botocore.exceptions import ClientError

from .errors import NotFoundError, TransportError, ValidationError


def map_client_error(err: ClientError) -> Exception:
    code = str(err.response.get("Error", {}).get("Code", ""))
    message = str(err.response.get("Error", {}).get("Message", ""))

    if code == "ValidationException":
        return ValidationError(message)
    if code == "ResourceNotFoundException":
        return NotFoundError(message)

    return TransportError(code=code or "UnknownError", message=message or str(err))
