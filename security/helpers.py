"""Contains all security related helper functions
"""
import os
import json

from datetime import datetime, timezone

from fastapi import HTTPException, status, Depends
from fastapi.security import (
    OAuth2PasswordBearer,
    SecurityScopes
)

from jose import jwe
from jose.exceptions import ExpiredSignatureError, JOSEError

from pydantic import ValidationError
from typing import Annotated

from schema.security import TokenData


oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="api/auth/login",
    scopes={
        "me": "Read information about the current user."
    },
)


async def get_current_user(
    security_scopes: SecurityScopes, token: Annotated[str, Depends(oauth2_scheme)]
) -> TokenData:
    """Get the caller's identity from the access token.

    Tokens are issued by the authentication service; this only decrypts
    and checks them.

    Args:
        security_scopes (SecurityScopes): The security scopes required for the request.
        token (Annotated[str, Depends(oauth2_scheme)]): The access token.

    Raises:
        HTTPException: 401 when the token is malformed, expired or lacks a required scope.

    Returns:
        TokenData: The authenticated caller.
    """

    if security_scopes.scopes:
        authenticate_value = f'Bearer scope="{security_scopes.scope_str}"'
    else:
        authenticate_value = "Bearer"

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": authenticate_value},
    )
    try:
        #* Decrypt the JWE token
        token_bytes = token.encode("utf-8")
        payload_bytes = jwe.decrypt(token_bytes, os.getenv("SECRET_KEY"))
        payload: dict = json.loads(payload_bytes)

        username = payload.get("sub")
        exp = payload.get("exp")
        token_scopes: list = payload.get("scopes") or []

        if username is None:
            raise credentials_exception

        #* Validate that the token has not expired
        if exp is None or datetime.now(timezone.utc).timestamp() > exp:
            raise ExpiredSignatureError

        token_data = TokenData(scopes=token_scopes, username=username)
    except ValidationError:
        raise credentials_exception
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": authenticate_value},
        )
    except (JOSEError, ValueError, TypeError, AttributeError):
        raise credentials_exception

    for scope in security_scopes.scopes:
        if scope not in token_data.scopes:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not enough permissions",
                headers={"WWW-Authenticate": authenticate_value},
            )
    return token_data
