"""
Shared FastAPI dependencies: bearer-token auth and role checks.

Tokens are issued by the storefront's auth service; this module only
verifies them. The payload carries the user's ``id`` and ``role``
(admin, staff, supplier, customer). For suppliers, ``id`` is the supplier id.
"""
import os
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from dotenv import load_dotenv

load_dotenv()
SECRET_KEY = os.getenv("JWT_SECRET", "")
ALGORITHM = "HS256"


def verify_token(request: Request) -> dict:
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
     token = auth.split(" ")[1]
     try:
          payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
          return payload
     except JWTError:
          raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


def require_roles(*roles: str) -> Callable[..., dict]:
     """Dependency factory: the token's role must be one of ``roles``."""

     def _check(token: dict = Depends(verify_token)) -> dict:
          if token.get("role") not in roles:
               raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Not authorized"
               )
          return token

     return _check


def can_view_supplier(token: dict, supplier_id: int) -> bool:
     """Admins and staff see every supplier; a supplier only sees itself."""
     role = token.get("role")
     if role in ("admin", "staff"):
          return True
     if role == "supplier":
          return str(token.get("id")) == str(supplier_id)
     return False
