from pydantic import BaseModel
from typing import Optional


class AuthContext(BaseModel):
    """Contexto autenticado que el core toma como confiable."""
    user_id: str
    user_role: Optional[str] = None
    user_name: Optional[str] = None
