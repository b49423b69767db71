from datetime import datetime
from typing import Annotated, Callable
from fastapi import Depends
from app.common.timeutils import local_now


def get_clock() -> Callable[[], datetime]:
    """Reloj de negocio; los tests lo reemplazan con dependency_overrides."""
    return local_now


clock_dependency = Annotated[Callable[[], datetime], Depends(get_clock)]
