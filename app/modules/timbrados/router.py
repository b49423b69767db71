from fastapi import APIRouter, Depends, status
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency
from app.dependencies.clockDependencies import clock_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.timbrados.service import TimbradoService
from app.modules.timbrados.schemas import TimbradoCreate, TimbradoOut, TimbradoList

router = APIRouter(prefix="/timbrados", tags=["Timbrados"])


@router.post("/", response_model=TimbradoOut, status_code=status.HTTP_201_CREATED)
def create_timbrado(
    timbrado_data: TimbradoCreate,
    db: db_dependency,
    clock: clock_dependency,
    auth_context=Depends(AuthDependencies.require_admin())
):
    """
    Registrar un nuevo timbrado

    Solo administradores. Falla con 409 si ya hay un timbrado vigente o si
    el código ya fue registrado.
    """
    service = TimbradoService(db, clock=clock)
    return service.register(timbrado_data)


@router.get("/", response_model=TimbradoList)
def list_timbrados(
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_any_role())
):
    """Listar timbrados, el más reciente primero"""
    timbrados = TimbradoService(db).list_timbrados()
    return TimbradoList(timbrados=timbrados, total=len(timbrados))


@router.get("/active", response_model=TimbradoOut)
def get_active_timbrado(
    db: db_dependency,
    clock: clock_dependency,
    auth_context=Depends(AuthDependencies.require_any_role())
):
    """
    Obtener el timbrado vigente

    Devuelve 404 si no hay ninguno vigente en este momento.
    """
    return TimbradoService(db, clock=clock).get_active()


@router.get("/{timbrado_id}", response_model=TimbradoOut)
def get_timbrado(
    timbrado_id: UUID,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_any_role())
):
    return TimbradoService(db).get_timbrado(timbrado_id)
