"""Client registry endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gestao_obras.core.auth import RequestUserContext, get_current_user_context
from gestao_obras.db.dependencies import get_db_session
from gestao_obras.services.registry_service import ClientData, ClientUpdateData, RegistryService

router = APIRouter(prefix="/clients", tags=["clients"])


class ClientCreatePayload(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=255)
    responsible: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=320)
    street: str | None = Field(default=None, max_length=255)
    number: str | None = Field(default=None, max_length=32)
    complement: str | None = Field(default=None, max_length=255)
    neighborhood: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=255)
    state: str | None = Field(default=None, max_length=64)
    zip_code: str | None = Field(default=None, max_length=16)


class ClientUpdatePayload(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=32)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    responsible: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=320)
    street: str | None = Field(default=None, max_length=255)
    number: str | None = Field(default=None, max_length=32)
    complement: str | None = Field(default=None, max_length=255)
    neighborhood: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=255)
    state: str | None = Field(default=None, max_length=64)
    zip_code: str | None = Field(default=None, max_length=16)


@router.get("")
def list_clients(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = RegistryService(db)
    return {"items": [service.serialize_client(client) for client in service.list_clients(context=context)]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_client(
    payload: ClientCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = RegistryService(db)
    client = service.create_client(context=context, data=ClientData(**payload.model_dump()))
    return service.serialize_client(client)


@router.patch("/{client_id}")
def update_client(
    client_id: UUID,
    payload: ClientUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = RegistryService(db)
    client = service.update_client(
        context=context,
        client_id=client_id,
        data=ClientUpdateData(**payload.model_dump(), provided=frozenset(payload.model_fields_set)),
    )
    return service.serialize_client(client)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    RegistryService(db).delete_client(context=context, client_id=client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
