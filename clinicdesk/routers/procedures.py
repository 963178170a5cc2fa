# clinicdesk/routers/procedures.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..audit import audit_trail
from ..database import get_db

router = APIRouter(
    tags=["Procedures"],
    responses={404: {"description": "Not found"}},
)


@router.get("/procedures", response_model=List[schemas.ProcedureResponse],
            dependencies=[Depends(security.require_staff)])
def read_procedures(db: Session = Depends(get_db)):
    return crud.get_procedures(db)


@router.get("/procedures/{procedure_id}", response_model=schemas.ProcedureResponse,
            dependencies=[Depends(security.require_staff)])
def read_procedure(procedure_id: int, db: Session = Depends(get_db)):
    try:
        return crud.get_procedure(db, procedure_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/procedures", response_model=schemas.ProcedureResponse, status_code=status.HTTP_201_CREATED)
def create_procedure(
    procedure: schemas.ProcedureCreate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        db_procedure = crud.create_procedure(db, procedure)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "CREATE", "PROCEDURE", resource_type="procedure",
                          resource_id=db_procedure.id, new_values=procedure.model_dump(mode="json"))
    return db_procedure


@router.put("/procedures/{procedure_id}", response_model=schemas.ProcedureResponse)
def update_procedure(
    procedure_id: int,
    procedure_update: schemas.ProcedureUpdate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        db_procedure = crud.update_procedure(db, procedure_id, procedure_update)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "UPDATE", "PROCEDURE", resource_type="procedure", resource_id=procedure_id,
                          new_values=procedure_update.model_dump(mode="json", exclude_unset=True))
    return db_procedure


@router.delete("/procedures/{procedure_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_procedure(
    procedure_id: int,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        crud.delete_procedure(db, procedure_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "DELETE", "PROCEDURE", resource_type="procedure", resource_id=procedure_id)
