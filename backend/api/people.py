from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel

from backend.api.deps import get_service
from backend.core.pipeline import TrackerService

users = APIRouter(prefix="/api/users", tags=["users"])
applicants = APIRouter(prefix="/api/applicants", tags=["applicants"])


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class PasswordRequest(BaseModel):
    newPassword: str = ""


class StatusRequest(BaseModel):
    status: str


# ---------- users ----------
@users.post("/auth/login")
def login(req: LoginRequest, service: TrackerService = Depends(get_service)):
    return service.login(req.email, req.password).public_dict()


@users.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(data: Dict[str, Any] = Body(...), service: TrackerService = Depends(get_service)):
    return service.register(data).public_dict()


@users.get("")
def list_users(service: TrackerService = Depends(get_service)):
    return [u.public_dict() for u in service.list_users()]


@users.post("", status_code=status.HTTP_201_CREATED)
def create_user(data: Dict[str, Any] = Body(...), service: TrackerService = Depends(get_service)):
    return service.create_user(data).public_dict()


@users.get("/role/{role}")
def users_by_role(role: str, service: TrackerService = Depends(get_service)):
    return [u.public_dict() for u in service.list_users(role)]


@users.get("/{email}")
def get_user(email: str, service: TrackerService = Depends(get_service)):
    return service.get_user(email).public_dict()


@users.put("/{email}")
def update_user(email: str, changes: Dict[str, Any] = Body(...), service: TrackerService = Depends(get_service)):
    return service.update_user(email, changes).public_dict()


@users.delete("/{email}")
def delete_user(email: str, service: TrackerService = Depends(get_service)):
    service.delete_user(email)
    return {"success": True, "email": email.strip().lower()}


@users.post("/{email}/password")
def change_password(email: str, req: PasswordRequest, service: TrackerService = Depends(get_service)):
    user = service.change_password(email, req.newPassword)
    return {"success": True, "email": user.email}


# ---------- applicants ----------
@applicants.get("")
def list_applicants(interested: Optional[bool] = None, status: Optional[str] = None,
                    service: TrackerService = Depends(get_service)):
    return [u.public_dict() for u in service.list_applicants(interested=interested, status=status)]


@applicants.get("/interested")
def interested_applicants(service: TrackerService = Depends(get_service)):
    return [u.public_dict() for u in service.list_applicants(interested=True)]


@applicants.get("/{email}")
def get_applicant(email: str, service: TrackerService = Depends(get_service)):
    return service.get_applicant(email).public_dict()


@applicants.put("/{email}/status")
def set_applicant_status(email: str, req: StatusRequest, service: TrackerService = Depends(get_service)):
    return service.set_applicant_status(email, req.status).public_dict()


@applicants.put("/{email}/docs")
def update_applicant_docs(email: str, docs: Dict[str, Any] = Body(...),
                          service: TrackerService = Depends(get_service)):
    return service.update_applicant_docs(email, docs).public_dict()


@applicants.post("/{email}/accept")
def accept_applicant(email: str, service: TrackerService = Depends(get_service)):
    return service.accept_applicant(email).to_dict()


@applicants.post("/{email}/reject")
def reject_applicant(email: str, service: TrackerService = Depends(get_service)):
    return service.reject_applicant(email).public_dict()
