"""
HTTP routes for the ledger.

Thin handlers over RecordLifecycle and AccountService. Request models
accept loosely typed fields on purpose: shape and bounds are checked by
the lifecycle validators so HTTP and in-process callers get the same
errors. Path parameters are taken as strings for the same reason.
"""

import logging
import re
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, Request, Response
from pydantic import BaseModel, Field

from ..lifecycle import AccountService, ExportFile, RecordLifecycle
from ..services import LedgerServices
from .auth import ROLE_ADMIN, Principal, TokenService, get_current_user, get_token_service, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Concrete Ledger"])


# --- Request Models ---


class CredentialsRequest(BaseModel):
    """Username and password, for registration and logins."""

    username: Any = Field(None, description="Username")
    password: Any = Field(None, description="Password")


class PasswordChangeRequest(BaseModel):
    """Self-service password change."""

    oldPassword: Any = Field(None, description="Current password")
    newPassword: Any = Field(None, description="New password")


class PasswordResetRequest(BaseModel):
    """Admin password reset for a user."""

    password: Any = Field(None, description="New password")


class HistoryRequest(BaseModel):
    """A named batch of records."""

    name: Any = Field(None, description="History entry name")
    records: Any = Field(None, description="Records to save")


# --- Dependencies ---


def get_services(request: Request) -> LedgerServices:
    """Get the service container from app state."""
    return request.app.state.services


def get_records(services: LedgerServices = Depends(get_services)) -> RecordLifecycle:
    return services.records


def get_accounts(services: LedgerServices = Depends(get_services)) -> AccountService:
    return services.accounts


def _export_response(export: ExportFile) -> Response:
    ascii_name = re.sub(r"[^\x20-\x7e]", "_", export.filename)
    disposition = f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(export.filename)}"
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": disposition},
    )


# --- Account Routes ---


@router.post("/register", status_code=201)
async def register(
    body: CredentialsRequest,
    accounts: AccountService = Depends(get_accounts),
):
    """Self-service registration; only open when allowRegistration is set."""
    await accounts.register_user(body.username, body.password)
    return {"message": "Registration successful"}


@router.post("/login")
async def login(
    body: CredentialsRequest,
    accounts: AccountService = Depends(get_accounts),
    tokens: TokenService = Depends(get_token_service),
):
    user = await accounts.authenticate_user(body.username, body.password)
    return {"message": "Login successful", "token": tokens.issue(user.username)}


@router.put("/me/password")
async def change_password(
    body: PasswordChangeRequest,
    username: str = Depends(get_current_user),
    accounts: AccountService = Depends(get_accounts),
):
    await accounts.change_password(username, body.oldPassword, body.newPassword)
    return {"message": "Password updated"}


# --- Record Routes ---


@router.get("/records")
async def list_records(
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    return [r.to_dict() for r in await records.list_records(username)]


@router.post("/records", status_code=201)
async def add_record(
    payload: Any = Body(None),
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    record = await records.add_record(username, payload)
    return {"message": "Record added", "record": record.to_dict()}


@router.put("/records/{index}")
async def update_record(
    index: str,
    payload: Any = Body(None),
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    record = await records.update_record(username, index, payload)
    return {"message": "Record updated", "record": record.to_dict()}


@router.delete("/records/{index}")
async def delete_record(
    index: str,
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    await records.delete_record(username, index)
    return {"message": "Record deleted"}


@router.delete("/records")
async def clear_records(
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    removed = await records.clear_records(username)
    return {"message": "All records cleared", "deleted": removed}


@router.get("/stats")
async def record_stats(
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    return await records.record_stats(username)


# --- History Routes ---


@router.get("/history")
async def list_history(
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    return [h.to_dict() for h in await records.list_history(username)]


@router.post("/save", status_code=201)
async def save_history(
    body: HistoryRequest,
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    entry = await records.save_history(username, body.name, body.records)
    return {"message": "Data saved", "historyEntry": entry.to_dict()}


@router.put("/history/{history_id}")
async def update_history(
    history_id: str,
    body: HistoryRequest,
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    entry = await records.update_history(username, history_id, body.name, body.records)
    return {"message": "History entry updated", "historyEntry": entry.to_dict()}


@router.delete("/history/{history_id}")
async def delete_history(
    history_id: str,
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    await records.delete_history(username, history_id)
    return {"message": "History entry deleted"}


# --- Export Routes ---


@router.get("/export")
async def export_records(
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    return _export_response(await records.export_records(username))


@router.get("/export/history/{history_id}")
async def export_history(
    history_id: str,
    username: str = Depends(get_current_user),
    records: RecordLifecycle = Depends(get_records),
):
    return _export_response(await records.export_history(username, history_id))


# --- Admin Routes ---


@router.post("/admin/login")
async def admin_login(
    body: CredentialsRequest,
    accounts: AccountService = Depends(get_accounts),
    tokens: TokenService = Depends(get_token_service),
):
    account = await accounts.authenticate_admin(body.username, body.password)
    return {"message": "Admin login successful", "token": tokens.issue(account.username, ROLE_ADMIN)}


@router.get("/admin/settings")
async def get_settings(
    admin: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    settings = await accounts.get_settings()
    account = await accounts.get_admin_account()
    return {"adminUsername": account["username"], **settings.to_dict()}


@router.put("/admin/settings")
async def update_settings(
    changes: Any = Body(None),
    admin: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    settings = await accounts.set_settings(changes)
    return {"message": "Settings updated", "settings": settings.to_dict()}


@router.get("/admin/account")
async def get_admin_account(
    admin: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    return await accounts.get_admin_account()


@router.put("/admin/account")
async def update_admin_account(
    body: CredentialsRequest,
    admin: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    await accounts.update_admin_account(body.username, body.password)
    return {"message": "Admin account updated"}


@router.get("/admin/users")
async def list_users(
    admin: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    return [u.to_dict() for u in await accounts.list_users()]


@router.put("/admin/users/{username}/password")
async def reset_user_password(
    username: str,
    body: PasswordResetRequest,
    admin: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    await accounts.set_password_for_user(username, body.password)
    return {"message": "User password updated"}


@router.delete("/admin/users/{username}")
async def delete_user(
    username: str,
    admin: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    await accounts.delete_user(username)
    logger.info(f"User {username} deleted by admin {admin.username}")
    return {"message": "User deleted"}


@router.get("/admin/stats")
async def data_stats(
    admin: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    return await accounts.data_stats()


@router.get("/health")
async def health(accounts: AccountService = Depends(get_accounts)):
    return await accounts.health()
