# leadflow/routes/user.py

from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from leadflow.models.user import User
from leadflow.schemas.activity import ActivityEntry
from leadflow.schemas.user import UserCreate, UserUpdate, UserResponse, UserListItem, ProfileResponse, PingResponse
from leadflow.services.access import Capability
from leadflow.services.activity import read_activity_logs
from leadflow.services.users import (
    ping_service,
    read_users_service,
    create_user_service,
    update_user_service,
    delete_user_service,
    update_profile_service,
)
from leadflow.routes.auth import get_current_user, require

router = APIRouter()


# ────────────── ПРОФИЛЬ ──────────────
@router.get(
    "/profile",
    response_model=UserResponse,
    summary="Профиль текущего пользователя",
)
async def get_profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.put(
    "/profile",
    response_model=ProfileResponse,
    summary="Обновить свой профиль (multipart form, можно с картинкой)",
    responses={
        400: {"description": "Email занят, неверная дата или файл не картинка"},
    },
)
async def update_profile(
    request: Request,
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    dob: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    profile_pic: Optional[str] = Form(None, alias="profilePic"),
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
):
    """
    Самостоятельное обновление профиля.
    Возвращает обновлённый профиль и новый токен, чтобы сессия оставалась свежей.
    """
    parsed_dob = None
    if dob:
        try:
            parsed_dob = date.fromisoformat(dob[:10])
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date of birth")

    fields = {
        "name": name,
        "email": email,
        "phone": phone,
        "location": location,
        "dob": parsed_dob,
        "password": password,
        "profile_pic": profile_pic,
    }
    try:
        return await update_profile_service(request, current_user, fields, file)
    except Exception as e:
        await request.app.state.log.log_error("user", f"Ошибка при обновлении профиля: {str(e)}")
        raise


# ────────────── HEARTBEAT ──────────────
@router.post(
    "/ping",
    response_model=PingResponse,
    summary="Heartbeat: отметить пользователя активным",
)
async def ping(request: Request, current_user: User = Depends(get_current_user)):
    last_active = await ping_service(request, current_user)
    return PingResponse(last_active=last_active)


# ────────────── ЖУРНАЛ АКТИВНОСТИ ──────────────
@router.get(
    "/activity",
    response_model=List[ActivityEntry],
    summary="Журнал активности (только super-admin)",
    responses={403: {"description": "Доступ запрещён"}},
)
async def get_activity(request: Request, _: User = Depends(require(Capability.VIEW_ACTIVITY_LOG))):
    return await read_activity_logs(request)


# ────────────── CRUD USERS ──────────────
@router.get(
    "",
    response_model=List[UserListItem],
    summary="Список пользователей (админы)",
    responses={403: {"description": "Доступ запрещён для support-agent"}},
)
async def get_users(request: Request, _: User = Depends(require(Capability.LIST_USERS))):
    return await read_users_service(request)


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Создание пользователя (только super-admin)",
    responses={
        400: {"description": "Пользователь с таким email уже существует"},
        403: {"description": "Доступ запрещён"},
    },
)
async def create_user(
    body: UserCreate,
    request: Request,
    current_user: User = Depends(require(Capability.MANAGE_USERS)),
):
    try:
        return await create_user_service(body, request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("user", f"Ошибка при создании пользователя: {str(e)}")
        raise


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="Обновление пользователя (только super-admin)",
    responses={
        400: {"description": "Email уже занят"},
        403: {"description": "Доступ запрещён"},
        404: {"description": "Пользователь не найден"},
    },
)
async def update_user(
    user_id: int,
    body: UserUpdate,
    request: Request,
    current_user: User = Depends(require(Capability.MANAGE_USERS)),
):
    try:
        return await update_user_service(user_id, body, request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("user", f"Ошибка при обновлении пользователя: {str(e)}", {"id": user_id})
        raise


@router.delete(
    "/{user_id}",
    summary="Удаление пользователя (только super-admin)",
    responses={
        200: {"description": "Пользователь удалён"},
        403: {"description": "Доступ запрещён"},
        404: {"description": "Пользователь не найден"},
    },
)
async def delete_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(require(Capability.MANAGE_USERS)),
):
    try:
        await delete_user_service(user_id, request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("user", f"Ошибка при удалении пользователя: {str(e)}", {"id": user_id})
        raise
    return {"message": "User removed"}
