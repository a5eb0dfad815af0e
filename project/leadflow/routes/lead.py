# leadflow/routes/lead.py

from typing import Optional
from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile, status

from leadflow.models.user import User
from leadflow.schemas.lead import Lead, LeadCreate, LeadUpdate, LeadPage, LeadStats, NoteCreate, ImportResult
from leadflow.services.access import Capability, LeadQuery
from leadflow.services.leads import (
    read_leads_service,
    read_lead_service,
    create_lead_service,
    update_lead_service,
    delete_lead_service,
    add_note_service,
    delete_note_service,
    lead_stats_service,
    export_leads_service,
    import_leads_service,
)
from leadflow.services.spreadsheet import XLSX_MEDIA_TYPE
from leadflow.routes.auth import get_current_user, require

router = APIRouter()


def lead_query(
    status: Optional[str] = None,
    search: Optional[str] = None,
    tags: Optional[str] = None,
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    page: Optional[str] = None,
    limit: Optional[str] = None,
) -> LeadQuery:
    """Параметры фильтра берём строками: некорректные значения отбросит политика доступа."""
    return LeadQuery(
        status=status,
        tags=tags,
        search=search,
        assigned_to=assigned_to,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )


# ────────────── READ ALL ──────────────
@router.get(
    "",
    response_model=LeadPage,
    summary="Получить список лидов",
    responses={
        200: {"description": "Страница лидов и данные пагинации"},
        401: {"description": "Некорректный пользователь или токен"},
    },
)
async def read_leads(
    request: Request,
    query: LeadQuery = Depends(lead_query),
    current_user: User = Depends(get_current_user),
):
    """
    Список лидов с фильтрами `status`, `tags` (через запятую), `search`,
    `assignedTo`, `startDate`, `endDate`, `page`, `limit`.
    support-agent всегда видит только назначенные на него лиды.
    """
    try:
        return await read_leads_service(request, current_user, query)
    except Exception as e:
        await request.app.state.log.log_error("lead", f"Ошибка при получении списка лидов: {str(e)}")
        raise


# ────────────── CREATE ──────────────
@router.post(
    "",
    response_model=Lead,
    status_code=status.HTTP_201_CREATED,
    summary="Создать лид",
    responses={
        201: {"description": "Лид успешно создан"},
        400: {"description": "Ответственный пользователь не найден"},
        401: {"description": "Некорректный пользователь или токен"},
        422: {"description": "Неверные данные запроса"},
    },
)
async def create_lead(
    request: Request,
    lead: LeadCreate,
    current_user: User = Depends(get_current_user),
):
    try:
        return await create_lead_service(lead, request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("lead", f"Ошибка при создании лида: {str(e)}")
        raise


# ────────────── STATS ──────────────
@router.get(
    "/stats",
    response_model=LeadStats,
    summary="Статистика для дашборда",
)
async def lead_stats(request: Request, current_user: User = Depends(get_current_user)):
    try:
        return await lead_stats_service(request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("lead", f"Ошибка при расчёте статистики: {str(e)}")
        raise


# ────────────── EXPORT ──────────────
@router.get(
    "/export",
    summary="Экспорт лидов в Excel",
    response_class=Response,
    responses={200: {"content": {XLSX_MEDIA_TYPE: {}}, "description": "Файл leads.xlsx"}},
)
async def export_leads(
    request: Request,
    query: LeadQuery = Depends(lead_query),
    current_user: User = Depends(get_current_user),
):
    try:
        content = await export_leads_service(request, current_user, query)
    except Exception as e:
        await request.app.state.log.log_error("lead", f"Ошибка при экспорте лидов: {str(e)}")
        raise
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="leads.xlsx"'},
    )


# ────────────── IMPORT ──────────────
@router.post(
    "/import",
    response_model=ImportResult,
    summary="Импорт лидов из Excel (только админы)",
    responses={
        400: {"description": "Файл не является книгой Excel"},
        403: {"description": "Недостаточно прав"},
    },
)
async def import_leads(
    request: Request,
    file: UploadFile = File(...),
    current_user: User = Depends(require(Capability.IMPORT_LEADS)),
):
    try:
        count, skipped = await import_leads_service(await file.read(), request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("lead", f"Ошибка при импорте лидов: {str(e)}")
        raise
    return ImportResult(message="Leads imported successfully", count=count, skipped=skipped)


# ────────────── READ ONE ──────────────
@router.get(
    "/{id}",
    response_model=Lead,
    summary="Получить лид по ID",
    responses={
        403: {"description": "Лид назначен на другого агента"},
        404: {"description": "Лид не найден"},
    },
)
async def read_lead(id: int, request: Request, current_user: User = Depends(get_current_user)):
    try:
        return await read_lead_service(id, request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("lead", f"Ошибка при получении лида: {str(e)}", {"id": id})
        raise


# ────────────── UPDATE ──────────────
@router.put(
    "/{id}",
    response_model=Lead,
    summary="Обновить лид",
    responses={
        403: {"description": "Не админ и не ответственный за лид"},
        404: {"description": "Лид не найден"},
        422: {"description": "Неверные данные запроса"},
    },
)
async def update_lead(
    id: int,
    lead_update: LeadUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    try:
        return await update_lead_service(id, lead_update, request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("lead", f"Ошибка при обновлении лида: {str(e)}", {"id": id})
        raise


# ────────────── DELETE ──────────────
@router.delete(
    "/{id}",
    summary="Удалить лид (только админы)",
    responses={
        200: {"description": "Лид удалён"},
        403: {"description": "support-agent не может удалять лиды"},
        404: {"description": "Лид не найден"},
    },
)
async def delete_lead(id: int, request: Request, current_user: User = Depends(get_current_user)):
    try:
        await delete_lead_service(id, request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("lead", f"Ошибка при удалении лида: {str(e)}", {"id": id})
        raise
    return {"message": "Lead removed"}


# ────────────── NOTES ──────────────
@router.post(
    "/{id}/note",
    response_model=Lead,
    summary="Добавить заметку к лиду",
)
async def add_note(
    id: int,
    body: NoteCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    try:
        return await add_note_service(id, body.text, request, current_user)
    except Exception as e:
        await request.app.state.log.log_error("lead", f"Ошибка при добавлении заметки: {str(e)}", {"id": id})
        raise


@router.delete(
    "/{id}/note/{note_id}",
    response_model=Lead,
    summary="Удалить заметку лида",
)
async def delete_note(
    id: int,
    note_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    try:
        return await delete_note_service(id, note_id, request, current_user)
    except Exception as e:
        await request.app.state.log.log_error(
            "lead", f"Ошибка при удалении заметки: {str(e)}", {"id": id, "note_id": note_id}
        )
        raise
