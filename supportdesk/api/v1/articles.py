from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from supportdesk.api.v1.deps import get_current_role, get_store
from supportdesk.schemas.article import (
    ApprovalRequestOut,
    ArticleCreateIn,
    ArticleDraftIn,
    ArticleNoteOut,
    ArticleOut,
    ArticleSubmitIn,
    ArticleVersionOut,
    NoteIn,
    RejectIn,
    ReviewIn,
)
from supportdesk.services.access import ResolvedRole, is_employee, require_employee
from supportdesk.services.articles import ArticleService
from supportdesk.store.base import Store

router = APIRouter(prefix="/articles", tags=["articles"])

PUBLIC_STATUSES = ("approved",)


def _service(store: Store, role: ResolvedRole) -> ArticleService:
    return ArticleService(store, actor_id=role.user_id)


@router.get("", response_model=list[ArticleOut])
async def list_articles(
    status: list[str] | None = Query(default=None),
    category: str | None = Query(default=None, max_length=32),
    is_faq: bool | None = Query(default=None),
    mine: bool = Query(default=False),
    q: str | None = Query(default=None, max_length=200),
    order_by: str = Query(default="updated_at"),
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> list[ArticleOut]:
    statuses = status if is_employee(role) else PUBLIC_STATUSES
    rows = await _service(store, role).list_articles(
        statuses=statuses,
        category=category,
        is_faq=is_faq,
        created_by=role.user_id if mine and is_employee(role) else None,
        search=(q or "").strip() or None,
        order_by=order_by,
    )
    return [ArticleOut.model_validate(x) for x in rows]


@router.get("/approval-requests", response_model=list[ApprovalRequestOut])
async def list_approval_requests(
    article_id: str | None = Query(default=None),
    status: str | None = Query(default="pending"),
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> list[ApprovalRequestOut]:
    rows = await _service(store, role).list_approval_requests(article_id, status or None)
    return [ApprovalRequestOut.model_validate(x) for x in rows]


@router.post("", response_model=ArticleOut, status_code=201)
async def create_article(
    payload: ArticleCreateIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> ArticleOut:
    row = await _service(store, role).create_article(**payload.model_dump())
    return ArticleOut.model_validate(row)


@router.get("/{article_id}", response_model=ArticleOut)
async def get_article(
    article_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> ArticleOut:
    visible = None if is_employee(role) else PUBLIC_STATUSES
    row = await _service(store, role).get_article(article_id, visible_statuses=visible)
    return ArticleOut.model_validate(row)


@router.get("/{article_id}/edit", response_model=ArticleOut)
async def load_for_edit(
    article_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> ArticleOut:
    return ArticleOut.model_validate(await _service(store, role).load_for_edit(article_id))


@router.patch("/{article_id}", response_model=ArticleOut)
async def save_draft(
    article_id: str,
    payload: ArticleDraftIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> ArticleOut:
    row = await _service(store, role).save_draft(article_id, **payload.model_dump(exclude_unset=True))
    return ArticleOut.model_validate(row)


@router.post("/{article_id}/submit", response_model=ApprovalRequestOut, status_code=201)
async def submit_for_approval(
    article_id: str,
    payload: ArticleSubmitIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> ApprovalRequestOut:
    row = await _service(store, role).submit_for_approval(article_id, payload.change_summary)
    return ApprovalRequestOut.model_validate(row)


@router.post("/{article_id}/approve", response_model=ApprovalRequestOut)
async def approve_article(
    article_id: str,
    payload: ReviewIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> ApprovalRequestOut:
    return ApprovalRequestOut.model_validate(await _service(store, role).approve(article_id, payload.feedback))


@router.post("/{article_id}/reject", response_model=ApprovalRequestOut)
async def reject_article(
    article_id: str,
    payload: RejectIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> ApprovalRequestOut:
    return ApprovalRequestOut.model_validate(await _service(store, role).reject(article_id, payload.feedback))


@router.post("/{article_id}/archive", response_model=ArticleOut)
async def archive_article(
    article_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> ArticleOut:
    return ArticleOut.model_validate(await _service(store, role).archive(article_id))


@router.get("/{article_id}/notes", response_model=list[ArticleNoteOut])
async def list_notes(
    article_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> list[ArticleNoteOut]:
    require_employee(role)
    return [ArticleNoteOut.model_validate(x) for x in await _service(store, role).list_notes(article_id)]


@router.post("/{article_id}/notes", response_model=ArticleNoteOut, status_code=201)
async def add_note(
    article_id: str,
    payload: NoteIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> ArticleNoteOut:
    return ArticleNoteOut.model_validate(await _service(store, role).add_note(article_id, payload.content))


@router.get("/{article_id}/versions", response_model=list[ArticleVersionOut])
async def list_versions(
    article_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> list[ArticleVersionOut]:
    require_employee(role)
    return [ArticleVersionOut.model_validate(x) for x in await _service(store, role).list_versions(article_id)]
