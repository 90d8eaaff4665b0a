from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from supportdesk.core.errors import InvalidInput, NotFound, StoreError, WorkflowError
from supportdesk.models.article import ARTICLE_CATEGORIES, ARTICLE_STATUSES
from supportdesk.models.common import new_id, next_timestamp, utcnow
from supportdesk.realtime.collection import LiveCollection
from supportdesk.services.access import require_employee, require_reviewer, resolve_role
from supportdesk.services.text import contains_text, normalize_tags, slugify
from supportdesk.store.base import Row, Store

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = ("draft", "rejected")


def _normalize_category(raw: str | None) -> str:
    value = str(raw or "general").strip().lower()
    if value not in ARTICLE_CATEGORIES:
        raise InvalidInput(f"Invalid article category: {raw!r}")
    return value


def _normalize_statuses(raw: Iterable[str] | None) -> tuple[str, ...]:
    out = tuple(str(x).strip().lower() for x in (raw or []) if str(x).strip())
    unknown = [x for x in out if x not in ARTICLE_STATUSES]
    if unknown:
        raise InvalidInput(f"Invalid article status: {unknown[0]!r}")
    return out


class ArticleService:
    """Knowledge-base articles and their review workflow.

    Status moves ``draft -> pending_approval -> approved | rejected``, with
    ``rejected`` articles editable again as drafts and ``approved`` ones
    archivable. Each submission snapshots the article as a new version and
    opens exactly one pending approval request.
    """

    def __init__(self, store: Store, *, actor_id: str | None, shelf: LiveCollection | None = None) -> None:
        self.store = store
        self.actor_id = actor_id
        self.shelf = shelf
        self.error: str | None = None

    def _fail(self, message: str, exc: Exception) -> StoreError:
        self.error = str(exc) or message
        return StoreError(message)

    async def _with_tags(self, rows: list[Row]) -> list[Row]:
        if not rows:
            return rows
        tag_rows = await self.store.select("article_tags", {"article_id": tuple(r["id"] for r in rows)})
        by_article: dict[str, list[str]] = {}
        for tag in tag_rows:
            by_article.setdefault(str(tag["article_id"]), []).append(str(tag["tag"]))
        return [{**row, "tags": by_article.get(str(row["id"]), [])} for row in rows]

    async def _load(self, article_id: str) -> Row:
        try:
            rows = await self.store.select("articles", {"id": article_id}, limit=1)
            rows = await self._with_tags(rows)
        except Exception as exc:
            logger.exception("Article lookup failed for id=%s", article_id)
            raise self._fail("Failed to load article", exc) from exc
        if not rows:
            raise NotFound("Article not found")
        return rows[0]

    async def list_articles(
        self,
        *,
        statuses: Iterable[str] | None = None,
        category: str | None = None,
        is_faq: bool | None = None,
        created_by: str | None = None,
        search: str | None = None,
        order_by: str = "updated_at",
    ) -> list[Row]:
        filters: dict[str, Any] = {}
        wanted = _normalize_statuses(statuses)
        if wanted:
            filters["status"] = wanted
        if category:
            filters["category"] = _normalize_category(category)
        if is_faq is not None:
            filters["is_faq"] = bool(is_faq)
        if created_by:
            filters["created_by"] = created_by
        if order_by not in {"updated_at", "view_count", "created_at", "title"}:
            raise InvalidInput(f"Cannot order articles by {order_by!r}")

        try:
            rows = await self.store.select("articles", filters or None, order_by=order_by, descending=order_by != "title")
            if search:
                rows = [r for r in rows if contains_text(search, r.get("title"), r.get("description"))]
            rows = await self._with_tags(rows)
        except Exception as exc:
            logger.exception("Article listing failed (filters=%s)", filters)
            raise self._fail("Failed to fetch articles", exc) from exc
        if self.shelf is not None:
            self.shelf.replace_all(rows)
        self.error = None
        return rows

    async def get_article(self, article_id: str, visible_statuses: Iterable[str] | None = None) -> Row:
        """Reader fetch; every call that finds a visible article counts one view.

        With ``visible_statuses`` set, an article in any other status reads as
        missing and is not counted.
        """
        article = await self._load(article_id)
        if visible_statuses is not None and article["status"] not in tuple(visible_statuses):
            raise NotFound("Article not found")
        try:
            await self.store.rpc("increment_article_view_count", {"article_id": article_id})
        except Exception:
            logger.exception("View count bump failed for article id=%s", article_id)
            return article
        return await self._load(article_id)

    async def load_for_edit(self, article_id: str) -> Row:
        """Editor fetch; does not count as a view."""
        require_employee(await resolve_role(self.store, self.actor_id))
        return await self._load(article_id)

    async def create_article(
        self,
        *,
        title: str,
        content: str = "",
        description: str | None = None,
        category: str | None = None,
        is_faq: bool = False,
        tags: Iterable[str] | None = None,
    ) -> Row:
        author = require_employee(await resolve_role(self.store, self.actor_id))
        clean_title = (title or "").strip()
        if not clean_title:
            raise InvalidInput("Title is required")

        now = utcnow()
        row: Row = {
            "id": new_id(),
            "title": clean_title[:255],
            "description": (description or "").strip() or None,
            "content": content or "",
            "status": "draft",
            "category": _normalize_category(category),
            "is_faq": bool(is_faq),
            "slug": slugify(clean_title),
            "view_count": 0,
            "created_by": author.user_id,
            "published_at": None,
            "created_at": now,
            "updated_at": now,
        }
        clean_tags = normalize_tags(tags)
        if self.shelf is not None:
            self.shelf.add_local({**row, "tags": clean_tags})
        try:
            created = await self.store.insert("articles", row)
        except Exception as exc:
            if self.shelf is not None:
                self.shelf.revert(row["id"], None)
            logger.exception("Article creation failed for author id=%s", author.user_id)
            raise self._fail("Failed to create article", exc) from exc
        await self._replace_tags(created["id"], clean_tags, clear=False)
        created = {**created, "tags": clean_tags}
        if self.shelf is not None:
            self.shelf.confirm(created)
        self.error = None
        return created

    async def _replace_tags(self, article_id: str, tags: list[str], *, clear: bool = True) -> None:
        try:
            if clear:
                await self.store.delete("article_tags", {"article_id": article_id})
            for tag in tags:
                await self.store.insert("article_tags", {"id": new_id(), "article_id": article_id, "tag": tag})
        except Exception as exc:
            logger.exception("Tag update failed for article id=%s", article_id)
            raise self._fail("Failed to save article tags", exc) from exc

    async def _write(self, article_id: str, patch: Mapping[str, Any], *, previous: Row | None = None) -> Row:
        data = dict(patch)
        data["updated_at"] = next_timestamp(previous.get("updated_at") if previous else None)
        snapshot = self.shelf.patch_local(article_id, data) if self.shelf is not None else None
        try:
            rows = await self.store.update("articles", {"id": article_id}, data)
        except Exception as exc:
            if self.shelf is not None and snapshot is not None:
                self.shelf.revert(article_id, snapshot)
            logger.exception("Article update failed for id=%s fields=%s", article_id, sorted(data))
            raise self._fail("Failed to update article", exc) from exc
        if not rows:
            if self.shelf is not None and snapshot is not None:
                self.shelf.revert(article_id, snapshot)
            raise NotFound("Article not found")
        if self.shelf is not None:
            self.shelf.confirm(rows[0])
        return rows[0]

    async def save_draft(
        self,
        article_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        content: str | None = None,
        category: str | None = None,
        is_faq: bool | None = None,
        tags: Iterable[str] | None = None,
    ) -> Row:
        require_employee(await resolve_role(self.store, self.actor_id))
        article = await self._load(article_id)
        if article["status"] not in EDITABLE_STATUSES:
            raise WorkflowError(f"Cannot edit an article that is {article['status']}")

        patch: dict[str, Any] = {"status": "draft"}
        if title is not None:
            clean_title = title.strip()
            if not clean_title:
                raise InvalidInput("Title is required")
            patch["title"] = clean_title[:255]
        if description is not None:
            patch["description"] = description.strip() or None
        if content is not None:
            patch["content"] = content
        if category is not None:
            patch["category"] = _normalize_category(category)
        if is_faq is not None:
            patch["is_faq"] = bool(is_faq)

        saved = await self._write(article_id, patch, previous=article)
        clean_tags = article["tags"]
        if tags is not None:
            clean_tags = normalize_tags(tags)
            await self._replace_tags(article_id, clean_tags)
        self.error = None
        return {**saved, "tags": clean_tags}

    async def _next_version_number(self, article_id: str) -> int:
        rows = await self.store.select(
            "article_versions",
            {"article_id": article_id},
            order_by="version_number",
            descending=True,
            limit=1,
        )
        return int(rows[0]["version_number"]) + 1 if rows else 1

    async def submit_for_approval(self, article_id: str, change_summary: str | None = None) -> Row:
        """Snapshot the article, open a pending request, then flip its status.

        Steps run in that order and stop at the first failure: a failed
        version write leaves no request and no status change behind, and a
        failed status write withdraws the request it just opened. A pending
        request left on an editable article is stale and is withdrawn first,
        so an article never carries two.
        """
        author = require_employee(await resolve_role(self.store, self.actor_id))
        article = await self._load(article_id)
        if article["status"] not in EDITABLE_STATUSES:
            raise WorkflowError(f"Cannot submit an article that is {article['status']}")
        if not str(article.get("title") or "").strip() or not str(article.get("content") or "").strip():
            raise InvalidInput("Title and content are required before submitting")

        await self._withdraw_stale_requests(article_id)

        try:
            number = await self._next_version_number(article_id)
            version = await self.store.insert(
                "article_versions",
                {
                    "id": new_id(),
                    "article_id": article_id,
                    "title": article["title"],
                    "description": article.get("description"),
                    "content": article["content"],
                    "version_number": number,
                    "change_summary": (change_summary or "").strip() or None,
                    "created_by": author.user_id,
                    "created_at": utcnow(),
                },
            )
        except Exception as exc:
            logger.exception("Version snapshot failed for article id=%s", article_id)
            raise self._fail("Failed to save article version", exc) from exc

        try:
            request = await self.store.insert(
                "approval_requests",
                {
                    "id": new_id(),
                    "article_id": article_id,
                    "version_id": version["id"],
                    "submitted_by": author.user_id,
                    "submitted_at": utcnow(),
                    "status": "pending",
                    "reviewed_by": None,
                    "reviewed_at": None,
                    "feedback": None,
                },
            )
        except Exception as exc:
            logger.exception("Approval request failed for article id=%s version=%s", article_id, number)
            raise self._fail("Failed to open approval request", exc) from exc

        try:
            await self._write(article_id, {"status": "pending_approval"}, previous=article)
        except StoreError:
            logger.error("Withdrawing approval request for article id=%s after failed status write", article_id)
            try:
                await self.store.delete("approval_requests", {"id": request["id"]})
                await self.store.delete("article_versions", {"id": version["id"]})
            except Exception:
                logger.exception("Could not withdraw approval request id=%s", request["id"])
            raise
        self.error = None
        logger.info("Article id=%s submitted as version %s", article_id, number)
        return request

    async def _withdraw_stale_requests(self, article_id: str) -> None:
        try:
            removed = await self.store.delete("approval_requests", {"article_id": article_id, "status": "pending"})
        except Exception as exc:
            logger.exception("Clearing stale approval requests failed for article id=%s", article_id)
            raise self._fail("Failed to clear stale approval request", exc) from exc
        if removed:
            logger.warning("Withdrew %s stale approval request(s) for article id=%s", removed, article_id)

    async def approve(self, article_id: str, feedback: str | None = None) -> Row:
        return await self._review(article_id, "approved", (feedback or "").strip() or None)

    async def reject(self, article_id: str, feedback: str) -> Row:
        clean = (feedback or "").strip()
        if not clean:
            raise InvalidInput("Feedback is required when rejecting an article")
        return await self._review(article_id, "rejected", clean)

    async def _review(self, article_id: str, decision: str, feedback: str | None) -> Row:
        reviewer = require_reviewer(await resolve_role(self.store, self.actor_id))
        article = await self._load(article_id)
        if article["status"] != "pending_approval":
            raise WorkflowError(f"Article is {article['status']}, not pending approval")

        reviewed_at = utcnow()
        try:
            # Conditional on status=pending so two reviewers cannot both resolve it.
            resolved = await self.store.update(
                "approval_requests",
                {"article_id": article_id, "status": "pending"},
                {"status": decision, "reviewed_by": reviewer.user_id, "reviewed_at": reviewed_at, "feedback": feedback},
            )
        except Exception as exc:
            logger.exception("Resolving approval request failed for article id=%s", article_id)
            raise self._fail("Failed to record review", exc) from exc
        if not resolved:
            raise WorkflowError("No pending approval request for this article")

        patch: dict[str, Any] = {"status": decision}
        if decision == "approved":
            patch["published_at"] = reviewed_at
        try:
            await self._write(article_id, patch, previous=article)
        except StoreError:
            logger.error("Reopening approval request for article id=%s after failed status write", article_id)
            try:
                await self.store.update(
                    "approval_requests",
                    {"id": resolved[0]["id"]},
                    {"status": "pending", "reviewed_by": None, "reviewed_at": None, "feedback": None},
                )
            except Exception:
                logger.exception("Could not reopen approval request id=%s", resolved[0]["id"])
            raise

        if feedback:
            try:
                await self.add_note(article_id, feedback)
            except StoreError:
                logger.warning("Review of article id=%s saved without its note", article_id)
        else:
            self.error = None
        logger.info("Article id=%s %s by %s", article_id, decision, reviewer.user_id)
        return resolved[0]

    async def archive(self, article_id: str) -> Row:
        require_reviewer(await resolve_role(self.store, self.actor_id))
        article = await self._load(article_id)
        if article["status"] != "approved":
            raise WorkflowError("Only approved articles can be archived")
        archived = await self._write(article_id, {"status": "archived"}, previous=article)
        return {**archived, "tags": article["tags"]}

    async def add_note(self, article_id: str, note: str) -> Row:
        author = require_employee(await resolve_role(self.store, self.actor_id))
        clean = (note or "").strip()
        if not clean:
            raise InvalidInput("Note cannot be empty")
        try:
            row = await self.store.insert(
                "article_notes",
                {
                    "id": new_id(),
                    "article_id": article_id,
                    "content": clean,
                    "created_by": author.user_id,
                    "created_at": utcnow(),
                },
            )
        except Exception as exc:
            logger.exception("Adding note failed for article id=%s", article_id)
            raise self._fail("Failed to add note", exc) from exc
        self.error = None
        return row

    async def list_notes(self, article_id: str) -> list[Row]:
        return await self._children("article_notes", article_id, order_by="created_at")

    async def list_versions(self, article_id: str) -> list[Row]:
        return await self._children("article_versions", article_id, order_by="version_number")

    async def list_approval_requests(self, article_id: str | None = None, status: str | None = "pending") -> list[Row]:
        require_reviewer(await resolve_role(self.store, self.actor_id))
        filters: dict[str, Any] = {}
        if article_id:
            filters["article_id"] = article_id
        if status:
            filters["status"] = status
        try:
            return await self.store.select("approval_requests", filters or None, order_by="submitted_at")
        except Exception as exc:
            logger.exception("Approval request listing failed")
            raise self._fail("Failed to fetch approval requests", exc) from exc

    async def _children(self, table: str, article_id: str, *, order_by: str) -> list[Row]:
        try:
            return await self.store.select(table, {"article_id": article_id}, order_by=order_by)
        except Exception as exc:
            logger.exception("Fetching %s failed for article id=%s", table, article_id)
            raise self._fail(f"Failed to fetch {table.replace('_', ' ')}", exc) from exc
