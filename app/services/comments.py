"""Discussion thread attached to a single catalog entry."""

from __future__ import annotations

import logging

from ..errors import CatalogError, PermissionDeniedError, ValidationError
from ..models import ANONYMOUS_AUTHOR, Comment, ThreadKey
from ..utils import map_isolated, paginate
from .backend import CatalogBackend

logger = logging.getLogger(__name__)


class ThreadManager:
    """Fetches, posts and deletes the comments of one series or film.

    Mutations never touch the local list directly; every successful write is
    followed by a full re-fetch.
    """

    def __init__(
        self,
        backend: CatalogBackend,
        key: ThreadKey,
        *,
        concurrency: int = 8,
        page_size: int = 20,
    ):
        self._backend = backend
        self.key = key
        self._concurrency = concurrency
        self.page_size = page_size
        self.comments: list[Comment] = []
        self.error: str | None = None
        self.posting = False

    async def fetch(self) -> list[Comment]:
        """Load the thread newest first with author names resolved."""

        comments = await self._backend.list_comments(self.key.entry_id, self.key.kind)

        async def _author(comment: Comment) -> str | None:
            return await self._backend.get_display_name(comment.user_id)

        names, _ = await map_isolated(
            comments,
            _author,
            default=lambda: None,
            key=lambda comment: f"author:{comment.user_id}",
            concurrency=self._concurrency,
        )
        self.comments = [
            comment.model_copy(update={"author_name": name or ANONYMOUS_AUTHOR})
            for comment, name in zip(comments, names)
        ]
        return self.comments

    async def post(self, content: str, author_id: str | None) -> list[Comment] | None:
        """Publish a comment and reload the thread.

        Returns ``None`` without doing anything while another post is pending.
        """

        if self.posting:
            return None
        if not author_id:
            raise self._fail(ValidationError("Sign in to leave a comment"))
        text = (content or "").strip()
        if not text:
            raise self._fail(ValidationError("Comment cannot be empty"))

        self.posting = True
        try:
            await self._backend.insert_comment(
                self.key.entry_id, self.key.kind, author_id, text
            )
        except CatalogError as exc:
            raise self._fail(exc, prefix="Failed to post comment")
        finally:
            self.posting = False
        self.error = None
        return await self.fetch()

    def can_delete(self, comment: Comment, user_id: str | None) -> bool:
        return bool(user_id) and comment.user_id == user_id

    async def delete(self, comment_id: str, requesting_user_id: str | None) -> list[Comment]:
        """Remove the requester's own comment and reload the thread."""

        comment = next((item for item in self.comments if item.id == comment_id), None)
        try:
            if comment is None:
                comment = await self._backend.get_comment(comment_id)
            if not self.can_delete(comment, requesting_user_id):
                raise PermissionDeniedError("Only the author may delete this comment")
            await self._backend.delete_comment(
                comment_id, requesting_user_id=requesting_user_id  # type: ignore[arg-type]
            )
        except CatalogError as exc:
            raise self._fail(exc, prefix="Failed to delete comment")
        self.error = None
        return await self.fetch()

    def page(self, number: int, size: int | None = None) -> list[Comment]:
        return paginate(self.comments, number, size or self.page_size)

    @property
    def page_count(self) -> int:
        return max(1, -(-len(self.comments) // self.page_size))

    def _fail(self, exc: CatalogError, *, prefix: str | None = None) -> CatalogError:
        self.error = f"{prefix}: {exc}" if prefix else str(exc)
        logger.info("Thread %s:%s mutation rejected: %s", self.key.kind, self.key.entry_id, exc)
        return exc
