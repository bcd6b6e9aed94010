"""Watch-history writes and share payloads for entry detail pages."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from ..errors import ValidationError
from ..models import CatalogEntry, EntryKind, SessionContext
from ..utils import entry_path
from .backend import CatalogBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SharePayload:
    """Data handed to a native share sheet, plus the clipboard fallback."""

    title: str
    text: str
    url: str
    clipboard_text: str

    def to_payload(self) -> dict[str, str]:
        return asdict(self)


def build_share_payload(entry: CatalogEntry, base_url: str, *, app_name: str) -> SharePayload:
    url = f"{base_url.rstrip('/')}{entry_path(entry.kind, entry.id)}"
    return SharePayload(
        title=entry.title,
        text=f"Check out {entry.title} on {app_name}!",
        url=url,
        clipboard_text=f"{entry.title} - {url}",
    )


async def start_playback(
    backend: CatalogBackend,
    session: SessionContext,
    kind: EntryKind,
    entry_id: str,
    *,
    episode_number: int | None = 1,
) -> None:
    """Record that the visitor started watching ``entry_id``."""

    if not session.is_authenticated:
        raise ValidationError("Sign in to start playback")
    if kind == "film":
        episode_number = None
    await backend.get_entry(kind, entry_id)
    await backend.upsert_watch_history(
        session.user_id,  # type: ignore[arg-type]
        entry_id,
        kind,
        episode_number=episode_number,
        progress_seconds=0,
    )
    logger.info("Playback started for %s %s by %s", kind, entry_id, session.user_id)
