"""Export of event photos into the widget's shared-container snapshot file."""

import base64
import io
import json
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from PIL import Image

from services.blob_store.photo_loader import PhotoLoader
from services.widget_exporter.notifications import WidgetReloadNotifier
from shared.file_store import LocalFileStore
from shared.models import CalendarEvent, WidgetPhoto, WidgetSnapshot, WidgetType, utcnow

logger = logging.getLogger(__name__)

WIDGET_IMAGE_SIZE = (158, 158)
WIDGET_JPEG_QUALITY = 60
DEFAULT_CAP_PER_ENTITY = 3
DEFAULT_CAP_TOTAL = 20


def format_event_date(value: datetime) -> str:
    """Medium date style, e.g. ``Jun 1, 2024``."""
    return f"{value:%b} {value.day}, {value.year}"


class WidgetSnapshotWriter:
    """
    Builds bounded, compressed photo snapshots for the widget and signals it to reload.

    The snapshot is assembled fully in memory and written in one atomic
    replace, so the widget never reads a half-written file.
    """

    def __init__(
        self,
        photo_loader: PhotoLoader,
        file_store: LocalFileStore,
        notifier: WidgetReloadNotifier,
        image_size: Tuple[int, int] = WIDGET_IMAGE_SIZE,
        jpeg_quality: int = WIDGET_JPEG_QUALITY,
        clock: Callable[[], datetime] = utcnow
    ):
        self.photo_loader = photo_loader
        self.file_store = file_store
        self.notifier = notifier
        self.image_size = image_size
        self.jpeg_quality = jpeg_quality
        self._clock = clock

    async def export(
        self,
        events: Sequence[CalendarEvent],
        widget_type: WidgetType = WidgetType.ALL_EVENTS,
        filter_predicate: Optional[Callable[[CalendarEvent], bool]] = None,
        cap_per_entity: int = DEFAULT_CAP_PER_ENTITY,
        cap_total: int = DEFAULT_CAP_TOTAL,
        user_id: Optional[str] = None
    ) -> WidgetSnapshot:
        """
        Export photos from ``events`` for one widget.

        Events that pass the filter contribute up to ``cap_per_entity``
        photos each, in order, until ``cap_total`` photos are collected;
        later events are not looked at. Photos that fail to download or
        decode are skipped. Display metadata already stored for the widget
        is carried over.

        Args:
            events: Candidate events, in display order
            widget_type: Which widget the snapshot is for
            filter_predicate: Event filter; defaults to the widget type's keyword filter
            cap_per_entity: Maximum photos taken from one event
            cap_total: Maximum photos in the snapshot
            user_id: Owner for per-user widget files

        Returns:
            The snapshot that was written
        """
        predicate = filter_predicate or widget_type.matches
        previous = self.read_snapshot(widget_type, user_id)

        photos: List[WidgetPhoto] = []
        for event in events:
            if len(photos) >= cap_total:
                break
            if not event.photo_urls or not predicate(event):
                continue

            for photo_ref in event.photo_urls[:cap_per_entity]:
                if len(photos) >= cap_total:
                    break
                payload = await self.photo_loader.load_event_photo(event.id or "", photo_ref)
                if payload is None:
                    continue
                encoded = self.compress(payload)
                if encoded is None:
                    continue
                photos.append(WidgetPhoto(
                    image_base64=encoded,
                    event_title=event.title,
                    event_date=format_event_date(event.date),
                    event_id=event.id or "",
                ))

        snapshot = WidgetSnapshot(
            photos=tuple(photos),
            selected_event_ids=tuple(event.id for event in events if event.id),
            last_updated=self._clock(),
            custom_title=previous.custom_title if previous else None,
            custom_icon=previous.custom_icon if previous else None,
            custom_color=previous.custom_color if previous else None,
        )
        await self._publish(widget_type, snapshot, user_id)
        logger.info(f"{widget_type.value} widget configuration updated with {len(photos)} photos")
        return snapshot

    async def export_all_types(self, events: Sequence[CalendarEvent], user_id: Optional[str] = None) -> Dict[WidgetType, WidgetSnapshot]:
        results = {}
        for widget_type in WidgetType:
            results[widget_type] = await self.export(events, widget_type, user_id=user_id)
        return results

    async def set_display_metadata(
        self,
        widget_type: WidgetType,
        title: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> WidgetSnapshot:
        """Store a custom title, icon or color; later exports keep them."""
        current = self.read_snapshot(widget_type, user_id) or WidgetSnapshot(
            photos=(), selected_event_ids=(), last_updated=self._clock()
        )
        updated = replace(current, custom_title=title, custom_icon=icon, custom_color=color)
        await self._publish(widget_type, updated, user_id)
        return updated

    def read_snapshot(self, widget_type: WidgetType, user_id: Optional[str] = None) -> Optional[WidgetSnapshot]:
        """Read the current snapshot file; a missing or unreadable file yields None."""
        raw = self.file_store.read(widget_type.file_name(user_id))
        if raw is None:
            return None
        try:
            data = json.loads(raw.decode("utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            return WidgetSnapshot.from_document(data)
        except (UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable {widget_type.value} widget file: {e}")
            return None

    async def clear(self, widget_type: WidgetType, user_id: Optional[str] = None) -> None:
        self.file_store.remove(widget_type.file_name(user_id))
        await self.notifier.reload_timelines(widget_type.kind)
        logger.info(f"{widget_type.value} widget configuration cleared")

    async def clear_all(self, user_id: Optional[str] = None) -> None:
        for widget_type in WidgetType:
            await self.clear(widget_type, user_id)

    def compress(self, payload: bytes) -> Optional[str]:
        """Resize to the widget size and re-encode as base64 JPEG; None if the bytes are not an image."""
        try:
            with Image.open(io.BytesIO(payload)) as image:
                resized = image.convert("RGB").resize(self.image_size, Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            resized.save(buffer, format="JPEG", quality=self.jpeg_quality)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to compress photo for widget: {e}")
            return None
        return base64.b64encode(buffer.getvalue()).decode("ascii")

    async def _publish(self, widget_type: WidgetType, snapshot: WidgetSnapshot, user_id: Optional[str]) -> None:
        data = json.dumps(snapshot.to_document()).encode("utf-8")
        try:
            self.file_store.write(widget_type.file_name(user_id), data)
        except OSError as e:
            logger.error(f"Failed to save {widget_type.value} widget configuration: {e}", exc_info=True)
            raise
        await self.notifier.reload_timelines(widget_type.kind)
