"""Unit tests for the widget snapshot writer.

Tests cover:
- Per-event and total photo caps
- Widget type filtering and per-user files
- Display metadata carried across exports
- Atomic publishing and reload signalling
"""

import base64
import io
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest
from PIL import Image

from services.widget_exporter.writer import WidgetSnapshotWriter, format_event_date
from shared.file_store import LocalFileStore
from shared.models import WidgetType
from shared.test_models import make_event

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


def jpeg_bytes(size=(640, 480), color=(200, 40, 90)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def photo_loader():
    loader = Mock()
    loader.load_event_photo = AsyncMock(return_value=jpeg_bytes())
    return loader


@pytest.fixture
def notifier():
    notifier = Mock()
    notifier.reload_timelines = AsyncMock()
    return notifier


@pytest.fixture
def file_store(tmp_path):
    return LocalFileStore(tmp_path / "group.lovely.app")


@pytest.fixture
def writer(photo_loader, file_store, notifier):
    return WidgetSnapshotWriter(photo_loader, file_store, notifier, clock=lambda: NOW)


def events_with_photos(count, photos_each, title="Weekend"):
    base = datetime(2024, 6, 1, tzinfo=timezone.utc)
    return [
        make_event(
            id=f"e{i}",
            title=f"{title} {i}",
            date=base + timedelta(days=i),
            photo_urls=tuple(f"events/e{i}/photo_{p}.jpg" for p in range(photos_each)),
        )
        for i in range(1, count + 1)
    ]


def read_file(file_store, name):
    return json.loads(file_store.read(name).decode("utf-8"))


class TestExport:
    """Tests for exporting photos."""

    @pytest.mark.asyncio
    async def test_total_cap_stops_loading(self, writer, photo_loader):
        events = events_with_photos(10, 5)

        snapshot = await writer.export(events)

        assert len(snapshot.photos) == 20
        assert photo_loader.load_event_photo.await_count == 20
        loaded_events = {call.args[0] for call in photo_loader.load_event_photo.await_args_list}
        assert loaded_events == {f"e{i}" for i in range(1, 8)}
        assert [p.event_id for p in snapshot.photos].count("e7") == 2
        assert snapshot.selected_event_ids == tuple(f"e{i}" for i in range(1, 11))

    @pytest.mark.asyncio
    async def test_per_event_cap(self, writer):
        snapshot = await writer.export(events_with_photos(2, 5))

        assert [p.event_id for p in snapshot.photos] == ["e1"] * 3 + ["e2"] * 3

    @pytest.mark.asyncio
    async def test_photo_metadata(self, writer):
        event = make_event(id="e1", title="Beach Trip", photo_urls=("k1",))

        snapshot = await writer.export([event])

        photo = snapshot.photos[0]
        assert photo.event_title == "Beach Trip"
        assert photo.event_date == "Jun 1, 2024"
        assert photo.event_id == "e1"
        assert snapshot.last_updated == NOW

    @pytest.mark.asyncio
    async def test_images_are_resized(self, writer):
        snapshot = await writer.export([make_event(id="e1", photo_urls=("k1",))])

        with Image.open(io.BytesIO(base64.b64decode(snapshot.photos[0].image_base64))) as image:
            assert image.size == (158, 158)
            assert image.format == "JPEG"

    @pytest.mark.asyncio
    async def test_failed_and_undecodable_photos_are_skipped(self, writer, photo_loader):
        good = jpeg_bytes()
        photo_loader.load_event_photo.side_effect = [None, b"not an image", good]

        snapshot = await writer.export([make_event(id="e1", photo_urls=("k1", "k2", "k3"))])

        assert len(snapshot.photos) == 1

    @pytest.mark.asyncio
    async def test_widget_type_filter(self, writer):
        events = [
            make_event(id="e1", title="Paris trip", photo_urls=("k1",)),
            make_event(id="e2", title="Dentist", photo_urls=("k2",)),
        ]

        snapshot = await writer.export(events, WidgetType.TRAVEL)

        assert [p.event_id for p in snapshot.photos] == ["e1"]

    @pytest.mark.asyncio
    async def test_custom_predicate(self, writer):
        events = events_with_photos(3, 1)

        snapshot = await writer.export(events, filter_predicate=lambda e: e.id == "e2")

        assert [p.event_id for p in snapshot.photos] == ["e2"]

    @pytest.mark.asyncio
    async def test_events_without_photos_are_skipped(self, writer, photo_loader):
        snapshot = await writer.export([make_event(id="e1", photo_urls=())])

        assert snapshot.photos == ()
        photo_loader.load_event_photo.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_writes_file_and_signals_reload(self, writer, file_store, notifier):
        await writer.export(events_with_photos(1, 1), WidgetType.DATE_NIGHTS)

        document = read_file(file_store, "widget_photos_date_nights.json")
        assert document["lastUpdated"] == NOW.isoformat()
        notifier.reload_timelines.assert_awaited_once_with("DateNightWidget")

    @pytest.mark.asyncio
    async def test_per_user_file(self, writer, file_store):
        await writer.export(events_with_photos(1, 1), user_id="u1")

        assert file_store.read("widget_photos_all_u1.json") is not None
        assert file_store.read("widget_photos_all.json") is None

    @pytest.mark.asyncio
    async def test_export_all_types(self, writer, file_store, notifier):
        results = await writer.export_all_types(events_with_photos(1, 1))

        assert set(results) == set(WidgetType)
        for widget_type in WidgetType:
            assert file_store.read(widget_type.file_name()) is not None
        assert notifier.reload_timelines.await_count == len(WidgetType)


class TestPublishing:
    """Tests for metadata and failure handling."""

    @pytest.mark.asyncio
    async def test_metadata_is_preserved_across_exports(self, writer):
        await writer.set_display_metadata(WidgetType.ALL_EVENTS, title="Us", icon="heart", color="#ff3366")

        snapshot = await writer.export(events_with_photos(1, 1))

        assert snapshot.custom_title == "Us"
        assert snapshot.custom_icon == "heart"
        assert snapshot.custom_color == "#ff3366"
        assert writer.read_snapshot(WidgetType.ALL_EVENTS) == snapshot

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_file(self, writer, file_store, notifier):
        first = await writer.export(events_with_photos(1, 1))
        notifier.reload_timelines.reset_mock()

        with patch.object(file_store, "write", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                await writer.export(events_with_photos(3, 2))

        assert writer.read_snapshot(WidgetType.ALL_EVENTS) == first
        notifier.reload_timelines.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_file_is_ignored(self, writer, file_store):
        file_store.write(WidgetType.ALL_EVENTS.file_name(), b"{broken")

        assert writer.read_snapshot(WidgetType.ALL_EVENTS) is None
        snapshot = await writer.export(events_with_photos(1, 1))
        assert snapshot.custom_title is None

    @pytest.mark.asyncio
    async def test_non_object_file_is_ignored(self, writer, file_store):
        file_store.write(WidgetType.ALL_EVENTS.file_name(), b"[1, 2]")

        assert writer.read_snapshot(WidgetType.ALL_EVENTS) is None
        snapshot = await writer.export([])
        assert snapshot.photos == ()
        assert writer.read_snapshot(WidgetType.ALL_EVENTS) == snapshot

    @pytest.mark.asyncio
    async def test_malformed_photo_entries_are_ignored(self, writer, file_store):
        file_store.write(WidgetType.ALL_EVENTS.file_name(), b'{"photos": ["not-a-photo"]}')

        assert writer.read_snapshot(WidgetType.ALL_EVENTS) is None

    @pytest.mark.asyncio
    async def test_clear(self, writer, file_store, notifier):
        await writer.export(events_with_photos(1, 1), WidgetType.TRAVEL)
        notifier.reload_timelines.reset_mock()

        await writer.clear(WidgetType.TRAVEL)

        assert writer.read_snapshot(WidgetType.TRAVEL) is None
        notifier.reload_timelines.assert_awaited_once_with("TravelWidget")

    @pytest.mark.asyncio
    async def test_clear_all(self, writer, notifier):
        await writer.export_all_types(events_with_photos(1, 1))

        await writer.clear_all()

        for widget_type in WidgetType:
            assert writer.read_snapshot(widget_type) is None


def test_format_event_date():
    assert format_event_date(datetime(2024, 12, 25)) == "Dec 25, 2024"
