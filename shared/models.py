"""Shared data models for the Lovely cache and sync engine.

Entities are immutable snapshots exchanged between layers. Mutating one
means building a new value with ``dataclasses.replace``; sequences are
tuples so a snapshot handed to another task can never be changed under it.

Documents use the camelCase schema of the remote store, with datetimes as
ISO-8601 strings. Local snapshots are written in the same schema.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

MAX_PHOTOS = 10
MAX_COMMENTS = 50


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so every stored datetime is comparable."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _normalise_datetimes(entity, *names: str) -> None:
    for name in names:
        object.__setattr__(entity, name, as_utc(getattr(entity, name)))


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (accepting a trailing ``Z``) into a datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(str(value).replace('Z', '+00:00')))


def new_id() -> str:
    return str(uuid.uuid4()).upper()


@dataclass(frozen=True)
class Comment:
    """A comment left on an event by one of the partners."""
    user_id: str
    user_name: str
    text: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        _normalise_datetimes(self, "created_at")

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "text": self.text,
            "createdAt": format_datetime(self.created_at),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Comment":
        return cls(
            id=data.get("id") or new_id(),
            user_id=data["userId"],
            user_name=data["userName"],
            text=data["text"],
            created_at=parse_datetime(data["createdAt"]),
        )


@dataclass(frozen=True)
class CalendarEvent:
    """An event in the shared calendar. ``couple_id`` groups events per couple."""
    title: str
    description: str
    date: datetime
    is_all_day: bool = False
    created_at: datetime = field(default_factory=utcnow)
    couple_id: Optional[str] = None
    photo_urls: Tuple[str, ...] = ()
    comments: Tuple[Comment, ...] = ()
    bucket_list_item_id: Optional[str] = None
    id: Optional[str] = None

    PARENT_FIELD = "coupleId"

    def __post_init__(self):
        _normalise_datetimes(self, "date", "created_at")

    @property
    def parent_id(self) -> Optional[str]:
        return self.couple_id

    @property
    def blob_refs(self) -> Tuple[str, ...]:
        return self.photo_urls

    @property
    def sub_entities(self) -> Tuple[Comment, ...]:
        return self.comments

    def sort_key(self):
        return (self.date, self.created_at)

    def with_id(self, doc_id: str) -> "CalendarEvent":
        return replace(self, id=doc_id)

    def with_parent(self, parent_id: str, created_at: datetime) -> "CalendarEvent":
        return replace(self, couple_id=parent_id, created_at=created_at)

    def with_sub_entity(self, comment: Comment) -> "CalendarEvent":
        return replace(self, comments=self.comments + (comment,))

    def with_photos(self, photo_urls) -> "CalendarEvent":
        return replace(self, photo_urls=tuple(photo_urls))

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the remote document schema (the id is not stored in the body)."""
        return {
            "title": self.title,
            "description": self.description,
            "date": format_datetime(self.date),
            "isAllDay": self.is_all_day,
            "createdAt": format_datetime(self.created_at),
            "coupleId": self.couple_id,
            "photoURLs": list(self.photo_urls),
            "comments": [comment.to_document() for comment in self.comments],
            "bucketListItemId": self.bucket_list_item_id,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> "CalendarEvent":
        """
        Build an event from a stored document.

        Older documents may lack ``photoURLs``, ``comments`` and
        ``bucketListItemId``; those fall back to empty values.
        """
        return cls(
            id=doc_id if doc_id is not None else data.get("id"),
            title=data["title"],
            description=data.get("description", ""),
            date=parse_datetime(data["date"]),
            is_all_day=bool(data.get("isAllDay", False)),
            created_at=parse_datetime(data.get("createdAt")) or utcnow(),
            couple_id=data.get("coupleId"),
            photo_urls=tuple(data.get("photoURLs") or ()),
            comments=tuple(Comment.from_document(c) for c in data.get("comments") or ()),
            bucket_list_item_id=data.get("bucketListItemId"),
        )


@dataclass(frozen=True)
class BucketListItem:
    """An item on the couple's bucket list. Ids are assigned on the client."""
    title: str
    description: str
    is_completed: bool = False
    photo_urls: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        _normalise_datetimes(self, "created_at", "completed_at")

    def toggled(self, now: Optional[datetime] = None) -> "BucketListItem":
        completed = not self.is_completed
        return replace(
            self,
            is_completed=completed,
            completed_at=(now or utcnow()) if completed else None,
        )

    def with_photos(self, photo_urls) -> "BucketListItem":
        return replace(self, photo_urls=tuple(photo_urls))

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "isCompleted": self.is_completed,
            "photoURLs": list(self.photo_urls),
            "createdAt": format_datetime(self.created_at),
            "completedAt": format_datetime(self.completed_at),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "BucketListItem":
        return cls(
            id=data.get("id") or new_id(),
            title=data["title"],
            description=data.get("description", ""),
            is_completed=bool(data.get("isCompleted", False)),
            photo_urls=tuple(data.get("photoURLs") or ()),
            created_at=parse_datetime(data.get("createdAt")) or utcnow(),
            completed_at=parse_datetime(data.get("completedAt")),
        )


@dataclass(frozen=True)
class BucketList:
    """The single bucket-list document owned by a couple."""
    couple_id: str
    items: Tuple[BucketListItem, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[str] = None

    def __post_init__(self):
        _normalise_datetimes(self, "created_at", "updated_at")

    def find_item(self, item_id: str) -> Optional[BucketListItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def with_items(self, items, updated_at: Optional[datetime] = None) -> "BucketList":
        return replace(self, items=tuple(items), updated_at=updated_at or utcnow())

    def to_document(self) -> Dict[str, Any]:
        return {
            "coupleId": self.couple_id,
            "items": [item.to_document() for item in self.items],
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> "BucketList":
        return cls(
            id=doc_id if doc_id is not None else data.get("id"),
            couple_id=data["coupleId"],
            items=tuple(BucketListItem.from_document(i) for i in data.get("items") or ()),
            created_at=parse_datetime(data.get("createdAt")) or utcnow(),
            updated_at=parse_datetime(data.get("updatedAt")) or utcnow(),
        )


class WidgetType(Enum):
    """Home-screen widget variants, each backed by its own snapshot file."""
    ALL_EVENTS = "all"
    DATE_NIGHTS = "date_nights"
    ANNIVERSARIES = "anniversaries"
    TRAVEL = "travel"

    def file_name(self, user_id: Optional[str] = None) -> str:
        if user_id:
            return f"widget_photos_{self.value}_{user_id}.json"
        return f"widget_photos_{self.value}.json"

    @property
    def kind(self) -> str:
        return _WIDGET_KINDS[self]

    @property
    def keywords(self) -> Tuple[str, ...]:
        return _WIDGET_KEYWORDS[self]

    def matches(self, event: CalendarEvent) -> bool:
        """Keyword filter on the lowercase title; the all-events widget takes everything."""
        if not self.keywords:
            return True
        title = event.title.lower()
        return any(keyword in title for keyword in self.keywords)


_WIDGET_KINDS = {
    WidgetType.ALL_EVENTS: "LovelyWidget",
    WidgetType.DATE_NIGHTS: "DateNightWidget",
    WidgetType.ANNIVERSARIES: "AnniversaryWidget",
    WidgetType.TRAVEL: "TravelWidget",
}

_WIDGET_KEYWORDS = {
    WidgetType.ALL_EVENTS: (),
    WidgetType.DATE_NIGHTS: ("date", "dinner", "restaurant"),
    WidgetType.ANNIVERSARIES: ("anniversary", "birthday"),
    WidgetType.TRAVEL: ("trip", "vacation", "travel"),
}


@dataclass(frozen=True)
class WidgetPhoto:
    """One exported photo with the event it came from."""
    image_base64: str
    event_title: str
    event_date: str
    event_id: str

    def to_document(self) -> Dict[str, Any]:
        return {
            "imageBase64": self.image_base64,
            "eventTitle": self.event_title,
            "eventDate": self.event_date,
            "eventId": self.event_id,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "WidgetPhoto":
        return cls(
            image_base64=data["imageBase64"],
            event_title=data["eventTitle"],
            event_date=data["eventDate"],
            event_id=data.get("eventId", ""),
        )


@dataclass(frozen=True)
class WidgetSnapshot:
    """Point-in-time export read by the widget process."""
    photos: Tuple[WidgetPhoto, ...]
    selected_event_ids: Tuple[str, ...]
    last_updated: datetime
    custom_title: Optional[str] = None
    custom_icon: Optional[str] = None
    custom_color: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "photos": [photo.to_document() for photo in self.photos],
            "selectedEventIds": list(self.selected_event_ids),
            "lastUpdated": format_datetime(self.last_updated),
            "customTitle": self.custom_title,
            "customIcon": self.custom_icon,
            "customColor": self.custom_color,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "WidgetSnapshot":
        return cls(
            photos=tuple(WidgetPhoto.from_document(p) for p in data.get("photos") or ()),
            selected_event_ids=tuple(data.get("selectedEventIds") or ()),
            last_updated=parse_datetime(data.get("lastUpdated")) or utcnow(),
            custom_title=data.get("customTitle"),
            custom_icon=data.get("customIcon"),
            custom_color=data.get("customColor"),
        )
