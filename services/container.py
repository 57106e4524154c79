"""Composition root: builds every service once and hands out references."""

import logging
import sys
from dataclasses import dataclass
from typing import Optional

from services.blob_store.photo_loader import PhotoLoader
from services.blob_store.resolver import SignedURLResolver
from services.blob_store.s3_client import BlobStore
from services.sync_manager.bucket_list_manager import BucketListManager
from services.sync_manager.event_manager import EventManager
from services.widget_exporter.notifications import WidgetReloadNotifier
from services.widget_exporter.writer import WidgetSnapshotWriter
from shared.config import get_aws_config, get_cache_config, get_storage_paths
from shared.document_store import DocumentStore
from shared.file_store import LocalFileStore
from shared.image_cache import KeyedBlobCache
from shared.snapshot_cache import LocalSnapshotCache

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@dataclass
class LovelyServices:
    image_cache: KeyedBlobCache
    blob_store: BlobStore
    resolver: SignedURLResolver
    photo_loader: PhotoLoader
    document_store: DocumentStore
    snapshot_cache: LocalSnapshotCache
    event_manager: EventManager
    bucket_list_manager: BucketListManager
    widget_writer: WidgetSnapshotWriter


def build_services(
    database_url: Optional[str] = None,
    s3_client=None,
    notifier: Optional[WidgetReloadNotifier] = None
) -> LovelyServices:
    """
    Construct the service graph from environment configuration.

    Args:
        database_url: Override for the document database URL
        s3_client: Pre-built boto3 S3 client (optional)
        notifier: Widget reload notifier (optional)
    """
    aws_config = get_aws_config()
    cache_config = get_cache_config()
    paths = get_storage_paths()

    image_cache = KeyedBlobCache(
        capacity=cache_config["capacity"],
        ttl_seconds=cache_config["ttl_seconds"],
    )
    blob_store = BlobStore(
        bucket_name=aws_config["s3_bucket"],
        region=aws_config["region"],
        access_key_id=aws_config.get("access_key_id"),
        secret_access_key=aws_config.get("secret_access_key"),
        client=s3_client,
        signed_url_expiration=aws_config["signed_url_expiration"],
        download_timeout=aws_config["download_timeout"],
    )
    resolver = SignedURLResolver(blob_store)
    photo_loader = PhotoLoader(image_cache, blob_store, resolver)

    document_store = DocumentStore(database_url)
    document_store.create_tables()
    snapshot_cache = LocalSnapshotCache(LocalFileStore(paths["snapshot_dir"]))

    widget_writer = WidgetSnapshotWriter(
        photo_loader,
        LocalFileStore(paths["widget_dir"]),
        notifier or WidgetReloadNotifier(),
    )

    logger.info("Lovely services initialized")
    return LovelyServices(
        image_cache=image_cache,
        blob_store=blob_store,
        resolver=resolver,
        photo_loader=photo_loader,
        document_store=document_store,
        snapshot_cache=snapshot_cache,
        event_manager=EventManager(document_store, blob_store, snapshot_cache),
        bucket_list_manager=BucketListManager(document_store, blob_store, snapshot_cache),
        widget_writer=widget_writer,
    )
