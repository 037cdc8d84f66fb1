from functools import lru_cache

from fastapi import Depends

from app.core.config import get_settings
from app.db.session import get_session_factory
from app.services.aggregation import PortfolioAggregator
from app.services.frozen_archive import load_archive
from app.services.record_store import CsvRecordStore, RecordStore, SqlRecordStore
from app.services.registry import SchemeRegistry, load_registry


@lru_cache
def get_record_store() -> RecordStore:
    settings = get_settings()
    if settings.record_store == "csv":
        return CsvRecordStore(settings.mastersheet_csv_path)
    return SqlRecordStore(get_session_factory())


@lru_cache
def get_registry() -> SchemeRegistry:
    settings = get_settings()
    archive = load_archive(settings.frozen_archive_dir)
    return load_registry(settings.scheme_registry_path, archive)


def get_aggregator(
    registry: SchemeRegistry = Depends(get_registry),
    store: RecordStore = Depends(get_record_store),
) -> PortfolioAggregator:
    return PortfolioAggregator(registry, store)
