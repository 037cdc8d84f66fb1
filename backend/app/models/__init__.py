from app.models.records import MasterSheetRecord

__all__ = [
    "MasterSheetRecord",
]
