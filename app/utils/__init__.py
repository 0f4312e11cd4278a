from app.utils.batch import BatchOutcome, ItemOutcome, apply_independently
from app.utils.clock import Clock, utcnow

__all__ = [
    "BatchOutcome",
    "Clock",
    "ItemOutcome",
    "apply_independently",
    "utcnow",
]
