from .service import RecordService
from .strategies import AsyncStrategy, DirectStrategy, MutationStrategy, build_strategy

__all__ = ["AsyncStrategy", "DirectStrategy", "MutationStrategy", "RecordService", "build_strategy"]
