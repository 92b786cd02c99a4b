from .models import PackedOrderRecord, WorkerMetrics
from .policy import PackTimePolicy, default_pack_policy

__all__ = [
    "WorkerMetrics",
    "PackedOrderRecord",
    "PackTimePolicy",
    "default_pack_policy",
]
