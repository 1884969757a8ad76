import secrets
import threading
from datetime import datetime, timezone

SERVICE_PREFIX = "ZPS"


class TrackingIdGenerator:
    """
    Builds ``ZPS-<YYYYMMDD>-<6 hex>`` shipment ids.

    Suffixes issued today are remembered so one process never hands out
    the same id twice; the unique index on parcels.tracking_id covers
    separate processes.
    """

    def __init__(self, prefix: str = SERVICE_PREFIX):
        self.prefix = prefix
        self._day = None
        self._issued = set()
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            day = datetime.now(timezone.utc).strftime("%Y%m%d")
            if day != self._day:
                self._day = day
                self._issued = set()

            suffix = secrets.token_hex(3).upper()
            while suffix in self._issued:
                suffix = secrets.token_hex(3).upper()
            self._issued.add(suffix)

        return f"{self.prefix}-{day}-{suffix}"


generate_tracking_id = TrackingIdGenerator()
