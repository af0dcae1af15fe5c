"""Human-facing numbers for tasks and bins.

  task:    PICK-{order_number}-{base36 ms timestamp}
  bin:     BIN-{seq:6}
  barcode: BIN-{date}-{5 random A-Z0-9}
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.models.wms.common import utcnow
from app.db.models.wms.pick_bin import PickBin
from app.db.models.wms.tasking import Task

_BASE36 = string.digits + string.ascii_uppercase
_BARCODE_ALPHABET = string.ascii_uppercase + string.digits

PRIORITY_BY_ORDER = {"EXPRESS": 2, "RUSH": 1}


def base36(n: int) -> str:
    if n < 0:
        raise ValueError("base36 expects a non-negative integer")
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
        if n == 0:
            return out


def task_priority(order_priority: str | None) -> int:
    return PRIORITY_BY_ORDER.get((order_priority or "").upper(), 0)


def next_task_number(db: Session, kind: str, order_number: str, *, now: datetime | None = None) -> str:
    ms = int((now or utcnow()).timestamp() * 1000)
    base = f"{kind}-{order_number}-{base36(ms)}"
    candidate, n = base, 1
    while db.query(Task.id).filter(Task.task_number == candidate).first():
        n += 1
        candidate = f"{base}-{n}"
    return candidate


def next_bin_number(db: Session) -> str:
    seq = (db.query(func.count(PickBin.id)).scalar() or 0) + 1
    while True:
        candidate = f"BIN-{seq:06d}"
        if not db.query(PickBin.id).filter(PickBin.bin_number == candidate).first():
            return candidate
        seq += 1


def new_bin_barcode(db: Session, *, now: datetime | None = None) -> str:
    day = (now or utcnow()).strftime("%Y%m%d")
    while True:
        suffix = "".join(secrets.choice(_BARCODE_ALPHABET) for _ in range(5))
        candidate = f"BIN-{day}-{suffix}"
        if not db.query(PickBin.id).filter(PickBin.barcode == candidate).first():
            return candidate
