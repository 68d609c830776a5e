from __future__ import annotations

import json
import logging
import os
import platform
import time
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, text

from app.crm.audit import record_event
from app.crm.errors import ValidationError
from app.crm.models import AppSetting, Base, User
from app.crm.modules.activities.models import Activity
from app.crm.modules.contacts.models import Contact
from app.crm.modules.customers.models import Customer
from app.crm.modules.opportunities.models import Opportunity
from app.crm.storage import Storage, StorageError
from app.crm.utils import human_size, utcnow

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

COMPANY_KEY = "company"
BACKUP_TABLES = ("users", "customers", "contacts", "opportunities", "activities")


def preferences_key(user: User) -> str:
    return f"preferences:{user.id}"


# ---------- Settings ----------

def get_setting(s: "Session", key: str) -> dict[str, Any]:
    row = s.get(AppSetting, key)
    if row is None:
        return {}
    return json.loads(row.value_json)


def save_setting(s: "Session", key: str, values: Any, user: User) -> dict[str, Any]:
    """Replace a settings document. Values must be a flat JSON object."""
    if not isinstance(values, dict):
        raise ValidationError("Settings must be a JSON object.")
    bad = [k for k, v in values.items() if isinstance(v, (dict, list))]
    if bad:
        raise ValidationError.from_errors([f"Setting {k!r} must be a plain value." for k in sorted(bad)])

    row = s.get(AppSetting, key)
    if row is None:
        row = AppSetting(key=key, value_json="{}")
        s.add(row)
    row.value_json = json.dumps(values, sort_keys=True)
    row.updated_at = utcnow()
    row.updated_by_user_id = user.id

    record_event(s, actor=user, action="settings.save", entity_type="AppSetting", entity_id=key, metadata={"keys": sorted(values)})
    return values


# ---------- System ----------

def database_size_bytes(engine: "Engine") -> int | None:
    url = engine.url
    if url.get_backend_name() == "sqlite":
        path = url.database
        if not path or path == ":memory:":
            return 0
        return os.path.getsize(path) if os.path.exists(path) else 0
    if url.get_backend_name() == "postgresql":
        with engine.connect() as conn:
            return int(conn.execute(text("SELECT pg_database_size(current_database())")).scalar() or 0)
    return None


def database_size(engine: "Engine") -> dict[str, Any]:
    size = database_size_bytes(engine)
    return {"size": human_size(size) if size is not None else "unknown", "bytes": size}


def build_backup(s: "Session") -> bytes:
    """JSON dump of the entity tables, keyed by table name."""
    dump: dict[str, Any] = {"created_at": utcnow().isoformat(), "tables": {}}
    for name in BACKUP_TABLES:
        table = Base.metadata.tables[name]
        rows = s.execute(select(table).order_by(table.c.id)).mappings().all()
        dump["tables"][name] = [dict(r) for r in rows]
    return json.dumps(dump, default=str, indent=2).encode("utf-8")


def run_backup(s: "Session", storage: Storage, user: User) -> dict[str, Any]:
    data = build_backup(s)
    key = f"backups/crm-backup-{utcnow().strftime('%Y%m%dT%H%M%S%f')}.json"
    storage.put_bytes(key, data, content_type="application/json")
    if not storage.exists(key):
        raise StorageError(f"Backup {key} was not found in {storage.describe()} after writing.")
    record_event(s, actor=user, action="system.backup", entity_type="Backup", entity_id=key, metadata={"size_bytes": len(data)})
    logger.info("Backup written to %s (%d bytes)", key, len(data))
    return {"message": "Backup completed successfully", "key": key, "size_bytes": len(data)}


def _human_uptime(seconds: float) -> str:
    minutes, _ = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    parts = []
    if days:
        parts.append(f"{days} day{'s' if days != 1 else ''}")
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    parts.append(f"{minutes} minute{'s' if minutes != 1 else ''}")
    return " ".join(parts)


def diagnostics(
    s: "Session", *, started_at: float, env: str, active_sessions: int, storage: Storage
) -> dict[str, Any]:
    result: dict[str, Any] = {
        "status": "Healthy",
        "uptime": _human_uptime(time.monotonic() - started_at),
        "db_status": "Connected",
        "env": env,
        "storage": storage.describe(),
        "python_version": platform.python_version(),
        "active_sessions": active_sessions,
        "counts": {},
    }
    try:
        s.execute(text("SELECT 1"))
        for label, model in (
            ("users", User),
            ("customers", Customer),
            ("contacts", Contact),
            ("opportunities", Opportunity),
            ("activities", Activity),
        ):
            result["counts"][label] = s.query(model).count()
    except Exception as e:
        logger.exception("Diagnostics DB check failed")
        s.rollback()
        result["status"] = "Degraded"
        result["db_status"] = f"Error: {e}"
    return result
