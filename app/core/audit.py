from datetime import datetime
from app.core.config import LOGS_DIR


def _format_fields(fields: dict) -> str:
    return " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)


def write_audit_log(actor: str, role: str, action: str, details: str = "", **fields):
    """Append one financial action to this month's audit file (logs/audit_YYYY_MM.log).

    Extra keyword fields (loan_id=..., amount=...) are written as key=value pairs
    after the free-text details.
    """
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    now = datetime.now()
    log_file = LOGS_DIR / f"audit_{now.strftime('%Y_%m')}.log"
    extra = _format_fields(fields)
    line = " | ".join([now.strftime("%Y-%m-%d %H:%M:%S"), role, actor, action, details])
    if extra:
        line = f"{line} | {extra}"
    with open(log_file, "a", encoding="utf-8") as f:
        f.write(line + "\n")
