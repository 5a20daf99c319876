import os
import re
from datetime import datetime, timezone


DEFAULT_LOG_PATH = "logs/policy-engine.log"


def _log_path():
    return os.environ.get("POLICY_ENGINE_LOG_PATH", DEFAULT_LOG_PATH)


def _sanitize(text):
    value = str(text)
    value = re.sub(r"(?i)authorization\s*[:=]\s*[^\s,;]+", "Authorization=[REDACTED]", value)
    value = re.sub(r"(?i)\b(token|bearer)\s+[A-Za-z0-9._\-]+", r"\1 [REDACTED]", value)
    value = re.sub(r"\s+", " ", value).strip()
    return value


def log_event(component: str, message: str) -> None:
    path = _log_path()
    line = f"{utc_iso8601()} [{_sanitize(component)}] {_sanitize(message)}"
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
    except OSError:
        return


def utc_iso8601() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
