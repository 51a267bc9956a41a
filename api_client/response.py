
import json

from .models import ResponseRecord

# Bodies above this many bytes are kept raw and not pretty-printed
OVERSIZE_THRESHOLD = 100_000


def status_label(status_code: int) -> str:
    if 200 <= status_code < 300:
        return "OK"
    if 400 <= status_code < 500:
        return "Client Error"
    if 500 <= status_code < 600:
        return "Server Error"
    return "Response"


def format_body(text: str) -> str:
    """Re-indent JSON bodies, leave anything else as it came"""
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    return json.dumps(parsed, indent=2, ensure_ascii=False)


def build_response(status_code, raw: bytes, elapsed, encoding="utf-8", request_id=None):
    try:
        text = raw.decode(encoding, errors="replace")
    except LookupError:
        # Unknown charset advertised by the server
        text = raw.decode("utf-8", errors="replace")

    oversized = len(raw) > OVERSIZE_THRESHOLD
    body = text if oversized else format_body(text)

    return ResponseRecord(
        status_code=status_code,
        status_label=status_label(status_code),
        elapsed=elapsed,
        body=body,
        body_oversized=oversized,
        request_id=request_id,
    )


def error_response(message, elapsed=0.0, request_id=None):
    return ResponseRecord(
        status_code=0,
        status_label="Error",
        elapsed=elapsed,
        body=f"Error: {message}",
        body_oversized=False,
        request_id=request_id,
    )
