"""Call source classification from provider dynamic variables"""

import re
from enum import Enum
from typing import Any, NamedTuple, Optional

PHONE_PATTERN = re.compile(r"^\+?(?=.*\d)[0-9\-()\s]+$")
INTERNAL_CALLER_ID = "internal"
BROWSER_CALL_TYPES = frozenset({"web", "browser"})

# Column widths of the stored caller fields
MAX_PHONE_LENGTH = 32
MAX_CALLER_FIELD_LENGTH = 255


class CallSource(str, Enum):
    PHONE = "phone"
    INTERNET = "internet"
    UNKNOWN = "unknown"


class CallSourceInfo(NamedTuple):
    source: CallSource
    caller_id: Optional[str] = None
    caller_name: Optional[str] = None
    caller_email: Optional[str] = None


def _string(variables: dict, *names: str, max_length: int = MAX_CALLER_FIELD_LENGTH) -> Optional[str]:
    for name in names:
        value = variables.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and value.strip():
            value = value.strip()
            return value if len(value) <= max_length else None
    return None


def classify_call_source(dynamic_variables: Any) -> CallSourceInfo:
    """
    Classify where a call came from.

    Rules, first match wins:
      1. a phone-shaped caller id that is not the internal sentinel -> phone
      2. a web/browser call type, or the internal caller id -> internet
      3. anything else -> unknown

    Caller name and email are only taken from explicit variables; nothing is
    synthesized when they are absent.
    """
    variables = dynamic_variables if isinstance(dynamic_variables, dict) else {}

    caller_id = _string(variables, "system__caller_id", "caller_id")
    call_type = _string(variables, "system__call_type", "call_type")
    caller_name = _string(variables, "caller_name", "customer_name")
    caller_email = _string(variables, "caller_email")

    is_internal = caller_id is not None and caller_id.lower() == INTERNAL_CALLER_ID

    if (
        caller_id
        and not is_internal
        and len(caller_id) <= MAX_PHONE_LENGTH
        and PHONE_PATTERN.match(caller_id)
    ):
        return CallSourceInfo(CallSource.PHONE, caller_id, caller_name, caller_email)

    if is_internal or (call_type is not None and call_type.lower() in BROWSER_CALL_TYPES):
        return CallSourceInfo(CallSource.INTERNET, None, caller_name, caller_email)

    return CallSourceInfo(CallSource.UNKNOWN, None, caller_name, caller_email)
