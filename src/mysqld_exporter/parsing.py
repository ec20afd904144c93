"""Value parsing and metric naming helpers used by every collector."""

import calendar
import re
import time
from decimal import Decimal
from typing import Any, List, Optional, Tuple

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Constants
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

NAMESPACE = "mysql"

# Divisors converting server time units to seconds
PICO_SECONDS = 1e12
MILLI_SECONDS = 1e3

STATUS_VOCABULARY = {
    'on': 1.0,
    'yes': 1.0,
    'off': 0.0,
    'no': 0.0,
    'disabled': 0.0,
    # Slave_IO_Running while the replica is still connecting
    'connecting': 0.0,
    # wsrep_cluster_status
    'primary': 1.0,
    'non-primary': 0.0,
    'disconnected': 0.0,
}

STATUS_TIME_FORMATS = (
    '%b %d %H:%M:%S %Y %Z',
    '%Y-%m-%d %H:%M:%S',
)

_FLOAT_RE = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$|^[+-]?(inf|infinity|nan)$', re.IGNORECASE)
_LOG_NUMBER_RE = re.compile(r'^(?![\d.]+$).+\.(\d+)$')

_FRAGMENT_REPLACEMENTS = (
    (' ', '_'),
    ('-', '_'),
    ('/', '_and_'),
    ('+', '_and_'),
    ('>', ''),
    (',', ''),
    (':', ''),
    ('(', ''),
    (')', ''),
)
_FRAGMENT_INVALID_RE = re.compile(r'[^a-z0-9_]')

_STATE_REPLACEMENTS = (
    (';', ''),
    (',', ''),
    (':', ''),
    ('.', ''),
    ('(', ''),
    (')', ''),
    (' ', '_'),
    ('-', '_'),
)

METRIC_NAME_RE = re.compile(r'^[a-zA-Z_:][a-zA-Z0-9_:]*$')
LABEL_NAME_RE = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Value Parsing
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

def to_text(raw: Any) -> str:
    """Render a raw column value as text; NULL becomes an empty string."""
    if raw is None:
        return ''
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw).decode('utf-8', errors='replace')
    return str(raw)

def parse_float(text: str) -> Optional[float]:
    """Strict float parse; rejects forms Python accepts but servers never emit."""
    if not _FLOAT_RE.match(text):
        return None
    return float(text)

def parse_status(raw: Any) -> Tuple[float, bool]:
    """Convert a raw status column into a sample value.

    Numbers pass through. Text is matched against the boolean and state
    vocabulary, then parsed as a float, a timestamp or a binary log file
    number, in that order.

    Returns:
        (value, ok) where ok is False when the value is not numeric
    """
    if raw is None:
        return 0.0, False
    if isinstance(raw, bool):
        return float(raw), True
    if isinstance(raw, (int, float, Decimal)):
        return float(raw), True

    text = to_text(raw).strip()
    if not text:
        return 0.0, False

    lowered = text.lower()
    if lowered in STATUS_VOCABULARY:
        return STATUS_VOCABULARY[lowered], True

    value = parse_float(text)
    if value is not None:
        return value, True

    for fmt in STATUS_TIME_FORMATS:
        try:
            return float(calendar.timegm(time.strptime(text, fmt))), True
        except ValueError:
            continue

    match = _LOG_NUMBER_RE.match(text)
    if match:
        return float(match.group(1)), True

    return 0.0, False

def parse_composite_status(raw: Any) -> Optional[List[float]]:
    """Split a slash separated status value such as wsrep_evs_repl_latency."""
    text = to_text(raw).strip()
    if not text:
        return None

    values = []
    for part in text.split('/'):
        value = parse_float(part.strip())
        if value is None:
            return None
        values.append(value)
    return values

def parse_privilege(raw: Any) -> Tuple[float, bool]:
    """Map a Y/N privilege column to 1/0."""
    text = to_text(raw)
    if text == 'Y':
        return 1.0, True
    if text == 'N':
        return 0.0, True
    return -1.0, False

# Go duration strings such as 300ms, 1h15m or -1.5s
_DURATION_RE = re.compile(r'^[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:ns|us|µs|μs|ms|s|m|h))+$')
_DURATION_PART_RE = re.compile(r'(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)')
DURATION_UNITS = {
    'ns': 1e-9, 'us': 1e-6, 'µs': 1e-6, 'μs': 1e-6,
    'ms': 1e-3, 's': 1.0, 'm': 60.0, 'h': 3600.0,
}

def parse_duration(text: str) -> Optional[float]:
    """Seconds in a duration string; None when it is not one."""
    text = text.strip()
    if text in ('0', '+0', '-0'):
        return 0.0
    if not _DURATION_RE.match(text):
        return None
    seconds = sum(
        float(number) * DURATION_UNITS[unit]
        for number, unit in _DURATION_PART_RE.findall(text)
    )
    return -seconds if text.startswith('-') else seconds

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Naming
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

def build_fqn(namespace: str, subsystem: str, stem: str) -> str:
    """Join the non-empty name parts with underscores."""
    return '_'.join(part for part in (namespace, subsystem, stem) if part)

def sanitize_metric_fragment(value: str) -> str:
    """Map a free-form server string to a metric-name-safe fragment."""
    fragment = value.lower()
    for old, new in _FRAGMENT_REPLACEMENTS:
        fragment = fragment.replace(old, new)
    fragment = _FRAGMENT_INVALID_RE.sub('_', fragment)
    return fragment or 'unknown'

def sanitize_state(state: str) -> str:
    """Normalize a processlist command or state into a label value."""
    if not state:
        state = 'unknown'
    state = state.lower()
    for old, new in _STATE_REPLACEMENTS:
        state = state.replace(old, new)
    return state

def valid_metric_name(name: str) -> bool:
    return bool(METRIC_NAME_RE.match(name))

def valid_label_name(name: str) -> bool:
    return bool(LABEL_NAME_RE.match(name)) and not name.startswith('__')
