"""
Recurrence expansion with DST-correct wall-clock evaluation.

dateutil evaluates rules on whatever datetimes it is given. Evaluated on UTC
instants, "every Tuesday at 19:00 Europe/Berlin" drifts to 18:00 or 20:00
local after a DST transition. Expansion therefore happens in wall-clock
space:

    1. Shift the anchor so its naive fields equal local time in tz
       e.g. 2024-01-09T18:00Z (CET +1) -> fake 2024-01-09T19:00
    2. Evaluate the rule on the fake anchor and a fake window
    3. Shift each result back, resolving the offset valid on its own date
       e.g. fake 2024-07-09T19:00 (CEST +2) -> real 2024-07-09T17:00Z

Rule strings are RFC 5545 RRULE values ("FREQ=WEEKLY;BYDAY=TU"), with or
without the "RRULE:" prefix.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from dateutil.rrule import rrule, rrulestr

from backend.src.services.exceptions import InvalidRuleError, UnboundedWindowError
from backend.src.utils.logging_config import get_logger
from backend.src.utils.timezone import ensure_utc, shift_wall_clock, unshift_wall_clock


logger = get_logger("recurrence")

# Lower bound slack so an occurrence exactly at the window start (or at the
# anchor) is never lost to an inclusive/exclusive mismatch.
QUERY_EPSILON = timedelta(seconds=1)

UNTIL_UTC_FORMAT = "%Y%m%dT%H%M%SZ"
UNTIL_LOCAL_FORMAT = "%Y%m%dT%H%M%S"


def _rule_body(rule: Optional[str]) -> str:
    """Strip the optional RRULE: prefix and surrounding whitespace."""
    if rule is None or not isinstance(rule, str) or not rule.strip():
        raise InvalidRuleError(rule, "rule is empty")
    body = rule.strip()
    if "\n" in body or "\r" in body:
        raise InvalidRuleError(rule, "expected a single RRULE line")
    if body.upper().startswith("RRULE:"):
        body = body[len("RRULE:"):]
    if not body:
        raise InvalidRuleError(rule, "rule is empty")
    return body


def split_rule_parts(rule: str) -> List[Tuple[str, str]]:
    """
    Split a rule into (NAME, value) pairs, preserving order.

    Raises:
        InvalidRuleError: If a part is not of the form NAME=value
    """
    parts = []
    for part in _rule_body(rule).split(";"):
        if not part:
            continue
        name, sep, value = part.partition("=")
        if not sep or not name.strip():
            raise InvalidRuleError(rule, f"malformed part '{part}'")
        parts.append((name.strip().upper(), value.strip()))
    if not parts:
        raise InvalidRuleError(rule, "rule is empty")
    return parts


def join_rule_parts(parts: List[Tuple[str, str]]) -> str:
    """Inverse of split_rule_parts."""
    return ";".join(f"{name}={value}" for name, value in parts)


def _localize_until(parts: List[Tuple[str, str]], tz: str) -> List[Tuple[str, str]]:
    """
    Move a UTC UNTIL value into the wall-clock frame.

    The fake anchor is naive, and dateutil refuses to mix a naive DTSTART
    with an aware UNTIL. Date-only and floating UNTIL values are already
    wall-clock values and pass through unchanged.
    """
    localized = []
    for name, value in parts:
        if name == "UNTIL" and value.upper().endswith("Z"):
            try:
                until = datetime.strptime(value.upper(), UNTIL_UTC_FORMAT).replace(tzinfo=timezone.utc)
            except ValueError:
                # Left for dateutil to reject with its own message
                localized.append((name, value))
                continue
            value = shift_wall_clock(until, tz).strftime(UNTIL_LOCAL_FORMAT)
        localized.append((name, value))
    return localized


def parse_rule(rule: str, fake_anchor: datetime, tz: str = "UTC") -> rrule:
    """
    Parse a rule string against a wall-clock anchor.

    Args:
        rule: RRULE string
        fake_anchor: Naive wall-clock anchor (see shift_wall_clock)
        tz: Timezone used to localize a UTC UNTIL value

    Returns:
        dateutil rrule instance

    Raises:
        InvalidRuleError: If the string cannot be parsed
    """
    parts = _localize_until(split_rule_parts(rule), tz)
    try:
        parsed = rrulestr(join_rule_parts(parts), dtstart=fake_anchor)
    except (ValueError, KeyError, TypeError, IndexError) as e:
        raise InvalidRuleError(rule, str(e) or type(e).__name__)
    if not isinstance(parsed, rrule):
        raise InvalidRuleError(rule, "expected a single RRULE")
    return parsed


def validate_rule(rule: str) -> str:
    """
    Validate a user-supplied rule before it is written.

    Returns:
        The rule, stripped of surrounding whitespace

    Raises:
        InvalidRuleError: If the string cannot be parsed
    """
    parse_rule(rule, datetime(2000, 1, 1))
    return rule.strip()


def rule_count(rule: str) -> Optional[int]:
    """Return the COUNT of a rule, or None when it has none."""
    for name, value in split_rule_parts(rule):
        if name == "COUNT":
            try:
                return int(value)
            except ValueError:
                raise InvalidRuleError(rule, f"invalid COUNT '{value}'")
    return None


def with_count(rule: str, count: int) -> str:
    """Return the rule with its COUNT part replaced (or appended)."""
    parts = split_rule_parts(rule)
    replaced = False
    for i, (name, _) in enumerate(parts):
        if name == "COUNT":
            parts[i] = ("COUNT", str(count))
            replaced = True
    if not replaced:
        parts.append(("COUNT", str(count)))
    return join_rule_parts(parts)


def clamp_window(
    window_start: datetime,
    window_end: Optional[datetime],
    max_years: int,
) -> datetime:
    """
    Bound a query window before any expansion work.

    Args:
        window_start: Start of the window
        window_end: End of the window (None is rejected)
        max_years: Longest window that will be expanded

    Returns:
        The effective window end (aware UTC)

    Raises:
        UnboundedWindowError: If window_end is None
    """
    if window_end is None:
        raise UnboundedWindowError()
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)
    ceiling = window_start + relativedelta(years=max_years)
    if window_end > ceiling:
        logger.warning(
            f"Clamped expansion window end {window_end.isoformat()} "
            f"to {ceiling.isoformat()} ({max_years} years)"
        )
        return ceiling
    return window_end


def expand(
    rule: str,
    anchor: datetime,
    window_start: datetime,
    window_end: datetime,
    tz: str,
) -> List[datetime]:
    """
    Expand a recurrence rule into occurrence instants inside a window.

    Args:
        rule: RRULE string
        anchor: First instant of the series (DTSTART)
        window_start: Start of the window (inclusive)
        window_end: End of the window (inclusive)
        tz: IANA timezone whose wall clock the series follows

    Returns:
        Strictly ascending aware UTC instants within [window_start, window_end]

    Raises:
        InvalidRuleError: If the rule cannot be parsed
        ConfigurationError: If tz is unknown
    """
    anchor = ensure_utc(anchor)
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)

    parsed = parse_rule(rule, shift_wall_clock(anchor, tz), tz)

    query_start = min(anchor, window_start) - QUERY_EPSILON
    fake_start = shift_wall_clock(query_start, tz)
    fake_end = shift_wall_clock(window_end, tz)
    if fake_end < fake_start:
        return []

    instants = []
    for fake in parsed.between(fake_start, fake_end, inc=True):
        instant = unshift_wall_clock(fake, tz)
        if instant < window_start or instant > window_end:
            continue
        # A nonexistent local time can resolve onto its neighbour's instant
        if instants and instant <= instants[-1]:
            continue
        instants.append(instant)

    logger.debug(
        f"Expanded '{rule}' to {len(instants)} occurrences "
        f"between {window_start.isoformat()} and {window_end.isoformat()}"
    )
    return instants
