# roster_api/services/time_conversion.py
"""
Civil time <-> UTC conversion for shift and timesheet values.

Users type wall-clock values ("2025-01-15 14:30") that are always meant in one
reference zone (Australia/Melbourne by default). The database columns carry no
zone information, so we store UTC strings ("2025-01-15 03:30:00") and turn
them back into reference-zone strings on the way out.

Accepted inputs (exact, case-sensitive):
    YYYY-MM-DD             -> local midnight
    YYYY-MM-DD HH:mm
    YYYY-MM-DD HH:mm:ss
anything else gets a best-effort ISO-8601 parse before giving up.

Daylight-saving policy:
    gap (spring forward, the local time never happens)
        -> shifted forward by the length of the gap
           (02:30 on the October changeover becomes 03:30 AEDT)
    overlap (fall back, the local time happens twice)
        -> the earlier UTC instant (first occurrence, still daylight time)
Both cases succeed but carry an AMBIGUOUS_OR_NONEXISTENT_LOCAL_TIME warning
and are logged.

Bad data never raises: every operation hands back a ConversionResult (or, for
display text, a placeholder). Only programming errors raise, e.g. an unknown
zone name when the service is built.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo

log = logging.getLogger(__name__)

UTC = timezone.utc
DEFAULT_REFERENCE_ZONE = "Australia/Melbourne"
DISPLAY_PLACEHOLDER = "Date TBD"

# read side only; writes go through _stamp so early years keep four digits
STORAGE_FORMAT = "%Y-%m-%d %H:%M:%S"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII)
_DATE_MIN_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}$", re.ASCII)
_DATE_SEC_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$", re.ASCII)

# order matters only for readability; the patterns are mutually exclusive
_CIVIL_SHAPES = (
    (_DATE_RE, "%Y-%m-%d"),
    (_DATE_MIN_RE, "%Y-%m-%d %H:%M"),
    (_DATE_SEC_RE, "%Y-%m-%d %H:%M:%S"),
)


class ConversionError(str, Enum):
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_INSTANT = "INVALID_INSTANT"
    AMBIGUOUS_OR_NONEXISTENT_LOCAL_TIME = "AMBIGUOUS_OR_NONEXISTENT_LOCAL_TIME"


class DisplayPrecision(str, Enum):
    DATE_ONLY = "date"                  # YYYY-MM-DD
    DATE_TIME_MINUTES = "datetime"      # YYYY-MM-DD HH:mm
    TIME_MINUTES = "time"               # HH:mm (timesheet rows)


def _stamp(dt) -> str:
    """Storage shape for a datetime-like value; years below 1000 keep four digits."""
    return (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
    )


@dataclass(frozen=True)
class CivilDateTime:
    """Wall-clock date/time with no offset attached."""

    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0

    @classmethod
    def from_datetime(cls, dt: datetime) -> "CivilDateTime":
        return cls(dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second)

    def to_datetime(self) -> datetime:
        """Naive datetime with the same components (raises on impossible dates)."""
        return datetime(self.year, self.month, self.day, self.hour, self.minute, self.second)

    def format(self, precision: DisplayPrecision = DisplayPrecision.DATE_TIME_MINUTES) -> str:
        # seconds are dropped, never rounded into the minute
        precision = DisplayPrecision(precision)
        day = f"{self.year:04d}-{self.month:02d}-{self.day:02d}"
        clock = f"{self.hour:02d}:{self.minute:02d}"
        if precision is DisplayPrecision.DATE_ONLY:
            return day
        if precision is DisplayPrecision.TIME_MINUTES:
            return clock
        return f"{day} {clock}"

    def __str__(self) -> str:
        return _stamp(self)


@dataclass(frozen=True)
class ConversionResult:
    """
    Tagged outcome of a conversion.

    ok      -> `value` holds the converted value (datetime / CivilDateTime / str)
    not ok  -> `error` names the failure and `value` is None
    warnings are non-fatal (DST adjustments) and only appear on success.
    """

    value: Any = None
    error: Optional[ConversionError] = None
    warnings: Tuple[ConversionError, ...] = ()
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value, warnings=(), detail=None) -> "ConversionResult":
        return cls(value=value, warnings=tuple(warnings), detail=detail)

    @classmethod
    def failure(cls, error: ConversionError, detail: Optional[str] = None) -> "ConversionResult":
        return cls(error=error, detail=detail)

    def unwrap_or(self, default=None):
        return self.value if self.ok else default


class TimeConversionService:
    """
    Pure, stateless conversions between one reference zone and UTC.
    One instance per app is shared by every request.
    """

    def __init__(self, reference_zone: str = DEFAULT_REFERENCE_ZONE):
        # ZoneInfoNotFoundError here is a configuration bug, let it raise
        self.zone_name = reference_zone
        self.zone = ZoneInfo(reference_zone)

    def __repr__(self) -> str:
        return f"TimeConversionService({self.zone_name!r})"

    # ---------- civil -> instant ----------

    def parse_civil_to_instant(self, text) -> ConversionResult:
        """Interpret `text` as wall-clock time in the reference zone, return a UTC instant."""
        if text is None:
            return ConversionResult.failure(ConversionError.INVALID_FORMAT, "empty value")

        if isinstance(text, datetime):
            if text.tzinfo is not None:
                return ConversionResult.success(text.astimezone(UTC))
            return self._localize(text)

        if not isinstance(text, str):
            return ConversionResult.failure(
                ConversionError.INVALID_FORMAT, f"unsupported type {type(text).__name__}"
            )

        s = text.strip()
        if not s:
            return ConversionResult.failure(ConversionError.INVALID_FORMAT, "empty value")

        for pattern, fmt in _CIVIL_SHAPES:
            if pattern.match(s):
                try:
                    naive = datetime.strptime(s, fmt)
                except ValueError as e:
                    # right shape, impossible calendar value (2025-02-30, 24:10 ...)
                    return ConversionResult.failure(ConversionError.INVALID_FORMAT, str(e))
                return self._localize(naive)

        # best-effort ISO fallback: "2025-01-15T14:30", "2025-01-15T03:30:00Z" ...
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError:
            return ConversionResult.failure(ConversionError.INVALID_FORMAT, f"unrecognised value {s!r}")

        if parsed.tzinfo is not None:
            try:
                return ConversionResult.success(parsed.astimezone(UTC))
            except OverflowError as e:
                return ConversionResult.failure(ConversionError.INVALID_FORMAT, str(e))
        return self._localize(parsed)

    def _localize(self, naive: datetime) -> ConversionResult:
        naive = naive.replace(tzinfo=None, fold=0)
        first = naive.replace(tzinfo=self.zone, fold=0)
        second = naive.replace(tzinfo=self.zone, fold=1)

        try:
            instant = first.astimezone(UTC)
        except OverflowError as e:
            return ConversionResult.failure(ConversionError.INVALID_FORMAT, str(e))

        if first.utcoffset() == second.utcoffset():
            return ConversionResult.success(instant)

        # fold=0 is the pre-transition offset: in a gap that lands past the gap
        # (shift forward), in an overlap it is the first occurrence (earlier instant)
        lands_on = instant.astimezone(self.zone).replace(tzinfo=None)
        kind = "nonexistent" if lands_on != naive else "ambiguous"
        log.warning(
            "DST %s local time %s in %s resolved to %s UTC",
            kind, naive.isoformat(sep=" "), self.zone_name, _stamp(instant),
        )
        return ConversionResult.success(
            instant,
            warnings=(ConversionError.AMBIGUOUS_OR_NONEXISTENT_LOCAL_TIME,),
            detail=f"{kind} local time",
        )

    # ---------- instant -> storage ----------

    def format_instant_for_storage(self, instant) -> ConversionResult:
        """UTC `YYYY-MM-DD HH:mm:ss`, no offset marker."""
        dt = self._coerce_instant(instant)
        if dt is None:
            return ConversionResult.failure(ConversionError.INVALID_INSTANT, "no instant to store")
        return ConversionResult.success(_stamp(dt))

    def storage_from_civil(self, text) -> ConversionResult:
        """parse + format for storage; the parse failure (and warnings) pass through."""
        parsed = self.parse_civil_to_instant(text)
        if not parsed.ok:
            return parsed
        stored = self.format_instant_for_storage(parsed.value)
        return ConversionResult.success(stored.value, warnings=parsed.warnings, detail=parsed.detail)

    def now_for_storage(self) -> str:
        return _stamp(datetime.now(UTC))

    def today(self) -> date:
        """Calendar date in the reference zone right now."""
        return datetime.now(UTC).astimezone(self.zone).date()

    # ---------- instant -> civil ----------

    def instant_to_civil(self, instant) -> ConversionResult:
        """Wall-clock time in the reference zone, using that zone's offset at `instant`."""
        dt = self._coerce_instant(instant)
        if dt is None:
            return ConversionResult.failure(ConversionError.INVALID_INSTANT, "no instant to convert")
        try:
            local = dt.astimezone(self.zone)
        except OverflowError as e:
            return ConversionResult.failure(ConversionError.INVALID_INSTANT, str(e))
        return ConversionResult.success(CivilDateTime.from_datetime(local))

    def display_result(self, instant, precision=DisplayPrecision.DATE_TIME_MINUTES) -> ConversionResult:
        civil = self.instant_to_civil(instant)
        if not civil.ok:
            return civil
        return ConversionResult.success(civil.value.format(precision))

    def format_for_display(
        self,
        instant,
        precision=DisplayPrecision.DATE_TIME_MINUTES,
        placeholder: str = DISPLAY_PLACEHOLDER,
    ) -> str:
        """
        Reference-zone display string, seconds truncated.
        Anything that cannot be shown (None, garbage, a failed parse) gives
        `placeholder`, so templates never render "None" or "Invalid Date".
        """
        return self.display_result(instant, precision).unwrap_or(placeholder)

    def civil_for_api(self, stored, precision=DisplayPrecision.DATE_TIME_MINUTES) -> Optional[str]:
        """Stored UTC value -> display string for JSON; None when nothing usable is stored."""
        return self.display_result(stored, precision).unwrap_or(None)

    # ---------- helpers ----------

    def _coerce_instant(self, instant) -> Optional[datetime]:
        """
        Accepts an aware datetime, a naive datetime (taken as UTC, which is what
        the database hands back), a storage string or an ISO string, or a
        ConversionResult carrying one of those. Returns an aware UTC datetime
        or None.
        """
        if isinstance(instant, ConversionResult):
            if not instant.ok:
                return None
            instant = instant.value

        if isinstance(instant, str):
            s = instant.strip()
            if _DATE_SEC_RE.match(s):
                try:
                    instant = datetime.strptime(s, STORAGE_FORMAT)
                except ValueError:
                    return None
            else:
                try:
                    instant = datetime.fromisoformat(s)
                except ValueError:
                    return None

        if not isinstance(instant, datetime):
            return None

        if instant.tzinfo is None:
            return instant.replace(tzinfo=UTC)
        try:
            return instant.astimezone(UTC)
        except OverflowError:
            return None


def is_civil_date(text) -> bool:
    return isinstance(text, str) and bool(_DATE_RE.match(text))
