"""
Heuristic extraction over a single English/Indonesian utterance.

Every function is total: unparseable input yields None (or False), never an
exception. Clock arithmetic is done in UTC relative to the `now` passed in.
"""
import re
from datetime import date, datetime, timedelta, timezone
from typing import NamedTuple, Optional

from utils import ensure_utc

# Locale lexicons

INDONESIAN_HINTS = {
    "gw", "gue", "gua", "lu", "lo", "jam", "pukul", "besok", "lusa", "pulang", "kampus",
    "macet", "siang", "sore", "pagi", "malam", "senin", "selasa", "rabu", "kamis", "jumat",
    "sabtu", "minggu", "rapat", "kelas", "ya", "boleh", "oke", "bikin", "buat", "sekarang",
    "aja", "hari", "ini", "dalam", "menit", "judul", "judulnya", "tolong", "dong",
}

CONFIRM_WORDS = {
    "id": ["ya", "iya", "iy", "iyaa", "boleh", "oke", "lanjut", "buat sekarang", "bikin",
           "gas", "gass", "gasss", "silakan", "jadiin", "yoi", "yaudah", "yowes", "okelah", "sip", "siap"],
    "en": ["yes", "yep", "yup", "ok", "okay", "okey", "sure", "go ahead", "create now", "make it", "do it",
           "confirm"],
}

# (pattern, title); titles are canonical regardless of the utterance language
TITLE_KEYWORDS = [
    (r"\b(?:meet|meeting|rapat|pertemuan)\b", "Meeting"),
    (r"\b(?:class|kelas)\b", "Class"),
    (r"\b(?:call|telepon|telpon)\b", "Call"),
    (r"\bemail\b", "Email"),
    (r"\b(?:review|tinjau)\b", "Review"),
    (r"\b(?:deploy|rilis)\b", "Deploy"),
]

STATUS_WORDS = [
    (r"\b(?:done|selesai|tuntas|beres)\b", "done"),
    (r"\bpending\b", "pending"),
]

TITLE_FILLER_PATTERN = re.compile(r"\b(?:aja|saja|dong|deh|ya|please|pls)\b", re.IGNORECASE)

RELATIVE_UNITS = {
    "day": "days", "days": "days", "hari": "days",
    "hour": "hours", "hours": "hours", "jam": "hours",
    "minute": "minutes", "minutes": "minutes", "menit": "minutes",
}

TODAY_PATTERN = re.compile(r"\b(?:today|hari ini)\b", re.IGNORECASE)
TOMORROW_PATTERN = re.compile(r"\b(?:tomorrow|besok)\b", re.IGNORECASE)

RELATIVE_PATTERN = re.compile(
    r"\b(?:in|dalam)\s*(\d+)\s*(days?|hari|hours?|jam|minutes?|menit)\b", re.IGNORECASE
)

CLOCK_PATTERN = re.compile(
    r"(?:(\bat\b|\bjam\b|\bpukul\b)\s*)?\b(\d{1,2})(?:[:.](\d{2}))?\s*(am|pm|pagi|siang|sore|malam)?\b",
    re.IGNORECASE,
)

DATE_MENTION_PATTERN = re.compile(
    r"(today|tomorrow|hari ini|besok|lusa|"
    r"senin|selasa|rabu|kamis|jumat|sabtu|minggu|"
    r"monday|tuesday|wednesday|thursday|friday|saturday|sunday|"
    r"\b\d{4}-\d{2}-\d{2}\b|\b\d{1,2}[/\-]\d{1,2}(?:[/\-]\d{2,4})?|"
    r"january|february|march|april|may|june|july|august|september|october|november|december|"
    r"januari|februari|maret|mei|juni|juli|agustus|oktober|desember)",
    re.IGNORECASE,
)

# Same alternatives as whole words only, so "maybe" does not end a title at "may"
DATE_WORD_PATTERN = re.compile(rf"\b(?:{DATE_MENTION_PATTERN.pattern})\b", re.IGNORECASE)


class ClockTime(NamedTuple):
    hour: int
    minute: int


def _words(text: str) -> set[str]:
    return set(re.findall(r"[a-z]+", text.lower()))


def detect_language(text: str) -> str:
    """'id' when any Indonesian hint word is present, else 'en'."""
    return "id" if _words(text or "") & INDONESIAN_HINTS else "en"


def parse_relative_offset(text: str, now: datetime) -> Optional[datetime]:
    """'in 3 days', 'dalam 2 jam', ... applied as an offset from now."""
    match = RELATIVE_PATTERN.search(text or "")
    if not match:
        return None
    amount = int(match.group(1))
    unit = RELATIVE_UNITS[match.group(2).lower()]
    try:
        return ensure_utc(now) + timedelta(**{unit: amount})
    except OverflowError:
        return None


def _shift_meridiem(hour: int, marker: Optional[str]) -> int:
    if not marker:
        return hour
    marker = marker.lower()
    if marker == "pm" and hour < 12:
        return hour + 12
    if marker == "am" and hour == 12:
        return 0
    if marker == "pagi":
        # "12 pagi" is read as 08:00 on purpose; see DESIGN.md
        if hour == 12:
            return 8
        return hour
    if marker == "malam" and hour == 12:
        return 0
    if marker in ("siang", "sore", "malam") and hour < 12:
        return hour + 12
    return hour


def match_clock_time(text: str) -> Optional[ClockTime]:
    """
    First clock time in the text: needs a lead-in (at/jam/pukul), minutes, or a
    meridiem marker so bare numbers like 'Q4' or 'in 3 days' are ignored.
    """
    for match in CLOCK_PATTERN.finditer(text or ""):
        lead_in, hour_raw, minute_raw, marker = match.groups()
        if not lead_in and not minute_raw and not marker:
            continue
        hour = _shift_meridiem(int(hour_raw), marker)
        minute = int(minute_raw) if minute_raw else 0
        if hour == 24:
            hour = 0
        if hour > 23 or minute > 59:
            continue
        return ClockTime(hour, minute)
    return None


def parse_clock_time(text: str, now: datetime) -> Optional[datetime]:
    """Clock time today, rolled to tomorrow when it has already passed."""
    clock = match_clock_time(text)
    if clock is None:
        return None
    now = ensure_utc(now)
    candidate = now.replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def parse_clock_time_same_day(text: str, now: datetime) -> Optional[datetime]:
    """Clock time on now's date, never rolled forward."""
    clock = match_clock_time(text)
    if clock is None:
        return None
    return ensure_utc(now).replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)


def parse_keyword_date(text: str, now: datetime) -> Optional[date]:
    """'today'/'hari ini' and 'tomorrow'/'besok' as a calendar date (no time)."""
    today = ensure_utc(now).date()
    if TODAY_PATTERN.search(text or ""):
        return today
    if TOMORROW_PATTERN.search(text or ""):
        return today + timedelta(days=1)
    return None


def set_time_on_date(base: date, clock: datetime) -> datetime:
    """The given date at clock's hour:minute (UTC)."""
    return datetime(base.year, base.month, base.day, clock.hour, clock.minute, tzinfo=timezone.utc)


def extract_due_candidate(text: str, now: datetime) -> Optional[datetime]:
    """Combine keyword/relative date and clock time into a single due instant."""
    now = ensure_utc(now)
    clock = parse_clock_time(text, now)
    keyword_day = parse_keyword_date(text, now)
    relative = parse_relative_offset(text, now)

    if keyword_day is not None:
        if clock is not None:
            return set_time_on_date(keyword_day, clock)
        return datetime.combine(keyword_day, now.timetz()).replace(second=0, microsecond=0)
    if relative is not None:
        if clock is not None:
            return set_time_on_date(relative.date(), clock)
        return relative
    return clock


def infer_title(text: str) -> Optional[str]:
    lowered = (text or "").lower()
    for pattern, title in TITLE_KEYWORDS:
        if re.search(pattern, lowered):
            return title
    return None


def is_confirmation(text: str) -> bool:
    """Bilingual yes/ok/go-ahead check, case-insensitive, on word boundaries."""
    lowered = (text or "").lower()
    for words in CONFIRM_WORDS.values():
        for word in words:
            if re.search(rf"\b{re.escape(word)}\b", lowered):
                return True
    return False


def extract_status(text: str) -> Optional[str]:
    lowered = (text or "").lower()
    for pattern, status in STATUS_WORDS:
        if re.search(pattern, lowered):
            return status
    return None


def _schedule_start(text: str) -> Optional[int]:
    """Offset of the first clock or date expression, so a title stops before it."""
    starts = [match.start() for match in DATE_WORD_PATTERN.finditer(text)][:1]
    for match in CLOCK_PATTERN.finditer(text):
        lead_in, _, minute_raw, marker = match.groups()
        if lead_in or minute_raw or marker:
            starts.append(match.start())
            break
    return min(starts) if starts else None


def extract_new_title(text: str) -> Optional[str]:
    """Replacement title from a quoted string or 'title/judul(nya) (to/jadi/ke/:) X'."""
    stripped = (text or "").strip()
    quoted = re.search(r"\"([^\"]+)\"|'([^']+)'|“([^”]+)”", stripped)
    if quoted:
        candidate = next(group for group in quoted.groups() if group).strip()
        return candidate or None

    match = re.search(r"\b(?:judul(?:nya)?|title|name)\s*(?:jadi|ke|to|as|=|:)?\s*(.+)$", stripped, re.IGNORECASE)
    if match:
        candidate = match.group(1)
        cut = _schedule_start(candidate)
        if cut is not None:
            candidate = candidate[:cut]
        candidate = TITLE_FILLER_PATTERN.sub("", candidate)
        candidate = re.sub(r"\s{2,}", " ", candidate).strip(" .,!?")
        return candidate or None
    return None


def mentions_date(text: str) -> bool:
    """Whether the text names a day, month or numeric date in either language."""
    return bool(DATE_MENTION_PATTERN.search(text or ""))
