import logging
import math
import re
from dataclasses import asdict, dataclass, fields
from typing import ClassVar, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Number = Union[int, float]

PARTY_COST = 20330
PARTY_COOLDOWN_HOURS = 24
HOURS_PER_DAY = 24

DEFAULT_RES_PER_HOUR = 1200 + 1620  # base production + upgraded mines
DEFAULT_CP_PER_DAY = 153
DEFAULT_CURRENT_CP = 700
DEFAULT_CURRENT_RES = 0
DEFAULT_HOURS_SINCE_START = 24


def format_number(value: Number) -> str:
    """Render a number the way the web calculator printed it (no trailing .0)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# --------- log entries ---------


@dataclass(frozen=True)
class AdvancedEntry:
    kind: ClassVar[str] = "advanced"
    hours: Number
    res: Number
    cp: float

    def render(self) -> str:
        return (
            f"⏩ Advanced {format_number(self.hours)}h: "
            f"+{format_number(self.res)} res, +{self.cp:.2f} CP"
        )


@dataclass(frozen=True)
class PartyEntry:
    kind: ClassVar[str] = "party"
    at_hour: Number
    cost: Number
    cp: Number

    def render(self) -> str:
        return (
            f"🎉 [{format_number(self.at_hour)}h] Ran party: "
            f"-{format_number(self.cost)} res, +{format_number(self.cp)} CP"
        )


@dataclass(frozen=True)
class PartyFailedEntry:
    kind: ClassVar[str] = "party_failed"
    at_hour: Number

    def render(self) -> str:
        return f"❌ [{format_number(self.at_hour)}h] Not enough resources to run a party."


@dataclass(frozen=True)
class BuiltEntry:
    kind: ClassVar[str] = "built"
    name: str
    cost: Number
    bonus: Number

    def render(self) -> str:
        return (
            f'🏗️ Built "{self.name}": -{format_number(self.cost)} res, '
            f"+{format_number(self.bonus)} CP/day"
        )


@dataclass(frozen=True)
class AdjustedEntry:
    kind: ClassVar[str] = "adjusted"
    target: str  # "res" or "cp"
    amount: Number

    def render(self) -> str:
        label = "resources" if self.target == "res" else "CP"
        return f"➕ Added {format_number(self.amount)} {label}"


@dataclass(frozen=True)
class NoteEntry:
    kind: ClassVar[str] = "note"
    text: str

    def render(self) -> str:
        return self.text


LogEntry = Union[AdvancedEntry, PartyEntry, PartyFailedEntry, BuiltEntry, AdjustedEntry, NoteEntry]

ENTRY_TYPES = {
    cls.kind: cls
    for cls in (AdvancedEntry, PartyEntry, PartyFailedEntry, BuiltEntry, AdjustedEntry, NoteEntry)
}

# fields holding text; every other entry field is a number
TEXT_FIELDS = ("name", "text", "target")
ADJUST_TARGETS = ("res", "cp")

# text form written by older links, which stored the rendered log
LEGACY_ADVANCE_RE = re.compile(r"^⏩ Advanced (\d+)h: \+(\d+) res, \+([\d.]+) CP$")


def entry_to_dict(entry: LogEntry) -> Dict[str, object]:
    data: Dict[str, object] = {"kind": entry.kind}
    data.update(asdict(entry))
    return data


def entry_from_data(item) -> LogEntry:
    """Rebuild a log entry from its dict form or from a legacy text line."""
    if isinstance(item, str):
        m = LEGACY_ADVANCE_RE.match(item)
        if m:
            return AdvancedEntry(hours=int(m.group(1)), res=int(m.group(2)), cp=float(m.group(3)))
        return NoteEntry(text=item)
    if not isinstance(item, dict):
        raise ValueError(f"unsupported log entry: {item!r}")
    values = dict(item)
    kind = values.pop("kind", None)
    cls = ENTRY_TYPES.get(kind) if isinstance(kind, str) else None
    if cls is None:
        raise ValueError(f"unknown log entry kind in {item!r}")
    for field in fields(cls):
        if field.name not in values:
            continue
        value = values[field.name]
        if field.name in TEXT_FIELDS:
            if not isinstance(value, str):
                raise ValueError(f"{cls.kind} entry field {field.name!r} must be text, got {value!r}")
        elif not is_finite_number(value):
            raise ValueError(f"{cls.kind} entry field {field.name!r} must be a number, got {value!r}")
    if cls is AdjustedEntry and values.get("target") not in ADJUST_TARGETS:
        raise ValueError(f"adjusted entry target must be one of {ADJUST_TARGETS}")
    try:
        return cls(**values)
    except TypeError as exc:
        raise ValueError(f"bad fields for {cls.kind} entry: {exc}") from exc


def collapse_entries(entries: List[LogEntry]) -> List[LogEntry]:
    """Merge each run of consecutive time advances into one summed entry."""
    collapsed: List[LogEntry] = []
    pending_hours: Number = 0
    pending_res: Number = 0
    pending_cp: float = 0.0

    def flush():
        nonlocal pending_hours, pending_res, pending_cp
        if pending_hours or pending_res or pending_cp:
            collapsed.append(AdvancedEntry(hours=pending_hours, res=pending_res, cp=pending_cp))
        pending_hours = pending_res = 0
        pending_cp = 0.0

    for entry in entries:
        if isinstance(entry, AdvancedEntry):
            pending_hours += entry.hours
            pending_res += entry.res
            pending_cp += entry.cp
        else:
            flush()
            collapsed.append(entry)
    flush()
    return collapsed


@dataclass(frozen=True)
class UserNotice:
    level: str  # "info", "warning" or "error"
    message: str


# --------- state ---------


class PlannerState:
    # json key -> attribute, for the fields that travel in a share link
    NUMBER_FIELDS = {
        "resPerHour": "res_per_hour",
        "cpPerDay": "cp_per_day",
        "currentCp": "current_cp",
        "currentRes": "current_res",
        "hoursSinceStart": "hours_since_start",
    }

    def __init__(self, initial_state: Optional[dict] = None, collapse_log: bool = True):
        # rates
        self.res_per_hour: Number = DEFAULT_RES_PER_HOUR
        self.cp_per_day: Number = DEFAULT_CP_PER_DAY

        # counters
        self.current_cp: Number = DEFAULT_CURRENT_CP
        self.current_res: Number = DEFAULT_CURRENT_RES
        self.hours_since_start: Number = DEFAULT_HOURS_SINCE_START
        self.last_party_time: Optional[Number] = None
        self.action_log: List[LogEntry] = []

        # pending form fields
        self.building_name = ""
        self.building_res_cost: Number = 0
        self.building_cp_bonus: Number = 0
        self.add_res_amount: Number = 0
        self.add_cp_amount: Number = 0

        # misc
        self.submitted = True  # show the summary immediately
        self.show_inputs = False
        self.collapse_log = collapse_log
        self.pending_notices: List[UserNotice] = []

        self.apply_initial_state(initial_state or {})

    # --------- helpers ---------

    def add_log(self, entry: LogEntry):
        self.action_log.append(entry)
        logger.debug("log: %s", entry.render())

    def notify(self, level: str, message: str):
        self.pending_notices.append(UserNotice(level=level, message=message))

    def consume_notices(self) -> List[UserNotice]:
        notices = list(self.pending_notices)
        self.pending_notices.clear()
        return notices

    def log_lines(self) -> List[str]:
        return [entry.render() for entry in self.action_log]

    def collapse_log_entries(self):
        self.action_log = collapse_entries(self.action_log)

    def can_run_party(self) -> bool:
        if self.last_party_time is None:
            return True
        return self.hours_since_start - self.last_party_time >= PARTY_COOLDOWN_HOURS

    @property
    def next_party_available_in(self) -> Number:
        if self.last_party_time is None:
            return 0
        cooldown_left = PARTY_COOLDOWN_HOURS - (self.hours_since_start - self.last_party_time)
        return cooldown_left if cooldown_left > 0 else 0

    # --------- state serialization ---------

    def apply_initial_state(self, state: dict):
        """Override values from a decoded dict; unusable numbers keep their defaults."""
        for key, attr in self.NUMBER_FIELDS.items():
            if key not in state:
                continue
            value = _coerce_number(state[key])
            if value is not None:
                setattr(self, attr, value)

        if "lastPartyTime" in state:
            raw = state["lastPartyTime"]
            if raw is None:
                self.last_party_time = None
            else:
                value = _coerce_number(raw)
                if value is not None:
                    self.last_party_time = value

        log = state.get("actionLog")
        if isinstance(log, list):
            self.action_log = [entry_from_data(item) for item in log]

    def export_state(self) -> dict:
        return {
            "resPerHour": self.res_per_hour,
            "cpPerDay": self.cp_per_day,
            "currentCp": self.current_cp,
            "currentRes": self.current_res,
            "hoursSinceStart": self.hours_since_start,
            "lastPartyTime": self.last_party_time,
            "actionLog": [entry_to_dict(entry) for entry in self.action_log],
        }

    def load_state_dict(self, state: dict):
        # reset fields to defaults before applying the new state
        self.__init__(initial_state=state, collapse_log=self.collapse_log)

    # --------- actions ---------

    def calculate(self, res_per_hour: Number, cp_per_day: Number):
        self.res_per_hour = res_per_hour
        self.cp_per_day = cp_per_day
        self.submitted = True

    def action_advance_time(self, hours: Number):
        if not is_finite_number(hours) or hours <= 0:
            self.notify("error", f"Cannot advance time by {hours!r} hours.")
            return

        res_gained = self.res_per_hour * hours
        cp_gained = (self.cp_per_day / HOURS_PER_DAY) * hours

        self.current_res += res_gained
        self.current_cp += cp_gained
        self.hours_since_start += hours

        self.add_log(AdvancedEntry(hours=hours, res=res_gained, cp=cp_gained))
        if self.collapse_log:
            self.collapse_log_entries()

    def action_run_party(self):
        if not self.can_run_party():
            return

        if self.current_res < PARTY_COST:
            self.add_log(PartyFailedEntry(at_hour=self.hours_since_start))
            self.notify("warning", "Not enough resources to run a party!")
            return

        self.current_res -= PARTY_COST
        self.current_cp += self.cp_per_day
        self.last_party_time = self.hours_since_start
        self.add_log(PartyEntry(at_hour=self.hours_since_start, cost=PARTY_COST, cp=self.cp_per_day))

    def action_build_building(self):
        # unlike a failed party, a failed build leaves no trace in the log
        if self.current_res < self.building_res_cost:
            self.notify("warning", "Not enough resources to build.")
            return

        self.current_res -= self.building_res_cost
        self.cp_per_day += self.building_cp_bonus
        self.add_log(
            BuiltEntry(name=self.building_name, cost=self.building_res_cost, bonus=self.building_cp_bonus)
        )

        self.building_name = ""
        self.building_res_cost = 0
        self.building_cp_bonus = 0

    def action_add_resources(self):
        self.current_res += self.add_res_amount
        self.add_log(AdjustedEntry(target="res", amount=self.add_res_amount))
        self.add_res_amount = 0

    def action_add_cp(self):
        self.current_cp += self.add_cp_amount
        self.add_log(AdjustedEntry(target="cp", amount=self.add_cp_amount))
        self.add_cp_amount = 0


def is_finite_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def _coerce_number(value) -> Optional[Number]:
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float)):
        try:
            value = float(value)
        except (TypeError, ValueError):
            return None
    return value if is_finite_number(value) else None
