import pytest

from planner_state import (
    PARTY_COST,
    AdjustedEntry,
    AdvancedEntry,
    BuiltEntry,
    NoteEntry,
    PartyEntry,
    PartyFailedEntry,
    PlannerState,
    collapse_entries,
    entry_from_data,
    format_number,
)


def test_defaults_match_the_calculator_start():
    state = PlannerState()
    assert state.res_per_hour == 2820
    assert state.cp_per_day == 153
    assert state.current_cp == 700
    assert state.current_res == 0
    assert state.hours_since_start == 24
    assert state.last_party_time is None
    assert state.action_log == []
    assert state.submitted is True
    assert state.show_inputs is False


def test_example_scenario_advance_then_party():
    state = PlannerState()

    state.action_advance_time(24)
    assert state.current_res == 67680
    assert state.current_cp == pytest.approx(853.0)
    assert state.hours_since_start == 48
    assert state.log_lines() == ["⏩ Advanced 24h: +67680 res, +153.00 CP"]

    state.action_run_party()
    assert state.current_res == 47350
    assert state.current_cp == pytest.approx(1006.0)
    assert state.last_party_time == 48
    assert state.log_lines()[-1] == "🎉 [48h] Ran party: -20330 res, +153 CP"

    before = state.export_state()
    state.action_run_party()
    assert state.export_state() == before
    assert state.consume_notices() == []


@pytest.mark.parametrize(
    "last_party, clock, expected",
    [
        (None, 24, True),
        (48, 48, False),
        (48, 71, False),
        (48, 72, True),
        (48, 200, True),
    ],
)
def test_can_run_party_follows_cooldown(last_party, clock, expected):
    state = PlannerState(initial_state={"lastPartyTime": last_party, "hoursSinceStart": clock})
    assert state.can_run_party() is expected


def test_next_party_available_in_counts_down():
    state = PlannerState(initial_state={"currentRes": 100000})
    assert state.next_party_available_in == 0

    state.action_run_party()
    assert state.next_party_available_in == 24

    state.action_advance_time(10)
    assert state.next_party_available_in == 14

    state.action_advance_time(30)
    assert state.next_party_available_in == 0
    assert state.can_run_party()


def test_party_success_spends_cost_and_grants_daily_cp():
    state = PlannerState(initial_state={"currentRes": 30000, "cpPerDay": 200, "hoursSinceStart": 60})
    state.action_run_party()

    assert state.current_res == 30000 - PARTY_COST
    assert state.current_cp == 700 + 200
    assert state.last_party_time == 60
    assert state.action_log == [PartyEntry(at_hour=60, cost=PARTY_COST, cp=200)]
    assert state.consume_notices() == []


def test_party_failure_logs_and_keeps_cooldown_free():
    state = PlannerState()
    state.action_run_party()

    assert state.current_res == 0
    assert state.current_cp == 700
    assert state.last_party_time is None
    assert state.action_log == [PartyFailedEntry(at_hour=24)]
    assert state.log_lines() == ["❌ [24h] Not enough resources to run a party."]

    notices = state.consume_notices()
    assert [n.level for n in notices] == ["warning"]
    assert notices[0].message == "Not enough resources to run a party!"

    # once affordable the retry goes through
    state.action_advance_time(8)
    state.action_run_party()
    assert state.last_party_time == 32


def test_build_building_raises_cp_rate_and_resets_form():
    state = PlannerState(initial_state={"currentRes": 10000})
    state.building_name = "Barracks"
    state.building_res_cost = 5000
    state.building_cp_bonus = 20

    state.action_build_building()

    assert state.current_res == 5000
    assert state.cp_per_day == 173
    assert (state.building_name, state.building_res_cost, state.building_cp_bonus) == ("", 0, 0)
    assert state.log_lines() == ['🏗️ Built "Barracks": -5000 res, +20 CP/day']


def test_build_building_failure_only_notifies():
    state = PlannerState(initial_state={"currentRes": 100})
    state.building_name = "Castle"
    state.building_res_cost = 50000
    state.building_cp_bonus = 40

    state.action_build_building()

    assert state.current_res == 100
    assert state.cp_per_day == 153
    assert state.action_log == []
    assert (state.building_name, state.building_res_cost, state.building_cp_bonus) == ("Castle", 50000, 40)
    notices = state.consume_notices()
    assert len(notices) == 1
    assert notices[0].message == "Not enough resources to build."


def test_manual_adjustments_allow_negative_amounts():
    state = PlannerState()
    state.add_res_amount = -500
    state.action_add_resources()
    state.add_cp_amount = 12.5
    state.action_add_cp()

    assert state.current_res == -500
    assert state.current_cp == 712.5
    assert state.add_res_amount == 0
    assert state.add_cp_amount == 0
    assert state.log_lines() == ["➕ Added -500 resources", "➕ Added 12.5 CP"]


@pytest.mark.parametrize("hours", [1, 5, 12.5, 100])
def test_advance_time_is_linear(hours):
    state = PlannerState(collapse_log=False)
    state.action_advance_time(hours)

    assert state.current_res == 2820 * hours
    assert state.current_cp == pytest.approx(700 + 153 / 24 * hours)
    assert state.hours_since_start == 24 + hours


@pytest.mark.parametrize("hours", [0, -3, -0.5, True, "6"])
def test_advance_time_rejects_non_positive_hours(hours):
    state = PlannerState()
    before = state.export_state()

    state.action_advance_time(hours)

    assert state.export_state() == before
    notices = state.consume_notices()
    assert [n.level for n in notices] == ["error"]


def test_consecutive_advances_collapse_into_one_entry():
    state = PlannerState()
    state.action_advance_time(8)
    state.action_advance_time(16)

    assert state.log_lines() == ["⏩ Advanced 24h: +67680 res, +153.00 CP"]


def test_collapse_can_be_turned_off():
    state = PlannerState(collapse_log=False)
    state.action_advance_time(8)
    state.action_advance_time(16)

    assert len(state.action_log) == 2


def test_other_entries_are_flush_boundaries():
    state = PlannerState()
    state.action_advance_time(24)
    state.action_run_party()
    state.action_advance_time(1)
    state.action_advance_time(1)

    kinds = [type(entry) for entry in state.action_log]
    assert kinds == [AdvancedEntry, PartyEntry, AdvancedEntry]
    assert state.action_log[-1].hours == 2
    assert state.action_log[-1].res == 5640


def test_collapse_is_idempotent():
    entries = [
        AdvancedEntry(hours=1, res=2820, cp=6.375),
        AdvancedEntry(hours=2, res=5640, cp=12.75),
        AdjustedEntry(target="res", amount=10),
        AdvancedEntry(hours=3, res=8460, cp=19.125),
        BuiltEntry(name="Farm", cost=100, bonus=2),
        NoteEntry(text="hello"),
        AdvancedEntry(hours=4, res=11280, cp=25.5),
    ]
    once = collapse_entries(entries)
    assert collapse_entries(once) == once
    assert once[0] == AdvancedEntry(hours=3, res=8460, cp=19.125)
    assert once[1:] == entries[2:]


def test_collapse_drops_all_zero_runs():
    entries = [AdvancedEntry(hours=0, res=0, cp=0.0), NoteEntry(text="x")]
    assert collapse_entries(entries) == [NoteEntry(text="x")]


def test_legacy_text_entries_are_parsed():
    advanced = entry_from_data("⏩ Advanced 24h: +67680 res, +153.00 CP")
    assert advanced == AdvancedEntry(hours=24, res=67680, cp=153.0)

    other = entry_from_data("🎉 [48h] Ran party: -20330 res, +153 CP")
    assert other == NoteEntry(text="🎉 [48h] Ran party: -20330 res, +153 CP")
    assert other.render() == "🎉 [48h] Ran party: -20330 res, +153 CP"


def test_unknown_entry_kind_is_rejected():
    with pytest.raises(ValueError):
        entry_from_data({"kind": "teleported", "hours": 3})
    with pytest.raises(ValueError):
        entry_from_data(42)


def test_apply_initial_state_skips_unusable_numbers():
    state = PlannerState(initial_state={"resPerHour": "abc", "cpPerDay": "200", "currentCp": None})
    assert state.res_per_hour == 2820
    assert state.cp_per_day == 200.0
    assert state.current_cp == 700


def test_load_state_dict_replaces_everything():
    state = PlannerState(collapse_log=False)
    state.action_advance_time(5)
    state.load_state_dict({"currentRes": 42})

    assert state.current_res == 42
    assert state.hours_since_start == 24
    assert state.action_log == []
    assert state.collapse_log is False


def test_format_number_drops_integral_fraction():
    assert format_number(67680.0) == "67680"
    assert format_number(12.5) == "12.5"
    assert format_number(-3) == "-3"


def test_calculate_sets_rates_and_shows_summary():
    state = PlannerState()
    state.submitted = False
    state.calculate(3000, 160)

    assert (state.res_per_hour, state.cp_per_day) == (3000, 160)
    assert state.submitted is True
    assert state.action_log == []


@pytest.mark.parametrize(
    "item",
    [
        {"kind": "advanced", "hours": 1, "res": 1, "cp": "1.5"},
        {"kind": "advanced", "hours": "x", "res": 1, "cp": 1.5},
        {"kind": "advanced", "hours": 1, "res": 1, "cp": float("nan")},
        {"kind": "party_failed", "at_hour": False},
        {"kind": "built", "name": ["Farm"], "cost": 1, "bonus": 1},
        {"kind": "adjusted", "target": "gold", "amount": 5},
        {"kind": "adjusted", "amount": 5},
        {"kind": "note", "text": 3},
    ],
)
def test_entry_fields_must_have_the_right_types(item):
    with pytest.raises(ValueError):
        entry_from_data(item)


def test_well_typed_entries_load():
    assert entry_from_data({"kind": "adjusted", "target": "cp", "amount": -2.5}) == AdjustedEntry(
        target="cp", amount=-2.5
    )
    assert entry_from_data({"kind": "built", "name": "Farm", "cost": 100, "bonus": 2}) == BuiltEntry(
        name="Farm", cost=100, bonus=2
    )


@pytest.mark.parametrize("raw", ["nan", "inf", "-Infinity", float("nan"), float("inf")])
def test_non_finite_numbers_keep_defaults(raw):
    state = PlannerState(initial_state={"hoursSinceStart": raw, "currentRes": raw, "lastPartyTime": raw})
    assert state.hours_since_start == 24
    assert state.current_res == 0
    assert state.last_party_time is None


@pytest.mark.parametrize("hours", [float("inf"), float("nan")])
def test_advance_time_rejects_non_finite_hours(hours):
    state = PlannerState()
    state.action_advance_time(hours)

    assert state.hours_since_start == 24
    assert state.action_log == []
    assert [n.level for n in state.consume_notices()] == ["error"]
