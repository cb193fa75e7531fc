"""
Engine tests: model build, search, evaluation and alternative selection.
"""
import pytest

from models.domain import Assignment, RoomType
from models.schemas import EntitySnapshot, GenerationOptions, GridConfig
from service.constraints import ConstraintSet, SoftObjectives
from service.engine import TimetableEngine, select_alternatives
from service.errors import ModelError, ScheduleInvariantError
from service.evaluator import SolutionEvaluator
from service.model_builder import build_model
from service.search import BacktrackingSearch, SearchLimits


def get_snapshot(**overrides):
    """Scenario A: one batch of 30, one subject twice a week, one teacher, one room."""
    data = {
        "faculty": [
            {"id": "f1", "name": "John Doe", "department": "CS",
             "qualifications": ["s1"], "maxHoursPerWeek": 10}
        ],
        "subjects": [{"id": "s1", "name": "Mathematics", "sessionsPerWeek": 2}],
        "rooms": [{"id": "r1", "name": "Room 101", "capacity": 40, "type": "lecture"}],
        "batches": [
            {"id": "b1", "name": "CS-1", "department": "CS", "year": 1,
             "strength": 30, "subjects": ["s1"]}
        ],
    }
    data.update(overrides)
    return EntitySnapshot.model_validate(data)


def get_overloaded_snapshot():
    """Scenario C: two batches need six sessions of the only teacher on a 4-slot grid."""
    return get_snapshot(
        subjects=[{"id": "s1", "name": "Mathematics", "sessionsPerWeek": 3}],
        rooms=[
            {"id": "r1", "name": "Room 101", "capacity": 40, "type": "lecture"},
            {"id": "r2", "name": "Room 102", "capacity": 30, "type": "lecture"},
        ],
        batches=[
            {"id": "b1", "name": "CS-1", "strength": 30, "subjects": ["s1"]},
            {"id": "b2", "name": "CS-2", "strength": 25, "subjects": ["s1"]},
        ],
    )


def get_school_snapshot():
    return get_snapshot(
        faculty=[
            {"id": "f1", "name": "Alice", "qualifications": ["math", "phys"], "maxHoursPerWeek": 12,
             "unavailability": [{"day": "monday", "slot": 0}, {"day": "monday", "slot": 1}]},
            {"id": "f2", "name": "Bob", "qualifications": ["math", "eng"], "maxHoursPerWeek": 12},
            {"id": "f3", "name": "Carol", "qualifications": ["lab", "phys"], "maxHoursPerWeek": 10,
             "preferredSlots": ["tuesday:2", "tuesday:3"]},
            {"id": "f4", "name": "Dan", "qualifications": ["eng"], "maxHoursPerWeek": 6},
        ],
        subjects=[
            {"id": "math", "name": "Mathematics", "sessionsPerWeek": 3},
            {"id": "phys", "name": "Physics", "sessionsPerWeek": 2},
            {"id": "lab", "name": "Physics Lab", "sessionsPerWeek": 1, "duration": 2, "roomType": "lab"},
            {"id": "eng", "name": "English", "sessionsPerWeek": 2},
        ],
        rooms=[
            {"id": "r-small", "capacity": 35, "type": "lecture"},
            {"id": "r-big", "capacity": 70, "type": "hall"},
            {"id": "r-lab", "capacity": 40, "type": "lab",
             "unavailability": [{"day": "wednesday", "slot": 4}]},
        ],
        batches=[
            {"id": "b1", "strength": 30, "subjects": ["math", "phys", "lab"]},
            {"id": "b2", "strength": 60, "subjects": ["math", "eng"]},
            {"id": "b3", "strength": 35, "subjects": ["phys", "eng", "lab"]},
        ],
    )


def get_engine():
    return TimetableEngine(attempts_per_alternative=2, num_workers=2)


def assert_structurally_valid(model, schedule):
    grid = model.grid
    busy = {}
    hours = {}
    for a in schedule.assignments:
        unit = model.units[a.unit]
        cells = {grid.cell(a.day, a.slot + k) for k in range(unit.duration)}
        assert a.slot + unit.duration <= grid.slots_per_day
        for key in (("f", a.faculty), ("r", a.room), ("b", unit.batch)):
            taken = busy.setdefault(key, set())
            assert not taken & cells, f"{key} double-booked"
            taken |= cells
        room = model.rooms[a.room]
        faculty = model.faculty[a.faculty]
        assert room.capacity >= model.batches[unit.batch].strength
        assert room.type.hosts(model.subjects[unit.subject].room_type)
        assert a.faculty in model.qualified_faculty[unit.subject]
        assert not any(faculty.blocked >> cell & 1 for cell in cells)
        assert not any(room.blocked >> cell & 1 for cell in cells)
        hours[a.faculty] = hours.get(a.faculty, 0) + unit.duration
    for f_idx, total in hours.items():
        assert total <= model.faculty[f_idx].max_hours


# ===========================
# Model builder
# ===========================

def test_build_model_expands_session_units():
    model = build_model(get_school_snapshot())

    assert len(model.units) == 16
    keys = [model.unit_key(u) for u in model.units]
    assert keys[:3] == [("b1", "math", 0), ("b1", "math", 1), ("b1", "math", 2)]
    assert [u.index for u in model.units] == list(range(16))
    lab = model.subject_index["lab"]
    assert all(u.duration == 2 for u in model.units if u.subject == lab)


def test_build_model_indices():
    model = build_model(get_school_snapshot())

    math = model.subject_index["math"]
    assert [model.faculty[f].id for f in model.qualified_faculty[math]] == ["f1", "f2"]

    b2 = model.batch_index["b2"]
    assert [model.rooms[r].id for r in model.suitable_rooms[(b2, math)]] == ["r-big"]

    b1 = model.batch_index["b1"]
    assert [model.rooms[r].id for r in model.suitable_rooms[(b1, math)]] == ["r-small", "r-big"]
    lab = model.subject_index["lab"]
    assert [model.rooms[r].id for r in model.suitable_rooms[(b1, lab)]] == ["r-lab"]


def test_build_model_is_independent_of_record_order():
    snapshot = get_school_snapshot()
    shuffled = EntitySnapshot(
        faculty=list(reversed(snapshot.faculty)),
        subjects=list(reversed(snapshot.subjects)),
        rooms=list(reversed(snapshot.rooms)),
        batches=list(reversed(snapshot.batches)),
    )

    first = build_model(snapshot)
    second = build_model(shuffled)
    again = build_model(snapshot)

    keys = [first.unit_key(u) for u in first.units]
    assert keys == [second.unit_key(u) for u in second.units]
    assert keys == [again.unit_key(u) for u in again.units]
    assert first.units == again.units


def test_build_model_batch_exceeds_every_room():
    """Scenario B: strength 50 with only a 40-seat room."""
    snapshot = get_snapshot(batches=[{"id": "b1", "strength": 50, "subjects": ["s1"]}])

    with pytest.raises(ModelError) as excinfo:
        build_model(snapshot)

    assert any("largest available room holds 40" in p for p in excinfo.value.problems)


def test_build_model_subject_without_qualified_faculty():
    snapshot = get_snapshot(faculty=[
        {"id": "f1", "name": "John Doe", "qualifications": [], "maxHoursPerWeek": 10}
    ])

    with pytest.raises(ModelError, match="no qualified faculty"):
        build_model(snapshot)


def test_build_model_ignores_undemanded_subject_without_faculty():
    snapshot = get_snapshot(subjects=[
        {"id": "s1", "name": "Mathematics", "sessionsPerWeek": 2},
        {"id": "s2", "name": "Latin", "sessionsPerWeek": 1},
    ])

    model = build_model(snapshot)

    assert len(model.units) == 2


def test_build_model_ignores_undemanded_subject_longer_than_a_day():
    snapshot = get_snapshot(subjects=[
        {"id": "s1", "name": "Mathematics", "sessionsPerWeek": 2},
        {"id": "s2", "name": "Workshop", "sessionsPerWeek": 1, "duration": 9},
    ])

    model = build_model(snapshot)

    assert len(model.units) == 2


def test_build_model_demanded_subject_longer_than_a_day():
    snapshot = get_snapshot(
        subjects=[{"id": "s1", "name": "Workshop", "sessionsPerWeek": 1, "duration": 9}],
        faculty=[{"id": "f1", "name": "A", "qualifications": ["s1"], "maxHoursPerWeek": 20}],
    )

    with pytest.raises(ModelError, match="needs 9 consecutive slots"):
        build_model(snapshot)


def test_build_model_rejects_shared_subject_name_reference():
    snapshot = get_snapshot(
        subjects=[
            {"id": "s1", "name": "Mathematics", "sessionsPerWeek": 2},
            {"id": "s2", "name": "mathematics ", "sessionsPerWeek": 1},
        ],
        batches=[{"id": "b1", "strength": 30, "subjects": ["Mathematics"]}],
    )

    with pytest.raises(ModelError, match="several subjects share"):
        build_model(snapshot)


def test_build_model_shared_subject_name_still_resolves_by_id():
    snapshot = get_snapshot(
        faculty=[{"id": "f1", "name": "A", "qualifications": ["s1", "Mathematics"], "maxHoursPerWeek": 10}],
        subjects=[
            {"id": "s1", "name": "Mathematics", "sessionsPerWeek": 2},
            {"id": "s2", "name": "Mathematics", "sessionsPerWeek": 1},
        ],
        batches=[{"id": "b1", "strength": 30, "subjects": ["s1"]}],
    )

    model = build_model(snapshot)

    s1 = model.subject_index["s1"]
    assert len(model.units) == 2
    assert all(u.subject == s1 for u in model.units)
    assert [model.faculty[f].id for f in model.qualified_faculty[s1]] == ["f1"]


def test_build_model_rejects_bad_day_start():
    with pytest.raises(ModelError, match="Invalid day start"):
        build_model(get_snapshot(), GridConfig(day_start="9am"))


def test_build_model_rejects_grid_past_midnight():
    with pytest.raises(ModelError, match="past midnight"):
        build_model(get_snapshot(), GridConfig(day_start="18:00", slots_per_day=8, slot_minutes=60))

    model = build_model(get_snapshot(), GridConfig(day_start="16:00", slots_per_day=8, slot_minutes=60))
    assert model.grid.slots_per_day == 8


def test_build_model_collects_all_problems():
    snapshot = get_snapshot(
        faculty=[{"id": "f1", "name": "John Doe", "qualifications": ["s1"], "maxHoursPerWeek": 10,
                  "unavailability": [{"day": "monday", "slot": 12}]}],
        batches=[
            {"id": "b1", "strength": 30, "subjects": ["s1", "nope"]},
            {"id": "b1", "strength": 80, "subjects": ["s1"]},
        ],
    )

    with pytest.raises(ModelError) as excinfo:
        build_model(snapshot)

    problems = excinfo.value.problems
    assert any("Duplicate batch id 'b1'" in p for p in problems)
    assert any("unknown subject 'nope'" in p for p in problems)
    assert any("80 students" in p for p in problems)
    assert any("outside the grid" in p for p in problems)


def test_build_model_requires_suitable_room_type():
    snapshot = get_snapshot(subjects=[
        {"id": "s1", "name": "Chemistry Lab", "sessionsPerWeek": 1, "roomType": "lab"}
    ])

    with pytest.raises(ModelError, match="No lab room"):
        build_model(snapshot)


def test_build_model_skips_unavailable_rooms():
    snapshot = get_snapshot(rooms=[
        {"id": "r1", "capacity": 40, "type": "lecture", "available": False},
        {"id": "r2", "capacity": 35, "type": "classroom"},
    ])

    model = build_model(snapshot)

    assert [r.id for r in model.rooms] == ["r2"]
    assert model.rooms[0].type is RoomType.LECTURE


def test_room_type_suitability():
    assert RoomType.HALL.hosts(RoomType.LECTURE)
    assert RoomType.LECTURE.hosts(RoomType.LECTURE)
    assert not RoomType.LECTURE.hosts(RoomType.LAB)
    assert not RoomType.LAB.hosts(RoomType.LECTURE)
    assert RoomType.parse("Classroom") is RoomType.LECTURE
    with pytest.raises(ValueError):
        RoomType.parse("garage")


# ===========================
# Search
# ===========================

def _run(model, budget=1000, relax=False, rng=None):
    constraints = ConstraintSet(model)
    search = BacktrackingSearch(model, constraints, rng)
    return search, search.run(SearchLimits(backtrack_budget=budget, deadline=float("inf"),
                                           relax_hour_cap=relax))


def test_search_orders_most_constrained_units_first():
    model = build_model(get_school_snapshot())
    search = BacktrackingSearch(model, ConstraintSet(model))

    sizes = [search.constraints.domain_size(u) for u in search.order]
    assert sizes == sorted(sizes)
    # b2 has a single room, lab units a single teacher and room
    first = model.unit_key(search.order[0])
    assert first[1] == "lab" or first[0] == "b2"


def test_search_prefers_least_loaded_faculty_and_smallest_room():
    model = build_model(get_snapshot(
        faculty=[
            {"id": "f1", "name": "A", "qualifications": ["s1"], "maxHoursPerWeek": 10},
            {"id": "f2", "name": "B", "qualifications": ["s1"], "maxHoursPerWeek": 10},
        ],
        rooms=[
            {"id": "r-big", "capacity": 90, "type": "lecture"},
            {"id": "r-fit", "capacity": 31, "type": "lecture"},
        ],
    ))

    _, outcome = _run(model)

    assert outcome.exhausted is None
    first, second = outcome.assignments
    assert {model.faculty[first.faculty].id, model.faculty[second.faculty].id} == {"f1", "f2"}
    assert all(model.rooms[a.room].id == "r-fit" for a in outcome.assignments)
    assert (first.day, first.slot) == (0, 0)


def test_search_complete_school_schedule():
    model = build_model(get_school_snapshot())

    _, outcome = _run(model)

    assert outcome.exhausted is None
    assert outcome.unassigned == []
    assert len(outcome.assignments) == len(model.units)


def test_search_partial_when_demand_exceeds_grid():
    """Scenario C: never double-books, reports unmet demand instead."""
    model = build_model(get_overloaded_snapshot(), GridConfig(days=["monday"], slots_per_day=4))

    _, outcome = _run(model, budget=200)

    assert outcome.exhausted in ("budget", "search")
    assert len(outcome.assignments) == 4
    assert len(outcome.unassigned) == 2
    assert outcome.conflicts == 2
    slots = [(a.day, a.slot) for a in outcome.assignments]
    assert len(slots) == len(set(slots))


def test_search_respects_weekly_hour_cap():
    model = build_model(get_snapshot(
        faculty=[{"id": "f1", "name": "A", "qualifications": ["s1"], "maxHoursPerWeek": 3}],
        subjects=[{"id": "s1", "name": "Mathematics", "sessionsPerWeek": 5}],
    ))

    _, outcome = _run(model, budget=50)

    assert len(outcome.assignments) == 3
    assert outcome.conflicts == 2
    assert outcome.overloaded == []


def test_search_relaxed_hour_cap_reports_overload():
    model = build_model(get_snapshot(
        faculty=[{"id": "f1", "name": "A", "qualifications": ["s1"], "maxHoursPerWeek": 3}],
        subjects=[{"id": "s1", "name": "Mathematics", "sessionsPerWeek": 5}],
    ))

    _, outcome = _run(model, budget=50, relax=True)

    assert len(outcome.assignments) == 5
    assert outcome.unassigned == []
    assert outcome.overloaded == [0]
    assert outcome.conflicts == 1


def test_search_places_scarcest_unit_first():
    # s2 has a single teacher, so it is placed before s1 takes f1
    model = build_model(
        get_snapshot(
            faculty=[
                {"id": "f1", "name": "A", "qualifications": ["s1", "s2"], "maxHoursPerWeek": 1},
                {"id": "f2", "name": "B", "qualifications": ["s1"], "maxHoursPerWeek": 1},
            ],
            subjects=[
                {"id": "s1", "name": "Mathematics", "sessionsPerWeek": 1},
                {"id": "s2", "name": "Statistics", "sessionsPerWeek": 1},
            ],
            rooms=[
                {"id": "r1", "capacity": 40, "type": "lecture"},
                {"id": "r2", "capacity": 40, "type": "lecture"},
            ],
            batches=[
                {"id": "b1", "strength": 30, "subjects": ["s1"]},
                {"id": "b2", "strength": 30, "subjects": ["s2"]},
            ],
        ),
        GridConfig(days=["monday"], slots_per_day=1),
    )

    _, outcome = _run(model)

    assert outcome.exhausted is None
    teachers = {model.unit_key(model.units[a.unit])[1]: model.faculty[a.faculty].id
                for a in outcome.assignments}
    assert teachers == {"s1": "f2", "s2": "f1"}
    assert outcome.backtracks == 0


def test_search_backtracks_out_of_dead_end():
    # The lab unit has the smaller domain and takes f1 first, which leaves the
    # lecture without a teacher in the only slot until the lab moves to f2.
    model = build_model(
        get_snapshot(
            faculty=[
                {"id": "f1", "name": "A", "qualifications": ["s-lab", "s-lec"], "maxHoursPerWeek": 5},
                {"id": "f2", "name": "B", "qualifications": ["s-lab"], "maxHoursPerWeek": 5},
            ],
            subjects=[
                {"id": "s-lab", "name": "Chemistry Lab", "sessionsPerWeek": 1, "roomType": "lab"},
                {"id": "s-lec", "name": "Chemistry", "sessionsPerWeek": 1},
            ],
            rooms=[
                {"id": "lab1", "capacity": 40, "type": "lab"},
                {"id": "r1", "capacity": 40, "type": "lecture"},
                {"id": "r2", "capacity": 40, "type": "lecture"},
                {"id": "r3", "capacity": 40, "type": "lecture"},
            ],
            batches=[
                {"id": "b1", "strength": 30, "subjects": ["s-lab"]},
                {"id": "b2", "strength": 30, "subjects": ["s-lec"]},
            ],
        ),
        GridConfig(days=["monday"], slots_per_day=1),
    )

    search, outcome = _run(model)

    assert model.unit_key(search.order[0]) == ("b1", "s-lab", 0)
    assert outcome.exhausted is None
    assert outcome.backtracks == 1
    teachers = {model.unit_key(model.units[a.unit])[1]: model.faculty[a.faculty].id
                for a in outcome.assignments}
    assert teachers == {"s-lab": "f2", "s-lec": "f1"}


def test_search_is_monotonic_in_backtrack_budget():
    model = build_model(get_overloaded_snapshot(), GridConfig(days=["monday", "tuesday"], slots_per_day=2))

    previous = None
    for budget in (0, 5, 50, 500):
        _, outcome = _run(model, budget=budget)
        if previous is not None:
            assert outcome.conflicts <= previous.conflicts
            assert len(outcome.assignments) >= len(previous.assignments)
        previous = outcome


def test_search_is_monotonic_in_time_limit():
    model = build_model(get_overloaded_snapshot(), GridConfig(days=["monday", "tuesday"], slots_per_day=2))

    outcomes = []
    for deadline in (0.0, float("inf")):
        search = BacktrackingSearch(model, ConstraintSet(model))
        outcomes.append(search.run(SearchLimits(backtrack_budget=500, deadline=deadline)))

    stopped, unbounded = outcomes
    assert stopped.exhausted == "time"
    assert unbounded.conflicts <= stopped.conflicts
    assert len(unbounded.assignments) >= len(stopped.assignments)


def test_search_with_zero_budget_still_returns_best_effort():
    model = build_model(get_overloaded_snapshot(), GridConfig(days=["monday"], slots_per_day=4))

    _, outcome = _run(model, budget=0)

    assert outcome.exhausted == "budget"
    assert len(outcome.assignments) == 4


def test_search_stops_at_deadline():
    model = build_model(get_overloaded_snapshot(), GridConfig(days=["monday"], slots_per_day=4))
    search = BacktrackingSearch(model, ConstraintSet(model))

    outcome = search.run(SearchLimits(backtrack_budget=10 ** 9, deadline=0.0))

    assert outcome.exhausted == "time"
    assert len(outcome.assignments) == 4


# ===========================
# Evaluator
# ===========================

def test_evaluator_statistics_and_score():
    model = build_model(get_snapshot())
    constraints = ConstraintSet(model)
    evaluator = SolutionEvaluator(model, constraints, SoftObjectives(model))

    spread = evaluator.evaluate([
        Assignment(unit=0, faculty=0, room=0, day=0, slot=0),
        Assignment(unit=1, faculty=0, room=0, day=2, slot=0),
    ])
    clustered = evaluator.evaluate([
        Assignment(unit=0, faculty=0, room=0, day=0, slot=0),
        Assignment(unit=1, faculty=0, room=0, day=0, slot=1),
    ])

    assert spread.complete and clustered.complete
    assert spread.total_slots == spread.assigned_slots == 2
    assert spread.score > clustered.score


def test_evaluator_counts_unmet_demand():
    model = build_model(get_snapshot())
    evaluator = SolutionEvaluator(model, ConstraintSet(model), SoftObjectives(model))

    schedule = evaluator.evaluate([Assignment(unit=1, faculty=0, room=0, day=3, slot=5)])

    assert schedule.total_slots == 2
    assert schedule.assigned_slots == 1
    assert schedule.conflicts == 1
    assert schedule.unassigned == [0]
    assert not schedule.complete


def test_evaluator_rejects_double_booking():
    model = build_model(get_snapshot())
    evaluator = SolutionEvaluator(model, ConstraintSet(model), SoftObjectives(model))

    with pytest.raises(ScheduleInvariantError):
        evaluator.evaluate([
            Assignment(unit=0, faculty=0, room=0, day=1, slot=2),
            Assignment(unit=1, faculty=0, room=0, day=1, slot=2),
        ])


def test_evaluator_rejects_unavailable_faculty():
    model = build_model(get_snapshot(faculty=[
        {"id": "f1", "name": "A", "qualifications": ["s1"], "maxHoursPerWeek": 10,
         "unavailability": ["tuesday:4"]}
    ]))
    evaluator = SolutionEvaluator(model, ConstraintSet(model), SoftObjectives(model))

    with pytest.raises(ScheduleInvariantError, match="unavailable"):
        evaluator.evaluate([Assignment(unit=0, faculty=0, room=0, day=1, slot=4)])


def test_soft_objectives_terms():
    model = build_model(get_snapshot(
        faculty=[{"id": "f1", "name": "A", "qualifications": ["s1"], "maxHoursPerWeek": 10,
                  "preferredSlots": ["monday:0"]}],
    ))
    objectives = SoftObjectives(model)

    terms = objectives.terms([
        Assignment(unit=0, faculty=0, room=0, day=0, slot=0),
        Assignment(unit=1, faculty=0, room=0, day=0, slot=3),
    ])

    assert terms["preferred_slot"] == 1
    assert terms["batch_gaps"] == 2
    assert terms["subject_same_day"] == 1
    assert terms["faculty_clustering"] == 2


# ===========================
# Engine
# ===========================

def test_engine_scenario_a():
    schedules = get_engine().generate(get_snapshot(), GenerationOptions(max_alternatives=3))

    best = schedules[0]
    assert best.assigned_slots == 2
    assert best.conflicts == 0
    assert 1 <= len(schedules) <= 3
    assert len({s.signature() for s in schedules}) == len(schedules)


def test_engine_scenario_b_raises_before_search():
    snapshot = get_snapshot(batches=[{"id": "b1", "strength": 50, "subjects": ["s1"]}])

    with pytest.raises(ModelError):
        get_engine().generate(snapshot)


def test_engine_scenario_c_partial():
    options = GenerationOptions(max_alternatives=2, backtrack_budget=100)
    grid = GridConfig(days=["monday"], slots_per_day=4)

    schedules = get_engine().generate(get_overloaded_snapshot(), options, grid)

    model = build_model(get_overloaded_snapshot(), grid)
    for schedule in schedules:
        assert schedule.conflicts > 0 or schedule.assigned_slots < schedule.total_slots
        assert_structurally_valid(model, schedule)


def test_engine_is_monotonic_in_backtrack_budget():
    grid = GridConfig(days=["monday", "tuesday"], slots_per_day=2)
    engine = TimetableEngine(attempts_per_alternative=2, num_workers=2)

    previous = None
    for budget in (0, 10, 100, 1000):
        options = GenerationOptions(max_alternatives=1, backtrack_budget=budget, time_limit=60, seed=3)
        best = engine.generate(get_overloaded_snapshot(), options, grid)[0]
        if previous is not None:
            assert best.conflicts <= previous.conflicts
            assert best.assigned_slots >= previous.assigned_slots
        previous = best


def test_engine_schedules_are_valid():
    snapshot = get_school_snapshot()
    model = build_model(snapshot)

    schedules = get_engine().generate_for_model(model, GenerationOptions(max_alternatives=3, seed=11))

    for schedule in schedules:
        assert schedule.complete
        assert_structurally_valid(model, schedule)
    scores = [s.score for s in schedules]
    assert scores == sorted(scores, reverse=True)


def test_engine_is_deterministic():
    options = GenerationOptions(max_alternatives=2, seed=5, time_limit=60)

    first = get_engine().generate(get_school_snapshot(), options)
    second = get_engine().generate(get_school_snapshot(), options)

    assert first[0].signature() == second[0].signature()
    assert [s.signature() for s in first] == [s.signature() for s in second]


def test_engine_cpsat_strategy():
    snapshot = get_school_snapshot()
    model = build_model(snapshot)

    schedules = get_engine().generate_for_model(model, GenerationOptions(strategy="cpsat", time_limit=20))

    assert len(schedules) == 1
    assert schedules[0].strategy == "cpsat"
    assert schedules[0].complete
    assert_structurally_valid(model, schedules[0])


def test_engine_cpsat_partial_never_double_books():
    grid = GridConfig(days=["monday"], slots_per_day=4)
    model = build_model(get_overloaded_snapshot(), grid)

    schedule = get_engine().generate_for_model(model, GenerationOptions(strategy="cpsat", time_limit=10))[0]

    assert schedule.assigned_slots == 4
    assert schedule.conflicts == 2
    assert_structurally_valid(model, schedule)


def test_select_alternatives_deduplicates_and_ranks():
    model = build_model(get_snapshot())
    evaluator = SolutionEvaluator(model, ConstraintSet(model), SoftObjectives(model))
    a = [Assignment(unit=0, faculty=0, room=0, day=0, slot=0),
         Assignment(unit=1, faculty=0, room=0, day=2, slot=0)]
    b = [Assignment(unit=0, faculty=0, room=0, day=0, slot=0),
         Assignment(unit=1, faculty=0, room=0, day=0, slot=1)]
    c = [Assignment(unit=0, faculty=0, room=0, day=0, slot=0)]

    schedules = [
        evaluator.evaluate(c, run=0),
        evaluator.evaluate(b, run=1),
        evaluator.evaluate(a, run=2),
        evaluator.evaluate(a, run=3),
    ]

    selected = select_alternatives(schedules, 5)

    assert [s.run for s in selected] == [2, 1, 0]
