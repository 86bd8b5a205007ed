from staff_util import resolve_intranet_mirror_user_id, resolve_universal_agenda_user_id

MANAGER = {"id": "manager-1", "is_staff": True, "is_manager": True}
STAFF = {"id": "staff-1", "is_staff": True, "is_manager": False}


def test_non_manager_sees_own_agenda():
    result = resolve_intranet_mirror_user_id(
        "staff-1", False, [{"id": "staff-2", "is_staff": True, "is_manager": False}])
    assert result == "staff-1"


def test_manager_mirrors_non_manager_staff():
    assert resolve_intranet_mirror_user_id("manager-1", True, [MANAGER, STAFF]) == "staff-1"


def test_manager_falls_back_to_own_id_without_other_staff():
    assert resolve_intranet_mirror_user_id("manager-1", True, [MANAGER]) == "manager-1"


def test_manager_falls_back_to_other_manager_on_staff():
    other_manager = {"id": "manager-2", "is_staff": True, "is_manager": True}
    assert resolve_intranet_mirror_user_id("manager-1", True, [MANAGER, other_manager]) == "manager-2"


def test_roster_order_breaks_ties_and_unknown_flags_count_as_non_manager():
    candidates = [
        {"id": "not-staff", "is_staff": None, "is_manager": False},
        {"id": "manager-2", "is_staff": True, "is_manager": True},
        {"id": "staff-a", "is_staff": True, "is_manager": None},
        {"id": "staff-b", "is_staff": True, "is_manager": False},
    ]
    assert resolve_intranet_mirror_user_id("manager-1", True, candidates) == "staff-a"


def test_universal_agenda_prefers_non_manager_staff():
    assert resolve_universal_agenda_user_id([MANAGER, STAFF], "manager-1") == "staff-1"


def test_universal_agenda_falls_back_without_staff():
    assert resolve_universal_agenda_user_id([], "manager-1") == "manager-1"


def test_universal_agenda_skips_empty_ids():
    staff = [{"id": "", "is_staff": True, "is_manager": False}]
    assert resolve_universal_agenda_user_id(staff, "manager-1") == "manager-1"


def test_both_resolvers_agree_for_managers():
    rosters = [
        [MANAGER, STAFF],
        [MANAGER],
        [],
        [{"id": "manager-2", "is_staff": True, "is_manager": True}, STAFF],
    ]
    for roster in rosters:
        assert (resolve_intranet_mirror_user_id("manager-1", True, roster)
                == resolve_universal_agenda_user_id(roster, "manager-1"))
