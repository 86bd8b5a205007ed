def _pick_delegate(staff, own_user_id):
    """
    Choose whose agenda a manager sees by default.

    First another staff member who is not a manager, then any other staff
    member, in roster order. None when the roster has nobody else.
    """
    others = [
        member for member in staff or []
        if member.get('id') and member.get('id') != own_user_id
        and member.get('is_staff') is True
    ]
    for member in others:
        if member.get('is_manager') is not True:
            return member['id']
    if others:
        return others[0]['id']
    return None


def resolve_intranet_mirror_user_id(session_user_id, is_manager, staff_candidates):
    # staff see their own
    if not is_manager:
        return session_user_id
    return _pick_delegate(staff_candidates, session_user_id) or session_user_id


def resolve_universal_agenda_user_id(staff, fallback_user_id):
    return _pick_delegate(staff, fallback_user_id) or fallback_user_id
