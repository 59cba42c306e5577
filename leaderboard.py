# leaderboard.py — class ranking for a course's final exam

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from generation_status import as_utc

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(row: Dict[str, Any]):
    # missing submitted_at sorts after every real timestamp
    submitted = as_utc(row.get("submitted_at"))
    return (
        -int(row.get("score") or 0),
        submitted is None,
        submitted or _EARLIEST,
        str(row.get("student_id")),
    )


def build_leaderboard(results: List[Dict[str, Any]], members: Dict[str, Any],
                      requesting_id: Optional[str]) -> Dict[str, Any]:
    """
    results: [{student_id, score, submitted_at}] for the course.
    members: {student_id: full_name} for students in the class.
    Ranks are 1..K over class members only, best score first, earlier
    submission first on ties.
    """
    me = str(requesting_id) if requesting_id is not None else None
    entries = []
    for row in sorted(results, key=_sort_key):
        sid = str(row.get("student_id"))
        if sid not in members:
            continue
        entries.append({
            "rank": len(entries) + 1,
            "student_id": sid,
            "name": members[sid],
            "score": row.get("score"),
            "submitted_at": row.get("submitted_at"),
            "isCurrentUser": sid == me,
        })
    current = next((e["rank"] for e in entries if e["isCurrentUser"]), None)
    return {
        "total_participants": len(entries),
        "leaderboard": entries,
        "current_user_rank": current,
    }


def leaderboard(results_store, courses, course_id: str, class_id: str,
                requesting_id: Optional[str]) -> Dict[str, Any]:
    results = results_store.for_course(course_id)
    members = courses.class_members([r["student_id"] for r in results], class_id)
    return build_leaderboard(results, members, requesting_id)
