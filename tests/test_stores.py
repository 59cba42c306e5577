import json

from conftest import RecordingDB, make_questions
from course_directory import CourseDirectory
from exam_records import ExamInstanceStore, ExamResultStore


def test_instance_create_is_insert_if_absent():
    db = RecordingDB()
    questions = make_questions(2)
    db.returning.append([{"id": 1, "student_id": "s1", "course_id": "c1", "questions": questions, "created_at": None}])

    row, created = ExamInstanceStore(db.fetch_one, db.execute_returning).create("s1", "c1", questions)

    assert created is True
    assert row["questions"] == questions
    assert "ON CONFLICT (student_id, course_id) DO NOTHING" in db.calls[0][1]


def test_instance_create_returns_existing_row_on_conflict():
    existing = {"id": 9, "student_id": "s1", "course_id": "c1",
                "questions": json.dumps(make_questions(1)), "created_at": None}
    db = RecordingDB(one=existing)

    row, created = ExamInstanceStore(db.fetch_one, db.execute_returning).create("s1", "c1", make_questions(3))

    assert created is False
    assert row["id"] == 9
    assert row["questions"] == make_questions(1)


def test_result_create_reports_duplicate_as_none():
    db = RecordingDB()
    store = ExamResultStore(db.fetch_one, db.fetch_all, db.execute_returning)

    assert store.create("s1", "c1", 7, 10, 70) is None
    sql, params = db.calls[0][1], db.calls[0][2]
    assert "DO NOTHING" in sql
    assert params == ("s1", "c1", 7, 10, 70)


def test_results_for_course_are_ordered_for_ranking():
    db = RecordingDB(rows=[{"student_id": "s1", "score": 90, "submitted_at": None}])
    rows = ExamResultStore(db.fetch_one, db.fetch_all, db.execute_returning).for_course("c1")
    assert rows[0]["student_id"] == "s1"
    assert "ORDER BY score DESC, submitted_at ASC, student_id ASC" in db.calls[0][1]


def test_total_sessions_counts_rows():
    db = RecordingDB(one={"n": 16})
    assert CourseDirectory(db.fetch_one, db.fetch_all, db.execute).total_sessions("c1") == 16
    assert CourseDirectory(RecordingDB().fetch_one, db.fetch_all, db.execute).total_sessions("c1") == 0


def test_class_members_maps_ids_to_names():
    db = RecordingDB(rows=[{"user_id": "s1", "full_name": "Sari"}])
    directory = CourseDirectory(db.fetch_one, db.fetch_all, db.execute)

    assert directory.class_members(["s1", "s2"], "k1") == {"s1": "Sari"}
    assert db.calls[0][2] == (["s1", "s2"], "k1")
    assert directory.class_members([], "k1") == {}
    assert len(db.calls) == 1


def test_mark_completed_sets_flag():
    db = RecordingDB()
    CourseDirectory(db.fetch_one, db.fetch_all, db.execute).mark_completed("s1", "c1")
    kind, sql, params = db.calls[0]
    assert kind == "execute"
    assert "is_completed = true" in sql
    assert params == ("s1", "c1")
