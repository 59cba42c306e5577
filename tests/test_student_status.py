from student_status import create_student_status_blueprint

COURSE = "course-1"
STUDENT = "stu-1"


def _client(make_app, deps):
    return make_app(lambda app: app.register_blueprint(create_student_status_blueprint("", deps))).test_client()


def test_status_before_final_exam(make_app, exam_deps):
    exam_deps["courses"].set_sessions(COURSE, 16)
    exam_deps["courses"].set_progress(STUDENT, COURSE, 10)

    body = _client(make_app, exam_deps).get(f"/student/courses/{COURSE}/status").get_json()

    assert body["checkpoint"] == 10
    assert body["total_sessions"] == 16
    assert body["percentage"] == 63  # 62.5 rounds half up
    assert body["is_completed"] is False
    assert body["final_exam"] == {"available": False, "generated": False, "created_at": None}


def test_status_after_exam_generated(make_app, exam_deps):
    exam_deps["courses"].set_sessions(COURSE, 12)
    exam_deps["courses"].set_progress(STUDENT, COURSE, 12)
    exam_deps["exam_instances"].create(STUDENT, COURSE, [])

    body = _client(make_app, exam_deps).get(f"/student/courses/{COURSE}/status").get_json()

    assert body["percentage"] == 100
    assert body["final_exam"]["available"] is True
    assert body["final_exam"]["generated"] is True
    assert body["final_exam"]["created_at"] is not None


def test_status_without_sessions_reports_zero_percent(make_app, exam_deps):
    exam_deps["courses"].set_progress(STUDENT, COURSE, 3)
    body = _client(make_app, exam_deps).get(f"/student/courses/{COURSE}/status").get_json()
    assert body["total_sessions"] == 0
    assert body["percentage"] == 0


def test_status_without_progress_is_not_found(make_app, exam_deps):
    resp = _client(make_app, exam_deps).get(f"/student/courses/{COURSE}/status")
    assert resp.status_code == 404
