"""Teacher routes: courses, exam management, results and grade entry."""

from datetime import timedelta

from school_lms.utils import utcnow


def _exam_payload(course_id, **overrides):
    payload = {
        "course_id": course_id,
        "title": "Final Exam",
        "description": "All chapters",
        "start_time": (utcnow() - timedelta(minutes=5)).isoformat(),
        "duration": 90,
        "total_score": 100,
        "questions": [
            {"type": "single", "content": "2 + 2 = ?", "options": ["3", "4"], "correct_answer": "4", "score": 5},
            {"type": "boolean", "content": "Python is typed dynamically", "correct_answer": "true", "score": 5},
            {"type": "essay", "content": "Explain <b>recursion</b><script>alert(1)</script>", "score": 10},
        ],
    }
    payload.update(overrides)
    return payload


class TestCourses:
    def test_create_course_and_enroll(self, client, login_as, teacher_user, student_user):
        login_as(teacher_user)

        created = client.post("/courses", json={"code": "ma201", "title": "Linear Algebra"})
        assert created.status_code == 201
        course_id = created.json()["id"]
        assert created.json()["code"] == "MA201"

        enrolled = client.post(f"/courses/{course_id}/students", json={"student_id": student_user.id})
        assert enrolled.status_code == 201
        # Enrolling twice is harmless
        assert client.post(f"/courses/{course_id}/students", json={"student_id": student_user.id}).status_code == 201

        students = client.get(f"/courses/{course_id}/students").json()
        assert [s["id"] for s in students] == [student_user.id]

    def test_student_cannot_create_course(self, client, login_as, student_user):
        login_as(student_user)
        assert client.post("/courses", json={"code": "X1", "title": "X"}).status_code == 403

    def test_remove_student(self, client, login_as, teacher_user, enrolled_student, course):
        login_as(teacher_user)

        removed = client.delete(f"/courses/{course.id}/students/{enrolled_student.id}")
        assert removed.status_code == 200
        assert client.get(f"/courses/{course.id}/students").json() == []

        again = client.delete(f"/courses/{course.id}/students/{enrolled_student.id}")
        assert again.status_code == 400
        assert again.json()["detail"] == "Student is not enrolled in this course"

    def test_remove_unknown_student_or_course(self, client, login_as, teacher_user, course):
        login_as(teacher_user)
        assert client.delete(f"/courses/{course.id}/students/9999").status_code == 404
        assert client.delete("/courses/9999/students/1").status_code == 404

    def test_course_list_depends_on_role(self, client, login_as, teacher_user, enrolled_student, other_student, course):
        login_as(teacher_user)
        assert [c["code"] for c in client.get("/courses").json()["items"]] == ["CS101"]

        login_as(enrolled_student)
        listed = client.get("/courses").json()
        assert listed["total_items"] == 1
        assert listed["items"][0]["teacher_name"] == "Dr. Wang Teacher"

        login_as(other_student)
        assert client.get("/courses").json()["total_items"] == 0

    def test_course_detail_access(self, client, login_as, enrolled_student, other_student, course):
        login_as(enrolled_student)
        detail = client.get(f"/courses/{course.id}")
        assert detail.status_code == 200
        assert detail.json()["student_count"] == 1
        assert detail.json()["title"] == "Introduction to Programming"

        login_as(other_student)
        assert client.get(f"/courses/{course.id}").status_code == 403
        assert client.get("/courses/9999").status_code == 404


class TestExamManagement:
    def test_create_exam_with_questions(self, client, login_as, teacher_user, course):
        login_as(teacher_user)

        created = client.post("/exams", json=_exam_payload(course.id))
        assert created.status_code == 201
        exam = created.json()

        detail = client.get(f"/exams/{exam['id']}").json()
        assert [q["order"] for q in detail["questions"]] == [1, 2, 3]
        assert [q["type"] for q in detail["questions"]] == ["single", "boolean", "essay"]
        assert detail["questions"][0]["options"] == ["3", "4"]
        assert "<script>" not in detail["questions"][2]["content"]
        assert "<b>recursion</b>" in detail["questions"][2]["content"]

    def test_end_time_follows_duration(self, client, login_as, teacher_user, course):
        login_as(teacher_user)
        payload = _exam_payload(course.id, start_time="2026-05-01T08:00:00", duration=45)

        exam = client.post("/exams", json=payload).json()

        assert exam["end_time"].startswith("2026-05-01T08:45:00")

    def test_invalid_question_rolls_back_exam(self, client, login_as, teacher_user, course):
        login_as(teacher_user)
        payload = _exam_payload(course.id, questions=[{"type": "single", "content": "Pick", "score": 5}])

        response = client.post("/exams", json=payload)

        assert response.status_code == 400
        assert client.get("/exams").json() == []

    def test_unknown_course(self, client, login_as, teacher_user):
        login_as(teacher_user)
        assert client.post("/exams", json=_exam_payload(9999)).status_code == 404

    def test_list_by_window(self, client, login_as, teacher_user, open_exam, upcoming_exam, finished_exam):
        login_as(teacher_user)

        assert [e["id"] for e in client.get("/exams", params={"status": "upcoming"}).json()] == [upcoming_exam.id]
        assert [e["id"] for e in client.get("/exams", params={"status": "ongoing"}).json()] == [open_exam.id]
        assert [e["id"] for e in client.get("/exams", params={"status": "ended"}).json()] == [finished_exam.id]

    def test_delete_blocked_once_taken(self, client, login_as, teacher_user, enrolled_student, open_exam, upcoming_exam):
        login_as(enrolled_student)
        client.post(f"/students/exams/{open_exam.id}/start")

        login_as(teacher_user)
        assert client.delete(f"/exams/{open_exam.id}").status_code == 400
        assert client.delete(f"/exams/{upcoming_exam.id}").status_code == 200
        assert client.get(f"/exams/{upcoming_exam.id}").status_code == 404

    def test_results(self, client, login_as, teacher_user, enrolled_student, enrolled_other_student, open_exam):
        for student in (enrolled_student, enrolled_other_student):
            login_as(student)
            client.post(f"/students/exams/{open_exam.id}/start")
            client.post(f"/students/exams/{open_exam.id}/submit")

        login_as(teacher_user)
        results = client.get(f"/exams/{open_exam.id}/results").json()

        assert {r["student_name"] for r in results} == {"Alice Student", "Bob Student"}
        assert all(r["status"] == "submitted" for r in results)

    def test_update_replaces_questions_and_recomputes_end(self, client, login_as, teacher_user, upcoming_exam):
        login_as(teacher_user)
        payload = {
            "title": "Midterm (revised)",
            "start_time": "2026-06-01T10:00:00",
            "duration": 30,
            "total_score": 50,
            "questions": [
                {"type": "essay", "content": "Describe a linked list", "score": 20},
                {"type": "boolean", "content": "Tuples are mutable", "correct_answer": "false", "score": 30},
            ],
        }

        updated = client.put(f"/exams/{upcoming_exam.id}", json=payload)
        assert updated.status_code == 200
        assert updated.json()["end_time"].startswith("2026-06-01T10:30:00")
        assert updated.json()["total_score"] == 50

        detail = client.get(f"/exams/{upcoming_exam.id}").json()
        assert detail["title"] == "Midterm (revised)"
        assert [(q["order"], q["type"]) for q in detail["questions"]] == [(1, "essay"), (2, "boolean")]

    def test_update_without_questions_keeps_them(self, client, login_as, teacher_user, upcoming_exam):
        login_as(teacher_user)
        payload = {"title": "Renamed", "start_time": "2026-06-01T10:00:00", "duration": 60}

        assert client.put(f"/exams/{upcoming_exam.id}", json=payload).status_code == 200

        detail = client.get(f"/exams/{upcoming_exam.id}").json()
        assert [q["content"] for q in detail["questions"]] == ["Question 1", "Question 2", "Question 3"]

    def test_update_blocked_once_taken(self, client, login_as, teacher_user, enrolled_student, open_exam):
        login_as(enrolled_student)
        client.post(f"/students/exams/{open_exam.id}/start")

        login_as(teacher_user)
        payload = {"title": "Too late", "start_time": "2026-06-01T10:00:00", "duration": 60}
        response = client.put(f"/exams/{open_exam.id}", json=payload)

        assert response.status_code == 400
        assert client.get(f"/exams/{open_exam.id}").json()["title"] == "Midterm"

    def test_update_missing_exam(self, client, login_as, teacher_user):
        login_as(teacher_user)
        payload = {"title": "X", "start_time": "2026-06-01T10:00:00", "duration": 60}
        assert client.put("/exams/9999", json=payload).status_code == 404


class TestGradeEntryApi:
    def test_create_update_list_delete(self, client, login_as, teacher_user, student_user, course):
        login_as(teacher_user)
        payload = {
            "student_id": student_user.id,
            "course_id": course.id,
            "semester": "2025-2026-1",
            "class_score": 80,
            "rain_score": 90,
            "exam_score": 70,
            "total_score": 76,
        }

        created = client.post("/grades", json=payload)
        assert created.status_code == 201

        updated = client.post("/grades", json={**payload, "total_score": 78, "comment": "Improved"})
        assert updated.status_code == 200
        assert updated.json()["id"] == created.json()["id"]
        assert updated.json()["total_score"] == 78

        listed = client.get("/grades", params={"course_id": course.id}).json()
        assert len(listed) == 1

        assert client.delete(f"/grades/{created.json()['id']}").status_code == 200
        assert client.delete(f"/grades/{created.json()['id']}").status_code == 404

    def test_out_of_range_score(self, client, login_as, teacher_user, student_user, course):
        login_as(teacher_user)
        response = client.post(
            "/grades",
            json={"student_id": student_user.id, "course_id": course.id, "semester": "s1", "exam_score": 101},
        )
        assert response.status_code == 400
