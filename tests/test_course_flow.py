import unittest
import json
from unittest.mock import patch, MagicMock
from datetime import datetime, timedelta
from bson import ObjectId
import requests
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
os.environ['FLASK_ENV'] = 'testing'

from flask_jwt_extended import create_access_token
from main import create_app
from config import TestingConfig
from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import utcnow
from learnsy.courses.services import CourseService
from learnsy.enrollments.services import EnrollmentService
from learnsy.materials.models import sanitize_content
from learnsy.materials.services import MaterialService
from learnsy.enrollments import routes as enrollment_routes
from learnsy.study_sessions import routes as session_routes
from learnsy.client import LearnsyClient, SessionTracker, APIClientError

def mock_db():
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: getattr(db, name)
    return db

class TestCourseService(unittest.TestCase):
    """Creación y publicación de cursos"""

    def setUp(self):
        self.db = mock_db()
        self.service = CourseService(db=self.db)
        self.faculty_id = str(ObjectId())

    def test_create_course_with_module_count(self):
        self.db.courses.insert_one.return_value = MagicMock(inserted_id=ObjectId())
        course = self.service.create_course(
            {"title": "Algebra", "description": "Basics", "modules": 4}, self.faculty_id
        )
        self.assertEqual(len(course["modules"]), 4)
        self.assertEqual(course["total_lessons"], 4)
        self.assertFalse(course["is_published"])

    def test_create_course_invalid_modules(self):
        with self.assertRaises(AppException) as ctx:
            self.service.create_course({"title": "A", "description": "B", "modules": -2}, self.faculty_id)
        self.assertEqual(ctx.exception.code, 400)

    def test_create_course_rejects_non_list_lessons(self):
        with self.assertRaises(AppException) as ctx:
            self.service.create_course(
                {"title": "A", "description": "B", "modules": [{"title": "M1", "lessons": 5}]}, self.faculty_id
            )
        self.assertEqual(ctx.exception.code, 400)
        self.db.courses.insert_one.assert_not_called()

    def test_view_of_stored_malformed_course(self):
        course = {"_id": ObjectId(), "faculty_id": ObjectId(self.faculty_id),
                  "modules": [{"title": "M1", "lessons": 5}]}
        self.assertEqual(self.service.course_view(course)["total_lessons"], 1)

    def test_publish_with_target_is_idempotent(self):
        course = {"_id": ObjectId(), "faculty_id": ObjectId(self.faculty_id), "is_published": True}
        self.db.courses.find_one.return_value = course

        result = self.service.set_published(str(course["_id"]), self.faculty_id, True)

        self.assertTrue(result["is_published"])
        self.db.courses.update_one.assert_not_called()

    def test_publish_without_target_toggles(self):
        course = {"_id": ObjectId(), "faculty_id": ObjectId(self.faculty_id), "is_published": False}
        self.db.courses.find_one.return_value = course

        result = self.service.set_published(str(course["_id"]), self.faculty_id)

        self.assertTrue(result["is_published"])
        update = self.db.courses.update_one.call_args[0][1]
        self.assertEqual(update["$set"]["is_published"], True)

    def test_publish_by_other_faculty_forbidden(self):
        self.db.courses.find_one.return_value = {"_id": ObjectId(), "faculty_id": ObjectId()}
        with self.assertRaises(AppException) as ctx:
            self.service.set_published(str(ObjectId()), self.faculty_id, True)
        self.assertEqual(ctx.exception.code, 403)


class TestEnrollmentService(unittest.TestCase):

    def setUp(self):
        self.db = mock_db()
        self.progress = MagicMock()
        self.service = EnrollmentService(db=self.db, progress_service=self.progress)
        self.student_id = str(ObjectId())
        self.course = {"_id": ObjectId(), "title": "Algebra", "is_published": True,
                       "modules": [{"title": "M1", "lessons": []}]}
        self.db.courses.find_one.return_value = self.course

    def test_enroll_creates_enrollment_and_progress(self):
        self.db.enrollments.find_one.return_value = None
        self.db.enrollments.insert_one.return_value = MagicMock(inserted_id=ObjectId())

        enrollment = self.service.enroll(self.student_id, str(self.course["_id"]))

        self.assertEqual(enrollment["status"], "active")
        self.assertEqual(enrollment["progress"]["percentage"], 0)
        self.assertEqual(enrollment["course"]["title"], "Algebra")
        self.progress.get_or_create.assert_called_once()
        counters = self.db.courses.update_one.call_args[0][1]
        self.assertEqual(counters["$inc"], {"enrollment_count": 1})

    def test_duplicate_enrollment_conflicts(self):
        """Test segunda inscripción activa responde 409 sin crear otra"""
        existing = {"_id": ObjectId(), "status": "active"}
        self.db.enrollments.find_one.return_value = existing

        with self.assertRaises(AppException) as ctx:
            self.service.enroll(self.student_id, str(self.course["_id"]))

        self.assertEqual(ctx.exception.code, 409)
        self.assertEqual(ctx.exception.details["enrollment_id"], str(existing["_id"]))
        self.db.enrollments.insert_one.assert_not_called()
        self.db.courses.update_one.assert_not_called()

    def test_dropped_enrollment_is_reactivated(self):
        dropped = {"_id": ObjectId(), "status": "dropped"}
        self.db.enrollments.find_one.side_effect = [dropped, dict(dropped, status="active")]
        self.db.enrollments.update_one.return_value = MagicMock(modified_count=1)

        enrollment = self.service.enroll(self.student_id, str(self.course["_id"]))

        self.assertEqual(enrollment["status"], "active")
        self.db.enrollments.insert_one.assert_not_called()

    def test_unpublished_course_rejected(self):
        self.course["is_published"] = False
        with self.assertRaises(AppException) as ctx:
            self.service.enroll(self.student_id, str(self.course["_id"]))
        self.assertEqual(ctx.exception.code, 400)

    def test_missing_course(self):
        self.db.courses.find_one.return_value = None
        with self.assertRaises(AppException) as ctx:
            self.service.enroll(self.student_id, str(ObjectId()))
        self.assertEqual(ctx.exception.code, 404)


class TestCourseToMaterialsScenario(unittest.TestCase):
    """Curso publicado, inscripción y primer material visible para el estudiante"""

    def setUp(self):
        self.db = mock_db()
        self.faculty_id = str(ObjectId())
        self.student_id = str(ObjectId())
        self.subscriptions = MagicMock()
        self.subscriptions.get_tier.return_value = "free"
        self.courses = CourseService(db=self.db)
        self.enrollments = EnrollmentService(db=self.db, progress_service=MagicMock())
        self.materials = MaterialService(db=self.db, progress_service=MagicMock(),
                                         subscription_service=self.subscriptions)

    def test_end_to_end(self):
        course_oid = ObjectId()
        self.db.courses.insert_one.return_value = MagicMock(inserted_id=course_oid)
        self.courses.create_course({"title": "Algebra", "description": "Basics", "modules": 2},
                                   self.faculty_id)
        course = self.db.courses.insert_one.call_args[0][0]
        course["_id"] = course_oid
        self.db.courses.find_one.return_value = course

        self.courses.set_published(str(course_oid), self.faculty_id, True)
        self.assertTrue(course["is_published"])

        self.db.enrollments.find_one.return_value = None
        self.db.enrollments.insert_one.return_value = MagicMock(inserted_id=ObjectId())
        self.enrollments.enroll(self.student_id, str(course_oid))
        enrollment = self.db.enrollments.insert_one.call_args[0][0]

        self.db.enrollments.find.return_value.sort.return_value = [enrollment]
        self.db.courses.find.return_value = [course]
        self.db.progress.find.return_value = []
        my_enrollments = self.enrollments.get_student_enrollments(self.student_id)
        self.assertEqual(len(my_enrollments), 1)
        self.assertEqual(my_enrollments[0]["course"]["id"], str(course_oid))
        self.assertEqual(my_enrollments[0]["progress"]["percentage"], 0)

        self.db.materials.count_documents.return_value = 0
        self.db.materials.insert_one.return_value = MagicMock(inserted_id=ObjectId())
        self.materials.create_material(self.faculty_id, {
            "title": "Welcome", "type": "video", "course_id": str(course_oid),
            "external_url": "https://videos.example.com/welcome.mp4"
        })
        material = self.db.materials.insert_one.call_args[0][0]

        self.db.materials.find.return_value.sort.return_value = [material]
        self.db.enrollments.find_one.return_value = enrollment
        self.db.material_completions.find.return_value = []
        self.db.progress.find_one.return_value = None
        listing = self.materials.course_materials(str(course_oid), self.student_id, "student")

        self.assertEqual(len(listing["materials"]), 1)
        self.assertTrue(listing["is_enrolled"])
        self.assertFalse(listing["materials"][0]["is_locked"])
        self.assertEqual(listing["progress"], 0)

    def test_text_content_is_sanitized(self):
        cleaned = sanitize_content('<p onclick="x()">Hi<script>alert(1)</script></p>')
        self.assertNotIn("<script", cleaned)
        self.assertNotIn("onclick", cleaned)
        self.assertTrue(cleaned.startswith("<p>Hi"))


class TestCourseFlowRoutes(unittest.TestCase):
    """Flujo del estudiante a través de la API"""

    def setUp(self):
        self.app = create_app(TestingConfig)
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()

        self.db = mock_db()
        self.patches = [
            patch('learnsy.shared.decorators.get_db', return_value=self.db),
            patch.object(enrollment_routes.enrollment_service, '_db', self.db),
            patch.object(enrollment_routes.enrollment_service, '_progress_service', MagicMock()),
            patch.object(session_routes.study_session_service, '_db', self.db),
        ]
        for p in self.patches:
            p.start()

        self.student = {"_id": ObjectId(), "email": "ana@example.com", "role": "student", "is_active": True}
        self.db.users.find_one.return_value = self.student
        token = create_access_token(identity=str(self.student["_id"]),
                                    additional_claims={"email": "ana@example.com", "role": "student"})
        self.headers = {'Authorization': f'Bearer {token}'}

    def tearDown(self):
        for p in reversed(self.patches):
            p.stop()
        self.app_context.pop()

    def test_enroll_then_duplicate(self):
        course = {"_id": ObjectId(), "title": "Algebra", "is_published": True, "modules": []}
        self.db.courses.find_one.return_value = course
        self.db.enrollments.find_one.return_value = None
        self.db.enrollments.insert_one.return_value = MagicMock(inserted_id=ObjectId())

        response = self.client.post(f'/api/enrollments/enroll/{course["_id"]}', headers=self.headers)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(json.loads(response.data)['data']['status'], 'active')

        self.db.enrollments.find_one.return_value = {"_id": ObjectId(), "status": "active"}
        response = self.client.post(f'/api/enrollments/enroll/{course["_id"]}', headers=self.headers)
        self.assertEqual(response.status_code, 409)
        self.assertFalse(json.loads(response.data)['success'])

    def test_faculty_cannot_enroll(self):
        self.db.users.find_one.return_value = dict(self.student, role="faculty")
        response = self.client.post(f'/api/enrollments/enroll/{ObjectId()}', headers=self.headers)
        self.assertEqual(response.status_code, 403)

    def test_start_session_conflict(self):
        open_session = {"_id": ObjectId(), "student_id": self.student["_id"], "is_active": True,
                        "start_time": utcnow() - timedelta(minutes=3),
                        "last_activity_time": utcnow()}
        self.db.study_sessions.find_one.return_value = open_session

        response = self.client.post('/api/study-sessions/start', json={"activity": "reading"},
                                    headers=self.headers)

        self.assertEqual(response.status_code, 409)
        details = json.loads(response.data)['details']
        self.assertEqual(details['session_id'], str(open_session["_id"]))

    def test_start_session_without_body(self):
        self.db.study_sessions.find_one.return_value = None
        self.db.study_sessions.insert_one.return_value = MagicMock(inserted_id=ObjectId())

        response = self.client.post('/api/study-sessions/start', headers=self.headers)

        self.assertEqual(response.status_code, 201)
        data = json.loads(response.data)['data']
        self.assertEqual(data['activity'], 'browsing')
        self.assertTrue(data['is_active'])

    def test_start_session_malformed_json(self):
        response = self.client.post('/api/study-sessions/start', data="{not json",
                                    content_type='application/json', headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.data)['error'], 'ERROR_FORMATO')


class TestLearnsyClient(unittest.TestCase):

    def setUp(self):
        self.http = MagicMock()
        self.http.headers = {}
        self.client = LearnsyClient("http://api.test/", session=self.http)

    def _response(self, status, body):
        response = MagicMock()
        response.ok = status < 400
        response.status_code = status
        response.json.return_value = body
        return response

    def test_login_stores_token(self):
        self.http.request.return_value = self._response(200, {"success": True,
                                                              "data": {"token": "abc", "user": {}}})
        self.client.login("ana@example.com", "secret123")

        method, url = self.http.request.call_args[0]
        self.assertEqual((method, url), ('POST', 'http://api.test/api/auth/student/login'))
        self.assertEqual(self.http.headers['Authorization'], 'Bearer abc')

    def test_error_uses_server_message(self):
        self.http.request.return_value = self._response(409, {"success": False,
                                                              "message": "Ya estás inscrito en este curso"})
        with self.assertRaises(APIClientError) as ctx:
            self.client.enroll("c1")
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.message, "Ya estás inscrito en este curso")

    def test_network_error(self):
        self.http.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(APIClientError) as ctx:
            self.client.plans()
        self.assertEqual(ctx.exception.message, "network error")
        self.assertIsNone(ctx.exception.status_code)

    def test_update_session_uses_put(self):
        self.http.request.return_value = self._response(200, {"success": True, "data": {"id": "s1"}})
        self.client.update_session("s1", {"activity": "reading"})
        method, url = self.http.request.call_args[0]
        self.assertEqual(method, 'PUT')
        self.assertTrue(url.endswith('/api/study-sessions/s1/update'))


class TestSessionTracker(unittest.TestCase):

    def setUp(self):
        self.now = datetime(2024, 3, 10, 9, 0)
        self.tracker = SessionTracker(clock=lambda: self.now)

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

    def test_active_ping(self):
        self.tracker.record_activity("reading", material_id="m1")
        self.advance(minutes=1)
        self.assertTrue(self.tracker.should_ping())
        payload = self.tracker.ping_payload()
        self.assertEqual(payload, {"activity": "reading", "additional_data": {"material_id": "m1"}})
        self.assertFalse(self.tracker.should_ping())

    def test_idle_after_five_minutes(self):
        self.advance(minutes=4)
        self.assertFalse(self.tracker.is_idle())
        self.advance(minutes=3)
        self.assertTrue(self.tracker.is_idle())
        payload = self.tracker.ping_payload()
        self.assertEqual(payload["activity"], "idle")
        self.assertEqual(payload["idle_minutes"], 2)

    def test_idle_period_without_ping_is_counted(self):
        self.advance(minutes=8)
        self.tracker.record_activity("watching")
        payload = self.tracker.ping_payload()
        self.assertEqual(payload["activity"], "watching")
        self.assertEqual(payload["idle_minutes"], 3)


if __name__ == '__main__':
    unittest.main()
