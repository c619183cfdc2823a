import unittest
import json
from unittest.mock import patch, MagicMock
from flask_jwt_extended import decode_token, create_access_token
from bson import ObjectId
import bcrypt
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
os.environ['FLASK_ENV'] = 'testing'

from main import create_app
from config import TestingConfig
from learnsy.users import routes as user_routes

def mock_db():
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: getattr(db, name)
    return db

class TestUserAuth(unittest.TestCase):
    def setUp(self):
        """Set up test fixtures before each test method."""
        self.app = create_app(TestingConfig)
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()

        self.db = mock_db()
        self.service_db = patch.object(user_routes.user_service, '_db', self.db)
        self.service_db.start()
        self.auth_db = patch('learnsy.shared.decorators.get_db', return_value=self.db)
        self.auth_db.start()

        self.user_id = ObjectId()
        self.student = {
            "_id": self.user_id,
            "name": "Ana Student",
            "email": "ana@example.com",
            "role": "student",
            "student_id": "STU-001",
            "password": bcrypt.hashpw(b"secret123", bcrypt.gensalt(rounds=4)).decode('utf-8'),
            "is_active": True
        }

    def tearDown(self):
        """Tear down test fixtures after each test method."""
        self.auth_db.stop()
        self.service_db.stop()
        self.app_context.pop()

    def _token(self, user):
        claims = {"email": user["email"], "role": user["role"]}
        return create_access_token(identity=str(user["_id"]), additional_claims=claims)

    def test_token_carries_email_and_role_claims(self):
        decoded = decode_token(self._token(self.student))
        self.assertEqual(decoded['sub'], str(self.user_id))
        self.assertEqual(decoded['email'], 'ana@example.com')
        self.assertEqual(decoded['role'], 'student')

    def test_register_student(self):
        """Test registro de estudiante devuelve token y usuario sin contraseña"""
        self.db.users.find_one.return_value = None
        self.db.users.insert_one.return_value = MagicMock(inserted_id=self.user_id)

        response = self.client.post('/api/signup/student/register', json={
            "name": "Ana Student",
            "email": "Ana@Example.com",
            "password": "secret123",
            "student_id": "STU-001"
        })

        self.assertEqual(response.status_code, 201)
        data = json.loads(response.data)
        self.assertTrue(data['success'])
        self.assertIn('token', data['data'])
        self.assertEqual(data['data']['user']['email'], 'ana@example.com')
        self.assertNotIn('password', data['data']['user'])
        stored = self.db.users.insert_one.call_args[0][0]
        self.assertNotEqual(stored['password'], 'secret123')

    def test_register_duplicate_email(self):
        self.db.users.find_one.return_value = {"_id": ObjectId()}
        response = self.client.post('/api/signup/student/register', json={
            "name": "Ana Student",
            "email": "ana@example.com",
            "password": "secret123",
            "student_id": "STU-001"
        })
        self.assertEqual(response.status_code, 409)

    def test_register_faculty_requires_institution(self):
        response = self.client.post('/api/signup/faculty/register', json={
            "name": "Dr. Rao",
            "email": "rao@example.com",
            "password": "secret123"
        })
        self.assertEqual(response.status_code, 400)
        self.assertFalse(json.loads(response.data)['success'])

    def test_login_success(self):
        self.db.users.find_one.return_value = dict(self.student)
        response = self.client.post('/api/auth/student/login',
                                    json={"email": "ana@example.com", "password": "secret123"})
        self.assertEqual(response.status_code, 200)
        data = json.loads(response.data)
        token = data['data']['token']
        self.assertEqual(decode_token(token)['role'], 'student')

    def test_login_wrong_password(self):
        self.db.users.find_one.return_value = dict(self.student)
        response = self.client.post('/api/auth/student/login',
                                    json={"email": "ana@example.com", "password": "wrong-pass"})
        self.assertEqual(response.status_code, 401)

    def test_login_rejects_non_string_credentials(self):
        response = self.client.post('/api/auth/student/login',
                                    json={"email": 12345, "password": 678})
        self.assertEqual(response.status_code, 400)
        data = json.loads(response.data)
        self.assertEqual(data['error'], 'DATOS_INVALIDOS')
        self.assertIn('email', data['details'])
        self.db.users.find_one.assert_not_called()

    def test_login_without_body(self):
        response = self.client.post('/api/auth/student/login')
        self.assertEqual(response.status_code, 400)
        self.assertIn('password', json.loads(response.data)['details'])

    def test_login_with_wrong_role(self):
        self.db.users.find_one.return_value = None
        response = self.client.post('/api/auth/faculty/login',
                                    json={"email": "ana@example.com", "password": "secret123"})
        self.assertEqual(response.status_code, 401)

    def test_profile_without_token(self):
        response = self.client.get('/api/auth/profile')
        self.assertEqual(response.status_code, 401)
        self.assertFalse(json.loads(response.data)['success'])

    def test_profile_invalid_token(self):
        response = self.client.get('/api/auth/profile', headers={'Authorization': 'Bearer invalid.token'})
        self.assertEqual(response.status_code, 401)

    def test_profile_with_token(self):
        self.db.users.find_one.return_value = {k: v for k, v in self.student.items() if k != 'password'}
        response = self.client.get('/api/auth/profile',
                                   headers={'Authorization': f'Bearer {self._token(self.student)}'})
        self.assertEqual(response.status_code, 200)
        data = json.loads(response.data)
        self.assertEqual(data['data']['student_id'], 'STU-001')

    def test_student_cannot_read_faculty_stats(self):
        self.db.users.find_one.return_value = dict(self.student)
        response = self.client.get('/api/signup/stats',
                                   headers={'Authorization': f'Bearer {self._token(self.student)}'})
        self.assertEqual(response.status_code, 403)

    def test_deactivated_account_rejected(self):
        self.db.users.find_one.return_value = dict(self.student, is_active=False)
        response = self.client.get('/api/auth/profile',
                                   headers={'Authorization': f'Bearer {self._token(self.student)}'})
        self.assertEqual(response.status_code, 401)

    def test_health_endpoints(self):
        response = self.client.get('/api/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data)['status'], 'OK')

        response = self.client.get('/')
        self.assertEqual(json.loads(response.data)['status'], 'healthy')

    def test_unknown_route_returns_json_404(self):
        response = self.client.get('/api/does-not-exist')
        self.assertEqual(response.status_code, 404)
        self.assertFalse(json.loads(response.data)['success'])


if __name__ == '__main__':
    unittest.main()
