"""
Cliente HTTP de la API de Learnsy y temporizador de sesiones de estudio.

    client = LearnsyClient("http://localhost:5000")
    client.login("ana@example.com", "secreto", role="student")
    session = client.start_session(course_id)
    client.update_session(session["id"], tracker.ping_payload())
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
IDLE_AFTER = timedelta(minutes=5)
PING_INTERVAL = timedelta(minutes=1)


class APIClientError(Exception):
    """Error devuelto por la API o fallo de red (status_code None)."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict] = None):
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)


class LearnsyClient:
    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({'Accept': 'application/json'})
        self.token = None
        if token:
            self.set_token(token)

    def set_token(self, token: Optional[str]) -> None:
        self.token = token
        if token:
            self.http.headers['Authorization'] = f'Bearer {token}'
        else:
            self.http.headers.pop('Authorization', None)

    def request(self, method: str, path: str, **kwargs) -> Any:
        """
        Ejecuta la petición y devuelve el campo `data` de la respuesta.

        Raises:
            APIClientError: con el mensaje del servidor, o "network error"
                si no hubo respuesta
        """
        url = f"{self.base_url}{path}"
        kwargs.setdefault('timeout', self.timeout)
        try:
            response = self.http.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"{method} {url} falló: {e}")
            raise APIClientError("network error")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok:
            message = body.get('message') or body.get('error') or f"Server error: {response.status_code}"
            raise APIClientError(message, response.status_code, body)
        return body.get('data')

    # Autenticación

    def register_student(self, data: Dict) -> Dict:
        result = self.request('POST', '/api/signup/student/register', json=data)
        self.set_token(result.get('token'))
        return result

    def register_faculty(self, data: Dict) -> Dict:
        result = self.request('POST', '/api/signup/faculty/register', json=data)
        self.set_token(result.get('token'))
        return result

    def login(self, email: str, password: str, role: str = 'student') -> Dict:
        result = self.request('POST', f'/api/auth/{role}/login', json={'email': email, 'password': password})
        self.set_token(result.get('token'))
        return result

    def profile(self) -> Dict:
        return self.request('GET', '/api/auth/profile')

    # Cursos e inscripciones

    def list_courses(self, **filters) -> Any:
        return self.request('GET', '/api/courses/', params=filters)

    def get_course(self, course_id: str) -> Dict:
        return self.request('GET', f'/api/courses/{course_id}')

    def create_course(self, data: Dict) -> Dict:
        return self.request('POST', '/api/courses/', json=data)

    def publish_course(self, course_id: str, is_published: Optional[bool] = True) -> Dict:
        payload = {} if is_published is None else {'is_published': is_published}
        return self.request('POST', f'/api/courses/{course_id}/publish', json=payload)

    def enroll(self, course_id: str) -> Dict:
        return self.request('POST', f'/api/enrollments/enroll/{course_id}', json={})

    def my_enrollments(self) -> Any:
        return self.request('GET', '/api/enrollments/my-enrollments')

    def course_materials(self, course_id: str) -> Dict:
        return self.request('GET', f'/api/materials/course/{course_id}')

    # Sesiones de estudio

    def start_session(self, course_id: Optional[str] = None, activity: str = 'browsing',
                      device_info: Optional[Dict] = None) -> Dict:
        payload = {'activity': activity}
        if course_id:
            payload['course_id'] = course_id
        if device_info:
            payload['device_info'] = device_info
        return self.request('POST', '/api/study-sessions/start', json=payload)

    def update_session(self, session_id: str, payload: Dict) -> Dict:
        return self.request('PUT', f'/api/study-sessions/{session_id}/update', json=payload)

    def end_session(self, session_id: str) -> Dict:
        return self.request('PUT', f'/api/study-sessions/{session_id}/end')

    def active_session(self) -> Optional[Dict]:
        return self.request('GET', '/api/study-sessions/active')

    # Suscripciones

    def plans(self) -> Dict:
        return self.request('GET', '/api/subscriptions/plans')

    def current_subscription(self) -> Dict:
        return self.request('GET', '/api/subscriptions/current')

    def process_payment(self, plan: str, payment_method: str = 'upi') -> Dict:
        return self.request('POST', '/api/subscriptions/process-payment',
                            json={'plan': plan, 'payment_method': payment_method})

    def check_video_access(self, index: int) -> Dict:
        return self.request('GET', f'/api/subscriptions/check-video-access/{index}')


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SessionTracker:
    """
    Temporizador de una sesión de estudio en el cliente.

    Registra la actividad del usuario y construye el cuerpo de cada ping a
    /update. Tras cinco minutos sin actividad la sesión pasa a "idle" y los
    minutos inactivos se informan en el siguiente ping.
    """

    def __init__(self, idle_after: timedelta = IDLE_AFTER, clock=_now):
        self.idle_after = idle_after
        self.clock = clock
        self.activity = 'browsing'
        self.last_activity = clock()
        self.last_ping = self.last_activity
        self.pending_idle_minutes = 0.0
        self.idle_since: Optional[datetime] = None
        self._extra: Dict = {}

    def is_idle(self, now: Optional[datetime] = None) -> bool:
        return (now or self.clock()) - self.last_activity > self.idle_after

    def record_activity(self, activity: Optional[str] = None, **additional_data) -> None:
        """Actividad del usuario; cierra el periodo inactivo si lo había."""
        now = self.clock()
        if self.idle_since is None and self.is_idle(now):
            self.idle_since = self.last_activity + self.idle_after
        if self.idle_since is not None:
            self.pending_idle_minutes += (now - self.idle_since).total_seconds() / 60
            self.idle_since = None
        self.last_activity = now
        if activity:
            self.activity = activity
        self._extra.update({k: v for k, v in additional_data.items() if v is not None})

    def ping_payload(self) -> Dict:
        """Cuerpo del próximo PUT /api/study-sessions/<id>/update."""
        now = self.clock()
        if self.idle_since is None and self.is_idle(now):
            self.idle_since = self.last_activity + self.idle_after

        payload = {'activity': 'idle' if self.idle_since is not None else self.activity}
        idle_minutes = self.pending_idle_minutes
        if self.idle_since is not None:
            idle_minutes += (now - self.idle_since).total_seconds() / 60
            self.idle_since = now
        if idle_minutes > 0:
            payload['idle_minutes'] = round(idle_minutes, 2)
        if self._extra:
            payload['additional_data'] = dict(self._extra)

        self.pending_idle_minutes = 0.0
        self._extra = {}
        self.last_ping = now
        return payload

    def should_ping(self, interval: timedelta = PING_INTERVAL) -> bool:
        return self.clock() - self.last_ping >= interval
