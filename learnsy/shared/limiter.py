from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Se identifica al cliente por IP; memory:// basta para una sola instancia
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "500 per hour"],
    storage_uri="memory://"
)

LOGIN_LIMIT = "10 per 15 minutes"
REGISTER_LIMIT = "20 per hour"
