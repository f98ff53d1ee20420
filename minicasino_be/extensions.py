from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Configured from app.config (RATELIMIT_*) in create_app
limiter = Limiter(key_func=get_remote_address)
