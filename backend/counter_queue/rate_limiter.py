import os

from slowapi import Limiter
from slowapi.util import get_remote_address

# Limits are switched off for the test suite, which claims from one address
limiter = Limiter(key_func=get_remote_address, enabled=os.getenv("TESTING") != "true")
