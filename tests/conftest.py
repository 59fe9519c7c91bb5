import bcrypt
import pytest

ADMIN_USERNAME = "sunny"
ADMIN_PASSWORD = "correct-horse"
SECRET_KEY = "test-secret-key-0123456789"


@pytest.fixture(scope="session")
def password_hash() -> str:
    # low cost keeps the suite fast; the app is told to accept it
    return bcrypt.hashpw(ADMIN_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")
