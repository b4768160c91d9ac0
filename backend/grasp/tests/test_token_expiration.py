import importlib
import pathlib
import sys
from datetime import datetime

from jose import jwt

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))


def test_access_token_expiration_respects_env(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1")
    import grasp.auth as auth
    importlib.reload(auth)

    token = auth.create_access_token(data={"sub": "student@example.com"})
    decoded = jwt.decode(token, auth.SECRET_KEY, algorithms=[auth.ALGORITHM])
    exp = datetime.utcfromtimestamp(decoded["exp"])
    delta = exp - datetime.utcnow()
    assert 45 <= delta.total_seconds() <= 75

    monkeypatch.delenv("ACCESS_TOKEN_EXPIRE_MINUTES", raising=False)
    importlib.reload(auth)


def test_actor_token_carries_email_and_role():
    from grasp.auth import ALGORITHM, SECRET_KEY, actor_token
    from grasp.models import User

    user = User(name="Student", email="student@example.com", password_hash="x", role="student")
    body = actor_token(user)
    assert body["token_type"] == "bearer"
    decoded = jwt.decode(body["access_token"], SECRET_KEY, algorithms=[ALGORITHM])
    assert decoded["sub"] == "student@example.com"
    assert decoded["role"] == "student"
