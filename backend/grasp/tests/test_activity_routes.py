import asyncio
import pathlib
import sys

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel

# Allow importing the grasp package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from grasp.main import app
from grasp.database import get_session, get_session_factory
from grasp.models import Question, Quiz
from grasp.session_machine import SessionRegistry


async def _setup_test_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    TestSession = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_session():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: TestSession
    app.state.sessions = SessionRegistry()

    async with TestSession() as session:
        quiz = Quiz(slug="math200-w5", title="MATH200 Week 5", course="MATH200", published=True)
        session.add(quiz)
        await session.flush()
        session.add(
            Question(
                quiz_id=quiz.id,
                prompt="What is the derivative of x²?",
                options=["x", "2x", "x²/2"],
                correct_key="B",
            )
        )
        await session.commit()
        quiz_id = quiz.id

    return TestSession, quiz_id


async def _register(client, name, email):
    resp = await client.post(
        "/register", json={"name": name, "email": email, "password": "pass"}
    )
    assert resp.status_code == 200
    user_id = resp.json()["id"]
    resp = await client.post("/login", json={"email": email, "password": "pass"})
    return user_id, {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_activity_actions_feed_achievements():
    async def run():
        TestSession, quiz_id = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            _, admin_headers = await _register(client, "Admin", "admin@example.com")
            _, headers = await _register(client, "Student", "student@example.com")

            resp = await client.post(
                f"/activity/quizzes/{quiz_id}/mistake-review", headers=headers
            )
            assert resp.status_code == 200
            assert resp.json() == {
                "status": "recorded",
                "kind": "mistake_review",
                "quiz_id": quiz_id,
                "new_achievements": ["MistakeReviewer"],
            }

            resp = await client.post(f"/activity/quizzes/{quiz_id}/revisit", headers=headers)
            assert resp.status_code == 200
            resp = await client.post("/activity/quizzes/404/revisit", headers=headers)
            assert resp.status_code == 404

            # Retakes need an earlier completion of the quiz.
            resp = await client.post(
                f"/activity/quizzes/{quiz_id}/retake",
                headers=headers,
                json={"first_score": 40, "second_score": 70},
            )
            assert resp.status_code == 422
            resp = await client.post(
                f"/activity/quizzes/{quiz_id}/retake",
                headers=headers,
                json={"first_score": 40, "second_score": 170},
            )
            assert resp.status_code == 422

            resp = await client.post(
                f"/quizzes/{quiz_id}/submit",
                headers=headers,
                json={
                    "quizId": quiz_id,
                    "answers": {"0": "A"},
                    "timeSpent": 5000,
                    "score": 0,
                    "correctAnswers": 0,
                    "totalQuestions": 1,
                },
            )
            assert resp.status_code == 200
            # MistakeReviewer was already stored by the review itself.
            assert resp.json()["newAchievements"] == ["quiz_completed"]

            resp = await client.post(
                f"/activity/quizzes/{quiz_id}/retake",
                headers=headers,
                json={"first_score": 40, "second_score": 70},
            )
            assert resp.status_code == 200
            assert resp.json()["new_achievements"] == ["ImprovementMaster", "ComebackKing"]

            resp = await client.get("/achievements/me/progress", headers=headers)
            progress = {p["id"]: p for p in resp.json()}
            assert progress["MistakeReviewer"]["earned"] is True
            assert progress["ImprovementMaster"]["earned"] is True
            assert progress["ComebackKing"]["earned"] is True
            assert progress["ReviewChampion"]["progress"] == 20
            # The revisit came before the completion, so it does not count.
            assert progress["WeeklyRevisitor"]["earned"] is False

    asyncio.run(run())
    app.dependency_overrides.clear()


def test_manual_award_is_idempotent_and_restricted():
    async def run():
        TestSession, quiz_id = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            _, admin_headers = await _register(client, "Admin", "admin@example.com")
            student_id, headers = await _register(client, "Student", "student@example.com")

            award = {"actor_id": student_id, "quiz_id": quiz_id, "course": "MATH200"}
            resp = await client.post("/achievements/", headers=headers, json=award)
            assert resp.status_code == 403

            resp = await client.post("/achievements/", headers=admin_headers, json=award)
            assert resp.status_code == 200
            data = resp.json()
            assert data["status"] == "awarded"
            assert data["achievement"]["title"] == "Perfect Score!"

            resp = await client.post("/achievements/", headers=admin_headers, json=award)
            assert resp.json() == {"status": "duplicate", "achievement": None}

            resp = await client.post(
                "/achievements/",
                headers=admin_headers,
                json={"actor_id": 999, "quiz_id": quiz_id},
            )
            assert resp.status_code == 404

            resp = await client.get("/achievements/me?course=MATH200", headers=headers)
            assert [a["achievement_type"] for a in resp.json()] == ["quiz_perfect"]
            resp = await client.get("/achievements/me?course=CS101", headers=headers)
            assert resp.json() == []

    asyncio.run(run())
    app.dependency_overrides.clear()


def test_explicit_actions_persist_their_achievements():
    async def run():
        TestSession, quiz_id = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await _register(client, "Admin", "admin@example.com")
            _, headers = await _register(client, "Student", "student@example.com")

            resp = await client.post(
                f"/quizzes/{quiz_id}/submit",
                headers=headers,
                json={
                    "quizId": quiz_id,
                    "sessionId": "first-try",
                    "answers": {"0": "A"},
                    "timeSpent": 5000,
                    "score": 0,
                    "correctAnswers": 0,
                    "totalQuestions": 1,
                },
            )
            assert resp.status_code == 200

            resp = await client.post(
                f"/activity/quizzes/{quiz_id}/mistake-review", headers=headers
            )
            assert resp.json()["new_achievements"] == ["MistakeReviewer"]
            resp = await client.post(
                f"/activity/quizzes/{quiz_id}/retake",
                headers=headers,
                json={"first_score": 0, "second_score": 100},
            )
            assert resp.status_code == 200

            # Stored without finishing another quiz.
            resp = await client.get("/achievements/me", headers=headers)
            stored = {a["achievement_type"]: a for a in resp.json()}
            assert set(stored) == {
                "quiz_completed",
                "MistakeReviewer",
                "ImprovementMaster",
                "ComebackKing",
            }
            assert stored["ComebackKing"]["course"] == "MATH200"
            assert stored["ComebackKing"]["source_quiz_id"] == quiz_id

            # Repeating the action awards nothing new.
            resp = await client.post(
                f"/activity/quizzes/{quiz_id}/mistake-review", headers=headers
            )
            assert resp.json()["new_achievements"] == []
            resp = await client.get("/achievements/me/counts", headers=headers)
            assert resp.json()["total"] == 4

    asyncio.run(run())
    app.dependency_overrides.clear()
