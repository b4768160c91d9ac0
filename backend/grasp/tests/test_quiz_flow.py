"""End-to-end tests for taking and submitting quizzes over HTTP."""

import asyncio
import pathlib
import sys

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel, select

# Allow importing the grasp package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from grasp.main import app
from grasp.database import get_session, get_session_factory
from grasp.models import ActivityEvent, Question, Quiz
from grasp.session_machine import SessionRegistry


async def _setup_test_db(tmp_path):
    # A file database gives each background task its own connection.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'flow.db'}")
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
        quiz = Quiz(slug="cs101-w3", title="CS101 Week 3", course="CS101", published=True)
        empty = Quiz(slug="cs101-empty", title="Empty", course="CS101", published=True)
        session.add(quiz)
        session.add(empty)
        await session.flush()
        for i in range(4):
            session.add(
                Question(
                    quiz_id=quiz.id,
                    prompt=f"Question {i}",
                    options={"A": f"wrong {i}", "B": f"right {i}", "C": f"other {i}"},
                    correct_key="B",
                    position=i,
                )
            )
        await session.commit()
        quiz_id, empty_id = quiz.id, empty.id

    return TestSession, quiz_id, empty_id


async def _login(client):
    resp = await client.post(
        "/register",
        json={"name": "Student", "email": "student@example.com", "password": "pass"},
    )
    assert resp.status_code == 200
    resp = await client.post(
        "/login", json={"email": "student@example.com", "password": "pass"}
    )
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def _submission(quiz_id, session_id="attempt-1", correct=4):
    return {
        "quizId": quiz_id,
        "sessionId": session_id,
        "answers": {str(i): "B" if i < correct else "A" for i in range(4)},
        "timeSpent": 45000,
        "score": correct * 25,
        "correctAnswers": correct,
        "totalQuestions": 4,
    }


def test_perfect_session_run(tmp_path):
    async def run():
        TestSession, quiz_id, _ = await _setup_test_db(tmp_path)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client)

            resp = await client.get("/quizzes/", headers=headers)
            assert resp.status_code == 200
            assert [q["id"] for q in resp.json()] == [quiz_id, quiz_id + 1]

            resp = await client.post(f"/sessions/start/{quiz_id}", headers=headers)
            assert resp.status_code == 200
            data = resp.json()
            assert data["state"] == "active"
            assert data["total_questions"] == 4
            assert data["question"]["is_correct"] is None

            for _ in range(4):
                question = data["question"]
                key = next(
                    o["key"] for o in question["options"] if o["text"].startswith("right")
                )
                resp = await client.post(
                    "/sessions/current/answer", headers=headers, json={"key": key}
                )
                assert resp.status_code == 200
                assert resp.json()["is_correct"] is True
                resp = await client.post("/sessions/current/next", headers=headers)
                assert resp.status_code == 200
                data = resp.json()

            assert data["state"] == "completed"
            assert data["outcome"]["score"] == 100
            assert data["outcome"]["is_perfect"] is True

            await app.state.sessions.drain_all()

            resp = await client.get("/achievements/me/counts", headers=headers)
            assert resp.json()["by_type"] == {
                "quiz_completed": 1,
                "PerfectScore": 1,
                "quiz_perfect": 1,
            }
            resp = await client.get("/sessions/current/signals", headers=headers)
            signals = resp.json()
            earned = {s["achievement_id"] for s in signals if s["type"] == "newly_earned"}
            assert earned == {"quiz_completed", "PerfectScore", "quiz_perfect"}
            assert sum(s["type"] == "answer_feedback" for s in signals) == 4

            resp = await client.get(f"/achievements/check/{quiz_id}", headers=headers)
            assert resp.json()["has_achievement"] is True

            resp = await client.get("/achievements/me/progress", headers=headers)
            progress = {p["id"]: p for p in resp.json()}
            assert progress["PerfectScore"]["earned"] is True
            assert progress["DedicatedStudent"]["progress"] == 10

            resp = await client.post("/sessions/current/review", headers=headers)
            assert resp.status_code == 200
            assert resp.json() == []
            await app.state.sessions.drain_all()

            resp = await client.delete("/sessions/current", headers=headers)
            assert resp.json()["state"] == "listing"

    asyncio.run(run())
    app.dependency_overrides.clear()


def test_retried_submission_awards_once(tmp_path):
    async def run():
        TestSession, quiz_id, _ = await _setup_test_db(tmp_path)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client)

            resp = await client.post(
                f"/quizzes/{quiz_id}/submit", headers=headers, json=_submission(quiz_id)
            )
            assert resp.status_code == 200
            data = resp.json()
            assert data["score"] == 100
            assert data["correctAnswers"] == 4
            assert set(data["newAchievements"]) == {
                "quiz_completed",
                "PerfectScore",
                "quiz_perfect",
            }

            resp = await client.post(
                f"/quizzes/{quiz_id}/submit", headers=headers, json=_submission(quiz_id)
            )
            assert resp.status_code == 200
            assert resp.json()["score"] == 100
            assert resp.json()["newAchievements"] == []

            resp = await client.get("/achievements/me", headers=headers)
            types = sorted(a["achievement_type"] for a in resp.json())
            assert types == ["PerfectScore", "quiz_completed", "quiz_perfect"]

        async with TestSession() as session:
            result = await session.execute(select(ActivityEvent))
            events = result.scalars().all()
            assert len(events) == 1
            assert events[0].time_spent == 45.0

    asyncio.run(run())
    app.dependency_overrides.clear()


def test_retried_submission_without_session_id_is_recorded_once(tmp_path):
    async def run():
        TestSession, quiz_id, _ = await _setup_test_db(tmp_path)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client)
            payload = _submission(quiz_id, correct=3)
            del payload["sessionId"]

            responses = [
                await client.post(f"/quizzes/{quiz_id}/submit", headers=headers, json=payload)
                for _ in range(3)
            ]
            assert [r.status_code for r in responses] == [200, 200, 200]
            assert responses[0].json()["newAchievements"] == ["quiz_completed"]
            assert responses[1].json()["newAchievements"] == []
            assert responses[2].json()["newAchievements"] == []

            async with TestSession() as session:
                result = await session.execute(select(ActivityEvent))
                assert len(result.scalars().all()) == 1

            # A different payload is a separate attempt.
            payload["timeSpent"] = 30000
            resp = await client.post(f"/quizzes/{quiz_id}/submit", headers=headers, json=payload)
            assert resp.status_code == 200

        async with TestSession() as session:
            result = await session.execute(select(ActivityEvent))
            events = result.scalars().all()
            assert len(events) == 2
            assert events[0].session_id != events[1].session_id

    asyncio.run(run())
    app.dependency_overrides.clear()


def test_empty_quiz_is_unavailable(tmp_path):
    async def run():
        TestSession, _, empty_id = await _setup_test_db(tmp_path)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client)

            resp = await client.post(f"/sessions/start/{empty_id}", headers=headers)
            assert resp.status_code == 409
            assert resp.json()["code"] == "unavailable"
            resp = await client.get("/sessions/current", headers=headers)
            assert resp.json()["state"] == "listing"
            assert resp.json()["error"] == "Quiz has no approved questions"

            resp = await client.post(
                f"/quizzes/{empty_id}/submit", headers=headers, json=_submission(empty_id)
            )
            assert resp.status_code == 409

            resp = await client.post("/sessions/start/999", headers=headers)
            assert resp.status_code == 404
            assert resp.json()["code"] == "not_found"

        async with TestSession() as session:
            result = await session.execute(select(ActivityEvent))
            assert result.scalars().all() == []

    asyncio.run(run())
    app.dependency_overrides.clear()


def test_malformed_submissions_are_rejected(tmp_path):
    async def run():
        TestSession, quiz_id, _ = await _setup_test_db(tmp_path)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _login(client)

            bad_score = _submission(quiz_id)
            bad_score["score"] = 90
            bad_key = _submission(quiz_id)
            bad_key["answers"]["0"] = "AB"
            bad_index = _submission(quiz_id)
            bad_index["answers"]["7"] = "B"
            wrong_total = _submission(quiz_id, correct=3)
            wrong_total.update(totalQuestions=5, score=60)
            for payload in (bad_score, bad_key, bad_index, wrong_total):
                resp = await client.post(
                    f"/quizzes/{quiz_id}/submit", headers=headers, json=payload
                )
                assert resp.status_code == 422
                assert resp.json()["code"] == "validation"

            missing = _submission(quiz_id)
            del missing["totalQuestions"]
            resp = await client.post(
                f"/quizzes/{quiz_id}/submit", headers=headers, json=missing
            )
            assert resp.status_code == 422

            # Answering before starting is an invalid transition.
            resp = await client.post(
                "/sessions/current/answer", headers=headers, json={"key": "A"}
            )
            assert resp.status_code == 409
            assert resp.json()["code"] == "invalid_transition"

        async with TestSession() as session:
            result = await session.execute(select(ActivityEvent))
            assert result.scalars().all() == []

    asyncio.run(run())
    app.dependency_overrides.clear()
