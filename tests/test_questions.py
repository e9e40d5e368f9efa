import httpx
import pytest

from interview_room.orchestrator.questions import (
    QuestionSupplier,
    extract_role_title,
    extract_technologies,
    generic_questions,
)

JD = "Senior Python Developer\nYou will build APIs on PostgreSQL (SQL) and deploy to AWS."


def _supplier(handler) -> QuestionSupplier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://backend.test")
    return QuestionSupplier(path="/interview-session", client=client)


class TestGenericQuestions:
    def test_role_title_and_technologies(self) -> None:
        assert extract_role_title(JD) == "developer"
        assert extract_role_title("Data Engineer") == "engineer"
        assert extract_role_title("") == "technology"
        assert extract_technologies(JD) == ["Python", "SQL/Database", "Cloud/AWS"]

    def test_java_is_not_detected_inside_javascript(self) -> None:
        assert "Java" not in extract_technologies("Frontend role: JavaScript and React")
        assert extract_technologies("Java backend role") == ["Java"]

    def test_basic_mode(self) -> None:
        questions = generic_questions(JD, "basic")
        assert len(questions) == 5
        assert "developer position" in questions[1]
        assert questions[3] == "Explain the difference between a list and a tuple in Python."

    @pytest.mark.parametrize("mode,count", [("advanced", 8), ("challenge", 10)])
    def test_question_count_per_mode(self, mode: str, count: int) -> None:
        questions = generic_questions(JD, mode)
        assert len(questions) == count
        assert len(set(questions)) == count

    def test_empty_job_description_still_yields_questions(self) -> None:
        questions = generic_questions("", "basic")
        assert len(questions) == 5
        assert "technology position" in questions[1]
        assert "general programming" in questions[3]


class TestQuestionSupplier:
    @pytest.mark.asyncio
    async def test_backend_questions_and_session_id(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = request.read()
            return httpx.Response(
                200,
                json={"status": True, "data": {"questions": ["Q1?", " ", "Q2?"], "sessionId": "session-1"}},
            )

        supplier = _supplier(handler)
        result = await supplier.fetch(JD, mode="advanced")
        await supplier.close()

        assert result.questions == ["Q1?", "Q2?"]
        assert result.session_id == "session-1"
        assert result.source == "backend"
        assert seen["path"] == "/interview-session"
        assert b"mode=advanced" in seen["body"]

    @pytest.mark.asyncio
    async def test_cv_is_sent_as_multipart(self, tmp_path) -> None:
        cv = tmp_path / "cv.txt"
        cv.write_text("Alex - Python developer", encoding="utf-8")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.read()
            return httpx.Response(200, json=["Q1?"])

        supplier = _supplier(handler)
        result = await supplier.fetch(JD, cv_path=cv)

        assert result.questions == ["Q1?"]
        assert result.session_id.startswith("session-")
        assert b'name="cv"; filename="cv.txt"' in seen["body"]
        assert b"Alex - Python developer" in seen["body"]

    @pytest.mark.asyncio
    async def test_backend_failure_falls_back_to_generic(self) -> None:
        supplier = _supplier(lambda request: httpx.Response(500, json={"error": "Failed to generate questions"}))
        result = await supplier.fetch(JD, mode="basic")

        assert result.source == "generic"
        assert result.questions == generic_questions(JD, "basic")
        assert result.session_id.startswith("session-")

    @pytest.mark.asyncio
    async def test_empty_backend_list_falls_back_to_generic(self) -> None:
        supplier = _supplier(lambda request: httpx.Response(200, json={"data": []}))
        result = await supplier.fetch("", mode="basic")

        assert result.source == "generic"
        assert len(result.questions) == 5
