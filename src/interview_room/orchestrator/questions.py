"""
Question supplier.

Turns a job description (and optionally a CV) into the ordered question list
for one session. The backend generator is preferred; when it is unreachable
or returns nothing, a generic list derived from the job description is used
so that the interview can always start.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import httpx

from interview_room.config import get_settings

logger = logging.getLogger(__name__)

QuestionMode = Literal["basic", "advanced", "challenge"]

_MODE_LIMITS = {"basic": 5, "advanced": 8, "challenge": 10}

# Keyword(s) in the job description -> technology label
_TECH_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("javascript", "js"), "JavaScript"),
    (("react",), "React"),
    (("node", "nodejs"), "Node.js"),
    (("python",), "Python"),
    (("java",), "Java"),
    (("sql", "database"), "SQL/Database"),
    (("aws", "cloud"), "Cloud/AWS"),
    (("docker",), "Docker"),
    (("kubernetes",), "Kubernetes"),
    (("typescript",), "TypeScript"),
]

_TECH_QUESTIONS: dict[str, list[str]] = {
    "JavaScript": [
        "Explain the difference between let, const, and var in JavaScript.",
        "How do you handle asynchronous operations in JavaScript?",
        "What are closures and how do you use them?",
    ],
    "React": [
        "Explain React hooks and how they compare to class components.",
        "How do you manage state in a React application?",
        "Describe how you would optimize React component performance.",
    ],
    "Node.js": [
        "Explain the event loop in Node.js and how it handles asynchronous operations.",
        "How do you handle errors in Node.js applications?",
        "Describe your experience with Node.js frameworks like Express.",
    ],
    "Python": [
        "Explain the difference between a list and a tuple in Python.",
        "How do you handle exceptions in Python?",
        "Describe your experience with Python frameworks like Django or Flask.",
    ],
    "SQL/Database": [
        "Explain the difference between INNER JOIN and LEFT JOIN.",
        "How would you optimize a slow database query?",
        "Describe your approach to database design and normalization.",
    ],
    "Cloud/AWS": [
        "Describe your experience with cloud platforms and deployment.",
        "How do you handle scalability in cloud applications?",
        "Explain your experience with AWS services or similar cloud providers.",
    ],
}


@dataclass
class QuestionSet:
    """Questions for one session, plus where they came from."""

    questions: list[str]
    session_id: str
    source: str = "backend"  # backend | generic
    metadata: dict[str, Any] = field(default_factory=dict)


def new_session_id() -> str:
    """Client-side session identifier (``session-<epoch ms>``)."""
    return f"session-{int(time.time() * 1000)}"


def extract_role_title(job_description: str) -> str:
    """Coarse role label taken from the first line of the job description."""
    first_line = job_description.split("\n", 1)[0] if job_description else ""
    first_line = (first_line or job_description[:100]).lower()
    for role in ("developer", "engineer", "designer"):
        if role in first_line:
            return role
    return "technology"


def extract_technologies(job_description: str) -> list[str]:
    """Technologies mentioned in the job description, in a fixed order."""
    text = job_description.lower()
    techs = []
    for keywords, label in _TECH_KEYWORDS:
        if label == "Java" and "javascript" in text:
            continue
        if any(k in text for k in keywords):
            techs.append(label)
    return techs or ["general programming"]


def _tech_questions(tech: str) -> list[str]:
    return _TECH_QUESTIONS.get(
        tech,
        [
            f"Describe your experience working with {tech}.",
            f"What challenges have you faced when using {tech}?",
        ],
    )


def generic_questions(job_description: str = "", mode: str = "basic") -> list[str]:
    """
    Build a question list from the job description alone.

    Args:
        job_description: Job description text (may be empty).
        mode: ``basic`` (5 questions), ``advanced`` (8) or ``challenge`` (10).

    Returns:
        Ordered, non-empty list of questions.
    """
    technologies = extract_technologies(job_description)
    basic = [
        "Tell me about yourself and how your background aligns with this role.",
        f"What specifically interests you about this {extract_role_title(job_description)} position?",
        "What are your key strengths that make you suitable for this role?",
        "Describe a challenging project you've worked on that relates to this position.",
        "How do you handle working under pressure and tight deadlines?",
    ]
    technical = [q for tech in technologies for q in _tech_questions(tech)]
    experience = [
        f"Walk me through a project where you used {technologies[0]}.",
        "What's the most challenging technical problem you've solved recently?",
        "How do you stay updated with new technologies in this field?",
        "Describe your experience with code reviews and collaborative development.",
        "Tell me about a time when you had to learn a new technology quickly for a project.",
    ]

    if mode == "advanced":
        questions = basic[:2] + technical[:4] + experience[:2]
    elif mode == "challenge":
        questions = basic[:2] + technical[:3] + experience[:2] + [
            "Design a system architecture for a scalable application similar to what we're building.",
            "How would you approach mentoring junior developers?",
            "Describe how you would optimize performance in a high-traffic application.",
        ]
    else:
        questions = basic[:3] + technical[:2]

    return questions[: _MODE_LIMITS.get(mode, _MODE_LIMITS["basic"])]


def _parse_questions(body: Any) -> tuple[list[str], str | None]:
    # Accepted shapes: [...], {"questions": [...]}, {"data": [...]},
    # {"data": {"questions": [...], "sessionId": "..."}}.
    session_id = None
    if isinstance(body, dict):
        data = body.get("data")
        if isinstance(data, dict):
            session_id = data.get("sessionId")
            body = data.get("questions")
        elif isinstance(data, list):
            body = data
        else:
            session_id = body.get("sessionId")
            body = body.get("questions")
    if not isinstance(body, list):
        return [], None
    questions = [q.strip() for q in body if isinstance(q, str) and q.strip()]
    return questions, session_id if isinstance(session_id, str) and session_id else None


class QuestionSupplier:
    """
    Fetches the question list for a session from the backend generator.
    """

    def __init__(
        self,
        base_url: str | None = None,
        path: str | None = None,
        timeout: float | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = base_url or settings.api_base_url
        self._path = path or settings.session_path
        self._timeout = timeout or settings.http_timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(
        self,
        job_description: str,
        cv_path: str | Path | None = None,
        mode: str = "basic",
    ) -> QuestionSet:
        """
        Get questions for a session. Never raises for backend problems.

        Args:
            job_description: Job description text.
            cv_path: Optional CV file sent alongside the job description.
            mode: Question mode (basic | advanced | challenge).

        Returns:
            QuestionSet from the backend, or the generic fallback.
        """
        try:
            questions, session_id = await self._request(job_description, cv_path, mode)
        except (httpx.HTTPError, OSError, ValueError) as e:
            logger.warning(f"Question generation failed, using generic questions: {e}")
            questions, session_id = [], None

        if not questions:
            fallback = generic_questions(job_description, mode)
            logger.info(f"Using {len(fallback)} generic questions (mode={mode})")
            return QuestionSet(
                questions=fallback,
                session_id=new_session_id(),
                source="generic",
                metadata={"mode": mode},
            )

        logger.info(f"Received {len(questions)} questions from backend (mode={mode})")
        return QuestionSet(
            questions=questions,
            session_id=session_id or new_session_id(),
            source="backend",
            metadata={"mode": mode},
        )

    async def _request(
        self,
        job_description: str,
        cv_path: str | Path | None,
        mode: str,
    ) -> tuple[list[str], str | None]:
        client = await self._get_client()
        data = {"jd": job_description, "mode": mode}
        if cv_path is None:
            response = await client.post(self._path, data=data)
        else:
            path = Path(cv_path)
            with path.open("rb") as fh:
                response = await client.post(
                    self._path,
                    data=data,
                    files={"cv": (path.name, fh.read())},
                )
        response.raise_for_status()
        return _parse_questions(response.json())
