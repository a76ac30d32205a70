"""Async HTTP client for the student API."""

from typing import Any, Dict, List, Optional

import httpx

from cbt_practice.errors import (
    AlreadyAttempted,
    AttemptAlreadySubmitted,
    CBTError,
    InsufficientQuestions,
    InUse,
    InvalidOption,
    NotFound,
)

_ERRORS = {
    cls.__name__: cls
    for cls in (NotFound, AlreadyAttempted, InvalidOption, AttemptAlreadySubmitted, InUse)
}


def _raise_for_error(response: httpx.Response) -> None:
    """Re-raise API errors as the matching domain exception."""
    if response.status_code < 400:
        return
    try:
        body = response.json()
    except ValueError:
        body = {}
    name = body.get("error") if isinstance(body, dict) else None
    detail = body.get("detail", response.text) if isinstance(body, dict) else response.text

    if name == InsufficientQuestions.__name__:
        raise InsufficientQuestions(
            body.get("subject_id"), body.get("available", 0), body.get("required", 0)
        )
    error_cls = _ERRORS.get(name)
    if error_cls is not None:
        raise error_cls(detail)
    response.raise_for_status()


class CBTClient:
    """Thin wrapper over ``httpx.AsyncClient`` speaking the student API.

    The underlying client owns the base URL and the session cookie.
    """

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        response = await self._http.post(
            "/auth/login", data={"email": email, "password": password}
        )
        _raise_for_error(response)
        return response.json()

    async def logout(self) -> None:
        response = await self._http.post("/auth/logout")
        _raise_for_error(response)

    async def list_exams(self) -> List[Dict[str, Any]]:
        response = await self._http.get("/exams")
        _raise_for_error(response)
        return response.json()

    async def list_subjects(self, exam_id: int) -> List[Dict[str, Any]]:
        response = await self._http.get(f"/exams/{exam_id}/subjects")
        _raise_for_error(response)
        return response.json()

    async def start_attempt(self, subject_id: int) -> Dict[str, Any]:
        response = await self._http.post(f"/subjects/{subject_id}/attempts")
        _raise_for_error(response)
        return response.json()

    async def get_attempt(self, attempt_id: int) -> Dict[str, Any]:
        """Load an attempt for taking. Raises AttemptAlreadySubmitted if it is final."""
        response = await self._http.get(f"/attempts/{attempt_id}", follow_redirects=False)
        if response.status_code == 303:
            raise AttemptAlreadySubmitted(f"Attempt {attempt_id} has already been submitted")
        _raise_for_error(response)
        return response.json()

    async def save_answer(self, attempt_id: int, question_id: int, option: str) -> None:
        response = await self._http.put(
            f"/attempts/{attempt_id}/answers/{question_id}",
            json={"selected_option": option},
        )
        _raise_for_error(response)

    async def update_remaining_time(self, attempt_id: int, seconds: int) -> None:
        response = await self._http.put(
            f"/attempts/{attempt_id}/time", json={"time_remaining_seconds": seconds}
        )
        _raise_for_error(response)

    async def submit_attempt(self, attempt_id: int) -> Dict[str, Any]:
        response = await self._http.post(f"/attempts/{attempt_id}/submit")
        _raise_for_error(response)
        return response.json()

    async def get_result(self, attempt_id: int, review: bool = False) -> Dict[str, Any]:
        path = "review" if review else "result"
        response = await self._http.get(f"/attempts/{attempt_id}/{path}")
        _raise_for_error(response)
        return response.json()

    async def my_attempts(self) -> List[Dict[str, Any]]:
        response = await self._http.get("/me/attempts")
        _raise_for_error(response)
        return response.json()


def make_client(base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> CBTClient:
    return CBTClient(httpx.AsyncClient(base_url=base_url, transport=transport))
