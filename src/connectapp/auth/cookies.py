"""Cookie transport for session credentials."""

from fastapi import Response


def set_session_cookie(
    response: Response, name: str, token: str, max_age: int, secure: bool
) -> None:
    response.set_cookie(
        key=name,
        value=token,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=secure,
        samesite="lax",
    )


def clear_session_cookie(response: Response, name: str, secure: bool) -> None:
    """Reissue *name* empty with immediate expiry."""
    response.set_cookie(
        key=name,
        value="",
        max_age=0,
        expires=0,
        path="/",
        httponly=True,
        secure=secure,
        samesite="lax",
    )
