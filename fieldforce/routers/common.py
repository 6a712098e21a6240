from fastapi import Request

from fieldforce.settings import get_settings


def client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def page_window(page: int, limit: int | None) -> tuple[int, int]:
    settings = get_settings()
    resolved_limit = limit if limit is not None else settings.attendance_page_limit_default
    return max(1, page), min(max(1, resolved_limit), settings.attendance_page_limit_max)
