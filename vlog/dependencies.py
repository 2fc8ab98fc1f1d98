from fastapi import Depends, Query
from fastapi.security import OAuth2PasswordBearer

from vlog.cache import cache
from vlog.config import settings
from vlog.exceptions import AuthenticationError
from vlog.security import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_email(token: str = Depends(oauth2_scheme)) -> str:
    """
    Identity of the acting user, taken from the bearer token.

    Routers pass the returned email into service calls explicitly; the
    services resolve it to a user row themselves, so a token that outlives
    its account is rejected there.  Tokens revoked by logout are refused
    here.
    """
    email = decode_access_token(token)
    if await cache.is_token_revoked(token):
        raise AuthenticationError("Token has been revoked")
    return email


class PaginationParams:
    """
    Reusable dependency parsing page / sort query parameters.

    ``page_size`` is clamped to ``settings.MAX_PAGE_SIZE`` in addition to
    the schema bound, so the ceiling can be lowered from configuration
    alone.  ``sort_by`` is validated against a whitelist by the service.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items returned per page (max 100).",
        ),
        sort_by: str = Query("created_at", description="Column to sort by."),
        sort_order: str = Query(
            "desc",
            pattern="^(asc|desc)$",
            description="Sort direction: 'asc' or 'desc'.",
        ),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)
        self.sort_by = sort_by
        self.sort_order = sort_order

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size
