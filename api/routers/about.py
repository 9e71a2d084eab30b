"""About page endpoints for the signed-in user."""

from fastapi import APIRouter, Depends

from api.dependencies import get_content_cache, get_retry_policy, get_user_store
from api.models.about import AboutPage, AboutPageInput
from api.services import about
from api.services.cache import BoundedCache
from api.services.github_store import GitHubStore
from api.services.retry import RetryPolicy

router = APIRouter(prefix="/about", tags=["about"])


@router.get("", response_model=AboutPage | None)
async def get_about_page(
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    """Return the about page, or null when none has been written yet."""
    return await about.get_about_page(store, cache, policy)


@router.post("", response_model=AboutPage, status_code=201)
async def create_about_page(
    page: AboutPageInput,
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    return await about.create_about_page(store, cache, page.content, policy)


@router.put("", response_model=AboutPage)
async def update_about_page(
    page: AboutPageInput,
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    return await about.update_about_page(store, cache, page.content, policy)
