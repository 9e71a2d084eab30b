"""Image upload endpoint for the signed-in user."""

from fastapi import APIRouter, Depends, File, UploadFile

from api.dependencies import get_content_cache, get_retry_policy, get_user_store
from api.services.cache import BoundedCache
from api.services.github_store import GitHubStore
from api.services.images import upload_image
from api.services.retry import RetryPolicy

router = APIRouter(prefix="/images", tags=["images"])


@router.post("", status_code=201)
async def upload(
    file: UploadFile = File(...),
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    """Upload an image and return the URL to embed in posts and thoughts."""
    data = await file.read()
    url = await upload_image(store, cache, data, file.filename or "", policy)
    return {"url": url}
