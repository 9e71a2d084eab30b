"""Thought endpoints for the signed-in user."""

from fastapi import APIRouter, Depends, Path

from api.dependencies import get_content_cache, get_retry_policy, get_user_store
from api.models.thought import Thought, ThoughtInput, ThoughtUpdate
from api.services import thoughts
from api.services.cache import BoundedCache
from api.services.github_store import GitHubStore
from api.services.retry import RetryPolicy

router = APIRouter(prefix="/thoughts", tags=["thoughts"])

# Thought ids are millisecond timestamps
THOUGHT_ID = Path(..., pattern=r"^\d+$", max_length=20)


@router.get("", response_model=list[Thought], response_model_exclude_none=True)
async def list_thoughts(
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    """List the signed-in user's thoughts, newest first."""
    return await thoughts.list_thoughts(store, cache, policy)


@router.post(
    "", response_model=Thought, response_model_exclude_none=True, status_code=201
)
async def create_thought(
    thought: ThoughtInput,
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    return await thoughts.create_thought(
        store, cache, thought.content, thought.image, policy
    )


@router.put("/{thought_id}", response_model=Thought, response_model_exclude_none=True)
async def update_thought(
    update: ThoughtUpdate,
    thought_id: str = THOUGHT_ID,
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    return await thoughts.update_thought(store, cache, thought_id, update.content, policy)


@router.delete("/{thought_id}")
async def delete_thought(
    thought_id: str = THOUGHT_ID,
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    await thoughts.delete_thought(store, cache, thought_id, policy)
    return {"message": "Thought deleted successfully"}
