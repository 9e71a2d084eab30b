"""Public, read-only endpoints for any user's content repository."""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Path

from api.dependencies import get_content_cache, get_public_store, get_retry_policy
from api.models.about import AboutPage
from api.models.blog import BlogPost
from api.models.thought import Thought
from api.services import about, blog_posts, thoughts
from api.services.cache import BoundedCache
from api.services.github_store import GitHubStore
from api.services.retry import RetryPolicy

router = APIRouter(prefix="/public/{username}", tags=["public"])


@router.get("")
async def get_public_content(
    store: GitHubStore = Depends(get_public_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    """Blog posts and thoughts for one user in a single response."""
    posts, notes = await asyncio.gather(
        blog_posts.list_posts(store, cache, policy),
        thoughts.list_thoughts(store, cache, policy),
    )
    return {
        "blogPosts": [p.model_dump() for p in posts],
        "thoughts": [t.model_dump(exclude_none=True) for t in notes],
    }


@router.get("/blog", response_model=list[BlogPost])
async def list_public_posts(
    store: GitHubStore = Depends(get_public_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    return await blog_posts.list_posts(store, cache, policy)


@router.get("/blog/{post_id}", response_model=BlogPost)
async def get_public_post(
    post_id: str = Path(..., min_length=1, max_length=255),
    store: GitHubStore = Depends(get_public_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    post = await blog_posts.get_post(store, cache, post_id, policy)
    if post is None:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return post


@router.get("/thoughts", response_model=list[Thought], response_model_exclude_none=True)
async def list_public_thoughts(
    store: GitHubStore = Depends(get_public_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    return await thoughts.list_thoughts(store, cache, policy)


@router.get("/about", response_model=AboutPage | None)
async def get_public_about(
    store: GitHubStore = Depends(get_public_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    return await about.get_about_page(store, cache, policy)
