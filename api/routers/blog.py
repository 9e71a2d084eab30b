"""Blog post endpoints for the signed-in user."""

from fastapi import APIRouter, Depends, HTTPException, Path

from api.dependencies import get_content_cache, get_retry_policy, get_user_store
from api.models.blog import BlogPost, BlogPostCreated, BlogPostInput, BlogPostUpdated
from api.services import blog_posts
from api.services.cache import BoundedCache
from api.services.github_store import GitHubStore
from api.services.retry import RetryPolicy

router = APIRouter(prefix="/blog", tags=["blog"])

POST_ID = Path(..., min_length=1, max_length=255)


@router.get("", response_model=list[BlogPost])
async def list_blog_posts(
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    """List the signed-in user's blog posts, newest first."""
    return await blog_posts.list_posts(store, cache, policy)


@router.post("", response_model=BlogPostCreated, status_code=201)
async def create_blog_post(
    post: BlogPostInput,
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    post_id = await blog_posts.create_post(store, cache, post.title, post.content, policy)
    return BlogPostCreated(id=post_id)


@router.get("/{post_id}", response_model=BlogPost)
async def get_blog_post(
    post_id: str = POST_ID,
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    post = await blog_posts.get_post(store, cache, post_id, policy)
    if post is None:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return post


@router.put("/{post_id}", response_model=BlogPostUpdated)
async def update_blog_post(
    post: BlogPostInput,
    post_id: str = POST_ID,
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    """Update a post. A title change that changes the slug renames the file."""
    new_id = await blog_posts.update_post(
        store, cache, post_id, post.title, post.content, policy
    )
    return BlogPostUpdated(id=new_id, previous_id=post_id, renamed=new_id != post_id)


@router.delete("/{post_id}")
async def delete_blog_post(
    post_id: str = POST_ID,
    store: GitHubStore = Depends(get_user_store),
    cache: BoundedCache = Depends(get_content_cache),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    await blog_posts.delete_post(store, cache, post_id, policy)
    return {"message": "Blog post deleted successfully"}
