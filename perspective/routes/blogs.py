"""
Blog routes for Perspective.
Public reading plus the owner's dashboard, create/edit forms, publish
toggling and deletion.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import RedirectResponse

from perspective.backend.client import BackendClient, BackendError, get_backend
from perspective.models import CATEGORIES, BlogPost, CoverImage
from perspective.routes.auth import get_session_tracker, login_redirect, persist_session
from perspective.routes.pages import render
from perspective.services.blogs import BlogRepository
from perspective.services.forms import BlogFormController, SubmissionState
from perspective.services.session import SessionTracker

router = APIRouter(tags=["blogs"])

EMPTY_FORM = {"title": "", "content": "", "excerpt": "", "category": "", "published": False}


def get_repository(
    tracker: SessionTracker = Depends(get_session_tracker),
    backend: BackendClient = Depends(get_backend)
) -> BlogRepository:
    return BlogRepository(backend, tracker.auth)


async def read_cover(image: Optional[UploadFile]) -> Optional[CoverImage]:
    """Turn an uploaded file field into a CoverImage; empty fields mean none."""
    if image is None or not image.filename:
        return None
    return CoverImage(
        filename=image.filename,
        content=await image.read(),
        content_type=image.content_type or "application/octet-stream",
    )


def form_values(title, content, excerpt, category, published) -> dict:
    return {
        "title": title,
        "content": content,
        "excerpt": excerpt,
        "category": category,
        "published": published,
    }


def render_form(request, tracker, form, post=None, error=None, status_code=200):
    return persist_session(render(
        request,
        "blog_form.html",
        {"form": form, "post": post, "error": error},
        tracker=tracker,
        status_code=status_code,
    ), tracker.auth)


def render_not_found(request, tracker):
    return persist_session(
        render(request, "not_found.html", {}, tracker=tracker, status_code=404),
        tracker.auth
    )


def failure_status(controller: BlogFormController) -> int:
    """400 for a rejected draft, 502 when the backend refused it."""
    if SubmissionState.FAILED in controller.transitions:
        return 502
    return 400


# =============================================================================
# PUBLIC
# =============================================================================

@router.get("/")
async def blog_index(
    request: Request,
    category: Optional[str] = None,
    tracker: SessionTracker = Depends(get_session_tracker),
    repository: BlogRepository = Depends(get_repository)
):
    """Published posts, optionally for one category."""
    if category and category not in CATEGORIES:
        raise HTTPException(status_code=404, detail="Unknown category")

    error = None
    try:
        posts = await repository.list_published(category=category)
    except BackendError:
        posts = []
        error = "Failed to load blogs"

    response = render(
        request,
        "index.html",
        {"posts": posts, "category": category, "error": error},
        tracker=tracker,
    )
    return persist_session(response, tracker.auth)


@router.get("/blog/{post_id}")
async def blog_view(
    request: Request,
    post_id: str,
    tracker: SessionTracker = Depends(get_session_tracker),
    repository: BlogRepository = Depends(get_repository)
):
    """Single post view. Missing posts get the not-found page."""
    try:
        post = await repository.fetch_by_id(post_id)
    except BackendError as exc:
        response = render(
            request, "error.html", {"error": exc.message}, tracker=tracker, status_code=502
        )
        return persist_session(response, tracker.auth)

    if post is None:
        return render_not_found(request, tracker)

    response = render(request, "blog.html", {"post": post}, tracker=tracker)
    return persist_session(response, tracker.auth)


# =============================================================================
# OWNER DASHBOARD
# =============================================================================

@router.get("/my-blogs")
async def my_blogs(
    request: Request,
    tracker: SessionTracker = Depends(get_session_tracker),
    repository: BlogRepository = Depends(get_repository)
):
    """The signed-in user's posts, drafts included."""
    if tracker.user is None:
        return login_redirect()

    error = None
    try:
        posts = await repository.list_owned(tracker.user.id)
    except BackendError:
        posts = []
        error = "Failed to load your blogs"

    response = render(
        request, "my_blogs.html", {"posts": posts, "error": error}, tracker=tracker
    )
    return persist_session(response, tracker.auth)


@router.post("/my-blogs/{post_id}/publish")
async def toggle_publish(
    post_id: str,
    published: bool = Form(...),
    tracker: SessionTracker = Depends(get_session_tracker),
    repository: BlogRepository = Depends(get_repository)
):
    """Flip the publish flag on one of the user's posts.

    `published` is the state the page showed.
    """
    if tracker.user is None:
        return login_redirect()

    try:
        updated = await repository.set_published(post_id, not published, owner_id=tracker.user.id)
    except BackendError:
        url = "/my-blogs?error=status"
    else:
        if updated is None:
            url = "/my-blogs?error=missing"
        else:
            url = "/my-blogs?notice=" + ("published" if updated.published else "unpublished")

    return persist_session(RedirectResponse(url=url, status_code=303), tracker.auth)


@router.post("/my-blogs/{post_id}/delete")
async def delete_blog(
    post_id: str,
    tracker: SessionTracker = Depends(get_session_tracker),
    repository: BlogRepository = Depends(get_repository)
):
    """Permanently delete one of the user's posts."""
    if tracker.user is None:
        return login_redirect()

    try:
        deleted = await repository.delete(post_id, owner_id=tracker.user.id)
    except BackendError:
        url = "/my-blogs?error=delete"
    else:
        url = "/my-blogs?notice=deleted" if deleted else "/my-blogs?error=missing"

    return persist_session(RedirectResponse(url=url, status_code=303), tracker.auth)


# =============================================================================
# CREATE / EDIT
# =============================================================================

@router.get("/create-blog")
async def create_blog_page(
    request: Request,
    tracker: SessionTracker = Depends(get_session_tracker)
):
    """New post form."""
    if tracker.user is None:
        return login_redirect()
    return render_form(request, tracker, dict(EMPTY_FORM))


@router.post("/create-blog")
async def create_blog(
    request: Request,
    title: str = Form(""),
    content: str = Form(""),
    excerpt: str = Form(""),
    category: str = Form(""),
    published: bool = Form(False),
    image: Optional[UploadFile] = File(None),
    tracker: SessionTracker = Depends(get_session_tracker),
    repository: BlogRepository = Depends(get_repository)
):
    """Validate and create a post."""
    if tracker.user is None:
        return login_redirect()

    form = form_values(title, content, excerpt, category, published)
    controller = BlogFormController(repository)
    if not controller.select_image(await read_cover(image)):
        return render_form(request, tracker, form, error=controller.error, status_code=400)

    post = await controller.submit_new(tracker.user.id, form)
    if post is None:
        return render_form(
            request, tracker, form, error=controller.error,
            status_code=failure_status(controller)
        )

    notice = "created" if post.published else "drafted"
    response = RedirectResponse(url=f"/my-blogs?notice={notice}", status_code=303)
    return persist_session(response, tracker.auth)


async def owned_post(
    post_id: str,
    tracker: SessionTracker,
    repository: BlogRepository
) -> Optional[BlogPost]:
    """The post if the signed-in user owns it, otherwise None."""
    post = await repository.fetch_by_id(post_id)
    if post is None or post.user_id != tracker.user.id:
        return None
    return post


@router.get("/edit-blog/{post_id}")
async def edit_blog_page(
    request: Request,
    post_id: str,
    tracker: SessionTracker = Depends(get_session_tracker),
    repository: BlogRepository = Depends(get_repository)
):
    """Edit form for one of the user's posts."""
    if tracker.user is None:
        return login_redirect()

    try:
        post = await owned_post(post_id, tracker, repository)
    except BackendError as exc:
        response = render(
            request, "error.html", {"error": exc.message}, tracker=tracker, status_code=502
        )
        return persist_session(response, tracker.auth)
    if post is None:
        return render_not_found(request, tracker)

    form = form_values(post.title, post.content, post.excerpt or "", post.category, post.published)
    return render_form(request, tracker, form, post=post)


@router.post("/edit-blog/{post_id}")
async def edit_blog(
    request: Request,
    post_id: str,
    title: str = Form(""),
    content: str = Form(""),
    excerpt: str = Form(""),
    category: str = Form(""),
    published: bool = Form(False),
    image: Optional[UploadFile] = File(None),
    tracker: SessionTracker = Depends(get_session_tracker),
    repository: BlogRepository = Depends(get_repository)
):
    """Validate and save an edit."""
    if tracker.user is None:
        return login_redirect()

    form = form_values(title, content, excerpt, category, published)
    try:
        post = await owned_post(post_id, tracker, repository)
    except BackendError as exc:
        return render_form(request, tracker, form, error=exc.message, status_code=502)
    if post is None:
        return render_not_found(request, tracker)

    controller = BlogFormController(repository)
    if not controller.select_image(await read_cover(image)):
        return render_form(request, tracker, form, post=post, error=controller.error, status_code=400)

    updated = await controller.submit_edit(post, form)
    if updated is None:
        return render_form(
            request, tracker, form, post=post, error=controller.error,
            status_code=failure_status(controller)
        )

    response = RedirectResponse(url=f"/blog/{updated.id}?notice=updated", status_code=303)
    return persist_session(response, tracker.auth)
