from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cafedesk.core.api_docs import error_responses
from cafedesk.core.deps import get_db
from cafedesk.core.permissions import BLOG_DELETE_ROLES, BLOG_EDITOR_ROLES, require_roles
from cafedesk.core.security_current import Principal, get_optional_principal
from cafedesk.models.blog import BlogPost
from cafedesk.schemas.blog import (
    BlogPostCreate,
    BlogPostListOut,
    BlogPostMutationOut,
    BlogPostOut,
    BlogPostUpdate,
    BlogStatus,
    BlogViewOut,
)
from cafedesk.schemas.common import MessageOut, build_pagination
from cafedesk.schemas.reports import BlogStatsOut
from cafedesk.services import blog_service
from cafedesk.services.audit_service import log_audit_event

router = APIRouter(prefix="/blog", tags=["blog"])
MAX_POST_PAGE_SIZE = 100

blog_editor = require_roles(*BLOG_EDITOR_ROLES)


def post_out(post: BlogPost, *, include_seo: bool = True) -> BlogPostOut:
    return BlogPostOut(
        id=post.id,
        slug=post.slug,
        title=post.title,
        content=post.content,
        excerpt=post.excerpt,
        author_id=post.author_id,
        featured_image=post.featured_image,
        categories=list(post.categories or []),
        tags=list(post.tags or []),
        status=post.status,
        published_at=post.published_at,
        seo=post.seo if include_seo else None,
        view_count=post.view_count or 0,
        read_time=post.read_time,
        created_at=post.created_at,
        updated_at=post.updated_at,
    )


def _listing(
    db: Session,
    *,
    filters: list,
    order_by,
    category: str | None,
    tag: str | None,
    limit: int,
    offset: int,
    include_seo: bool,
) -> BlogPostListOut:
    # categories and tags live in JSON columns, so label filters run in Python
    posts = db.execute(select(BlogPost).where(*filters).order_by(*order_by)).scalars().all()
    matching = [p for p in posts if blog_service.matches_labels(p, category=category, tag=tag)]
    page = matching[offset : offset + limit]
    return BlogPostListOut(
        pagination=build_pagination(total=len(matching), limit=limit, offset=offset, count=len(page)),
        items=[post_out(p, include_seo=include_seo) for p in page],
    )


def _audit(db: Session, principal: Principal, post: BlogPost, action: str, **metadata) -> None:
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action=f"blog.{action}",
        target_type="blog_post",
        target_id=post.id,
        metadata_json={"slug": post.slug, **metadata},
    )


@router.get(
    "",
    response_model=BlogPostListOut,
    summary="List all posts",
    description="Every post regardless of status, newest first. Editors only.",
    responses=error_responses(401, 403, 422, 500),
)
def list_posts(
    status: BlogStatus | None = Query(None),
    category: str | None = Query(None, max_length=100),
    tag: str | None = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=MAX_POST_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _principal: Principal = Depends(blog_editor),
):
    filters = [BlogPost.status == status] if status else []
    return _listing(
        db,
        filters=filters,
        order_by=(BlogPost.created_at.desc(), BlogPost.id.desc()),
        category=category,
        tag=tag,
        limit=limit,
        offset=offset,
        include_seo=True,
    )


@router.get(
    "/public",
    response_model=BlogPostListOut,
    summary="List published posts",
    description="Public listing of published posts, most recently published first, without SEO data.",
    responses=error_responses(422, 500),
)
def list_public_posts(
    category: str | None = Query(None, max_length=100),
    tag: str | None = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=MAX_POST_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return _listing(
        db,
        filters=[BlogPost.status == "published"],
        order_by=(BlogPost.published_at.desc(), BlogPost.id.desc()),
        category=category,
        tag=tag,
        limit=limit,
        offset=offset,
        include_seo=False,
    )


@router.get(
    "/stats",
    response_model=BlogStatsOut,
    summary="Blog statistics",
    responses=error_responses(401, 403, 500),
)
def blog_stats(
    db: Session = Depends(get_db),
    _principal: Principal = Depends(blog_editor),
):
    return blog_service.blog_stats(db)


@router.get(
    "/{slug}",
    response_model=BlogPostOut,
    summary="Get post by slug",
    description="Unpublished posts are only visible to editors.",
    responses=error_responses(403, 404, 500),
)
def get_post(
    slug: str,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_optional_principal),
):
    post = blog_service.get_post(db, slug)
    if post.status != "published" and (principal is None or principal.role not in BLOG_EDITOR_ROLES):
        raise HTTPException(status_code=403, detail="Access denied")
    return post_out(post)


@router.post(
    "",
    response_model=BlogPostMutationOut,
    status_code=201,
    summary="Create post",
    description="The slug is derived from the title; read time is estimated when omitted.",
    responses=error_responses(401, 403, 422, 500),
)
def create_post(
    payload: BlogPostCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(blog_editor),
):
    post = blog_service.create_post(db, author_id=principal.id, values=payload.model_dump())
    _audit(db, principal, post, "create", status=post.status)
    db.commit()
    db.refresh(post)
    return BlogPostMutationOut(message="Blog post created successfully", post=post_out(post))


@router.put(
    "/{slug}",
    response_model=BlogPostMutationOut,
    summary="Update post",
    responses=error_responses(401, 403, 404, 422, 500),
)
def update_post(
    slug: str,
    payload: BlogPostUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(blog_editor),
):
    post = blog_service.get_post(db, slug)
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in {"excerpt", "featured_image", "seo"}
    }
    blog_service.update_post(db, post, changes)
    _audit(db, principal, post, "update", fields=sorted(changes))
    db.commit()
    db.refresh(post)
    return BlogPostMutationOut(message="Blog post updated successfully", post=post_out(post))


@router.delete(
    "/{slug}",
    response_model=MessageOut,
    summary="Delete post",
    responses=error_responses(401, 403, 404, 500),
)
def delete_post(
    slug: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(*BLOG_DELETE_ROLES)),
):
    post = blog_service.get_post(db, slug)
    _audit(db, principal, post, "delete")
    db.delete(post)
    db.commit()
    return MessageOut(message="Blog post deleted successfully")


@router.post(
    "/{slug}/view",
    response_model=BlogViewOut,
    summary="Count a view",
    description="Public endpoint that increments the post's view counter.",
    responses=error_responses(404, 500),
)
def count_view(slug: str, db: Session = Depends(get_db)):
    post = blog_service.increment_view_count(db, slug)
    db.commit()
    return BlogViewOut(slug=post.slug, view_count=post.view_count)
