import math
import re
import uuid
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafedesk.core.errors import NotFound
from cafedesk.models.blog import BlogPost

WORDS_PER_MINUTE = 200
MONTHS_WINDOW = 12

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    slug = _NON_SLUG_CHARS.sub("-", title.lower()).strip("-")
    return slug or "post"


def unique_slug(db: Session, title: str, *, exclude_id: str | None = None) -> str:
    base = slugify(title)
    candidate = base
    suffix = 2
    while True:
        stmt = select(BlogPost.id).where(BlogPost.slug == candidate)
        if exclude_id:
            stmt = stmt.where(BlogPost.id != exclude_id)
        if db.execute(stmt).first() is None:
            return candidate
        candidate = f"{base}-{suffix}"
        suffix += 1


def estimate_read_time(content: str) -> int:
    words = len(content.split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def get_post(db: Session, slug: str) -> BlogPost:
    post = db.execute(select(BlogPost).where(BlogPost.slug == slug)).scalar_one_or_none()
    if not post:
        raise NotFound("Blog post not found")
    return post


def create_post(db: Session, *, author_id: str, values: dict[str, Any]) -> BlogPost:
    read_time = values.pop("read_time", None) or estimate_read_time(values["content"])
    status = values.get("status", "draft")
    post = BlogPost(
        id=str(uuid.uuid4()),
        slug=unique_slug(db, values["title"]),
        author_id=author_id,
        read_time=read_time,
        published_at=datetime.now(timezone.utc) if status == "published" else None,
        view_count=0,
        **values,
    )
    db.add(post)
    return post


def update_post(db: Session, post: BlogPost, changes: dict[str, Any]) -> BlogPost:
    # the slug is fixed at creation so published links keep working
    if changes.get("status") == "published" and post.status != "published":
        post.published_at = datetime.now(timezone.utc)
    for key, value in changes.items():
        setattr(post, key, value)
    if "content" in changes and "read_time" not in changes:
        post.read_time = estimate_read_time(post.content)
    return post


def increment_view_count(db: Session, slug: str) -> BlogPost:
    post = db.execute(
        select(BlogPost).where(BlogPost.slug == slug).with_for_update()
    ).scalar_one_or_none()
    if not post:
        raise NotFound("Blog post not found")
    post.view_count = (post.view_count or 0) + 1
    return post


def matches_labels(post: BlogPost, *, category: str | None, tag: str | None) -> bool:
    if category and category not in (post.categories or []):
        return False
    if tag and tag not in (post.tags or []):
        return False
    return True


def blog_stats(db: Session) -> dict:
    posts = db.execute(select(BlogPost)).scalars().all()

    by_status = Counter(post.status for post in posts)
    category_counts: Counter[str] = Counter()
    category_views: Counter[str] = Counter()
    tag_counts: Counter[str] = Counter()
    monthly: dict[str, dict[str, int]] = defaultdict(lambda: {"count": 0, "views": 0})
    total_views = 0
    read_times: list[int] = []

    for post in posts:
        total_views += post.view_count or 0
        read_times.append(post.read_time)
        for category in post.categories or []:
            category_counts[category] += 1
            category_views[category] += post.view_count or 0
        for tag in post.tags or []:
            tag_counts[tag] += 1
        if post.published_at is not None:
            bucket = monthly[post.published_at.strftime("%Y-%m")]
            bucket["count"] += 1
            bucket["views"] += post.view_count or 0

    months = sorted(monthly, reverse=True)[:MONTHS_WINDOW]
    return {
        "by_status": [{"key": key, "count": count} for key, count in sorted(by_status.items())],
        "by_category": [
            {"category": key, "count": count, "views": category_views[key]}
            for key, count in category_counts.most_common()
        ],
        "by_tag": [{"key": key, "count": count} for key, count in tag_counts.most_common()],
        "total_views": total_views,
        "average_read_time": round(sum(read_times) / len(read_times), 2) if read_times else None,
        "monthly_posts": [{"month": month, **monthly[month]} for month in months],
    }
