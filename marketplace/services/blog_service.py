"""
Blog posts, categories and comments.
"""
import logging
import re
import unicodedata
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

from marketplace.core.errors import BadRequestError, ConflictError, NotFoundError
from marketplace.db.models.blog import BlogPost, Comment
from marketplace.db.models.business import Business
from marketplace.db.models.category import Category
from marketplace.db.models.enums import PostStatus
from marketplace.db.models.professional import Professional
from marketplace.services.pagination import paginate, search_filter
from marketplace.services.permissions import ensure_owner_or_admin
from marketplace.services.storage_service import StorageService, get_storage

logger = logging.getLogger(__name__)


def slugify(text: str) -> str:
    """ASCII, lower-case, hyphen-separated slug ("Café & Bar" -> "cafe-bar")."""
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "post"


def unique_slug(db: Session, model, text: str, exclude_id: Optional[int] = None) -> str:
    base = slugify(text)
    slug, n = base, 2
    while True:
        query = db.query(model.id).filter(model.slug == slug)
        if exclude_id is not None:
            query = query.filter(model.id != exclude_id)
        if not query.first():
            return slug
        slug = f"{base}-{n}"
        n += 1


# Posts

def list_posts(
    db: Session,
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    status: Optional[PostStatus] = PostStatus.PUBLISHED,
    page: int = 1,
    limit: int = 10,
) -> Dict:
    query = db.query(BlogPost)

    if status is not None:
        query = query.filter(BlogPost.status == status)
    if search:
        query = query.filter(search_filter(search, BlogPost.title, BlogPost.content))
    if category_id is not None:
        query = query.filter(BlogPost.category_id == category_id)

    query = query.order_by(BlogPost.published_at.desc(), BlogPost.created_at.desc(), BlogPost.id.desc())
    return paginate(query, page, limit)


def get_post(db: Session, post_id: int) -> BlogPost:
    post = db.query(BlogPost).filter(BlogPost.id == post_id).first()
    if not post:
        raise NotFoundError("Post not found")
    return post


def get_post_by_slug(db: Session, slug: str, include_drafts: bool = False) -> BlogPost:
    query = db.query(BlogPost).filter(BlogPost.slug == slug)
    if not include_drafts:
        query = query.filter(BlogPost.status == PostStatus.PUBLISHED)
    post = query.first()
    if not post:
        raise NotFoundError("Post not found")
    return post


def create_post(db: Session, data: Dict, author_id: int) -> BlogPost:
    category_id = data.get("category_id")
    if category_id is not None:
        get_category(db, category_id)

    post = BlogPost(**data, author_id=author_id, slug=unique_slug(db, BlogPost, data["title"]))
    if post.status == PostStatus.PUBLISHED:
        post.published_at = datetime.utcnow()

    db.add(post)
    db.commit()
    db.refresh(post)

    logger.info(f"Post created: post_id={post.id}, slug={post.slug}, status={post.status.value}")
    return post


def update_post(db: Session, post_id: int, data: Dict, caller) -> BlogPost:
    post = get_post(db, post_id)
    ensure_owner_or_admin(post.author_id, caller, "post")

    if "category_id" in data and data["category_id"] is not None:
        get_category(db, data["category_id"])

    if "title" in data and data["title"] != post.title:
        post.slug = unique_slug(db, BlogPost, data["title"], exclude_id=post.id)

    for field, value in data.items():
        setattr(post, field, value)

    if post.status == PostStatus.PUBLISHED and post.published_at is None:
        post.published_at = datetime.utcnow()

    db.commit()
    db.refresh(post)

    logger.info(f"Post updated: post_id={post.id}, caller_id={caller.id}")
    return post


def delete_post(db: Session, post_id: int, caller, storage: StorageService = None) -> None:
    post = get_post(db, post_id)
    ensure_owner_or_admin(post.author_id, caller, "post")

    image = post.image
    db.delete(post)
    db.commit()

    if image:
        (storage or get_storage()).delete(image)
    logger.info(f"Post deleted: post_id={post_id}, caller_id={caller.id}")


async def set_post_image(db: Session, post_id: int, file: UploadFile, caller,
                         storage: StorageService = None) -> BlogPost:
    post = get_post(db, post_id)
    ensure_owner_or_admin(post.author_id, caller, "post")

    storage = storage or get_storage()
    previous = post.image
    post.image = await storage.save(file)
    db.commit()
    db.refresh(post)

    if previous:
        storage.delete(previous)
    return post


# Categories

def list_categories(db: Session) -> List[Category]:
    return db.query(Category).order_by(Category.name).all()


def get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def create_category(db: Session, name: str, description: Optional[str] = None) -> Category:
    if db.query(Category.id).filter(Category.name == name).first():
        raise ConflictError("Category already exists")

    category = Category(name=name, slug=unique_slug(db, Category, name), description=description)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info(f"Category created: category_id={category.id}, slug={category.slug}")
    return category


def update_category(db: Session, category_id: int, data: Dict) -> Category:
    category = get_category(db, category_id)

    name = data.get("name")
    if name and name != category.name:
        if db.query(Category.id).filter(Category.name == name, Category.id != category.id).first():
            raise ConflictError("Category already exists")
        category.name = name
        category.slug = unique_slug(db, Category, name, exclude_id=category.id)
    if "description" in data:
        category.description = data["description"]

    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: int) -> None:
    """Delete a category nothing refers to."""
    category = get_category(db, category_id)

    in_use = any(
        db.query(model.id).filter(model.category_id == category.id).first()
        for model in (Business, Professional, BlogPost)
    )
    if in_use:
        raise ConflictError("Category is in use")

    db.delete(category)
    db.commit()
    logger.info(f"Category deleted: category_id={category_id}")


# Comments

def list_comments(db: Session, post_id: int) -> List[Comment]:
    get_post(db, post_id)
    return db.query(Comment).filter(Comment.post_id == post_id).order_by(Comment.created_at, Comment.id).all()


def add_comment(db: Session, post_id: int, user_id: int, content: str) -> Comment:
    post = get_post(db, post_id)
    if post.status != PostStatus.PUBLISHED:
        raise BadRequestError("Comments are only allowed on published posts")

    comment = Comment(post_id=post.id, user_id=user_id, content=content)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    logger.info(f"Comment added: comment_id={comment.id}, post_id={post.id}, user_id={user_id}")
    return comment


def delete_comment(db: Session, comment_id: int, caller) -> None:
    comment = db.query(Comment).filter(Comment.id == comment_id).first()
    if not comment:
        raise NotFoundError("Comment not found")
    ensure_owner_or_admin(comment.user_id, caller, "comment")

    db.delete(comment)
    db.commit()
    logger.info(f"Comment deleted: comment_id={comment_id}, caller_id={caller.id}")
