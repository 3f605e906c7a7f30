from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_user_action
from marketplace.core.auth_dependency import get_current_user, get_db, get_optional_user, require_roles
from marketplace.core.errors import NotFoundError
from marketplace.core.identity import CurrentUser
from marketplace.core.retry import with_db_retry
from marketplace.db.models.enums import PostStatus, UserRole
from marketplace.schemas.blog import CommentCreate, CommentResponse, PostCreate, PostListResponse, PostResponse, PostUpdate
from marketplace.services import blog_service
from marketplace.services.storage_service import StorageService, get_storage

router = APIRouter(prefix="/blog", tags=["Blog"])

require_editor = require_roles(UserRole.ADMIN, UserRole.EDITOR)


def _can_see_drafts(user: Optional[CurrentUser]) -> bool:
    return user is not None and user.role in (UserRole.ADMIN, UserRole.EDITOR)


@router.get("/posts", response_model=PostListResponse)
async def list_posts(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    status_filter: Optional[PostStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    post_status = status_filter if _can_see_drafts(current_user) else PostStatus.PUBLISHED
    return await with_db_retry(lambda: blog_service.list_posts(
        db, search=search, category_id=category_id, status=post_status, page=page, limit=limit,
    ))


@router.get("/posts/slug/{slug}", response_model=PostResponse)
def get_post_by_slug(
    slug: str,
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    return blog_service.get_post_by_slug(db, slug, include_drafts=_can_see_drafts(current_user))


@router.get("/posts/{post_id}", response_model=PostResponse)
def get_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    post = blog_service.get_post(db, post_id)
    if post.status != PostStatus.PUBLISHED and not _can_see_drafts(current_user):
        raise NotFoundError("Post not found")
    return post


@router.post(
    "/posts",
    response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audit_user_action("CREATE", "post"))],
)
def create_post(payload: PostCreate, db: Session = Depends(get_db), editor: CurrentUser = Depends(require_editor)):
    return blog_service.create_post(db, payload.model_dump(), editor.id)


@router.put("/posts/{post_id}", response_model=PostResponse, dependencies=[Depends(audit_user_action("UPDATE", "post"))])
def update_post(
    post_id: int,
    payload: PostUpdate,
    db: Session = Depends(get_db),
    editor: CurrentUser = Depends(require_editor),
):
    return blog_service.update_post(db, post_id, payload.model_dump(exclude_unset=True), editor)


@router.delete(
    "/posts/{post_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(audit_user_action("DELETE", "post"))],
)
def delete_post(
    post_id: int,
    db: Session = Depends(get_db),
    editor: CurrentUser = Depends(require_editor),
    storage: StorageService = Depends(get_storage),
):
    blog_service.delete_post(db, post_id, editor, storage)


@router.post(
    "/posts/{post_id}/image",
    response_model=PostResponse,
    dependencies=[Depends(audit_user_action("SET_IMAGE", "post"))],
)
async def upload_post_image(
    post_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    editor: CurrentUser = Depends(require_editor),
    storage: StorageService = Depends(get_storage),
):
    return await blog_service.set_post_image(db, post_id, file, editor, storage)


# ✅ COMMENTS

@router.get("/posts/{post_id}/comments", response_model=List[CommentResponse])
def list_comments(post_id: int, db: Session = Depends(get_db)):
    return blog_service.list_comments(db, post_id)


@router.post(
    "/posts/{post_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audit_user_action("CREATE", "comment"))],
)
def add_comment(
    post_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return blog_service.add_comment(db, post_id, current_user.id, payload.content)


@router.delete(
    "/comments/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(audit_user_action("DELETE", "comment"))],
)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    blog_service.delete_comment(db, comment_id, current_user)
