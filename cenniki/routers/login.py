"""
Administrator API endpoints.

Login issues the bearer token required by every mutating endpoint of the
price list admin. The very first administrator can be created without a
token; after that, only logged-in administrators manage accounts.
"""

from datetime import datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from cenniki.core.database import get_db
from cenniki.core.auth import (
    get_password_hash,
    verify_password,
    create_access_token,
    get_current_user_email,
    get_optional_user_email,
)
from cenniki.models.administrator import Administrator
from cenniki.schemas.login import (
    LoginCreate,
    LoginUpdate,
    LoginOut,
    LoginAuth,
    LoginAuthResponse,
)

router = APIRouter(prefix="/admin", tags=["Administrators"])


def _get_admin_or_404(db: Session, admin_id: int) -> Administrator:
    admin = db.query(Administrator).filter(Administrator.id == admin_id).first()
    if not admin:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Admin with ID {admin_id} not found"
        )
    return admin


@router.post("/login", response_model=LoginAuthResponse)
def login_admin(login_data: LoginAuth, db: Session = Depends(get_db)):
    """
    Authenticate an administrator and return an access token.

    Raises:
        HTTPException 401: If credentials are invalid
    """
    admin = db.query(Administrator).filter(Administrator.email == login_data.email).first()
    if not admin or not admin.is_active or not verify_password(login_data.password, admin.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    admin.last_login_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(admin)

    access_token = create_access_token(data={
        "admin_id": admin.id,
        "email": admin.email,
        "name": admin.name,
    })

    return LoginAuthResponse(access_token=access_token, token_type="bearer", admin=admin)


@router.post("/", response_model=LoginOut, status_code=status.HTTP_201_CREATED)
def create_admin(
    admin_data: LoginCreate,
    db: Session = Depends(get_db),
    current_email: Optional[str] = Depends(get_optional_user_email),
):
    """
    Create an administrator.

    Raises:
        HTTPException 401: If administrators exist and no valid token was sent
        HTTPException 400: If email already exists
    """
    if current_email is None and db.query(Administrator).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if db.query(Administrator).filter(Administrator.email == admin_data.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    new_admin = Administrator(
        name=admin_data.name,
        email=admin_data.email,
        password_hash=get_password_hash(admin_data.password),
    )
    db.add(new_admin)
    db.commit()
    db.refresh(new_admin)
    return new_admin


@router.get("/", response_model=List[LoginOut])
def get_all_admins(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    _: str = Depends(get_current_user_email),
):
    return db.query(Administrator).offset(skip).limit(limit).all()


@router.get("/{admin_id}", response_model=LoginOut)
def get_admin_by_id(admin_id: int, db: Session = Depends(get_db), _: str = Depends(get_current_user_email)):
    return _get_admin_or_404(db, admin_id)


@router.put("/{admin_id}", response_model=LoginOut)
def update_admin(
    admin_id: int,
    admin_data: LoginUpdate,
    db: Session = Depends(get_db),
    _: str = Depends(get_current_user_email),
):
    """
    Update an administrator (all fields optional, password is re-hashed).

    Raises:
        HTTPException 404: If admin not found
        HTTPException 400: If email already exists for another admin
    """
    admin = _get_admin_or_404(db, admin_id)

    if admin_data.email and admin_data.email != admin.email:
        if db.query(Administrator).filter(Administrator.email == admin_data.email).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

    update_data = admin_data.model_dump(exclude_unset=True)
    if "password" in update_data:
        update_data["password_hash"] = get_password_hash(update_data.pop("password"))

    for field, value in update_data.items():
        setattr(admin, field, value)

    db.commit()
    db.refresh(admin)
    return admin


@router.delete("/{admin_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_admin(admin_id: int, db: Session = Depends(get_db), current_email: str = Depends(get_current_user_email)):
    """
    Delete an administrator.

    Raises:
        HTTPException 404: If admin not found
        HTTPException 400: If an administrator tries to delete their own account
    """
    admin = _get_admin_or_404(db, admin_id)
    if admin.email == current_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account"
        )

    db.delete(admin)
    db.commit()
    return None
