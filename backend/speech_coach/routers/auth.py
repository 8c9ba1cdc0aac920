import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import Principal, TokenVerifier, hash_password, open_session, verify_password
from ..db import get_db
from ..deps import get_settings, get_token_verifier
from ..models import AuthUser
from ..settings import Settings

router = APIRouter(prefix="/auth", tags=["auth"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

GUEST_PREFIX = "guest-"


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class PrincipalOut(BaseModel):
	id: str
	is_anonymous: bool


def authenticate_user(db: Session, username: str, password: str) -> Optional[Principal]:
	user_row = db.query(AuthUser).filter(AuthUser.username == username).first()
	if user_row and verify_password(password, user_row.password_hash):
		return Principal(id=username)
	return None


@router.post("/token", response_model=Token)
async def login(
	form_data: OAuth2PasswordRequestForm = Depends(),
	db: Session = Depends(get_db),
	settings: Settings = Depends(get_settings),
):
	principal = authenticate_user(db, form_data.username, form_data.password)
	if not principal:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	return Token(access_token=open_session(db, settings, principal))


@router.post("/anonymous", response_model=Token)
async def anonymous_session(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
	# Guest sessions get a stable id for their lifetime but the lower quota tier
	principal = Principal(id=f"{GUEST_PREFIX}{uuid.uuid4().hex}", is_anonymous=True)
	return Token(access_token=open_session(db, settings, principal))


def get_current_principal(
	token: str = Depends(oauth2_scheme),
	verifier: TokenVerifier = Depends(get_token_verifier),
) -> Principal:
	principal = verifier.verify(token)
	if principal is None:
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	return principal


@router.get("/me", response_model=PrincipalOut)
async def me(principal: Principal = Depends(get_current_principal)):
	return PrincipalOut(id=principal.id, is_anonymous=principal.is_anonymous)


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), verifier: TokenVerifier = Depends(get_token_verifier)):
	if not verifier.revoke(token):
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	return {"ok": True}


class RegisterRequest(BaseModel):
	username: str
	password: str
	email: Optional[str] = None


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = (req.username or "").strip()
	password = req.password or ""
	email = (req.email or "").strip() or None
	if not username or not password:
		raise HTTPException(status_code=400, detail="username and password are required")
	if len(username) < 3 or len(username) > 128:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	if username.lower().startswith(GUEST_PREFIX):
		raise HTTPException(status_code=400, detail="usernames starting with 'guest-' are reserved")
	if len(password) < 8:
		raise HTTPException(status_code=400, detail="password must be at least 8 characters")
	existing = db.query(AuthUser).filter(AuthUser.username == username).first()
	if existing:
		raise HTTPException(status_code=409, detail="username already exists")
	db.add(AuthUser(username=username, password_hash=hash_password(password), email=email))
	db.commit()
	return {"ok": True}
