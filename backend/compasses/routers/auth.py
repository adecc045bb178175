from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
import logging

from ..settings import settings
from sqlalchemy.orm import Session
from ..competencies import get_level_data
from ..db import get_db
from ..errors import AuthenticationError, AuthorizationError, ConflictError, ValidationError
from ..models import User, utcnow

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

ROLE_USER = "user"
ROLE_ADMIN = "admin"


class UserOut(BaseModel):
	id: str
	username: str
	experienceYears: int
	level: int
	standardScore: float


class AuthResponse(BaseModel):
	token: str
	user: UserOut


class AdminOut(BaseModel):
	username: str
	role: str = ROLE_ADMIN


class AdminAuthResponse(BaseModel):
	token: str
	admin: AdminOut


class RegisterRequest(BaseModel):
	username: str = ""
	password: str = ""
	email: Optional[str] = None
	experienceYears: int = Field(default=0, ge=0)
	level: Optional[int] = None
	standardScore: Optional[float] = Field(default=None, ge=0, le=4)
	department: Optional[str] = None


class LoginRequest(BaseModel):
	username: str = ""
	password: Optional[str] = None
	experienceYears: Optional[int] = Field(default=None, ge=0)
	level: Optional[int] = None
	standardScore: Optional[float] = Field(default=None, ge=0, le=4)


class AdminLoginRequest(BaseModel):
	username: str = ""
	password: str = ""


def _bcrypt_safe(password: str) -> str:
	# Truncate password to 72 bytes for bcrypt compatibility
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = getattr(settings, "access_token_expire_minutes", None)
		if isinstance(minutes, int) and minutes > 0:
			delta = timedelta(minutes=minutes)
		else:
			delta = timedelta(days=7)
	return datetime.now(timezone.utc) + delta


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	expire = _resolve_expiry(expires_delta)
	to_encode.update({"exp": expire})
	encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
	return encoded_jwt


def _user_out(user: User) -> UserOut:
	return UserOut(
		id=user.id,
		username=user.username,
		experienceYears=user.experience_years,
		level=user.level,
		standardScore=user.standard_score,
	)


def _issue_user_token(user: User) -> AuthResponse:
	token = create_access_token({"sub": user.id, "role": ROLE_USER})
	return AuthResponse(token=token, user=_user_out(user))


def decode_token(token: Optional[str]) -> dict:
	if not token:
		raise AuthenticationError("Authentication required")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise AuthenticationError("Invalid or expired token")
	if not payload.get("sub"):
		raise AuthenticationError("Invalid or expired token")
	return payload


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	payload = decode_token(token)
	if payload.get("role", ROLE_USER) != ROLE_USER:
		raise AuthenticationError("Invalid or expired token")
	user = db.get(User, payload["sub"])
	if user is None:
		raise AuthenticationError("Invalid or expired token")
	return user


def require_admin(token: Optional[str] = Depends(oauth2_scheme)) -> str:
	payload = decode_token(token)
	if payload.get("role") != ROLE_ADMIN:
		raise AuthorizationError("Admin access required")
	return payload["sub"]


@router.post("/register", response_model=AuthResponse)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = (req.username or "").strip()
	password = req.password or ""
	if not username or not password:
		raise ValidationError("username and password are required")
	existing = db.query(User).filter(User.username == username).first()
	if existing:
		raise ConflictError("Username already exists")
	derived = get_level_data(req.experienceYears)
	user = User(
		username=username,
		password_hash=hash_password(password),
		email=(req.email or "").strip() or None,
		department=(req.department or "").strip() or None,
		experience_years=req.experienceYears,
		level=req.level if req.level is not None else derived["level"],
		standard_score=req.standardScore if req.standardScore is not None else derived["standardScore"],
	)
	db.add(user)
	db.commit()
	db.refresh(user)
	logger.info("Registered user %s", user.username)
	return _issue_user_token(user)


@router.post("/login", response_model=AuthResponse)
async def login(req: LoginRequest, db: Session = Depends(get_db)):
	username = (req.username or "").strip()
	if not username:
		raise ValidationError("username is required")
	user = db.query(User).filter(User.username == username).first()
	if user is None:
		# First login creates the account
		years = req.experienceYears or 0
		derived = get_level_data(years)
		user = User(
			username=username,
			password_hash=hash_password(req.password or settings.default_password),
			experience_years=years,
			level=req.level if req.level is not None else derived["level"],
			standard_score=req.standardScore if req.standardScore is not None else derived["standardScore"],
		)
		db.add(user)
		logger.info("Created user %s on first login", username)
	elif req.password and not verify_password(req.password, user.password_hash):
		raise AuthenticationError("Invalid credentials")
	user.last_login = utcnow()
	db.commit()
	db.refresh(user)
	return _issue_user_token(user)


@router.post("/admin/login", response_model=AdminAuthResponse)
async def admin_login(req: AdminLoginRequest):
	if req.username != settings.admin_username or req.password != settings.admin_password:
		raise AuthenticationError("Invalid admin credentials")
	token = create_access_token({"sub": settings.admin_username, "role": ROLE_ADMIN})
	return AdminAuthResponse(token=token, admin=AdminOut(username=settings.admin_username))
