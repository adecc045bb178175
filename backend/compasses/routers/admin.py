from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..reporting import nurse_roster
from .auth import require_admin


router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/nurses")
async def nurses(admin: str = Depends(require_admin), db: Session = Depends(get_db)):
	return nurse_roster(db)
