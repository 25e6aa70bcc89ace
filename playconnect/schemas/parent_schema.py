from pydantic import BaseModel, EmailStr
from typing import Optional, List
from datetime import datetime


# --------------------------------------------------
# CHILD
# --------------------------------------------------
class ChildCreate(BaseModel):
    name: str
    birth_year: Optional[int] = None


class ChildOut(BaseModel):
    uuid: str
    name: str
    birth_year: Optional[int] = None

    class Config:
        from_attributes = True


# --------------------------------------------------
# PARENT
# --------------------------------------------------
class ParentCreate(BaseModel):
    display_name: str
    email: Optional[EmailStr] = None    # falls back to the token's email
    phone: Optional[str] = None


class ParentOut(BaseModel):
    uuid: str
    display_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime
    children: List[ChildOut] = []

    class Config:
        from_attributes = True


class ParentRegisteredOut(BaseModel):
    parent: ParentOut
    children_created: int
    requests_converted: int
