# schemas/user.py
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Literal, Optional

Role = Literal["ADMIN", "EMPLOYEE"]

# Shared properties for user models
class UserBase(BaseModel):
    email: EmailStr

# Schema for user authentication credentials
class UserLogin(UserBase):
    password: str

# Schema for user registration requests
class UserCreate(UserBase):
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)

# Output schema for user profile details
class UserResponse(UserBase):
    id: int
    name: str
    role: str
    active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

# Creator reference embedded in movement batches
class UserRef(BaseModel):
    id: int
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)

# Admin listing row, with the number of batches the user registered
class UserListItem(UserResponse):
    batch_count: int = 0

class UserPage(BaseModel):
    items: List[UserListItem]
    total: int
    page: int
    page_size: int

# Schema for administrative user updates - all fields optional
class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=6)

# Schema for JWT authentication token response
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
