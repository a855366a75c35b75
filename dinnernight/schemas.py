from pydantic import BaseModel, field_validator
from typing import Optional, List


class LineItemIn(BaseModel):
    category: str
    quantity: int


class CreateOrderRequest(BaseModel):
    # presence and format are checked by the order aggregate
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    items: List[LineItemIn] = []
    referral_tag: Optional[str] = None

    @field_validator("customer_name", "customer_email", "customer_phone")
    @classmethod
    def strip(cls, v: str) -> str:
        return v.strip()


class VerifyPaymentRequest(BaseModel):
    reference: str

    @field_validator("reference")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reference must not be empty")
        return v.strip()


class VerifyTicketRequest(BaseModel):
    """Either the scanned QR text or order id + code typed in by hand."""
    qr_data: Optional[str] = None
    order_id: Optional[str] = None
    code: Optional[int] = None


class VoteRequest(BaseModel):
    award_id: str
    awardee_id: str
    email: str

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Invalid email address")
        return v


class ArtistRegistration(BaseModel):
    name: str
    email: str
    phone: str
    act_type: str
    social_link: Optional[str] = None

    @field_validator("name", "phone", "act_type")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Invalid email address")
        return v


class ContestRegistration(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: str
    department: str
    level: str
    bio: str
    photo_url: Optional[str] = None

    @field_validator("first_name", "last_name", "phone", "department",
                     "level", "bio")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Invalid email address")
        return v


class AdminLogin(BaseModel):
    username: str
    password: str


class ShortlistUpdate(BaseModel):
    is_shortlisted: bool


class AwardCreate(BaseModel):
    title: str
    description: Optional[str] = None
    show_public_counts: bool = False


class AwardeeCreate(BaseModel):
    name: str
    slug: str
    bio: Optional[str] = None
    photo_url: Optional[str] = None

    @field_validator("slug")
    @classmethod
    def slug_must_be_valid(cls, v: str) -> str:
        v = v.strip().lower()
        if not v or not all(ch.isalnum() or ch == "-" for ch in v):
            raise ValueError("slug may only contain letters, digits and -")
        return v
