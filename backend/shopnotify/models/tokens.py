"""
Pydantic models for public access tokens and shop sending identity.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ResourceKind(str, Enum):
    INVOICE = "invoice"
    APPOINTMENT = "appointment"


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


# Fixed channel order so sent_via is stored deterministically
CHANNEL_ORDER = [Channel.EMAIL, Channel.SMS]


class AccessToken(BaseModel):
    """
    A bearer token granting public read access to one invoice or appointment.

    ``resource_id`` maps to ``invoice_id`` / ``appointment_id`` depending on
    the table the token lives in; the repository does that translation.
    """
    token: str
    shop_id: str
    resource_id: str
    kind: ResourceKind
    expires_at: datetime
    created_at: Optional[datetime] = None
    sent_via: List[str] = Field(default_factory=list)
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    short_code: Optional[str] = None

    def is_valid_at(self, now: datetime) -> bool:
        """A token is usable strictly before its expiry instant."""
        return now < self.expires_at


class IssuedToken(BaseModel):
    """Result of issue-or-refresh: the token plus whether it was reused."""
    access_token: AccessToken
    is_existing: bool

    @property
    def token(self) -> str:
        return self.access_token.token

    @property
    def short_code(self) -> Optional[str]:
        return self.access_token.short_code


class ShopIdentity(BaseModel):
    """Display details and SMS sending number for a shop."""
    shop_id: str
    name: str = "Business"
    logo: Optional[str] = None
    sms_number: Optional[str] = None
    google_business_name: Optional[str] = None

    def email_sender(self, address: str) -> str:
        """Sender header on the shared domain, e.g. 'Joe's Garage <invoices@...>'."""
        return f"{self.name} <{address}>"
