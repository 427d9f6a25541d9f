"""Clerk webhook payload schemas (user.* events)."""

from pydantic import BaseModel, ConfigDict, Field


class ClerkWebhookEmail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    email_address: str


class ClerkUserEventData(BaseModel):
    """``data`` object of user.created / user.updated / user.deleted events."""

    model_config = ConfigDict(extra="ignore")

    id: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    image_url: str | None = None
    email_addresses: list[ClerkWebhookEmail] = Field(default_factory=list)
    primary_email_address_id: str | None = None
    deleted: bool = False

    @property
    def primary_email(self) -> str | None:
        for address in self.email_addresses:
            if address.id and address.id == self.primary_email_address_id:
                return address.email_address
        return self.email_addresses[0].email_address if self.email_addresses else None

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return (full or "User")[:50]


class ClerkWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    data: dict
