"""
Gateway API Schemas

Pydantic models for instance, messaging and admin requests.
"""

from pydantic import BaseModel, Field

from wa_gateway.integrations.providers.base import (
    ButtonType,
    CarouselButton,
    CarouselCard,
    CarouselMessage,
    TextMessage,
)


class BindSessionRequest(BaseModel):
    """Link the tenant to an existing vendor session."""

    name: str = Field(..., min_length=1, description="Vendor session name")
    token: str | None = Field(default=None, description="Session token, looked up on the vendor when omitted")

    model_config = {"json_schema_extra": {"example": {"name": "wa-acme-42", "token": None}}}


class ConnectRequest(BaseModel):
    phone: str | None = Field(default=None, description="Phone number for pairing-code login")


class TextMessageRequest(BaseModel):
    """Schema for sending a text message."""

    phone: str = Field(..., min_length=5, description="Recipient phone number")
    message: str = Field(..., min_length=1, description="Message text")

    def to_message(self) -> TextMessage:
        return TextMessage(phone=self.phone, text=self.message)


class CarouselButtonSchema(BaseModel):
    text: str = Field(..., min_length=1)
    type: ButtonType = ButtonType.REPLY
    id: str | None = None
    url: str | None = None
    phone: str | None = None
    copy_text: str | None = Field(default=None, alias="copyText")

    model_config = {"populate_by_name": True}


class CarouselCardSchema(BaseModel):
    text: str
    image: str | None = None
    buttons: list[CarouselButtonSchema] = Field(default_factory=list)


class CarouselMessageRequest(BaseModel):
    """Schema for sending a carousel message."""

    phone: str = Field(..., min_length=5, description="Recipient phone number")
    message: str = Field(..., description="Text shown above the cards")
    cards: list[CarouselCardSchema] = Field(..., min_length=1, description="Carousel cards")
    delay_seconds: int = Field(default=0, ge=0, le=60, description="Typing delay before sending")

    def to_message(self) -> CarouselMessage:
        return CarouselMessage(
            phone=self.phone,
            text=self.message,
            cards=[
                CarouselCard(
                    text=card.text,
                    image=card.image,
                    buttons=[
                        CarouselButton(
                            text=button.text,
                            type=button.type,
                            id=button.id,
                            url=button.url,
                            phone=button.phone,
                            copy_text=button.copy_text,
                        )
                        for button in card.buttons
                    ],
                )
                for card in self.cards
            ],
            delay_seconds=self.delay_seconds,
        )


class ConfigureWebhookRequest(BaseModel):
    public_url: str | None = Field(default=None, description="Public base URL; defaults to PUBLIC_BASE_URL")
