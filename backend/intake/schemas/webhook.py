from pydantic import BaseModel


class MediaWebhookPayload(BaseModel):
    sender: str
    file_name: str
    mime_type: str | None = None
    content_base64: str
    shipment_id: str | None = None
    caption: str | None = None
