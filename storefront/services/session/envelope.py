"""Response envelopes: encrypted ``{iv, encryptedData}`` or plain ``{data, message}``."""
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from storefront.services.session.crypto import PayloadCipher


class EncryptedEnvelope(BaseModel):
    """Hex encoded AES-256-CBC payload."""

    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["encrypted"] = "encrypted"
    iv: str
    encrypted_data: str = Field(alias="encryptedData")

    def to_wire(self) -> dict:
        """Body as sent over HTTP."""
        return {"iv": self.iv, "encryptedData": self.encrypted_data}


class PlainEnvelope(BaseModel):
    """Normalized response body."""

    kind: Literal["plain"] = "plain"
    data: Any = None
    message: Optional[str] = None


Envelope = Union[EncryptedEnvelope, PlainEnvelope]


def _normalize(payload: Any) -> PlainEnvelope:
    if not isinstance(payload, dict):
        return PlainEnvelope(data=payload)
    # Signup responses carry the session under "userData"
    if "data" in payload:
        data = payload["data"]
    elif "userData" in payload:
        data = payload["userData"]
    else:
        data = payload
    return PlainEnvelope(data=data, message=payload.get("message"))


def parse_envelope(payload: Any) -> Envelope:
    """Classify a raw JSON body as encrypted or plain."""
    if isinstance(payload, dict) and payload.get("iv") and payload.get("encryptedData"):
        return EncryptedEnvelope(iv=payload["iv"], encrypted_data=payload["encryptedData"])
    return _normalize(payload)


def decode_envelope(payload: Any, cipher: PayloadCipher) -> PlainEnvelope:
    """Decode either response shape into a PlainEnvelope."""
    envelope = parse_envelope(payload)
    if isinstance(envelope, EncryptedEnvelope):
        return _normalize(cipher.decrypt(envelope.iv, envelope.encrypted_data))
    return envelope


def encrypt_payload(data: Any, cipher: PayloadCipher) -> EncryptedEnvelope:
    """Encrypt a request body."""
    return EncryptedEnvelope(**cipher.encrypt(data))
