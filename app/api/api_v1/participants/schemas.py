"""
Participant Workflow Pydantic Schemas
File: app/api/api_v1/participants/schemas.py
Description: Request bodies for the participant signing endpoints (camelCase on the wire)
"""

from pydantic import BaseModel, Field, EmailStr, validator
from typing import Any, Dict, Optional


class SubmitFieldsRequest(BaseModel):
    field_values: Dict[str, Any] = Field(..., alias="fieldValues", description="fieldId -> value")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {"fieldValues": {"full_name": "Jane Doe", "agree": True}}
        }


class SendEmailOtpRequest(BaseModel):
    field_id: str = Field(..., alias="fieldId", min_length=1)
    email: EmailStr = Field(..., description="Must match the email assigned to the participant")

    class Config:
        populate_by_name = True


class SendSmsOtpRequest(BaseModel):
    field_id: str = Field(..., alias="fieldId", min_length=1)
    phone: str = Field(..., description="Normalized before comparison with the assigned phone")

    class Config:
        populate_by_name = True


class VerifyOtpRequest(BaseModel):
    field_id: str = Field(..., alias="fieldId", min_length=1)
    otp: str = Field(..., description="Code received by email or SMS")

    @validator('otp')
    def strip_otp(cls, v):
        return v.strip()

    class Config:
        populate_by_name = True


class RejectRequest(BaseModel):
    reason: str = Field("", description="Why the document is rejected (max 500 characters)")


class RegisterContactRequest(BaseModel):
    email: EmailStr
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    phone: Optional[str] = None
    title: Optional[str] = Field(None, max_length=100)
    language: Optional[str] = Field("en", max_length=10)

    @validator('first_name', 'last_name')
    def validate_name(cls, v):
        """Names cannot be blank"""
        if not v or v.strip() == "":
            raise ValueError("Name cannot be empty")
        return v.strip()

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "email": "new.signer@example.com",
                "firstName": "New",
                "lastName": "Signer",
                "phone": "+31612345678"
            }
        }


class ReassignRequest(BaseModel):
    new_contact_id: int = Field(..., alias="newContactId")
    reason: str = Field("", description="Required, shown to the new participant")

    class Config:
        populate_by_name = True


class AddReceiverRequest(BaseModel):
    new_contact_id: int = Field(..., alias="newContactId")

    class Config:
        populate_by_name = True
