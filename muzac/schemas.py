"""
Pydantic schemas for the Muzac API.
"""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):
    email: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=1, max_length=256)


class ConfirmRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=256)
    code: str = Field(..., min_length=1, max_length=16)


class ResendRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=256)


class UserInfo(BaseModel):
    email: str
    sub: Optional[str] = None


class LoginUser(BaseModel):
    email: str


class LoginResponse(BaseModel):
    token: str
    user: LoginUser


class MessageResponse(BaseModel):
    message: str


class VerifyResponse(BaseModel):
    user: UserInfo


class UploadRequest(BaseModel):
    imageData: Optional[str] = None


class UploadResponse(BaseModel):
    message: str
    date: str


class DailyImageOut(BaseModel):
    date: str
    url: str


class ImagesResponse(BaseModel):
    images: list[DailyImageOut]


class PreferencesResponse(BaseModel):
    language: Literal["tr", "en"]


class PreferencesUpdate(BaseModel):
    language: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool


class RenderImage(BaseModel):
    date: str
    url: str


class RenderRequest(BaseModel):
    images: list[RenderImage] = Field(default_factory=list)
    language: Literal["tr", "en"] = "tr"
    backgroundColor: str = "#000000"
    transitionType: Literal["fade", "slide", "none"] = "fade"
    imageDuration: float = Field(default=1.0, gt=0, le=60)


class RenderStartResponse(BaseModel):
    renderId: str
    bucketName: str
    outName: str
    message: str


class RenderStatusResponse(BaseModel):
    done: bool
    overallProgress: float
    outputFile: Optional[str] = None


class PersonCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(default=None, max_length=64)
    name: str = Field(..., min_length=1, max_length=128)
    surname: str = Field(..., max_length=128)
    nickname: Optional[str] = Field(default=None, max_length=128)
    birthday: date
    gender: Literal["Male", "Female"]
    mom: str = ""
    dad: str = ""
    marriedTo: Optional[str] = None
    photo: list[str] = Field(default_factory=list)

    def as_record(self) -> dict:
        record = self.model_dump()
        record["birthday"] = self.birthday.isoformat()
        return record


class PersonOut(BaseModel):
    id: str
    name: str
    surname: str
    nickname: Optional[str] = None
    birthday: str
    gender: str
    mom: str = ""
    dad: str = ""
    marriedTo: Optional[str] = None
    photo: list[str] = Field(default_factory=list)
    createdAt: Optional[str] = None


class MembersResponse(BaseModel):
    members: list[PersonOut]


class ChildrenResponse(BaseModel):
    children: list[PersonOut]


class ParentsResponse(BaseModel):
    parents: list[PersonOut]


class TreeNodeOut(BaseModel):
    member: PersonOut
    spouse: Optional[PersonOut] = None
    hasSpouse: bool
    hasChildren: bool
    children: list["TreeNodeOut"] = Field(default_factory=list)


TreeNodeOut.model_rebuild()


class TreeResponse(BaseModel):
    root: TreeNodeOut
    text: str
